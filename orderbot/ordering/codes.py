# orderbot/ordering/codes.py
from __future__ import annotations

import random
import re
from typing import AbstractSet, Optional

from ..errors import OrderCodeError

# no I, O or Q: they read like 1 and 0 on a phone screen
CODE_LETTERS = "ABCDEFGHJKLMNPRSTUVWXYZ"
CODE_DIGITS = "0123456789"
CODE_RE = re.compile(r"^[A-Z]{3}-\d{3}$")
MAX_ATTEMPTS = 20

_rng = random.SystemRandom()


def normalize_code(text: str) -> str:
    return re.sub(r"\s+", "", text or "").upper()


def is_valid_code(text: str) -> bool:
    return bool(CODE_RE.match(text or ""))


def random_code(rng: Optional[random.Random] = None) -> str:
    r = rng or _rng
    letters = "".join(r.choice(CODE_LETTERS) for _ in range(3))
    digits = "".join(r.choice(CODE_DIGITS) for _ in range(3))
    return f"{letters}-{digits}"


def generate_order_code(
    existing: AbstractSet[str],
    rng: Optional[random.Random] = None,
    max_attempts: int = MAX_ATTEMPTS,
) -> str:
    taken = {c.upper() for c in existing}
    for _ in range(max_attempts):
        code = random_code(rng)
        if code not in taken:
            return code
    raise OrderCodeError(f"No unique order code after {max_attempts} attempts")
