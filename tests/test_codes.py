import random

import pytest

from orderbot.errors import OrderCodeError
from orderbot.ordering.codes import (
    CODE_LETTERS,
    CODE_RE,
    generate_order_code,
    is_valid_code,
    normalize_code,
    random_code,
)


def test_generated_codes_are_well_formed_and_fresh():
    existing = set()
    for _ in range(1000):
        code = generate_order_code(existing)
        assert CODE_RE.match(code)
        assert code not in existing
        existing.add(code)
    assert len(existing) == 1000


def test_independent_generations_rarely_collide():
    codes = [generate_order_code(set()) for _ in range(100)]
    assert len(set(codes)) == len(codes)


def test_ambiguous_letters_never_used():
    rng = random.Random(7)
    for _ in range(500):
        letters = random_code(rng)[:3]
        assert all(c in CODE_LETTERS for c in letters)
        assert not set(letters) & {"I", "O", "Q"}


def test_exhausted_attempts_raise():
    class Fixed(random.Random):
        def choice(self, seq):
            return seq[0]

    with pytest.raises(OrderCodeError):
        generate_order_code({"AAA-000"}, rng=Fixed(), max_attempts=5)


def test_existing_codes_are_compared_case_insensitively():
    class Fixed(random.Random):
        def choice(self, seq):
            return seq[0]

    with pytest.raises(OrderCodeError):
        generate_order_code({"aaa-000"}, rng=Fixed(), max_attempts=3)


@pytest.mark.parametrize(
    "raw,ok",
    [("ABC-123", True), (" abc-123 ", True), ("abc123", False), ("AB-1234", False), ("", False)],
)
def test_code_validation(raw, ok):
    assert is_valid_code(normalize_code(raw)) is ok
