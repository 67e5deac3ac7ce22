# orderbot/ordering/menu.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from .cart import CATEGORY_DRINK, CATEGORY_MAIN, CATEGORY_SNACK, format_price

TAG_GRILLED = "grilled"
TAG_SMOKED = "smoked"
TAG_SUNDAY = "sunday-special"
TAG_PLAIN = "plain"

# presentation colour on the main-dish list -> category tag
COLOR_TAGS = {
    "blue": TAG_GRILLED,
    "red": TAG_SMOKED,
    "green": TAG_SUNDAY,
}

# (tag, heading) in listing order; plain dishes carry no heading
MAIN_SECTIONS: List[Tuple[str, str]] = [
    (TAG_GRILLED, "🔥 *GRILLED*\n(corn arepa, potato, salad)"),
    (TAG_SMOKED, "💨 *SMOKED*\n(corn arepa, potato, salad)"),
    (TAG_SUNDAY, "🌟 *SUNDAY SPECIALS*"),
    (TAG_PLAIN, ""),
]
SNACKS_HEADING = "🍢 *SNACKS*\n(served with sweet-corn or corn arepa)"


@dataclass(frozen=True)
class MenuItem:
    name: str
    price: Decimal
    category: str = CATEGORY_MAIN
    tag: str = TAG_PLAIN


@dataclass
class Menu:
    main_items: List[MenuItem] = field(default_factory=list)
    snack_items: List[MenuItem] = field(default_factory=list)
    drink_items: List[MenuItem] = field(default_factory=list)

    def mains_for_day(self, sunday: bool) -> List[MenuItem]:
        out: List[MenuItem] = []
        for tag, _heading in MAIN_SECTIONS:
            if tag == TAG_SUNDAY and not sunday:
                continue
            out.extend(it for it in self.main_items if it.tag == tag)
        return out

    def listing(self, sunday: bool) -> List[MenuItem]:
        """Combined 1-based index space: mains (in section order) then snacks."""
        return self.mains_for_day(sunday) + list(self.snack_items)


def is_sunday(now: datetime) -> bool:
    return now.weekday() == 6


def _parse_price(raw: Any) -> Decimal:
    text = str(raw).strip()
    if isinstance(raw, str):
        # sheet-style "$ 12.000"
        text = text.replace("$", "").replace(" ", "").replace(".", "").replace(",", "")
    try:
        price = Decimal(text)
    except InvalidOperation as e:
        raise ValueError(f"Invalid price {raw!r}") from e
    if price < 0:
        raise ValueError(f"Negative price {raw!r}")
    return price


def _parse_items(rows: Any, category: str, with_color: bool = False) -> List[MenuItem]:
    out: List[MenuItem] = []
    if not isinstance(rows, list):
        return out
    for row in rows:
        if not isinstance(row, dict):
            continue
        name = str(row.get("name") or "").strip()
        if not name:
            continue
        tag = TAG_PLAIN
        if with_color:
            tag = COLOR_TAGS.get(str(row.get("color") or "").strip().lower(), TAG_PLAIN)
        out.append(MenuItem(name=name, price=_parse_price(row.get("price", 0)), category=category, tag=tag))
    return out


def parse_menu(raw: Dict[str, Any]) -> Menu:
    if not isinstance(raw, dict):
        raise ValueError("Menu document must be a JSON object")
    missing = [k for k in ("main", "snacks", "drinks") if k not in raw]
    if missing:
        raise ValueError(f"Menu document is missing sections: {missing}")
    return Menu(
        main_items=_parse_items(raw.get("main"), CATEGORY_MAIN, with_color=True),
        snack_items=_parse_items(raw.get("snacks"), CATEGORY_SNACK),
        drink_items=_parse_items(raw.get("drinks"), CATEGORY_DRINK),
    )


def render_menu(menu: Menu, sunday: bool, currency_symbol: str = "$") -> str:
    msg = "🎉 Here is our menu:\n\n"
    idx = 1

    def section(heading: str, items: List[MenuItem]) -> None:
        nonlocal msg, idx
        if not items:
            return
        if heading:
            msg += f"{heading}\n"
        for it in items:
            msg += f"*{idx}.* {it.name} - {format_price(it.price, currency_symbol)}\n"
            idx += 1
        msg += "\n"

    for tag, heading in MAIN_SECTIONS:
        if tag == TAG_SUNDAY and not sunday:
            continue
        section(heading, [it for it in menu.main_items if it.tag == tag])
    section(SNACKS_HEADING, menu.snack_items)

    return msg + "*0.* Cancel"


def render_drinks(drinks: List[MenuItem], currency_symbol: str = "$", more: bool = False) -> str:
    msg = "🥤 These are our drinks:\n"
    for i, it in enumerate(drinks, start=1):
        msg += f"*{i}.* {it.name} - {format_price(it.price, currency_symbol)}\n"
    return msg + ("\n*0.* No more drinks" if more else "\n*0.* No drinks")


def pick(listing: List[MenuItem], selection: str) -> Optional[MenuItem]:
    """1-based selection into a rendered listing; None when out of range."""
    n = parse_positive_int(selection)
    if n is None or n > len(listing):
        return None
    return listing[n - 1]


def parse_positive_int(text: str) -> Optional[int]:
    s = (text or "").strip()
    if not (s.isascii() and s.isdigit()):
        return None
    n = int(s)
    return n if n > 0 else None
