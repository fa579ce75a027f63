"""Price parsing and box-to-unit normalization."""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable, Optional, Sequence, Tuple

from .exceptions import RecordRejected

__all__ = [
    "parse_price",
    "round_half_up",
    "parse_unit_descriptor",
    "normalize",
    "NormalizedPrice",
    "HIGH_PRICE_THRESHOLD",
]

_THOUSAND_PATTERN = re.compile(r"[,\s\u202F]")
_LEADING_NUMBER = re.compile(r"^[+-]?\d+(?:\.\d+)?")

# Box prices above this are assumed to cover the whole box, not one kg.
HIGH_PRICE_THRESHOLD = 100_000

COUNT_SUFFIXES = ("포기", "개", "박스", "망", "봉", "head", "piece", "box", "bag")

# Products traded by head or piece; their box prices are never split per kg.
COUNT_COMMODITIES = ("배추", "무", "파", "cabbage", "radish", "scallion")

# Names ending in a count keyword that are still sold by weight.
WEIGHT_COMMODITIES = ("양파", "onion")

_COMPOUND_PATTERN = re.compile(
    r"(\d+(?:\.\d+)?)\s*kg\s*\(\s*(\d+(?:\.\d+)?)\s*kg\s*\)", re.IGNORECASE
)
_COUNT_PATTERN = re.compile(
    r"(\d+)\s*(" + "|".join(COUNT_SUFFIXES) + r")", re.IGNORECASE
)
_WEIGHT_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*kg", re.IGNORECASE)
_TOKEN_SPLIT = re.compile(r"[\s/(),]+")


def parse_price(raw: str) -> int:
    """Parse a currency amount such as ``'184,000'`` into whole units.

    Fractions are truncated; trailing text after the number is ignored.
    """
    if raw is None:
        raise ValueError("value is required")
    value = _THOUSAND_PATTERN.sub("", str(raw).strip())
    match = _LEADING_NUMBER.match(value)
    if not match:
        raise ValueError(f"unable to parse price from '{raw}'")
    try:
        return int(Decimal(match.group(0)).to_integral_value(rounding=ROUND_DOWN))
    except InvalidOperation as exc:  # pragma: no cover - regex guarantees a number
        raise ValueError(f"unable to parse price from '{raw}'") from exc


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _format_number(value: Decimal) -> str:
    if value == value.to_integral_value():
        return str(int(value))
    return format(value.normalize(), "f")


@dataclass(slots=True, frozen=True)
class NormalizedPrice:
    price: int
    unit: str
    box_size: Decimal = Decimal(1)
    converted: bool = False


DescriptorRule = Tuple[re.Pattern, Callable[[re.Match], Tuple[Decimal, str]]]

DESCRIPTOR_RULES: Sequence[DescriptorRule] = (
    # "20kg(1kg)": box of 20 kg quoted per 1 kg unit
    (
        _COMPOUND_PATTERN,
        lambda m: (Decimal(m.group(1)), f"{_format_number(Decimal(m.group(2)))}kg"),
    ),
    # "1포기", "10개": counted units, never converted
    (_COUNT_PATTERN, lambda m: (Decimal(1), f"{m.group(1)}{m.group(2)}")),
    # "10kg": a plain box weight
    (_WEIGHT_PATTERN, lambda m: (Decimal(m.group(1)), "1kg")),
)


def parse_unit_descriptor(descriptor: Optional[str]) -> Tuple[Decimal, str]:
    """Return ``(box_size, unit)`` for a unit descriptor; ``(1, '1kg')`` if unknown."""
    if descriptor:
        for pattern, build in DESCRIPTOR_RULES:
            match = pattern.search(descriptor)
            if match:
                box_size, unit = build(match)
                if box_size <= 0:
                    box_size = Decimal(1)
                return box_size, unit
    return Decimal(1), "1kg"


ConversionRule = Tuple[
    Callable[[int, Decimal], bool],
    Callable[[int, Decimal, str], Tuple[int, str, bool]],
]

# Evaluated top to bottom; the first matching predicate decides.
# Known misclassification source: box intent is inferred from price
# magnitude alone, so costly goods already quoted per kg can be split too.
CONVERSION_RULES: Sequence[ConversionRule] = (
    (
        lambda price, box: box > 1 and price > HIGH_PRICE_THRESHOLD,
        lambda price, box, unit: (round_half_up(Decimal(price) / box), "1kg", True),
    ),
    (
        lambda price, box: box > 1,
        lambda price, box, unit: (price, "1kg", False),
    ),
    (
        lambda price, box: True,
        lambda price, box, unit: (price, unit, False),
    ),
)


def is_count_commodity(product_hint: Optional[str]) -> bool:
    if not product_hint:
        return False
    tokens = [token for token in _TOKEN_SPLIT.split(product_hint.lower()) if token]
    return any(
        token.endswith(keyword)
        for token in tokens
        if not token.endswith(WEIGHT_COMMODITIES)
        for keyword in COUNT_COMMODITIES
    )


def normalize(
    raw_price: str,
    unit_descriptor: Optional[str],
    product_hint: Optional[str],
    explicit_unit: Optional[str] = None,
) -> NormalizedPrice:
    """Convert a raw price and unit descriptor into ``(price, unit)``.

    Parse the price, classify the descriptor, conditionally convert a box
    price to a per-kg price, then undo the conversion for products sold by
    head or piece. The order matters for ambiguous inputs.
    """
    try:
        price = parse_price(raw_price)
    except ValueError as exc:
        raise RecordRejected(str(exc)) from exc
    if price <= 0:
        raise RecordRejected(f"non-positive price '{raw_price}'")

    box_size, unit = parse_unit_descriptor(unit_descriptor)
    if explicit_unit:
        unit = explicit_unit

    for predicate, action in CONVERSION_RULES:
        if predicate(price, box_size):
            final_price, final_unit, converted = action(price, box_size, unit)
            break

    if box_size > 1 and is_count_commodity(product_hint):
        verbatim_unit = explicit_unit or f"{_format_number(box_size)}kg"
        return NormalizedPrice(price=price, unit=verbatim_unit, box_size=box_size)

    return NormalizedPrice(
        price=final_price,
        unit=final_unit,
        box_size=box_size,
        converted=converted,
    )
