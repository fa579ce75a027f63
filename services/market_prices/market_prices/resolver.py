"""Resolve canonical fields from raw upstream records.

Every canonical field has an ordered list of raw key names.  The first
key whose value is present, non-blank and not a placeholder wins, which
lets one resolver read several upstream dialects without knowing which
provider produced a record.
"""

from __future__ import annotations

import re
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple

from .exceptions import RecordRejected
from .models import RawRecord, ResolvedFields
from .units import parse_price

FIELD_CANDIDATES: Mapping[str, Sequence[str]] = {
    "market_name": (
        "marketname",
        "p_marketname",
        "marketName",
        "whsal_mrkt_nm",
        "whsalMrktNm",
        "mrktNm",
        "countyname",
        "p_countyname",
    ),
    "product_name": (
        "item_nm",
        "prdlst_nm",
        "productName",
        "corp_gds_item_nm",
        "p_itemname",
        "p_productname",
        "productname",
        "prdlstNm",
    ),
    "price": (
        "scsbd_prc",
        "dpr1",
        "p_price",
        "price",
        "amt",
        "sbid_pric",
        "cost",
        "dpr2",
        "dpr3",
        "auction_price",
        "trade_price",
    ),
    "unit_descriptor": ("kindname", "p_kindname"),
    "unit_name": ("unit_nm",),
    "unit_quantity": ("unit_qty",),
    "unit": ("unit", "p_unitname", "unitname", "stdUnit", "stdQtt", "p_unit"),
    "date": (
        "trd_clcln_ymd",
        "scsbd_dt",
        "lastest_day",
        "p_regday",
        "regday",
        "baseDate",
        "date",
    ),
    "grade": ("p_grade", "grade", "rank", "productrank", "quality", "품질"),
    "grade_hint": (
        "kindname",
        "gds_sclsf_nm",
        "gds_mclsf_nm",
        "corp_gds_vrty_nm",
        "stdPrdlstNm",
    ),
}

PLACEHOLDERS = frozenset({"-", "--", "null", "none", "n/a", "undefined"})
_TRAILING_ZEROS = re.compile(r"\.0+$|(\.\d*?)0+$")


def scalar_text(value: Any) -> Optional[str]:
    """Return the trimmed text of a scalar value, or None when it carries nothing."""
    if isinstance(value, (list, tuple)):
        if not value:
            return None
        value = value[0]
    if value is None or isinstance(value, (Mapping, list, tuple)):
        return None
    if isinstance(value, bool):
        return None
    text = str(value).strip()
    if not text or text.lower() in PLACEHOLDERS:
        return None
    return text


def get_first_non_empty(
    record: RawRecord,
    candidate_keys: Sequence[str],
    accept: Optional[Callable[[str], bool]] = None,
) -> Tuple[Optional[str], Optional[str]]:
    """Return ``(key, value)`` for the first usable candidate, else ``(None, None)``."""
    for key in candidate_keys:
        if key not in record:
            continue
        text = scalar_text(record[key])
        if text is None:
            continue
        if accept is not None and not accept(text):
            continue
        return key, text
    return None, None


def get_all_non_empty(record: RawRecord, candidate_keys: Sequence[str]) -> List[str]:
    """Every usable candidate value, in candidate order."""
    values = []
    for key in candidate_keys:
        text = scalar_text(record.get(key))
        if text is not None:
            values.append(text)
    return values


def _positive_price(text: str) -> bool:
    try:
        return parse_price(text) > 0
    except ValueError:
        return False


def _format_quantity(quantity: str) -> str:
    if "." not in quantity:
        return quantity
    return _TRAILING_ZEROS.sub(lambda m: m.group(1) or "", quantity)


def resolve(
    record: RawRecord,
    candidates: Mapping[str, Sequence[str]] = FIELD_CANDIDATES,
) -> ResolvedFields:
    """Resolve the canonical fields of ``record``.

    Raises RecordRejected when no candidate yields a positive price; every
    other field is left as None when absent.
    """

    def first(field_name: str) -> Optional[str]:
        return get_first_non_empty(record, candidates.get(field_name, ()))[1]

    price_key, price = get_first_non_empty(
        record, candidates.get("price", ()), accept=_positive_price
    )
    if price is None:
        raise RecordRejected("no positive price", keys=[str(key) for key in record])

    return ResolvedFields(
        market_name=first("market_name"),
        product_name=first("product_name"),
        price=price,
        unit_descriptor=first("unit_descriptor"),
        unit=_resolve_unit(first("unit_name"), first("unit_quantity"), first("unit")),
        date=first("date"),
        grade=first("grade"),
        grade_hints=tuple(get_all_non_empty(record, candidates.get("grade_hint", ()))),
        price_key=price_key,
    )


def _resolve_unit(
    unit_name: Optional[str],
    unit_quantity: Optional[str],
    fallback: Optional[str],
) -> Optional[str]:
    if unit_name:
        quantity = _format_quantity(unit_quantity) if unit_quantity else "1"
        return f"{quantity or '1'}{unit_name}"
    return fallback
