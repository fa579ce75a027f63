"""Deduplicate, sort and average canonical price records."""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple

from .grades import grade_rank
from .models import CanonicalPriceRecord
from .units import round_half_up


@dataclass(slots=True)
class _Bucket:
    record: CanonicalPriceRecord
    total: int
    count: int

    def add(self, price: int) -> None:
        self.total += price
        self.count += 1

    def merged(self) -> CanonicalPriceRecord:
        if self.count == 1:
            return self.record
        mean = round_half_up(Decimal(self.total) / Decimal(self.count))
        return replace(self.record, price=mean)


def dedup_key(record: CanonicalPriceRecord, by_grade: bool) -> Tuple[str, ...]:
    if by_grade:
        return (record.date, record.market_name, record.grade)
    return (record.date, record.market_name)


def deduplicate(
    records: Iterable[CanonicalPriceRecord],
    by_grade: bool = True,
) -> List[CanonicalPriceRecord]:
    """Merge records sharing a key, replacing price with the mean of the group.

    The first record of each group supplies the non-price fields and the
    group keeps its first-seen position.
    """
    buckets: Dict[Tuple[str, ...], _Bucket] = {}
    for record in records:
        key = dedup_key(record, by_grade)
        bucket = buckets.get(key)
        if bucket is None:
            buckets[key] = _Bucket(record=record, total=record.price, count=1)
        else:
            bucket.add(record.price)
    return [bucket.merged() for bucket in buckets.values()]


def market_collation_key(name: str) -> str:
    # Precomposed Hangul syllables are encoded in dictionary order, so NFC
    # code point order is 가나다 order.
    return unicodedata.normalize("NFC", name).casefold()


def sort_key(record: CanonicalPriceRecord) -> tuple:
    return (
        -date.fromisoformat(record.date).toordinal(),
        market_collation_key(record.market_name),
        grade_rank(record.grade),
        -record.price,
    )


def sort_records(records: Iterable[CanonicalPriceRecord]) -> List[CanonicalPriceRecord]:
    """Newest date first, then market name, grade rank, and highest price."""
    return sorted(records, key=sort_key)


def average_price(records: Iterable[CanonicalPriceRecord]) -> int:
    prices = [record.price for record in records]
    if not prices:
        return 0
    return round_half_up(Decimal(sum(prices)) / Decimal(len(prices)))
