"""Domain models for raw upstream quotes and canonical price records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

RawRecord = Mapping[str, Any]


@dataclass(slots=True, frozen=True)
class Query:
    product_name: str
    region: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.product_name or not self.product_name.strip():
            raise ValueError("product_name is required")


@dataclass(slots=True)
class DecodedPage:
    items: List[RawRecord] = field(default_factory=list)
    status_code: Optional[str] = None
    status_message: Optional[str] = None
    envelope: Optional[str] = None
    no_data: bool = False


@dataclass(slots=True, frozen=True)
class RawResponse:
    """One upstream page as received, plus its decoding once the client has read it."""

    page: int
    status: int
    content_type: str
    text: str
    decoded: Optional[DecodedPage] = None


@dataclass(slots=True)
class ResolvedFields:
    """Canonical fields pulled out of a raw record; any of them may be absent."""

    market_name: Optional[str] = None
    product_name: Optional[str] = None
    price: Optional[str] = None
    unit_descriptor: Optional[str] = None
    unit: Optional[str] = None
    date: Optional[str] = None
    grade: Optional[str] = None
    grade_hints: Tuple[str, ...] = ()
    price_key: Optional[str] = None


@dataclass(slots=True)
class CanonicalPriceRecord:
    market_name: str
    product_name: str
    grade: str
    price: int
    unit: str
    date: str

    def to_payload(self) -> Dict[str, Any]:
        return {
            "market_name": self.market_name,
            "price": self.price,
            "grade": self.grade,
            "date": self.date,
            "unit": self.unit,
            "product_name": self.product_name,
        }


@dataclass(slots=True)
class AggregateResult:
    records: List[CanonicalPriceRecord] = field(default_factory=list)
    average_price: int = 0

    @classmethod
    def empty(cls) -> "AggregateResult":
        return cls(records=[], average_price=0)

    @property
    def count(self) -> int:
        return len(self.records)

    def min_price(self) -> Optional[int]:
        return min((record.price for record in self.records), default=None)

    def max_price(self) -> Optional[int]:
        return max((record.price for record in self.records), default=None)

    def to_payload(self) -> Dict[str, Any]:
        """Render the caller-facing response shape."""
        return {
            "records": [record.to_payload() for record in self.records],
            "averagePrice": self.average_price,
            "count": self.count,
        }
