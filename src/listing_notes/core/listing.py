# src/listing_notes/core/listing.py

"""
Structured listing record and the coercion helpers shared by the extractor,
the form editor and persistence.

Wire format (AI response and persisted JSON) uses camelCase keys:
communityName, price, rentOrSale, layout, area, floor, orientation,
contactName, contactPhone, additionalNotes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

NEGOTIABLE = "面议"

Number = int | float
Price = int | float | str


class RentOrSale(StrEnum):
    RENT = "Rent"
    SALE = "Sale"

    @classmethod
    def parse(cls, raw: Any) -> RentOrSale:
        """Lenient parse; anything that is not clearly a sale is a rental."""
        if isinstance(raw, cls):
            return raw
        s = str(raw or "").strip().lower()
        if s in {"sale", "sell", "出售", "卖房", "售"}:
            return cls.SALE
        return cls.RENT

    @property
    def label(self) -> str:
        return "出租" if self is RentOrSale.RENT else "出售"


def parse_number(raw: Any) -> Number:
    """Numeric field from form/AI input. Invalid or empty -> 0."""
    if isinstance(raw, bool) or raw is None:
        return 0
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw) if raw.is_integer() else raw
    s = str(raw).strip().replace(",", "")
    if not s:
        return 0
    try:
        val = float(s)
    except ValueError:
        return 0
    return int(val) if val.is_integer() else val


def parse_price(raw: Any) -> Price:
    """
    Price is a number, or free text such as "面议" (negotiable).

    Numeric strings become numbers; other non-empty strings are kept as-is.
    """
    if isinstance(raw, str):
        s = raw.strip()
        if not s:
            return 0
        try:
            val = float(s.replace(",", ""))
        except ValueError:
            return s
        return int(val) if val.is_integer() else val
    return parse_number(raw)


def format_number(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass(slots=True, frozen=True)
class ListingRecord:
    community_name: str = ""
    price: Price = 0
    rent_or_sale: RentOrSale = RentOrSale.RENT
    layout: str = ""
    area: Number = 0
    floor: str = ""
    orientation: str = ""
    contact_name: str = ""
    contact_phone: str = ""
    additional_notes: str = ""

    @property
    def is_negotiable(self) -> bool:
        return not self.price or self.price == NEGOTIABLE

    def summary(self) -> str:
        """Task description for a recognised listing, e.g. "天通苑 2室1厅 5000元"."""
        return f"{self.community_name} {self.layout} {format_number(self.price)}元"

    def to_dict(self) -> dict[str, Any]:
        return {
            "communityName": self.community_name,
            "price": self.price,
            "rentOrSale": self.rent_or_sale.value,
            "layout": self.layout,
            "area": self.area,
            "floor": self.floor,
            "orientation": self.orientation,
            "contactName": self.contact_name,
            "contactPhone": self.contact_phone,
            "additionalNotes": self.additional_notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ListingRecord:
        def text(key: str) -> str:
            v = data.get(key)
            return "" if v is None else str(v).strip()

        return cls(
            community_name=text("communityName"),
            price=parse_price(data.get("price")),
            rent_or_sale=RentOrSale.parse(data.get("rentOrSale")),
            layout=text("layout"),
            area=parse_number(data.get("area")),
            floor=text("floor"),
            orientation=text("orientation"),
            contact_name=text("contactName"),
            contact_phone=text("contactPhone"),
            additional_notes=text("additionalNotes"),
        )
