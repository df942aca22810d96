# marketlens/models/listing.py

"""Listing data model for inter-module data flow."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Source(str, Enum):
    """Supported marketplaces."""

    DANGGEUN = "danggeun"
    BUNJANG = "bunjang"
    COUPANG = "coupang"
    JUNGGONARA = "junggonara"


@dataclass(frozen=True)
class Listing:
    """A single normalised product listing captured from a marketplace.

    ``product_url`` is the natural key within a source.  ``price`` is
    ``None`` when the raw ``price_text`` carried no digits.
    """

    source: Source
    title: str
    price: int | None
    price_text: str
    product_url: str
    image_url: str = ""
    location: str = ""
    condition: str = ""
    seller_name: str = ""
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def natural_key(self) -> tuple[str, str]:
        """Return the ``(source, product_url)`` identity of the listing."""
        return (self.source.value, self.product_url)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-safe dict."""
        data = asdict(self)
        data["source"] = self.source.value
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Listing":
        """Rebuild a Listing from :meth:`to_dict` output."""
        raw_price = data.get("price")
        raw_ts = data.get("timestamp")
        return cls(
            source=Source(data["source"]),
            title=str(data.get("title", "")),
            price=int(raw_price) if raw_price is not None else None,
            price_text=str(data.get("price_text", "")),
            product_url=str(data.get("product_url", "")),
            image_url=str(data.get("image_url", "") or ""),
            location=str(data.get("location", "") or ""),
            condition=str(data.get("condition", "") or ""),
            seller_name=str(data.get("seller_name", "") or ""),
            timestamp=(
                datetime.fromisoformat(raw_ts)
                if isinstance(raw_ts, str) and raw_ts
                else datetime.now()
            ),
        )
