# marketlens/models/market_analysis.py

"""Market comparison result for a single listing."""

from dataclasses import dataclass, field
from typing import Any

from marketlens.models.listing import Listing


@dataclass
class MarketAnalysis:
    """Comparison of one listing against its reference market.

    ``is_estimate`` marks a heuristic result with no comparable
    listings behind it.
    """

    market_price: int
    disparity: int
    disparity_percentage: float
    is_lower_than_market: bool
    comparable_listings: list[Listing] = field(
        default_factory=lambda: list[Listing]()
    )
    is_estimate: bool = False
    category: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-safe dict."""
        return {
            "market_price": self.market_price,
            "disparity": self.disparity,
            "disparity_percentage": self.disparity_percentage,
            "is_lower_than_market": self.is_lower_than_market,
            "comparable_listings": [
                listing.to_dict()
                for listing in self.comparable_listings
            ],
            "is_estimate": self.is_estimate,
            "category": self.category,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MarketAnalysis":
        """Rebuild an analysis from :meth:`to_dict` output."""
        return cls(
            market_price=int(data["market_price"]),
            disparity=int(data["disparity"]),
            disparity_percentage=float(data["disparity_percentage"]),
            is_lower_than_market=bool(data["is_lower_than_market"]),
            comparable_listings=[
                Listing.from_dict(item)
                for item in data.get("comparable_listings", [])
            ],
            is_estimate=bool(data.get("is_estimate", False)),
            category=str(data.get("category", "")),
        )
