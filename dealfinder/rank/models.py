"""Engine-owned deal types."""

from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any, Optional

NOT_AVAILABLE = "N/A"


@dataclass
class NormalizedDeal:
    """A listing that passed normalization, link resolution and scoring."""

    title: str
    price: Decimal  # target currency
    currency: str
    original_price: Decimal
    original_currency: str
    source: str
    link: str
    image: Optional[str] = None
    rating: str = NOT_AVAILABLE
    reviews: str = NOT_AVAILABLE
    relevance: float = 1.0
    is_regional_match: bool = False
    provider: str = ""

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible representation (decimals as strings)."""
        data = asdict(self)
        data["price"] = str(self.price)
        data["original_price"] = str(self.original_price)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NormalizedDeal":
        return cls(
            title=data["title"],
            price=Decimal(str(data["price"])),
            currency=data.get("currency", ""),
            original_price=Decimal(str(data.get("original_price", data["price"]))),
            original_currency=data.get("original_currency", data.get("currency", "")),
            source=data.get("source", ""),
            link=data["link"],
            image=data.get("image"),
            rating=data.get("rating") or NOT_AVAILABLE,
            reviews=data.get("reviews") or NOT_AVAILABLE,
            relevance=float(data.get("relevance", 1.0)),
            is_regional_match=bool(data.get("is_regional_match", False)),
            provider=data.get("provider", ""),
        )


@dataclass
class CandidateSet:
    """Output of one aggregation, with pipeline diagnostics."""

    deals: list[NormalizedDeal] = field(default_factory=list)
    raw_count: int = 0
    dropped_invalid: int = 0  # empty title or unparsable price
    dropped_no_link: int = 0
    dropped_irrelevant: int = 0
    duplicates_removed: int = 0
    failed_providers: list[str] = field(default_factory=list)
    ai_reranked: bool = False

    def __len__(self) -> int:
        return len(self.deals)

    def summary(self) -> str:
        return (
            f"raw={self.raw_count} kept={len(self.deals)} "
            f"invalid={self.dropped_invalid} no_link={self.dropped_no_link} "
            f"irrelevant={self.dropped_irrelevant} duplicates={self.duplicates_removed} "
            f"failed_providers={self.failed_providers or '-'}"
        )
