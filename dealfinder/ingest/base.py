"""Base provider interface for listing sources."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class RawListing:
    """Untrusted listing as reported by a source provider."""

    title: str
    price: Any  # number, free text, or None
    source: str
    link: str = ""
    image: Optional[str] = None
    rating: Optional[str] = None
    reviews: Optional[str] = None
    provider: str = ""


class ProviderError(RuntimeError):
    """Raised when a source provider cannot return results."""

    pass


class SourceProvider(ABC):
    """Abstract base class for listing providers."""

    name: str = "provider"

    @abstractmethod
    async def search(
        self,
        query: str,
        region_hint: Optional[str] = None,
        category_hint: Optional[str] = None,
    ) -> list[RawListing]:
        """
        Search the source for listings.

        Args:
            query: Search query text
            region_hint: Region code of the requester (e.g., "NG")
            category_hint: Product category (gadget, fashion, ...)

        Returns:
            List of raw listings; empty list when there are no results

        Raises:
            ProviderError: On transport or response failures
        """
        pass

    async def close(self) -> None:
        """Release provider resources."""
        return None


def text_or_none(value: Any) -> Optional[str]:
    """Coerce optional upstream fields (ratings, counts) to text."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None
