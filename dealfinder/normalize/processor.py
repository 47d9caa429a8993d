"""Parse raw listing prices and normalize them to the target currency."""

import logging
import math
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from dealfinder.config import settings
from dealfinder.normalize.currency import CurrencyTable

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = {
    "₦": "NGN",
    "£": "GBP",
    "€": "EUR",
    "$": "USD",
}

CURRENCY_CODES = ("NGN", "USD", "GBP", "EUR", "CAD", "AUD", "GHS", "KES", "ZAR")

_CODE_PATTERN = re.compile(
    r"(?<![A-Za-z])(" + "|".join(CURRENCY_CODES) + r")(?![A-Za-z])",
    re.IGNORECASE,
)
_NUMBER_PATTERN = re.compile(r"\d+(?:\.\d+)?")
# Thousands separators and the spacing variants retailers use
_GROUPING = re.compile(r"[,\s']")
# "1.299,99" / "1 299,99": dot or space grouping with a two-digit decimal comma
_DECIMAL_COMMA = re.compile(r"(?<![\d.,])\d{1,3}(?:[.\s']\d{3})+,\d{2}(?![\d,.])")
_DECIMAL_COMMA_GROUPING = re.compile(r"[.\s']")


def _decimal_comma_to_point(text: str) -> str:
    match = _DECIMAL_COMMA.search(text)
    if not match:
        return text
    number = _DECIMAL_COMMA_GROUPING.sub("", match.group(0)).replace(",", ".")
    return text[: match.start()] + number + text[match.end():]


class NormalizationError(Exception):
    """Raised when a price cannot be parsed."""

    pass


@dataclass
class ParsedPrice:
    """Amount and (if the text said so) currency of a raw price."""

    amount: Decimal
    currency: Optional[str] = None


@dataclass
class NormalizedPrice:
    """Price in the target currency along with what the source reported."""

    amount: Decimal
    currency: str
    original_amount: Decimal
    original_currency: str


def parse_price(raw: Any) -> ParsedPrice:
    """
    Parse a numeric or free-text price.

    Args:
        raw: Number or text such as "$1,299.99", "₦ 450,000", "GBP 20"

    Returns:
        ParsedPrice with the amount and any currency named in the text

    Raises:
        NormalizationError: If no positive finite amount can be read
    """
    if raw is None or isinstance(raw, bool):
        raise NormalizationError(f"No price: {raw!r}")

    if isinstance(raw, (int, float, Decimal)):
        if isinstance(raw, float) and not math.isfinite(raw):
            raise NormalizationError(f"Non-finite price: {raw!r}")
        amount = Decimal(str(raw))
        currency = None
    else:
        text = str(raw).strip()
        if not text:
            raise NormalizationError("Empty price text")

        currency = None
        for symbol, code in CURRENCY_SYMBOLS.items():
            if symbol in text:
                currency = code
                text = text.replace(symbol, " ")
                break

        code_match = _CODE_PATTERN.search(text)
        if code_match:
            currency = currency or code_match.group(1).upper()
            text = _CODE_PATTERN.sub(" ", text)

        cleaned = _GROUPING.sub("", _decimal_comma_to_point(text))
        number = _NUMBER_PATTERN.search(cleaned)
        if not number:
            raise NormalizationError(f"Unparsable price: {raw!r}")
        try:
            amount = Decimal(number.group(0))
        except InvalidOperation as e:
            raise NormalizationError(f"Unparsable price: {raw!r}") from e

    if not amount.is_finite() or amount <= 0:
        raise NormalizationError(f"Invalid price amount: {raw!r}")

    return ParsedPrice(amount=amount, currency=currency)


class PriceNormalizer:
    """Parse raw prices and convert them to the target currency."""

    def __init__(
        self,
        currency_table: CurrencyTable,
        target_currency: Optional[str] = None,
        source_currency_overrides: Optional[dict[str, str]] = None,
        target_currency_sources: Optional[list[str]] = None,
    ):
        self.currency_table = currency_table
        self.target_currency = (target_currency or settings.target_currency).upper()
        self.source_currency_overrides = {
            key.lower(): code.upper()
            for key, code in (
                source_currency_overrides
                if source_currency_overrides is not None
                else settings.source_currency_overrides
            ).items()
        }
        self.target_currency_sources = [
            s.lower()
            for s in (
                target_currency_sources
                if target_currency_sources is not None
                else settings.target_currency_sources
            )
        ]

    def reports_in_target_currency(self, source: str) -> bool:
        source_lower = (source or "").lower()
        return any(key in source_lower for key in self.target_currency_sources)

    def detect_currency(self, parsed: ParsedPrice, source: str) -> str:
        """Explicit symbol/code, then the source override table, then the base currency."""
        if parsed.currency:
            return parsed.currency
        source_lower = (source or "").lower()
        for key, code in self.source_currency_overrides.items():
            if key in source_lower:
                return code
        return self.currency_table.base_currency

    def normalize(self, raw_price: Any, source: str) -> NormalizedPrice:
        """
        Normalize a raw price for a listing from `source`.

        Raises:
            NormalizationError: If the price is unparsable
        """
        parsed = parse_price(raw_price)

        if self.reports_in_target_currency(source):
            return NormalizedPrice(
                amount=parsed.amount,
                currency=self.target_currency,
                original_amount=parsed.amount,
                original_currency=self.target_currency,
            )

        original_currency = self.detect_currency(parsed, source)
        amount = self.currency_table.convert(parsed.amount, original_currency, self.target_currency)
        return NormalizedPrice(
            amount=amount,
            currency=self.target_currency,
            original_amount=parsed.amount,
            original_currency=original_currency,
        )
