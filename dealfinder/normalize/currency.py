"""Exchange rate table with lazy, interval-based refresh.

Rates are expressed per one unit of the base currency. Conversion pivots
through the base currency and fails open: when either side has no usable rate
the amount comes back unconverted.
"""

import logging
import time
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable, Optional, Protocol

import httpx
from sqlalchemy import select

from dealfinder import metrics
from dealfinder.config import settings
from dealfinder.db.models import ExchangeRate

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Don't retry a failed refresh more often than this
RETRY_AFTER_FAILURE_SECONDS = 300


class CurrencyProviderError(RuntimeError):
    """Raised when the rate API cannot return usable rates."""

    pass


class CurrencyProvider(Protocol):
    async def fetch_latest_rates(self, base: str) -> dict[str, float]:
        ...


class ExchangeRateApiProvider:
    """Fetches rates from an open.er-api.com compatible endpoint."""

    def __init__(self, url_template: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        self.url_template = url_template or settings.exchange_rate_api_url
        self._http_client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=15.0)
        return self._http_client

    async def close(self):
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def fetch_latest_rates(self, base: str) -> dict[str, float]:
        client = await self._get_client()
        url = self.url_template.format(base=base.upper())
        try:
            resp = await client.get(url)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise CurrencyProviderError(f"Rate fetch failed for {base}: {e}") from e

        if data.get("result") not in (None, "success"):
            raise CurrencyProviderError(
                f"Rate API error for {base}: {data.get('error-type') or data.get('result')}"
            )
        rates = data.get("rates") or data.get("conversion_rates")
        if not isinstance(rates, dict) or not rates:
            raise CurrencyProviderError(f"Rate API returned no rates for {base}")
        return rates


class ExchangeRateStore:
    """Persists the single rate row per base currency."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def load(self, base: str) -> Optional[tuple[dict[str, float], datetime]]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(ExchangeRate).where(ExchangeRate.base_currency == base)
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None
            return dict(row.rates), row.last_updated

    async def save(self, base: str, rates: dict[str, float], updated_at: datetime) -> None:
        async with self.session_factory() as db:
            result = await db.execute(
                select(ExchangeRate).where(ExchangeRate.base_currency == base)
            )
            row = result.scalar_one_or_none()
            if row is None:
                db.add(ExchangeRate(base_currency=base, rates=rates, last_updated=updated_at))
            else:
                row.rates = rates
                row.last_updated = updated_at
            await db.commit()


def _to_rates(raw: dict) -> dict[str, Decimal]:
    """Keep only positive numeric rates, keyed by upper-case code."""
    rates: dict[str, Decimal] = {}
    for code, value in raw.items():
        try:
            rate = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            continue
        if not rate.is_finite() or rate <= 0:
            continue
        rates[str(code).upper()] = rate
    return rates


class CurrencyTable:
    """
    Latest exchange rates relative to a base currency.

    Created empty; rates are loaded from the store or fetched from the
    provider on first need and refreshed once older than the refresh interval.
    Writes overwrite the table in place.
    """

    def __init__(
        self,
        provider: Optional[CurrencyProvider] = None,
        store: Optional[ExchangeRateStore] = None,
        base_currency: Optional[str] = None,
        refresh_interval: Optional[timedelta] = None,
        rates: Optional[dict] = None,
        last_updated: Optional[datetime] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.provider = provider
        self.store = store
        self.base_currency = (base_currency or settings.base_currency).upper()
        self.refresh_interval = refresh_interval or timedelta(hours=settings.exchange_rate_refresh_hours)
        self.rates: dict[str, Decimal] = _to_rates(rates or {})
        self.last_updated: Optional[datetime] = last_updated
        self.clock = clock
        self._loaded_from_store = False
        self._last_failed_attempt: Optional[float] = None

    @property
    def is_stale(self) -> bool:
        if not self.rates or self.last_updated is None:
            return True
        return self.clock() - self.last_updated >= self.refresh_interval

    def rate(self, code: str) -> Optional[Decimal]:
        """Rate per base unit, or None when unknown."""
        code = (code or "").upper()
        if code == self.base_currency:
            return Decimal("1")
        return self.rates.get(code)

    def convert(self, amount: Decimal, from_currency: str, to_currency: str) -> Decimal:
        """
        Convert an amount between currencies through the base currency.

        Returns the amount unchanged when the currencies match or when either
        rate is missing or zero.
        """
        from_code = (from_currency or "").upper()
        to_code = (to_currency or "").upper()
        if from_code == to_code:
            return amount

        rate_from = self.rate(from_code)
        rate_to = self.rate(to_code)
        if not rate_from or not rate_to:
            logger.debug(f"No rate for {from_code}->{to_code}, returning amount unconverted")
            return amount

        amount_in_base = amount / rate_from
        return (amount_in_base * rate_to).quantize(CENT, rounding=ROUND_HALF_UP)

    async def ensure_fresh(self) -> None:
        """Load persisted rates on first use and refresh them when stale."""
        if not self._loaded_from_store and self.store is not None:
            self._loaded_from_store = True
            try:
                stored = await self.store.load(self.base_currency)
            except Exception as e:
                logger.warning(f"Could not load stored exchange rates: {e}")
                stored = None
            if stored:
                raw_rates, updated_at = stored
                self.rates = _to_rates(raw_rates)
                self.last_updated = updated_at

        if self.last_updated is not None:
            age = (self.clock() - self.last_updated).total_seconds()
            metrics.currency_rates_age_seconds.set(age)

        if not self.is_stale:
            return
        if (
            self._last_failed_attempt is not None
            and time.monotonic() - self._last_failed_attempt < RETRY_AFTER_FAILURE_SECONDS
        ):
            return
        await self.refresh()

    async def refresh(self) -> bool:
        """
        Fetch the latest rates and overwrite the table.

        Returns:
            True if rates were updated, False if the provider failed
        """
        if self.provider is None:
            return False

        try:
            raw = await self.provider.fetch_latest_rates(self.base_currency)
        except Exception as e:
            self._last_failed_attempt = time.monotonic()
            metrics.currency_refresh_total.labels(status="failed").inc()
            logger.warning(f"Exchange rate refresh failed, keeping previous rates: {e}")
            return False

        rates = _to_rates(raw)
        if not rates:
            self._last_failed_attempt = time.monotonic()
            metrics.currency_refresh_total.labels(status="empty").inc()
            logger.warning("Exchange rate refresh returned no usable rates")
            return False

        self.rates = rates
        self.last_updated = self.clock()
        self._last_failed_attempt = None
        metrics.currency_refresh_total.labels(status="success").inc()
        logger.info(
            f"Exchange rates refreshed: {len(rates)} currencies "
            f"(base {self.base_currency}, NGN={rates.get('NGN')})"
        )

        if self.store is not None:
            try:
                await self.store.save(
                    self.base_currency,
                    {code: float(rate) for code, rate in rates.items()},
                    self.last_updated,
                )
            except Exception as e:
                logger.warning(f"Could not persist exchange rates: {e}")

        return True
