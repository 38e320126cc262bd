"""Exchange rate lookups for reporting amounts in a single currency."""

import logging
from collections.abc import Callable
from decimal import ROUND_HALF_UP, Decimal

import httpx

from recovery.core.config import settings
from recovery.core.exceptions import DunningError
from recovery.core.rate_cache import TTLCache

logger = logging.getLogger(__name__)

RateFetcher = Callable[[str, str], Decimal]


class ExchangeRateUnavailableError(DunningError):
    status_code = 503
    error_code = "EXCHANGE_RATE_UNAVAILABLE"


class HttpRateFetcher:
    """Fetch rates from a Frankfurter-compatible ``/latest`` endpoint."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.EXCHANGE_RATE_API_URL).rstrip("/")
        self.timeout = timeout or settings.EXCHANGE_RATE_TIMEOUT_SECONDS

    def __call__(self, from_currency: str, to_currency: str) -> Decimal:
        if not self.base_url:
            raise ExchangeRateUnavailableError(
                f"No exchange rate source configured for {from_currency}->{to_currency}"
            )
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.get(
                    f"{self.base_url}/latest",
                    params={"from": from_currency, "to": to_currency},
                )
            resp.raise_for_status()
            rate = resp.json()["rates"][to_currency]
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            logger.warning("Exchange rate lookup %s->%s failed: %s", from_currency, to_currency, exc)
            raise ExchangeRateUnavailableError(
                f"Exchange rate {from_currency}->{to_currency} unavailable"
            ) from exc
        return Decimal(str(rate))


class ExchangeRateService:
    """Currency conversion with rates memoized in an injected TTL cache."""

    def __init__(self, fetcher: RateFetcher | None = None, cache: TTLCache | None = None):
        self.fetcher = fetcher or HttpRateFetcher()
        self.cache = cache or TTLCache(settings.EXCHANGE_RATE_TTL_SECONDS)

    def get_rate(self, from_currency: str, to_currency: str) -> Decimal:
        source = from_currency.upper()
        target = to_currency.upper()
        if source == target:
            return Decimal("1")
        return self.cache.get_or_compute(
            (source, target), lambda: self.fetcher(source, target)
        )

    def convert_cents(self, amount_cents: int, from_currency: str, to_currency: str) -> int:
        """Convert integer cents, rounding half up to the nearest cent."""
        if amount_cents == 0:
            return 0
        rate = self.get_rate(from_currency, to_currency)
        converted = (Decimal(amount_cents) * rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return int(converted)
