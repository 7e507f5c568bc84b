"""USD -> NGN rate lookup for dual-currency display and Naira checkout.

Sources are tried in order (primary public API, secondary public API, the
optional internal proxy) and the first usable rate wins. When every source
fails the configured fallback rate is returned, so callers always get a rate;
``source`` tells them where it came from.
"""

import logging
import time
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional, Tuple

import httpx
from pydantic import BaseModel

from ..config import (
    FALLBACK_NGN_RATE,
    INTERNAL_RATE_URL,
    PRIMARY_RATE_URL,
    RATE_CACHE_SECONDS,
    SECONDARY_RATE_URL,
)
from ..errors import ExternalServiceError
from ..utils import to_money

logger = logging.getLogger(__name__)

FALLBACK_SOURCE = "Budpay Fallback Rate"


class ExchangeRate(BaseModel):
    rate: Decimal
    source: str
    last_updated: datetime


class RateCache:
    """Holds one resolved rate for ``ttl_seconds``."""

    def __init__(self, ttl_seconds: int = RATE_CACHE_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._value: Optional[ExchangeRate] = None
        self._expires_at = 0.0

    def get(self) -> Optional[ExchangeRate]:
        if self._value is not None and self._clock() < self._expires_at:
            return self._value
        return None

    def set(self, value: ExchangeRate) -> None:
        self._value = value
        self._expires_at = self._clock() + self.ttl_seconds


def _positive_rate(value) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValueError("rate missing")
    try:
        rate = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"rate {value!r} is not numeric")
    if rate <= 0:
        raise ValueError("rate must be positive")
    return rate


def parse_rates_payload(name: str, data: dict) -> ExchangeRate:
    rate = _positive_rate((data.get("rates") or {}).get("NGN"))
    return ExchangeRate(rate=rate, source=name, last_updated=datetime.utcnow())


def parse_internal_payload(name: str, data: dict) -> ExchangeRate:
    if not data.get("success"):
        raise ValueError("internal rate endpoint reported failure")
    rate = _positive_rate(data.get("rate"))
    last_updated = data.get("lastUpdated") or data.get("last_updated")
    return ExchangeRate(
        rate=rate,
        source=data.get("source") or name,
        last_updated=datetime.fromisoformat(last_updated.replace("Z", "+00:00")) if last_updated else datetime.utcnow(),
    )


def default_sources() -> List[Tuple[str, str, Callable[[str, dict], ExchangeRate]]]:
    sources = [
        ("ExchangeRate-API", PRIMARY_RATE_URL, parse_rates_payload),
        ("Fixer.io", SECONDARY_RATE_URL, parse_rates_payload),
    ]
    if INTERNAL_RATE_URL:
        sources.append(("Budpay Rate", INTERNAL_RATE_URL, parse_internal_payload))
    return sources


class CurrencyConverter:
    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        cache: Optional[RateCache] = None,
        sources=None,
        fallback_rate: Decimal = FALLBACK_NGN_RATE,
    ):
        self.client = client or httpx.Client(timeout=httpx.Timeout(5.0, connect=3.0))
        self.cache = cache or RateCache()
        self.sources = default_sources() if sources is None else sources
        self.fallback_rate = fallback_rate

    def _fetch(self, name: str, url: str, parser) -> ExchangeRate:
        try:
            response = self.client.get(url)
            response.raise_for_status()
            return parser(name, response.json())
        except (httpx.HTTPError, ValueError, TypeError, AttributeError) as exc:
            raise ExternalServiceError(f"{name} rate unavailable: {exc}") from exc

    def get_usd_to_ngn_rate(self) -> ExchangeRate:
        cached = self.cache.get()
        if cached is not None:
            return cached
        for name, url, parser in self.sources:
            try:
                resolved = self._fetch(name, url, parser)
            except ExternalServiceError as exc:
                logger.warning("%s", exc.message)
                continue
            self.cache.set(resolved)
            return resolved
        logger.warning("all exchange rate sources failed; using fallback rate %s", self.fallback_rate)
        fallback = ExchangeRate(rate=self.fallback_rate, source=FALLBACK_SOURCE, last_updated=datetime.utcnow())
        self.cache.set(fallback)
        return fallback

    def convert_usd_to_ngn(self, usd_amount) -> Tuple[Decimal, ExchangeRate]:
        rate = self.get_usd_to_ngn_rate()
        return to_money(to_money(usd_amount) * rate.rate), rate

    def close(self):
        self.client.close()


def serialize_rate(rate: ExchangeRate) -> dict:
    return {
        "rate": str(rate.rate),
        "source": rate.source,
        "last_updated": rate.last_updated,
    }
