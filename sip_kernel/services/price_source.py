"""
PriceSource -- port for current per-unit prices (NAV) of plan instruments.

Responsibility:
    Defines the interface the executor uses to price a contribution.  The
    real lookup (HTTP fetch, fallbacks, caching) lives outside this
    package; adapters implement ``get_price``.

Contract:
    ``get_price(symbol)`` returns a ``PriceQuote`` or ``None``.  The executor
    treats ``None``, a raised exception and a quote with ``price <= 0``
    identically: the attempt fails with PRICE_UNAVAILABLE.

Non-goals:
    - No timeout is imposed here; adapters own their timeout discipline.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Protocol, runtime_checkable


@dataclass(frozen=True)
class PriceQuote:
    """A price observation for one instrument."""

    symbol: str
    price: Decimal
    source: str


@runtime_checkable
class PriceSource(Protocol):
    """Protocol for price lookups used by TransactionExecutor."""

    def get_price(self, symbol: str) -> PriceQuote | None:
        ...


class StaticPriceSource:
    """In-memory price table.

    Used by tests and the command-line runner.  Thread-safe: the batch
    worker threads read while callers may ``set_price``.  Only the last
    ``history_size`` looked-up symbols are kept in ``calls``.
    """

    def __init__(
        self,
        prices: Mapping[str, Decimal | int | str] | None = None,
        source: str = "static",
        history_size: int = 1000,
    ):
        self._prices: dict[str, Decimal] = {
            symbol: Decimal(str(price)) for symbol, price in (prices or {}).items()
        }
        self._source = source
        self._lock = threading.Lock()
        self._calls: deque[str] = deque(maxlen=history_size)

    @property
    def calls(self) -> list[str]:
        with self._lock:
            return list(self._calls)

    def set_price(self, symbol: str, price: Decimal | int | str) -> None:
        with self._lock:
            self._prices[symbol] = Decimal(str(price))

    def remove_price(self, symbol: str) -> None:
        with self._lock:
            self._prices.pop(symbol, None)

    def get_price(self, symbol: str) -> PriceQuote | None:
        with self._lock:
            self._calls.append(symbol)
            price = self._prices.get(symbol)
        if price is None:
            return None
        return PriceQuote(symbol=symbol, price=price, source=self._source)
