"""Market data provider interface and the ordered fallback combinator."""
from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Sequence, Tuple

from .errors import PortfolioError, ProviderError
from .models import Position, SourcePatch


logger = logging.getLogger(__name__)


class MarketDataProvider(Protocol):
    name: str

    def fetch(self, position: Position) -> SourcePatch:
        """Return the fields this provider knows for ``position``.

        Raises ``TransportError`` once retries are exhausted, ``SchemaError``
        for malformed payloads and ``ProviderError`` for any other unusable
        answer.
        """
        ...


def first_usable(
    providers: Sequence[MarketDataProvider], position: Position
) -> Tuple[Optional[SourcePatch], List[str]]:
    """Try providers in order; the first patch with a positive price wins.

    Returns the winning patch (or None) and the failure reasons collected
    from every provider tried before it.
    """
    causes: List[str] = []
    for provider in providers:
        try:
            patch = provider.fetch(position)
        except PortfolioError as exc:
            logger.warning("%s failed for %s: %s", provider.name, position.ticker, exc)
            causes.append(f"{provider.name}: {exc}")
            continue
        if patch.price > 0:
            return patch, causes
        logger.warning("%s returned no usable price for %s", provider.name, position.ticker)
        causes.append(f"{provider.name}: no usable price")
    return None, causes


class StaticProvider:
    """Returns canned patches keyed by ticker; useful for tests and demos."""

    def __init__(self, name: str, patches: dict, derived: bool = False):
        self.name = name
        self._patches = patches
        self._derived = derived

    def fetch(self, position: Position) -> SourcePatch:
        fields = self._patches.get(position.ticker)
        if fields is None:
            raise ProviderError(f"no canned data for {position.ticker}")
        return SourcePatch(source=self.name, fields=dict(fields), derived=self._derived)


__all__ = ["MarketDataProvider", "StaticProvider", "first_usable"]
