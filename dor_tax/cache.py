"""
Per-quarter memoization of rate and boundary tables.

Published quarters never change, so an entry is loaded once and kept for
the life of the cache. Loads are single-flight: concurrent callers for
the same uncached quarter wait on one per-quarter lock and share the
result, while different quarters load independently.
"""

from __future__ import annotations

import logging
import threading
from types import MappingProxyType
from typing import Callable, Mapping, Optional

from dor_tax.boundaries import BoundaryFeature, BoundaryLoader
from dor_tax.quarters import QuarterYear
from dor_tax.rates import RateTableLoader, TaxRateItem

logger = logging.getLogger(__name__)

_RATES = "rates"
_BOUNDARIES = "boundaries"


class QuarterCache:
    """
    In-memory store of loaded tables keyed by QuarterYear.

    Boundary tables are kept in the native spatial reference; requests
    for another SRID are reprojected on every read.
    """

    def __init__(
        self,
        rate_loader: Optional[RateTableLoader] = None,
        boundary_loader: Optional[BoundaryLoader] = None,
    ) -> None:
        self.rate_loader = rate_loader or RateTableLoader()
        self.boundary_loader = boundary_loader or BoundaryLoader(
            fetcher=self.rate_loader.fetcher
        )
        self._tables: dict[tuple[str, QuarterYear], Mapping] = {}
        self._locks: dict[tuple[str, QuarterYear], threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: tuple[str, QuarterYear]) -> threading.Lock:
        # One lock per key, never released; the key space is bounded by
        # the number of published quarters.
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def _get_or_load(
        self, kind: str, quarter: QuarterYear, load: Callable[[QuarterYear], dict]
    ) -> Mapping:
        key = (kind, quarter)
        table = self._tables.get(key)
        if table is not None:
            logger.debug("Cache hit for %s %s", kind, quarter)
            return table

        quarter.validate()
        with self._lock_for(key):
            table = self._tables.get(key)
            if table is None:
                logger.info("Cache miss for %s %s; loading", kind, quarter)
                # A failed load raises here and stores nothing.
                table = MappingProxyType(load(quarter))
                self._tables[key] = table
            return table

    def get_rates(
        self, quarter: QuarterYear, cancel: Optional[threading.Event] = None
    ) -> Mapping[str, TaxRateItem]:
        """Rate table for ``quarter``, downloading it on first use."""
        return self._get_or_load(
            _RATES, quarter, lambda q: self.rate_loader.load(q, cancel)
        )

    def get_boundaries(
        self,
        quarter: QuarterYear,
        target_srid: Optional[int] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Mapping[str, BoundaryFeature]:
        """Boundary table for ``quarter``, reprojected when asked."""
        native = self._get_or_load(
            _BOUNDARIES, quarter, lambda q: self.boundary_loader.load(q, cancel=cancel)
        )
        if target_srid is None or target_srid == self.boundary_loader.native_srid:
            return native
        return MappingProxyType(
            {
                code: self.boundary_loader.reproject(feature, target_srid)
                for code, feature in native.items()
            }
        )

    def has_rates(self, quarter: QuarterYear) -> bool:
        return (_RATES, quarter) in self._tables

    def has_boundaries(self, quarter: QuarterYear) -> bool:
        return (_BOUNDARIES, quarter) in self._tables

    def cached_quarters(self) -> list[QuarterYear]:
        """Quarters with at least one table loaded, oldest first."""
        return sorted({quarter for _, quarter in list(self._tables)})

    def __contains__(self, quarter: object) -> bool:
        return any(q == quarter for _, q in list(self._tables))

    def __len__(self) -> int:
        return len(self._tables)
