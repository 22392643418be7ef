"""
Query surface over the cached DOR pipeline.

This is what a web layer or the CLI calls. Year/quarter input is checked
before any download is attempted, and every call either returns a
complete result or raises a DorTaxError.
"""

from __future__ import annotations

import threading
from datetime import date
from typing import Any, Optional

import requests

from dor_tax.boundaries import BoundaryFeature, BoundaryLoader, PyprojReprojector, Reprojector
from dor_tax.cache import QuarterCache
from dor_tax.config import Settings
from dor_tax.errors import InvalidQuarterError, InvalidSridError
from dor_tax.fetcher import ArchiveFetcher
from dor_tax.geojson import to_feature_collection
from dor_tax.join import CombinedFeature, join_boundaries_and_rates
from dor_tax.quarters import QuarterYear
from dor_tax.rates import RateTableLoader, TaxRateItem


class TaxRateService:
    """
    Rates, boundaries and combined features by quarter.

    One instance owns one QuarterCache; share the instance to share the
    cache. Every query takes an optional ``cancel`` event that aborts the
    download made on behalf of that call only.
    """

    def __init__(
        self,
        cache: Optional[QuarterCache] = None,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        reprojector: Optional[Reprojector] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        if cache is None:
            settings = settings or Settings()
            fetcher = ArchiveFetcher(session, settings, cancel_event)
            cache = QuarterCache(
                RateTableLoader(fetcher, settings),
                BoundaryLoader(fetcher, settings, reprojector or PyprojReprojector()),
            )
        self.cache = cache
        self.settings = settings or cache.rate_loader.settings

    @property
    def native_srid(self) -> int:
        return self.cache.boundary_loader.native_srid

    # ------------------------------------------------------------------
    # Input checks
    # ------------------------------------------------------------------

    @staticmethod
    def quarter_year(year: Any, quarter: Any) -> QuarterYear:
        if not isinstance(year, int) or not isinstance(quarter, int):
            raise InvalidQuarterError(year, quarter, "year and quarter must be integers")
        return QuarterYear(year, quarter).validate()

    def _target_srid(self, target_srid: Optional[int]) -> int:
        if target_srid is None:
            return self.native_srid
        if not isinstance(target_srid, int) or target_srid <= 0:
            raise InvalidSridError(target_srid)
        if target_srid != self.native_srid:
            self.cache.boundary_loader.reprojector.validate_srid(target_srid)
        return target_srid

    # ------------------------------------------------------------------
    # Quarter-specific queries
    # ------------------------------------------------------------------

    def get_rates(
        self, year: int, quarter: int, cancel: Optional[threading.Event] = None
    ) -> list[TaxRateItem]:
        """All rate rows for a quarter, in file order."""
        qy = self.quarter_year(year, quarter)
        return list(self.cache.get_rates(qy, cancel).values())

    def get_rate(
        self,
        year: int,
        quarter: int,
        location_code: str,
        cancel: Optional[threading.Event] = None,
    ) -> Optional[TaxRateItem]:
        """Look up one location code; None when DOR has no such code."""
        qy = self.quarter_year(year, quarter)
        return self.cache.get_rates(qy, cancel).get(location_code.strip())

    def get_boundaries(
        self,
        year: int,
        quarter: int,
        target_srid: Optional[int] = None,
        cancel: Optional[threading.Event] = None,
    ) -> list[BoundaryFeature]:
        """Jurisdiction boundaries for a quarter in ``target_srid``."""
        qy = self.quarter_year(year, quarter)
        srid = self._target_srid(target_srid)
        return list(self.cache.get_boundaries(qy, srid, cancel).values())

    def get_combined(
        self,
        year: int,
        quarter: int,
        target_srid: Optional[int] = None,
        cancel: Optional[threading.Event] = None,
    ) -> list[CombinedFeature]:
        """Boundaries joined with their rates; JoinMismatchError if out of sync."""
        qy = self.quarter_year(year, quarter)
        srid = self._target_srid(target_srid)
        rates = self.cache.get_rates(qy, cancel)
        boundaries = self.cache.get_boundaries(qy, srid, cancel)
        return join_boundaries_and_rates(boundaries, rates, qy)

    # ------------------------------------------------------------------
    # Current quarter
    # ------------------------------------------------------------------

    def current_quarter(self, today: Optional[date] = None) -> QuarterYear:
        return QuarterYear.current(today)

    def get_current_rates(
        self, today: Optional[date] = None, cancel: Optional[threading.Event] = None
    ) -> list[TaxRateItem]:
        qy = self.current_quarter(today)
        return self.get_rates(qy.year, qy.quarter, cancel)

    def get_current_boundaries(
        self,
        target_srid: Optional[int] = None,
        today: Optional[date] = None,
        cancel: Optional[threading.Event] = None,
    ) -> list[BoundaryFeature]:
        qy = self.current_quarter(today)
        return self.get_boundaries(qy.year, qy.quarter, target_srid, cancel)

    def get_current_combined(
        self,
        target_srid: Optional[int] = None,
        today: Optional[date] = None,
        cancel: Optional[threading.Event] = None,
    ) -> list[CombinedFeature]:
        qy = self.current_quarter(today)
        return self.get_combined(qy.year, qy.quarter, target_srid, cancel)

    # ------------------------------------------------------------------
    # GeoJSON
    # ------------------------------------------------------------------

    def boundaries_geojson(
        self,
        year: int,
        quarter: int,
        target_srid: Optional[int] = None,
        cancel: Optional[threading.Event] = None,
    ) -> dict[str, Any]:
        self.quarter_year(year, quarter)
        srid = self._target_srid(target_srid)
        return to_feature_collection(
            self.get_boundaries(year, quarter, srid, cancel), srid
        )

    def combined_geojson(
        self,
        year: int,
        quarter: int,
        target_srid: Optional[int] = None,
        cancel: Optional[threading.Event] = None,
    ) -> dict[str, Any]:
        self.quarter_year(year, quarter)
        srid = self._target_srid(target_srid)
        return to_feature_collection(
            self.get_combined(year, quarter, srid, cancel), srid
        )
