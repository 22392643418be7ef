"""
Sales tax jurisdiction (location code) boundaries.

DOR publishes ``LOCCODE_PUBLIC_{yy}Q{quarter}.zip`` each quarter: a
polygon shapefile in EPSG:2927 with one record per location code, keyed
by the ``LOCCODE`` attribute. Records are streamed from disk with pyshp
while the extracted archive is held in a scratch directory.
"""

from __future__ import annotations

import logging
import struct
import threading
from contextlib import ExitStack
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional, Protocol

import shapefile
from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError
from shapely.geometry import MultiPolygon, Polygon, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import transform

from dor_tax.config import Settings
from dor_tax.errors import (
    ArchiveCorruptError,
    GeometryTypeError,
    InvalidSridError,
    MissingJoinKeyError,
    NetworkError,
    ShapefileCorruptError,
    SourceUnavailableError,
)
from dor_tax.fetcher import ArchiveFetcher
from dor_tax.quarters import QuarterYear

logger = logging.getLogger(__name__)

JOIN_FIELD = "LOCCODE"

_POLYGON_TYPES = {shapefile.POLYGON, shapefile.POLYGONM, shapefile.POLYGONZ}
_READ_ERRORS = (shapefile.ShapefileException, struct.error, OSError, EOFError, ValueError)


@dataclass(frozen=True)
class BoundaryFeature:
    """A jurisdiction polygon and the DBF attributes that came with it."""

    location_code: str
    geometry: Optional[BaseGeometry]  # Polygon / MultiPolygon, None if degenerate
    srid: int
    attributes: Mapping[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        # Cached features are shared between callers; attributes stay read-only.
        if not isinstance(self.attributes, MappingProxyType):
            object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    def with_geometry(self, geometry: Optional[BaseGeometry], srid: int) -> "BoundaryFeature":
        return replace(self, geometry=geometry, srid=srid)


# location code -> feature, in shapefile order
BoundaryTable = dict[str, BoundaryFeature]


class Reprojector(Protocol):
    """Coordinate transformation collaborator."""

    def reproject(
        self,
        geometry: Optional[BaseGeometry],
        source_srid: int,
        target_srid: int,
    ) -> Optional[BaseGeometry]: ...

    def validate_srid(self, srid: int) -> None: ...


class PyprojReprojector:
    """Reprojects shapely geometries between EPSG codes with pyproj."""

    def __init__(self) -> None:
        # Transformer instances are not shared across threads.
        self._local = threading.local()

    def _transformer(self, source_srid: int, target_srid: int) -> Transformer:
        cache: dict[tuple[int, int], Transformer] = getattr(self._local, "cache", None)
        if cache is None:
            cache = self._local.cache = {}
        key = (source_srid, target_srid)
        if key not in cache:
            try:
                cache[key] = Transformer.from_crs(
                    f"EPSG:{source_srid}", f"EPSG:{target_srid}", always_xy=True
                )
            except CRSError as e:
                raise InvalidSridError(target_srid) from e
        return cache[key]

    def validate_srid(self, srid: int) -> None:
        try:
            CRS.from_epsg(srid)
        except CRSError as e:
            raise InvalidSridError(srid) from e

    def reproject(
        self,
        geometry: Optional[BaseGeometry],
        source_srid: int,
        target_srid: int,
    ) -> Optional[BaseGeometry]:
        if geometry is None or source_srid == target_srid:
            return geometry
        return transform(self._transformer(source_srid, target_srid).transform, geometry)


def _join_key(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, bytes):
        value = value.decode("latin-1")
    return str(value).strip()


def _to_geometry(location_code: str, shp: shapefile.Shape) -> Optional[BaseGeometry]:
    """Shapely geometry for a record; None for null or degenerate shapes."""
    if shp.shapeType == shapefile.NULL or not shp.points:
        return None
    if shp.shapeType not in _POLYGON_TYPES:
        raise GeometryTypeError(
            location_code, shapefile.SHAPETYPE_LOOKUP.get(shp.shapeType, str(shp.shapeType))
        )
    try:
        geometry = shape(shp.__geo_interface__)
    except (ValueError, TypeError) as e:
        logger.warning("Degenerate geometry for %s: %s", location_code, e)
        return None
    if geometry.is_empty:
        return None
    if not isinstance(geometry, (Polygon, MultiPolygon)):
        raise GeometryTypeError(location_code, geometry.geom_type)
    return geometry


class BoundaryLoader:
    """
    Reads the location code boundary shapefile for a quarter.

    ``iter_boundaries`` is lazy: the first feature is available as soon as
    the archive is unpacked, and the scratch directory is removed whether
    the consumer reads to the end or stops early.
    """

    def __init__(
        self,
        fetcher: Optional[ArchiveFetcher] = None,
        settings: Optional[Settings] = None,
        reprojector: Optional[Reprojector] = None,
    ) -> None:
        self.settings = settings or (fetcher.settings if fetcher else Settings())
        self.fetcher = fetcher or ArchiveFetcher(settings=self.settings)
        self.reprojector = reprojector or PyprojReprojector()

    @property
    def native_srid(self) -> int:
        return self.settings.native_srid

    def url_for(self, quarter: QuarterYear) -> str:
        # Two-digit year of the quarter's first day
        start, _ = quarter.date_range()
        return self.settings.boundaries_url(start.year % 100, quarter.quarter)

    @staticmethod
    def find_shapefile(directory: Path) -> Path:
        for path in sorted(directory.iterdir()):
            if path.suffix.lower() == ".shp":
                return path
        raise ShapefileCorruptError(f"No .shp file in boundary archive ({directory.name})")

    def reproject(self, feature: BoundaryFeature, target_srid: Optional[int]) -> BoundaryFeature:
        if target_srid is None or target_srid == feature.srid:
            return feature
        geometry = self.reprojector.reproject(feature.geometry, feature.srid, target_srid)
        return feature.with_geometry(geometry, target_srid)

    def iter_shapefile(
        self, shp_path: Path, target_srid: Optional[int] = None
    ) -> Iterator[BoundaryFeature]:
        """Stream features from a local shapefile."""
        try:
            reader = shapefile.Reader(str(shp_path), encodingErrors="replace")
        except _READ_ERRORS as e:
            raise ShapefileCorruptError(f"Cannot open shapefile {Path(shp_path).name}") from e

        with reader:
            records = reader.iterShapeRecords()
            index = 0
            while True:
                try:
                    shape_record = next(records)
                except StopIteration:
                    break
                except _READ_ERRORS as e:
                    raise ShapefileCorruptError(
                        f"Cannot read record {index} of {Path(shp_path).name}"
                    ) from e

                attributes = shape_record.record.as_dict()
                key_name = next((k for k in attributes if k.upper() == JOIN_FIELD), None)
                location_code = _join_key(attributes.pop(key_name, None) if key_name else None)
                if not location_code:
                    raise MissingJoinKeyError(index)

                feature = BoundaryFeature(
                    location_code=location_code,
                    geometry=_to_geometry(location_code, shape_record.shape),
                    srid=self.native_srid,
                    attributes=attributes,
                )
                yield self.reproject(feature, target_srid)
                index += 1

    def iter_boundaries(
        self,
        quarter: QuarterYear,
        target_srid: Optional[int] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Iterator[BoundaryFeature]:
        """
        Download the quarter's archive and stream its features.

        The quarter is checked on call; nothing is downloaded until the
        first feature is requested.
        """
        quarter.validate()
        return self._stream(self.url_for(quarter), target_srid, cancel)

    def _stream(
        self,
        url: str,
        target_srid: Optional[int],
        cancel: Optional[threading.Event],
    ) -> Iterator[BoundaryFeature]:
        with ExitStack() as stack:
            try:
                directory = stack.enter_context(self.fetcher.extracted(url, cancel))
            except (NetworkError, ArchiveCorruptError) as e:
                status = getattr(e, "status_code", None)
                raise SourceUnavailableError(
                    url, f"Boundary source unavailable ({e})", status
                ) from e
            yield from self.iter_shapefile(self.find_shapefile(directory), target_srid)

    def load(
        self,
        quarter: QuarterYear,
        target_srid: Optional[int] = None,
        cancel: Optional[threading.Event] = None,
    ) -> BoundaryTable:
        """Materialize every feature for ``quarter`` keyed by location code."""
        table: BoundaryTable = {}
        for feature in self.iter_boundaries(quarter, target_srid, cancel):
            if feature.location_code in table:
                logger.warning(
                    "Duplicate boundary for location code %s; keeping the later record",
                    feature.location_code,
                )
            table[feature.location_code] = feature
        logger.info("Loaded %d boundaries for %s", len(table), quarter)
        return table
