"""Shared fixtures: fake HTTP sessions, rate archives and boundary shapefiles."""

import io
import threading
import time
import zipfile
from pathlib import Path
from typing import Callable, Optional

import pytest
import requests
import shapefile
from shapely import affinity

from dor_tax.config import Settings
from dor_tax.errors import InvalidSridError

RATES_URL_2014Q1 = "http://dor.wa.gov/downloads/Add_Data/Rates2014Q1.zip"
BOUNDARIES_URL_2014Q1 = "http://dor.wa.gov/downloads/LocBounds/LOCCODE_PUBLIC_14Q1.zip"

RATE_HEADER = "Name,LocationCode,State,Local,Rta,Rate,EffectiveDate,ExpirationDate"
RATE_CSV_2014Q1 = (
    f"{RATE_HEADER}\r\n"
    "A,100001,0.065,0.02,0.0,0.085,20140101,20140331\r\n"
    "B,100002,0.065,0.01,0.0,0.075,20140101,20140331\r\n"
)


class FakeResponse:
    """Just enough of requests.Response for a streamed download."""

    def __init__(self, body: bytes = b"", status_code: int = 200) -> None:
        self.body = body
        self.status_code = status_code
        self.closed = False

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc) -> bool:
        self.closed = True
        return False

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")

    def iter_content(self, chunk_size: int = 1):
        for i in range(0, len(self.body), chunk_size):
            yield self.body[i : i + chunk_size]


class FakeSession:
    """
    Maps URLs to bodies, exceptions or FakeResponses and records calls.
    Unknown URLs answer 404.
    """

    def __init__(self, routes: Optional[dict] = None, delay: float = 0.0) -> None:
        self.routes = dict(routes or {})
        self.delay = delay
        self.calls: list[str] = []
        self.kwargs: list[dict] = []
        self._lock = threading.Lock()

    def get(self, url: str, **kwargs) -> FakeResponse:
        with self._lock:
            self.calls.append(url)
            self.kwargs.append(kwargs)
        if self.delay:
            time.sleep(self.delay)
        target = self.routes.get(url)
        if target is None:
            return FakeResponse(b"Not Found", status_code=404)
        if isinstance(target, BaseException):
            raise target
        if isinstance(target, FakeResponse):
            return target
        return FakeResponse(target)

    def count(self, url: str) -> int:
        return self.calls.count(url)


class ShiftReprojector:
    """Stand-in reprojection: translates geometries by the target SRID."""

    def __init__(self) -> None:
        self.calls: list[tuple[int, int]] = []

    def reproject(self, geometry, source_srid, target_srid):
        self.calls.append((source_srid, target_srid))
        if geometry is None:
            return None
        return affinity.translate(geometry, xoff=target_srid, yoff=target_srid)

    def validate_srid(self, srid):
        if srid == 999999:
            raise InvalidSridError(srid)


def square(x: float, y: float, size: float = 10.0) -> list:
    """Clockwise ring, as shapefiles store polygon exteriors."""
    return [[(x, y), (x, y + size), (x + size, y + size), (x + size, y), (x, y)]]


def make_zip(entries: dict) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for name, content in entries.items():
            if isinstance(content, str):
                content = content.encode("utf-8")
            archive.writestr(name, content)
    return buffer.getvalue()


def write_shapefile(
    directory: Path,
    features: list,
    name: str = "LOCCODE_PUBLIC_14Q1",
    shape_type: int = shapefile.POLYGON,
    with_loccode: bool = True,
) -> Path:
    """
    Write ``features`` ((location code, parts or None) pairs) as a
    shapefile and return the .shp path.
    """
    directory.mkdir(parents=True, exist_ok=True)
    base = directory / name
    writer = shapefile.Writer(str(base), shapeType=shape_type)
    writer.field("OBJECTID", "N", size=10, decimal=0)
    if with_loccode:
        writer.field("LOCCODE", "C", size=10)
    writer.field("Shape_Area", "F", size=19, decimal=4)
    writer.field("COUNTY", "C", size=20)
    for index, (code, parts) in enumerate(features, start=1):
        if parts is None:
            writer.null()
        elif shape_type == shapefile.POLYLINE:
            writer.line(parts)
        else:
            writer.poly(parts)
        values = {"OBJECTID": index, "Shape_Area": 100.0, "COUNTY": "Thurston"}
        if with_loccode:
            values["LOCCODE"] = code
        writer.record(**values)
    writer.close()
    return base.with_suffix(".shp")


def zip_shapefile(shp_path: Path, arc_prefix: str = "") -> bytes:
    entries = {}
    for ext in (".shp", ".shx", ".dbf"):
        part = shp_path.with_suffix(ext)
        entries[f"{arc_prefix}{part.name}"] = part.read_bytes()
    return make_zip(entries)


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def rate_archive() -> bytes:
    return make_zip({"Rates2014Q1.csv": RATE_CSV_2014Q1})


@pytest.fixture
def boundary_features() -> list:
    return [("100001", square(0, 0)), ("100002", square(20, 0))]


@pytest.fixture
def boundary_archive(tmp_path: Path, boundary_features: list) -> bytes:
    return zip_shapefile(write_shapefile(tmp_path / "src", boundary_features))


@pytest.fixture
def boundary_zip_factory(tmp_path: Path) -> Callable[..., bytes]:
    counter = {"n": 0}

    def factory(features: list, **kwargs) -> bytes:
        counter["n"] += 1
        directory = tmp_path / f"shp{counter['n']}"
        return zip_shapefile(write_shapefile(directory, features, **kwargs))

    return factory


@pytest.fixture
def session(rate_archive: bytes, boundary_archive: bytes) -> FakeSession:
    return FakeSession(
        {
            RATES_URL_2014Q1: rate_archive,
            BOUNDARIES_URL_2014Q1: boundary_archive,
        }
    )


@pytest.fixture
def reprojector() -> ShiftReprojector:
    return ShiftReprojector()
