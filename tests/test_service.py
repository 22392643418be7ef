"""End-to-end tests for TaxRateService against fake DOR downloads."""

import threading
from datetime import date
from decimal import Decimal

import pytest

from conftest import (
    BOUNDARIES_URL_2014Q1,
    RATES_URL_2014Q1,
    FakeResponse,
    FakeSession,
    ShiftReprojector,
    square,
)
from dor_tax.errors import (
    InvalidQuarterError,
    InvalidSridError,
    JoinMismatchError,
    NetworkError,
)
from dor_tax.quarters import QuarterYear
from dor_tax.service import TaxRateService

IN_Q1_2014 = date(2014, 2, 14)


@pytest.fixture
def service(session: FakeSession, reprojector: ShiftReprojector) -> TaxRateService:
    return TaxRateService(session=session, reprojector=reprojector)


# ── Rates ────────────────────────────────────────────────────────────


def test_get_rates_for_quarter(service: TaxRateService):
    rates = service.get_rates(2014, 1)
    assert [(r.location_code, r.rate) for r in rates] == [
        ("100001", Decimal("0.085")),
        ("100002", Decimal("0.075")),
    ]


def test_get_rate_for_code(service: TaxRateService):
    item = service.get_rate(2014, 1, " 100002 ")
    assert item is not None
    assert item.name == "B"
    assert service.get_rate(2014, 1, "000000") is None


def test_repeated_queries_download_once(service: TaxRateService, session: FakeSession):
    service.get_rates(2014, 1)
    service.get_rate(2014, 1, "100001")
    service.get_current_rates(IN_Q1_2014)
    assert session.count(RATES_URL_2014Q1) == 1


@pytest.mark.parametrize(
    "year, quarter",
    [(2008, 1), (2007, 3), (2014, 0), (2014, 5)],
)
def test_unpublished_quarter_rejected_without_network(
    service: TaxRateService, session: FakeSession, year: int, quarter: int
):
    with pytest.raises(InvalidQuarterError):
        service.get_rates(year, quarter)
    assert session.calls == []


@pytest.mark.parametrize("year, quarter", [("2014", 1), (2014, 1.0), (None, 1)])
def test_non_integer_input_rejected(service: TaxRateService, session: FakeSession, year, quarter):
    with pytest.raises(InvalidQuarterError, match="integers"):
        service.get_rates(year, quarter)
    assert session.calls == []


def test_cancelling_one_call_leaves_others_running(
    service: TaxRateService, session: FakeSession
):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(NetworkError, match="cancelled"):
        service.get_rates(2014, 1, cancel=cancel)
    assert session.calls == []

    assert len(service.get_rates(2014, 1)) == 2
    assert len(service.get_combined(2014, 1, cancel=threading.Event())) == 2


def test_cancel_mid_download_aborts_only_that_call(rate_archive: bytes):
    first_chunk = threading.Event()
    cancel = threading.Event()

    class SlowResponse(FakeResponse):
        def iter_content(self, chunk_size=1):
            for i in range(0, len(self.body), 16):
                if i:
                    first_chunk.set()
                    cancel.wait(1)
                yield self.body[i : i + 16]

    session = FakeSession({RATES_URL_2014Q1: SlowResponse(rate_archive)})
    service = TaxRateService(session=session)
    errors = []

    def cancelled_call():
        try:
            service.get_rates(2014, 1, cancel=cancel)
        except NetworkError as e:
            errors.append(e)

    worker = threading.Thread(target=cancelled_call)
    worker.start()
    first_chunk.wait(1)
    cancel.set()
    worker.join()

    assert len(errors) == 1
    session.routes[RATES_URL_2014Q1] = rate_archive
    assert len(service.get_rates(2014, 1)) == 2


def test_network_failure_propagates():
    service = TaxRateService(session=FakeSession())
    with pytest.raises(NetworkError):
        service.get_rates(2014, 1)


# ── Current quarter ──────────────────────────────────────────────────


def test_current_quarter_from_today(service: TaxRateService):
    assert service.current_quarter(date(2014, 11, 30)) == QuarterYear(2014, 4)


def test_current_variants_use_today(service: TaxRateService):
    assert len(service.get_current_rates(IN_Q1_2014)) == 2
    assert len(service.get_current_boundaries(today=IN_Q1_2014)) == 2
    assert len(service.get_current_combined(today=IN_Q1_2014)) == 2


# ── Boundaries and combined ──────────────────────────────────────────


def test_boundaries_default_to_native_srid(service: TaxRateService, reprojector):
    boundaries = service.get_boundaries(2014, 1)
    assert {b.srid for b in boundaries} == {2927}
    assert reprojector.calls == []


def test_boundaries_in_requested_srid(service: TaxRateService):
    boundaries = service.get_boundaries(2014, 1, 3857)
    assert {b.srid for b in boundaries} == {3857}
    assert boundaries[0].geometry.bounds[0] == 3857.0


def test_combined_features(service: TaxRateService):
    combined = service.get_combined(2014, 1)
    assert [(c.location_code, c.rate) for c in combined] == [
        ("100001", Decimal("0.085")),
        ("100002", Decimal("0.075")),
    ]
    assert "OBJECTID" not in combined[0].attributes
    assert combined[0].attributes["COUNTY"] == "Thurston"


def test_combined_mismatch(rate_archive: bytes, boundary_zip_factory, reprojector):
    boundaries = boundary_zip_factory([("100001", square(0, 0)), ("100009", square(20, 0))])
    session = FakeSession({RATES_URL_2014Q1: rate_archive, BOUNDARIES_URL_2014Q1: boundaries})
    service = TaxRateService(session=session, reprojector=reprojector)
    with pytest.raises(JoinMismatchError, match="100009"):
        service.get_combined(2014, 1)


@pytest.mark.parametrize("srid", [0, -4326, "4326"])
def test_malformed_srid_rejected(service: TaxRateService, session: FakeSession, srid):
    with pytest.raises(InvalidSridError):
        service.get_boundaries(2014, 1, srid)
    assert session.calls == []


def test_unknown_srid_rejected(service: TaxRateService):
    with pytest.raises(InvalidSridError):
        service.get_combined(2014, 1, 999999)


# ── GeoJSON ──────────────────────────────────────────────────────────


def test_boundaries_geojson_names_native_crs(service: TaxRateService):
    collection = service.boundaries_geojson(2014, 1)
    assert collection["type"] == "FeatureCollection"
    assert collection["crs"]["properties"]["name"] == "urn:ogc:def:crs:EPSG::2927"

    feature = collection["features"][0]
    assert feature["id"] == "100001"
    assert feature["geometry"]["type"] == "Polygon"
    assert feature["properties"]["LocationCode"] == "100001"
    assert feature["properties"]["COUNTY"] == "Thurston"
    assert "Shape_Area" not in feature["properties"]


def test_combined_geojson_in_wgs84_has_no_crs(service: TaxRateService):
    collection = service.combined_geojson(2014, 1, 4326)
    assert "crs" not in collection

    properties = collection["features"][1]["properties"]
    assert properties["Rate"] == 0.075
    assert properties["Name"] == "B"
    assert properties["EffectiveDate"] == "2014-01-01"
    assert properties["ExpirationDate"] == "2014-03-31"


def test_geojson_checks_quarter_first(service: TaxRateService, session: FakeSession):
    with pytest.raises(InvalidQuarterError):
        service.combined_geojson(2008, 1, 999999)
    assert session.calls == []
