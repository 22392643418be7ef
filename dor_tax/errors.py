"""
Exception hierarchy for the DOR tax data pipeline.

Every error raised by the pipeline derives from DorTaxError so callers
(the CLI, a web layer) can separate bad input from upstream failures.
"""

from __future__ import annotations

from typing import Optional


class DorTaxError(Exception):
    """Base class for all pipeline errors."""


class InvalidQuarterError(DorTaxError, ValueError):
    """A year/quarter pair that DOR has never published data for."""

    def __init__(self, year: int, quarter: int, reason: str = "") -> None:
        self.year = year
        self.quarter = quarter
        message = f"Invalid quarter: {year}Q{quarter}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class NetworkError(DorTaxError):
    """Download failed: unreachable host, timeout, non-2xx or cancelled."""

    def __init__(
        self,
        url: str,
        message: str,
        status_code: Optional[int] = None,
    ) -> None:
        self.url = url
        self.status_code = status_code
        super().__init__(f"{message}: {url}")


class SourceUnavailableError(NetworkError):
    """The boundary archive for a quarter could not be retrieved."""


class ArchiveCorruptError(DorTaxError):
    """Response body is not a readable ZIP archive."""


class ShapefileCorruptError(DorTaxError):
    """The shapefile inside a boundary archive cannot be opened or read."""


class MalformedRowError(DorTaxError, ValueError):
    """A rate CSV line that does not match the fixed column layout."""

    def __init__(
        self, line: str, reason: str, line_number: Optional[int] = None
    ) -> None:
        self.line = line
        self.reason = reason
        self.line_number = line_number
        where = f"line {line_number}: " if line_number is not None else ""
        super().__init__(f"Malformed rate row, {where}{reason}: {line!r}")


class MissingJoinKeyError(DorTaxError):
    """A boundary record without a LOCCODE value."""

    def __init__(self, record_index: int) -> None:
        self.record_index = record_index
        super().__init__(
            f"Boundary record {record_index} has no LOCCODE value"
        )


class GeometryTypeError(DorTaxError):
    """A boundary geometry that is not a Polygon or MultiPolygon."""

    def __init__(self, location_code: str, geom_type: str) -> None:
        self.location_code = location_code
        self.geom_type = geom_type
        super().__init__(
            f"Boundary {location_code} has {geom_type} geometry; "
            "expected Polygon or MultiPolygon"
        )


class JoinMismatchError(DorTaxError, KeyError):
    """A boundary location code that has no rate record for the quarter."""

    def __init__(self, location_code: str, quarter: object = None) -> None:
        self.location_code = location_code
        self.quarter = quarter
        message = f"No tax rate for location code {location_code}"
        if quarter is not None:
            message = f"{message} in {quarter}"
        super().__init__(message)

    def __str__(self) -> str:
        # KeyError.__str__ would quote the message
        return str(self.args[0])


class InvalidSridError(DorTaxError, ValueError):
    """An output spatial reference that is not a known EPSG code."""

    def __init__(self, srid: object) -> None:
        self.srid = srid
        super().__init__(f"Unknown spatial reference: EPSG:{srid}")
