"""
Runtime settings for the DOR download pipeline.

Defaults point at the Washington State Department of Revenue download
area. Host and timeouts can be overridden through environment variables:

    DOR_TAX_HOST             e.g. "dor.wa.gov"
    DOR_TAX_CONNECT_TIMEOUT  seconds, float
    DOR_TAX_READ_TIMEOUT     seconds, float
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

# NAD83(HARN) / Washington South (ftUS)
NATIVE_SRID = 2927
WGS84_SRID = 4326

DEFAULT_HOST = "dor.wa.gov"
RATES_URL_PATTERN = "http://{host}/downloads/Add_Data/Rates{year}Q{quarter}.zip"
BOUNDARIES_URL_PATTERN = (
    "http://{host}/downloads/LocBounds/LOCCODE_PUBLIC_{yy:02d}Q{quarter}.zip"
)


@dataclass(frozen=True)
class Settings:
    """Source locations and transport limits."""

    host: str = DEFAULT_HOST
    rates_url_pattern: str = RATES_URL_PATTERN
    boundaries_url_pattern: str = BOUNDARIES_URL_PATTERN
    connect_timeout: float = 10.0
    read_timeout: float = 60.0
    native_srid: int = NATIVE_SRID
    chunk_size: int = 64 * 1024

    @property
    def timeout(self) -> tuple[float, float]:
        return (self.connect_timeout, self.read_timeout)

    def rates_url(self, year: int, quarter: int) -> str:
        return self.rates_url_pattern.format(
            host=self.host, year=year, quarter=quarter
        )

    def boundaries_url(self, yy: int, quarter: int) -> str:
        return self.boundaries_url_pattern.format(
            host=self.host, yy=yy, quarter=quarter
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        kwargs: dict[str, object] = {}
        if env.get("DOR_TAX_HOST"):
            kwargs["host"] = env["DOR_TAX_HOST"]
        if env.get("DOR_TAX_CONNECT_TIMEOUT"):
            kwargs["connect_timeout"] = float(env["DOR_TAX_CONNECT_TIMEOUT"])
        if env.get("DOR_TAX_READ_TIMEOUT"):
            kwargs["read_timeout"] = float(env["DOR_TAX_READ_TIMEOUT"])
        return cls(**kwargs)  # type: ignore[arg-type]
