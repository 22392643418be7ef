"""
DOR Tax Rates
=============

Quarterly Washington State sales tax rates and tax jurisdiction
boundaries, downloaded from the Department of Revenue, cached per
quarter, and republished as Python objects, GeoJSON, JSON and CSV.

Modules:
    quarters        - Fiscal quarter-year value type
    fetcher         - Remote ZIP archive download and extraction
    rates           - Rate CSV parsing and per-quarter rate tables
    boundaries      - Location code boundary shapefiles and reprojection
    cache           - Single-flight per-quarter table cache
    join            - Boundary / rate join by location code
    service         - Query surface used by the CLI and web layers
    geojson         - GeoJSON FeatureCollection output
    report_generator- Rate summaries with CSV/JSON export
    cli             - Command-line interface
"""

__version__ = "1.0.0"

from dor_tax.boundaries import BoundaryFeature, BoundaryLoader
from dor_tax.cache import QuarterCache
from dor_tax.join import CombinedFeature, join_boundaries_and_rates
from dor_tax.quarters import QuarterYear
from dor_tax.rates import RateTableLoader, TaxRateItem, parse_rate_line
from dor_tax.service import TaxRateService

__all__ = [
    "BoundaryFeature",
    "BoundaryLoader",
    "CombinedFeature",
    "QuarterCache",
    "QuarterYear",
    "RateTableLoader",
    "TaxRateItem",
    "TaxRateService",
    "join_boundaries_and_rates",
    "parse_rate_line",
]
