"""
Washington DOR quarterly sales tax rate tables.

Each quarter DOR publishes ``Rates{year}Q{quarter}.zip`` containing a
single comma-delimited file with one header line and the columns

    Name, LocationCode, State, Local, Rta, Rate, EffectiveDate, ExpirationDate

Rates are fractional (0.065 = 6.5%); dates are ``yyyyMMdd``.

Source: http://dor.wa.gov/content/FindTaxesAndRates/Downloads.aspx
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Iterator, Optional

from dor_tax.config import Settings
from dor_tax.errors import ArchiveCorruptError, MalformedRowError
from dor_tax.fetcher import ArchiveFetcher
from dor_tax.quarters import QuarterYear

logger = logging.getLogger(__name__)

RATE_FIELDS = (
    "name",
    "location_code",
    "state",
    "local",
    "rta",
    "rate",
    "effective_date",
    "expiration_date",
)
_DATE_FORMAT = "%Y%m%d"


@dataclass(frozen=True)
class TaxRateItem:
    """One row of a DOR rate table."""

    name: str
    location_code: str
    state: Decimal  # decimal, e.g. 0.065 = 6.5%
    local: Decimal  # includes the RTA portion for RTA areas
    rta: Decimal
    rate: Decimal  # combined rate as published, never recomputed
    effective_date: date
    expiration_date: date

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @property
    def is_current(self) -> bool:
        return self.effective_date <= date.today() <= self.expiration_date


# location code -> item, in file order
RateTable = dict[str, TaxRateItem]


def _parse_rate(raw: str, field_name: str, line: str) -> Decimal:
    try:
        value = Decimal(raw.strip())
    except InvalidOperation:
        raise MalformedRowError(line, f"{field_name} is not a number ({raw!r})")
    if not value.is_finite():
        raise MalformedRowError(line, f"{field_name} is not finite ({raw!r})")
    return value


def _parse_date(raw: str, field_name: str, line: str) -> date:
    raw = raw.strip()
    if len(raw) != 8 or not raw.isdigit():
        raise MalformedRowError(
            line, f"{field_name} is not an 8-digit yyyyMMdd date ({raw!r})"
        )
    try:
        return datetime.strptime(raw, _DATE_FORMAT).date()
    except ValueError:
        raise MalformedRowError(line, f"{field_name} is not a valid date ({raw!r})")


def parse_rate_line(line: str) -> TaxRateItem:
    """
    Parse one CSV data line into a TaxRateItem.

    The name is kept exactly as published; the code, rate and date fields
    are stripped of surrounding whitespace. Raises MalformedRowError when
    the line does not have exactly eight comma-separated fields or a
    numeric/date field cannot be parsed.
    """
    text = line.rstrip("\r\n")
    parts = text.split(",")
    if len(parts) != len(RATE_FIELDS):
        raise MalformedRowError(
            text, f"expected {len(RATE_FIELDS)} fields, found {len(parts)}"
        )

    location_code = parts[1].strip()
    if not location_code:
        raise MalformedRowError(text, "empty location code")

    return TaxRateItem(
        name=parts[0],
        location_code=location_code,
        state=_parse_rate(parts[2], "State", text),
        local=_parse_rate(parts[3], "Local", text),
        rta=_parse_rate(parts[4], "Rta", text),
        rate=_parse_rate(parts[5], "Rate", text),
        effective_date=_parse_date(parts[6], "EffectiveDate", text),
        expiration_date=_parse_date(parts[7], "ExpirationDate", text),
    )


def iter_rate_lines(lines: Iterable[str]) -> Iterator[TaxRateItem]:
    """Skip the header line, then parse every non-blank line."""
    iterator = iter(lines)
    next(iterator, None)
    for line_number, line in enumerate(iterator, start=2):
        if not line.strip():
            continue
        try:
            yield parse_rate_line(line)
        except MalformedRowError as e:
            raise MalformedRowError(e.line, e.reason, line_number) from None


def build_rate_table(items: Iterable[TaxRateItem]) -> RateTable:
    """Key items by location code. A repeated code replaces the earlier row."""
    table: RateTable = {}
    for item in items:
        if item.location_code in table:
            logger.warning(
                "Duplicate location code %s; keeping the later row (%s)",
                item.location_code,
                item.name,
            )
        table[item.location_code] = item
    return table


class RateTableLoader:
    """
    Builds the rate table for a quarter from DOR's published archive.

    A single malformed row aborts the load; no partial table is returned.
    """

    def __init__(
        self,
        fetcher: Optional[ArchiveFetcher] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or (fetcher.settings if fetcher else Settings())
        self.fetcher = fetcher or ArchiveFetcher(settings=self.settings)

    def url_for(self, quarter: QuarterYear) -> str:
        return self.settings.rates_url(quarter.year, quarter.quarter)

    @staticmethod
    def csv_name_for(quarter: QuarterYear) -> str:
        return f"Rates{quarter.year}Q{quarter.quarter}.csv"

    @staticmethod
    def select_csv_entry(entries: dict[str, bytes], expected_name: str) -> str:
        """
        Prefer the member named ``expected_name`` (case-insensitive,
        ignoring directories); otherwise fall back to the first member.
        """
        if not entries:
            raise ArchiveCorruptError("Rate archive is empty")
        wanted = expected_name.lower()
        for name in entries:
            if name.replace("\\", "/").rsplit("/", 1)[-1].lower() == wanted:
                return name
        first = next(iter(entries))
        logger.debug("No %s in archive, using first entry %s", expected_name, first)
        return first

    @staticmethod
    def load_csv(text: str) -> RateTable:
        return build_rate_table(iter_rate_lines(text.splitlines()))

    def load_archive(self, data: bytes, quarter: QuarterYear, source: str = "<bytes>") -> RateTable:
        entries = ArchiveFetcher.read_entries(data, source)
        entry = self.select_csv_entry(entries, self.csv_name_for(quarter))
        try:
            text = entries[entry].decode("utf-8-sig")
        except UnicodeDecodeError:
            text = entries[entry].decode("latin-1")
        return self.load_csv(text)

    def load(
        self, quarter: QuarterYear, cancel: Optional[threading.Event] = None
    ) -> RateTable:
        """Download and parse the rate table for ``quarter``."""
        quarter.validate()
        url = self.url_for(quarter)
        table = self.load_archive(self.fetcher.fetch(url, cancel), quarter, source=url)
        logger.info("Loaded %d tax rates for %s", len(table), quarter)
        return table
