"""
Rate table report generator.

Produces:
- Quarterly rate summaries (count, lowest/highest/mean combined rate)
- Rate table CSV and JSON export
- GeoJSON FeatureCollection export
- Console-friendly text summaries
"""

from __future__ import annotations

import json
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Optional

import pandas as pd

from dor_tax.quarters import QuarterYear
from dor_tax.rates import RATE_FIELDS, TaxRateItem


def _decimal_to_float(obj: Any) -> Any:
    """Recursively convert Decimal values to float for serialization."""
    if isinstance(obj, dict):
        return {k: _decimal_to_float(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_decimal_to_float(i) for i in obj]
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    return obj


def rates_to_dataframe(rates: Iterable[TaxRateItem]) -> pd.DataFrame:
    """One row per rate item; rate columns as float, dates as datetime64."""
    frame = pd.DataFrame(
        [item.to_dict() for item in rates], columns=list(RATE_FIELDS)
    )
    for column in ("state", "local", "rta", "rate"):
        frame[column] = frame[column].astype(float)
    for column in ("effective_date", "expiration_date"):
        frame[column] = pd.to_datetime(frame[column])
    return frame


class ReportGenerator:
    """
    Generates rate reports with export capabilities.

    Reports are plain dicts that can be rendered to text or written to
    JSON; rate tables can also be written to CSV.
    """

    def __init__(self, output_dir: Optional[str] = None) -> None:
        self.output_dir = Path(output_dir) if output_dir else Path("reports")
        self.output_dir.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Rate summary
    # ------------------------------------------------------------------

    def rate_summary_report(
        self,
        rates: list[TaxRateItem],
        quarter: Optional[QuarterYear] = None,
    ) -> dict[str, Any]:
        """Summarize one quarter's rate table."""
        summary: dict[str, Any] = {"location_codes": len(rates)}
        if rates:
            frame = rates_to_dataframe(rates)
            lowest = frame.loc[frame["rate"].idxmin()]
            highest = frame.loc[frame["rate"].idxmax()]
            summary.update(
                {
                    "lowest_rate": float(lowest["rate"]),
                    "lowest_rate_jurisdiction": lowest["name"],
                    "highest_rate": float(highest["rate"]),
                    "highest_rate_jurisdiction": highest["name"],
                    "mean_rate": round(float(frame["rate"].mean()), 6),
                    "distinct_rates": int(frame["rate"].nunique()),
                }
            )

        period = ""
        if quarter is not None:
            start, end = quarter.date_range()
            period = f"{quarter} ({start.isoformat()} to {end.isoformat()})"

        return {
            "report_type": "tax_rate_summary",
            "period": period,
            "generated_date": date.today().isoformat(),
            "summary": summary,
            "rates": [item.to_dict() for item in rates],
        }

    # ------------------------------------------------------------------
    # Export methods
    # ------------------------------------------------------------------

    def to_json(
        self,
        report: dict[str, Any],
        filename: Optional[str] = None,
    ) -> str:
        """Export a report to JSON. Returns the JSON string."""
        serializable = _decimal_to_float(report)
        json_str = json.dumps(serializable, indent=2)

        if filename:
            path = self.output_dir / filename
            path.write_text(json_str, encoding="utf-8")

        return json_str

    def to_csv(
        self,
        rates: list[TaxRateItem],
        filename: Optional[str] = None,
    ) -> str:
        """
        Export a rate table to CSV in DOR's column layout. Returns the CSV
        string.
        """
        frame = rates_to_dataframe(rates).rename(
            columns={
                "name": "Name",
                "location_code": "LocationCode",
                "state": "State",
                "local": "Local",
                "rta": "Rta",
                "rate": "Rate",
                "effective_date": "EffectiveDate",
                "expiration_date": "ExpirationDate",
            }
        )
        csv_str = frame.to_csv(index=False, date_format="%Y%m%d")

        if filename:
            path = self.output_dir / filename
            path.write_text(csv_str, encoding="utf-8")

        return csv_str

    def geojson_to_file(
        self,
        collection: dict[str, Any],
        filename: str,
    ) -> Path:
        """Write a FeatureCollection dict to ``filename``."""
        path = self.output_dir / filename
        path.write_text(
            json.dumps(_decimal_to_float(collection)), encoding="utf-8"
        )
        return path

    # ------------------------------------------------------------------
    # Console-formatted text output
    # ------------------------------------------------------------------

    def format_text(self, report: dict[str, Any]) -> str:
        """Format a report as human-readable text for console output."""
        lines: list[str] = []
        report_type = report.get("report_type", "report").replace("_", " ").title()
        lines.append(f"{'=' * 60}")
        lines.append(f"  {report_type}")
        lines.append(f"  Generated: {report.get('generated_date', '')}")
        if report.get("period"):
            lines.append(f"  Period: {report['period']}")
        lines.append(f"{'=' * 60}")
        lines.append("")

        summary = report.get("summary", {})
        if summary:
            lines.append("SUMMARY")
            lines.append("-" * 40)
            for key, value in summary.items():
                label = key.replace("_", " ").title()
                if isinstance(value, (float, Decimal)) and "rate" in key:
                    lines.append(f"  {label}: {float(value):.2%}")
                else:
                    lines.append(f"  {label}: {value}")
            lines.append("")

        return "\n".join(lines)
