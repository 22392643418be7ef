#!/usr/bin/env python3
"""
Quick Start Example
===================

Downloads the current quarter's Washington sales tax rates, looks up one
location code, and writes the combined boundaries + rates as GeoJSON in
WGS 84.

Usage:
    python examples/quick_start.py
"""

import json

from dor_tax import QuarterYear, TaxRateService
from dor_tax.geojson import to_feature_collection


def main() -> None:
    service = TaxRateService()
    quarter = QuarterYear.current()
    start, end = quarter.date_range()
    print(f"Quarter:        {quarter} ({start} to {end})")

    rates = service.get_rates(quarter.year, quarter.quarter)
    print(f"Location codes: {len(rates)}")

    # Olympia
    olympia = service.get_rate(quarter.year, quarter.quarter, "3401")
    if olympia is not None:
        print(f"Jurisdiction:   {olympia.name}")
        print(f"State Rate:     {float(olympia.state):.2%}")
        print(f"Local Rate:     {float(olympia.local):.2%}")
        print(f"Combined:       {float(olympia.rate):.2%}")

    combined = service.get_combined(quarter.year, quarter.quarter, target_srid=4326)
    with open("combined.json", "w", encoding="utf-8") as f:
        json.dump(to_feature_collection(combined, 4326), f)
    print(f"Wrote {len(combined)} features to combined.json")


if __name__ == "__main__":
    main()
