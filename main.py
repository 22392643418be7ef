#!/usr/bin/env python3
"""
DOR Tax Rates - Entry Point

Downloads Washington State sales tax rates and jurisdiction boundaries
for a quarter and displays or exports them.

Usage:
    python main.py quarter --date 2014-05-20
    python main.py rates --quarter 2014Q1
    python main.py rates --quarter 2014Q1 --code 1701
    python main.py rates --export-csv rates.csv --export-json rates.json
    python main.py boundaries --quarter 2014Q4 --srid 4326 --export-geojson boundaries.json
    python main.py combined --srid 3857 --export-geojson combined.json
"""

from dor_tax.cli import main

if __name__ == "__main__":
    main()
