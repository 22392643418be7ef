"""
Command-line interface for the DOR tax rate pipeline.

Provides subcommands for quarter lookup, rate tables, jurisdiction
boundaries and boundaries joined with their rates.
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date
from typing import Optional

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from dor_tax.config import Settings
from dor_tax.errors import DorTaxError, InvalidQuarterError, InvalidSridError
from dor_tax.quarters import QuarterYear
from dor_tax.report_generator import ReportGenerator
from dor_tax.service import TaxRateService

console = Console()
logger = logging.getLogger("dor_tax")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _build_service() -> TaxRateService:
    return TaxRateService(settings=Settings.from_env())


def _resolve_quarter(args: argparse.Namespace) -> QuarterYear:
    return args.quarter or QuarterYear.current()


def _quarter_arg(text: str) -> QuarterYear:
    try:
        return QuarterYear.parse(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


# -----------------------------------------------------------------------
# Subcommand: quarter
# -----------------------------------------------------------------------


def cmd_quarter(args: argparse.Namespace, service: TaxRateService) -> None:
    """Show the quarter a date falls in and whether DOR has data for it."""
    when = args.date or date.today()
    qy = QuarterYear.from_date(when)
    start, end = qy.date_range()
    loader = service.cache.rate_loader
    boundary_loader = service.cache.boundary_loader

    console.print(
        Panel(
            f"[bold]Date:[/bold] {when.isoformat()}\n"
            f"[bold]Quarter:[/bold] {qy}\n"
            f"[bold]Range:[/bold] {start.isoformat()} to {end.isoformat()}\n"
            f"[bold]Data Available:[/bold] {'Yes' if qy.is_valid else 'No'}\n"
            f"[bold]Rates URL:[/bold] {loader.url_for(qy)}\n"
            f"[bold]Boundaries URL:[/bold] {boundary_loader.url_for(qy)}",
            title="Quarter",
            border_style="cyan",
        )
    )


# -----------------------------------------------------------------------
# Subcommand: rates
# -----------------------------------------------------------------------


def cmd_rates(args: argparse.Namespace, service: TaxRateService) -> None:
    """Display the rate table for a quarter, or one location code."""
    qy = _resolve_quarter(args)

    if args.code:
        item = service.get_rate(qy.year, qy.quarter, args.code)
        if item is None:
            console.print(f"[red]No location code {args.code} in {qy}[/red]")
            sys.exit(1)

        console.print(
            Panel(
                f"[bold]Jurisdiction:[/bold] {item.name}\n"
                f"[bold]Location Code:[/bold] {item.location_code}\n"
                f"[bold]State Rate:[/bold] {float(item.state):.3%}\n"
                f"[bold]Local Rate:[/bold] {float(item.local):.3%}\n"
                f"[bold]RTA Rate:[/bold] {float(item.rta):.3%}\n"
                f"[bold]Combined:[/bold] {float(item.rate):.3%}\n"
                f"[bold]Effective:[/bold] {item.effective_date.isoformat()} to "
                f"{item.expiration_date.isoformat()}",
                title=f"{item.name} ({qy})",
                border_style="cyan",
            )
        )
        return

    rates = service.get_rates(qy.year, qy.quarter)

    table = Table(
        title=f"Washington Sales Tax Rates - {qy}",
        box=box.ROUNDED,
    )
    table.add_column("Code", style="bold")
    table.add_column("Name")
    table.add_column("State", justify="right")
    table.add_column("Local", justify="right")
    table.add_column("RTA", justify="right")
    table.add_column("Combined", justify="right", style="bold")
    table.add_column("Effective")
    table.add_column("Expires")

    shown = rates[: args.limit] if args.limit else rates
    for item in shown:
        table.add_row(
            item.location_code,
            item.name,
            f"{float(item.state):.3%}",
            f"{float(item.local):.3%}",
            f"{float(item.rta):.3%}" if item.rta else "-",
            f"{float(item.rate):.3%}",
            item.effective_date.isoformat(),
            item.expiration_date.isoformat(),
        )
    console.print(table)
    if len(shown) < len(rates):
        console.print(f"[dim]{len(rates) - len(shown)} more rows not shown[/dim]")

    if not (args.summary or args.export_json or args.export_csv):
        return

    rg = ReportGenerator(args.output_dir or "reports")
    report = rg.rate_summary_report(rates, qy)

    if args.summary:
        console.print(rg.format_text(report))

    if args.export_json:
        rg.to_json(report, args.export_json)
        console.print(f"[green]JSON exported to {args.export_json}[/green]")

    if args.export_csv:
        rg.to_csv(rates, args.export_csv)
        console.print(f"[green]CSV exported to {args.export_csv}[/green]")


# -----------------------------------------------------------------------
# Subcommands: boundaries / combined
# -----------------------------------------------------------------------


def _export_collection(
    args: argparse.Namespace, collection: dict, label: str
) -> None:
    count = len(collection["features"])
    crs = collection.get("crs", {}).get("properties", {}).get("name", "EPSG:4326")
    console.print(
        Panel(
            f"[bold]Features:[/bold] {count}\n"
            f"[bold]Spatial Reference:[/bold] {crs}",
            title=label,
            border_style="green",
        )
    )
    if args.export_geojson:
        rg = ReportGenerator(args.output_dir or "reports")
        path = rg.geojson_to_file(collection, args.export_geojson)
        console.print(f"[green]GeoJSON exported to {path}[/green]")


def cmd_boundaries(args: argparse.Namespace, service: TaxRateService) -> None:
    """Download jurisdiction boundaries for a quarter."""
    qy = _resolve_quarter(args)
    collection = service.boundaries_geojson(qy.year, qy.quarter, args.srid)
    _export_collection(args, collection, f"Jurisdiction Boundaries - {qy}")


def cmd_combined(args: argparse.Namespace, service: TaxRateService) -> None:
    """Download boundaries joined with their tax rates for a quarter."""
    qy = _resolve_quarter(args)
    collection = service.combined_geojson(qy.year, qy.quarter, args.srid)
    _export_collection(args, collection, f"Boundaries with Rates - {qy}")


# -----------------------------------------------------------------------
# Argument parser
# -----------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dor-tax",
        description="Washington DOR sales tax rates and jurisdiction boundaries by quarter",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # quarter
    quarter_p = subparsers.add_parser("quarter", help="Show quarter for a date")
    quarter_p.add_argument(
        "--date", "-d", type=date.fromisoformat, help="Date as YYYY-MM-DD (default: today)"
    )
    quarter_p.set_defaults(func=cmd_quarter)

    # rates
    rates_p = subparsers.add_parser("rates", help="View a quarter's rate table")
    rates_p.add_argument(
        "--quarter", "-q", type=_quarter_arg, help="Quarter as YYYYQn (default: current)"
    )
    rates_p.add_argument("--code", "-c", help="Location code to look up")
    rates_p.add_argument("--limit", type=int, default=0, help="Maximum rows to display")
    rates_p.add_argument("--summary", action="store_true", help="Print a rate summary")
    rates_p.add_argument("--export-json", help="Export rates to JSON file")
    rates_p.add_argument("--export-csv", help="Export rates to CSV file")
    rates_p.add_argument("--output-dir", help="Output directory for exports")
    rates_p.set_defaults(func=cmd_rates)

    # boundaries / combined
    for name, func, help_text in (
        ("boundaries", cmd_boundaries, "Download jurisdiction boundaries"),
        ("combined", cmd_combined, "Download boundaries joined with rates"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument(
            "--quarter", "-q", type=_quarter_arg, help="Quarter as YYYYQn (default: current)"
        )
        sub.add_argument(
            "--srid", type=int, help="Output EPSG code (default: 2927)"
        )
        sub.add_argument("--export-geojson", help="Export to GeoJSON file")
        sub.add_argument("--output-dir", help="Output directory for exports")
        sub.set_defaults(func=func)

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    _configure_logging(args.verbose)
    service = _build_service()

    try:
        args.func(args, service)
    except (InvalidQuarterError, InvalidSridError) as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)
    except DorTaxError as e:
        logger.debug("Command failed", exc_info=True)
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
