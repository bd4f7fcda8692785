"""Command-line interface for reporting meter readings per tariff period."""

import json
from decimal import Decimal
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .analysis import periods
from .collectors import edistribucion
from .tariffs import CONFIG_ENV_VAR, TariffError, get_tariff, parse_holidays

console = Console()


def _holiday_option(ctx, param, values):
    """Expand every --holiday value (2022-12-25,26) into dates."""
    holidays = []
    for value in values:
        try:
            holidays.extend(parse_holidays(value))
        except ValueError as e:
            raise click.BadParameter(str(e)) from None
    return holidays


def _counter_option(ctx, param, values):
    counters = []
    for value in values:
        try:
            counters.append(periods.parse_counter(value))
        except ValueError as e:
            raise click.BadParameter(str(e)) from None
    return counters


def _format_kwh(value: Decimal) -> str:
    return f"{value:,.3f}"


def _tariffs_path_option(ctx, param, value):
    """Let --tariffs after a subcommand override the group option."""
    if value is not None:
        ctx.ensure_object(dict)["tariffs_path"] = Path(value)


def _tariff_name_option(ctx, param, value):
    if value is not None:
        ctx.ensure_object(dict)["tariff_name"] = value


def tariff_options(f):
    """Accept the tariff selection options on subcommands as well."""
    f = click.option(
        "--tariff",
        "tariff_name",
        expose_value=False,
        callback=_tariff_name_option,
        help="Tariff to use when the config defines several",
    )(f)
    f = click.option(
        "--tariffs",
        "tariffs_path",
        type=click.Path(exists=True, dir_okay=False),
        expose_value=False,
        callback=_tariffs_path_option,
        help="Path to tariffs.yaml",
    )(f)
    return f


@click.group()
@click.option(
    "--tariffs",
    "tariffs_path",
    type=click.Path(exists=True, dir_okay=False),
    envvar=CONFIG_ENV_VAR,
    help="Path to tariffs.yaml (or set METER_REPORT_TARIFFS)",
)
@click.option("--tariff", "tariff_name", help="Tariff to use when the config defines several")
@click.pass_context
def cli(ctx, tariffs_path, tariff_name):
    """Meter readings - split consumption exports into tariff periods."""
    ctx.ensure_object(dict)
    ctx.obj["tariffs_path"] = Path(tariffs_path) if tariffs_path else None
    ctx.obj["tariff_name"] = tariff_name


def _load_tariff(ctx):
    try:
        return get_tariff(ctx.obj["tariff_name"], ctx.obj["tariffs_path"])
    except TariffError as e:
        console.print(f"[red]Tariff error: {e}[/red]")
        ctx.exit(1)


@cli.command()
@click.argument("csv_path", type=click.Path(exists=True, dir_okay=False))
@tariff_options
@click.option("--start", type=click.DateTime(formats=["%Y-%m-%d"]), help="First day (YYYY-MM-DD), defaults to the first day in the file")
@click.option("--end", type=click.DateTime(formats=["%Y-%m-%d"]), help="Last day (YYYY-MM-DD), defaults to the last day in the file")
@click.option(
    "-d",
    "--holiday",
    "holidays",
    multiple=True,
    callback=_holiday_option,
    help="Holiday as YYYY-MM-DD, extra days of the month comma separated (2022-12-25,26)",
)
@click.option(
    "-c",
    "--counter",
    "counters",
    multiple=True,
    callback=_counter_option,
    help="Carried-over counter to add, e.g. p1=97",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.option("-v", "--verbose", is_flag=True, help="List every skipped row")
@click.pass_context
def report(ctx, csv_path, start, end, holidays, counters, as_json, verbose):
    """Total consumption per tariff period for a date range."""
    tariff = _load_tariff(ctx)

    try:
        parsed = edistribucion.read_csv(Path(csv_path))
    except edistribucion.ParseError as e:
        console.print(f"[red]Could not parse {csv_path}: {e}[/red]")
        ctx.exit(1)

    if parsed.errors:
        console.print(f"[yellow]Skipped {len(parsed.errors)} malformed row(s)[/yellow]")
        if verbose:
            for error in parsed.errors:
                console.print(f"[yellow]  line {error.line}: {error.reason}[/yellow]")

    span = periods.date_span(parsed.records)
    if start is None or end is None:
        if span is None:
            console.print("[red]No readings in file, please specify --start and --end[/red]")
            ctx.exit(1)
    start_date = start.date() if start else span[0]
    end_date = end.date() if end else span[1]

    try:
        result = periods.aggregate(parsed.records, start_date, end_date, tariff, holidays)
    except periods.InvalidRangeError as e:
        console.print(f"[red]Invalid date range: {e}[/red]")
        ctx.exit(1)

    result, unknown = periods.apply_counters(result, counters, tariff)
    for name in unknown:
        console.print(f"[yellow]Ignoring counter for unknown period {name}[/yellow]")

    if result.is_empty:
        console.print(
            f"[yellow]Warning: no readings between {start_date} and {end_date}, check the date range[/yellow]"
        )

    if as_json:
        click.echo(json.dumps(periods.to_dict(result, tariff), indent=2))
        return

    table = Table(title=f"{tariff.name}: {start_date} → {end_date}")
    table.add_column("Period", style="cyan")
    table.add_column("Label")
    table.add_column("Consumption (kWh)", justify="right")
    if result.carried_over:
        table.add_column("Carried over", justify="right")
    table.add_column("Total (kWh)", justify="right", style="bold")

    for period, label in tariff.periods.items():
        row = [period, label, _format_kwh(result.totals[period])]
        if result.carried_over:
            row.append(_format_kwh(result.carried_over.get(period, Decimal(0))))
        row.append(_format_kwh(result.total_for(period)))
        table.add_row(*row)

    console.print(table)
    console.print(f"[green]{result.record_count} readings in range[/green]")


# Tariff commands
@cli.group()
def tariff():
    """Tariff commands."""
    pass


@tariff.command("show")
@tariff_options
@click.pass_context
def tariff_show(ctx):
    """Show the time windows of a tariff."""
    selected = _load_tariff(ctx)

    table = Table(title=f"Tariff {selected.name}")
    table.add_column("Period", style="cyan")
    table.add_column("Label")
    table.add_column("Days")
    table.add_column("From")
    table.add_column("To")

    for window in selected.windows:
        table.add_row(
            window.period,
            selected.periods[window.period],
            window.days,
            window.start_time,
            window.end_time,
        )

    console.print(table)
    if selected.holidays:
        days = ", ".join(d.isoformat() for d in sorted(selected.holidays))
        console.print(f"[cyan]Holidays:[/cyan] {days}")


def main():
    load_dotenv()
    cli()


if __name__ == "__main__":
    main()
