"""e-distribución consumption export importer.

Parses the hourly consumption CSV downloaded from the distribution portal.
CSV format: CUPS;Fecha;Hora;AE_kWh;REAL/ESTIMADO

- Fecha: DD/MM/YYYY
- Hora: 1-24, the hour at which the interval ends (24 closes the day).
  The October daylight saving change day has a 25th hour.
- AE_kWh: consumption with a decimal comma, e.g. 0,123

Older exports name the consumption column Consumo_kWh and other tools
write HH:MM times, ISO dates or decimal points; all of those are accepted.
"""

import csv
import io
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from pathlib import Path

from ..models import ConsumptionRecord, ParseResult, RowError

DELIMITERS = ";,\t"


class ParseError(ValueError):
    """A row or the whole export could not be parsed."""


@dataclass(frozen=True)
class CsvFormat:
    """Column names and locale conventions of a consumption export."""

    delimiter: str | None = None  # guessed from the header when None
    date_columns: tuple[str, ...] = ("Fecha", "fecha", "Date", "date")
    time_columns: tuple[str, ...] = ("Hora", "hora", "Time", "time")
    consumption_columns: tuple[str, ...] = (
        "AE_kWh",
        "Consumo_kWh",
        "Consumo",
        "consumption_kwh",
        "kWh",
    )
    date_formats: tuple[str, ...] = ("%d/%m/%Y", "%Y-%m-%d", "%d-%m-%Y", "%Y/%m/%d")
    decimal_separator: str | None = None  # "," or "."; guessed per value when None
    interval_minutes: int = 60


EDISTRIBUCION = CsvFormat()


def read_csv(csv_path: Path, csv_format: CsvFormat = EDISTRIBUCION) -> ParseResult:
    """Read and parse an export file.

    The portal has produced both UTF-8 (with BOM) and latin-1 files.
    """
    raw = Path(csv_path).read_bytes()
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = raw.decode("latin-1")
    return parse_records(text, csv_format)


def parse_records(raw_input: str, csv_format: CsvFormat = EDISTRIBUCION) -> ParseResult:
    """Parse export text into consumption records.

    Malformed rows are skipped and reported in ``ParseResult.errors``.
    Raises ParseError when the header lacks a required column or when
    every data row is malformed.
    """
    text = raw_input.lstrip("\ufeff")
    if not text.strip():
        raise ParseError("Export is empty")

    delimiter = csv_format.delimiter or sniff_delimiter(text)
    reader = csv.DictReader(io.StringIO(text), delimiter=delimiter)
    header = [name.strip() for name in reader.fieldnames or []]
    reader.fieldnames = header

    date_key = _find_column(header, csv_format.date_columns, "date")
    time_key = _find_column(header, csv_format.time_columns, "time")
    consumption_key = _find_column(header, csv_format.consumption_columns, "consumption")

    records = []
    errors = []
    rows_seen = 0
    for row in reader:
        if not any((value or "").strip() for value in row.values() if isinstance(value, str)):
            continue
        rows_seen += 1
        try:
            records.append(
                parse_row(row, date_key, time_key, consumption_key, csv_format)
            )
        except ParseError as e:
            errors.append(RowError(line=reader.line_num, reason=str(e), row=dict(row)))

    if rows_seen and not records:
        raise ParseError(
            f"None of the {rows_seen} rows could be parsed (first error: line "
            f"{errors[0].line}: {errors[0].reason})"
        )

    return ParseResult(records=records, errors=errors)


def parse_row(
    row: dict,
    date_key: str,
    time_key: str,
    consumption_key: str,
    csv_format: CsvFormat = EDISTRIBUCION,
) -> ConsumptionRecord:
    """Parse one CSV row into a ConsumptionRecord."""
    values = {}
    for key in (date_key, time_key, consumption_key):
        value = row.get(key)
        if value is None or not value.strip():
            raise ParseError(f"Missing value for column '{key}'")
        values[key] = value.strip()

    return ConsumptionRecord(
        date=parse_date(values[date_key], csv_format.date_formats),
        time=parse_end_time(values[time_key]),
        consumption_kwh=parse_consumption(values[consumption_key], csv_format.decimal_separator),
        interval_minutes=csv_format.interval_minutes,
    )


def parse_date(value: str, formats: tuple[str, ...] = EDISTRIBUCION.date_formats) -> date:
    for fmt in formats:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ParseError(f"Invalid date '{value}'")


def parse_end_time(value: str) -> time:
    """Parse an interval end given as an hour number (1-25) or HH:MM.

    The end of the day (24 or 24:00) is returned as 00:00. Hour 25, the
    extra hour of the day clocks go back, also closes the day.
    """
    try:
        if ":" in value:
            hour_text, minute_text = value.split(":")[:2]
            hour, minute = int(hour_text), int(minute_text)
        else:
            hour, minute = int(value), 0
    except ValueError:
        raise ParseError(f"Invalid time '{value}'") from None

    if hour == 25 and minute == 0 and ":" not in value:
        return time(0, 0)
    if hour == 24 and minute == 0:
        return time(0, 0)
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ParseError(f"Invalid time '{value}'")
    return time(hour, minute)


def parse_consumption(value: str, decimal_separator: str | None = None) -> Decimal:
    """Parse a localized kWh value such as 0,123 or 1.234,5.

    Without an explicit separator, the last of "," and "." in the value is
    taken as the decimal mark.
    """
    text = value.replace(" ", "")
    if decimal_separator is None:
        decimal_separator = "," if text.rfind(",") > text.rfind(".") else "."
    if decimal_separator == ",":
        text = text.replace(".", "").replace(",", ".")
    else:
        text = text.replace(",", "")

    try:
        amount = Decimal(text)
    except InvalidOperation:
        raise ParseError(f"Invalid consumption '{value}'") from None

    if not amount.is_finite():
        raise ParseError(f"Invalid consumption '{value}'")
    if amount < 0:
        raise ParseError(f"Negative consumption '{value}'")
    return amount


def sniff_delimiter(text: str) -> str:
    """Guess the delimiter from the header line."""
    header = text.splitlines()[0]
    counts = {d: header.count(d) for d in DELIMITERS}
    best = max(counts, key=counts.get)
    return best if counts[best] else ";"


def _find_column(header: list[str], candidates: tuple[str, ...], kind: str) -> str:
    for name in candidates:
        if name in header:
            return name
    raise ParseError(
        f"Missing {kind} column: expected one of {', '.join(candidates)}, "
        f"found {', '.join(header) or 'no header'}"
    )
