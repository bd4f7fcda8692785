"""Tests for the e-distribución CSV collector."""

from datetime import date, time
from decimal import Decimal

import pytest
from meter_report.collectors import edistribucion
from meter_report.analysis.periods import aggregate
from meter_report.collectors.edistribucion import CsvFormat, ParseError
from meter_report.tariffs import BUNDLED_CONFIG_PATH, get_tariff


PORTAL_EXPORT = """CUPS;Fecha;Hora;AE_kWh;REAL/ESTIMADO
ES0031000000000000XX0F;01/01/2024;1;0,123;R
ES0031000000000000XX0F;01/01/2024;2;abc;R
ES0031000000000000XX0F;01/01/2024;24;1,5;E
"""


def test_parse_portal_export():
    """Test decimal commas, DD/MM/YYYY dates and hour numbers."""
    result = edistribucion.parse_records(PORTAL_EXPORT)

    assert len(result.records) == 2
    first, last = result.records
    assert first.date == date(2024, 1, 1)
    assert first.time == time(1, 0)
    assert first.consumption_kwh == Decimal("0.123")
    assert first.interval_start == time(0, 0)

    # Hour 24 closes the day and stays on the same date
    assert last.date == date(2024, 1, 1)
    assert last.time == time(0, 0)
    assert last.interval_start == time(23, 0)
    assert last.consumption_kwh == Decimal("1.5")


def test_malformed_row_is_reported():
    """Test a non-numeric consumption is skipped and reported with its line."""
    result = edistribucion.parse_records(PORTAL_EXPORT)

    assert len(result.errors) == 1
    assert result.errors[0].line == 3
    assert "abc" in result.errors[0].reason


def test_records_keep_input_order():
    text = "Fecha;Hora;Consumo_kWh\n02/01/2024;5;1\n01/01/2024;3;2\n01/01/2024;1;3\n"
    result = edistribucion.parse_records(text)

    assert [r.consumption_kwh for r in result.records] == [Decimal(1), Decimal(2), Decimal(3)]
    assert result.errors == []


def test_comma_delimited_iso_export():
    """Test a comma separated file with ISO dates, HH:MM times and decimal points."""
    text = "date,time,consumption_kwh\n2024-01-01,10:00,2.0\n2024-01-01,23:30,1.25\n"
    result = edistribucion.parse_records(text)

    assert len(result.records) == 2
    assert result.records[0].time == time(10, 0)
    assert result.records[0].consumption_kwh == Decimal("2.0")
    assert result.records[1].consumption_kwh == Decimal("1.25")


def test_interval_length_from_format():
    text = "date;time;kWh\n2024-01-01;00:15;0,1\n"
    result = edistribucion.parse_records(text, CsvFormat(interval_minutes=15))

    assert result.records[0].interval_minutes == 15
    assert result.records[0].interval_start == time(0, 0)


def test_clocks_go_back_day():
    """Test the 25 hourly rows of the October daylight saving change."""
    rows = "".join(f"ES;27/10/2024;{hour};1;R\n" for hour in range(1, 26))
    result = edistribucion.parse_records("CUPS;Fecha;Hora;AE_kWh;REAL/ESTIMADO\n" + rows)

    assert len(result.records) == 25
    assert result.errors == []
    assert result.records[-1].time == time(0, 0)
    assert result.records[-1].interval_start == time(23, 0)

    # A Sunday, so the whole day is off-peak
    tariff = get_tariff("2.0TD", BUNDLED_CONFIG_PATH)
    totals = aggregate(result.records, date(2024, 10, 27), date(2024, 10, 27), tariff).totals
    assert totals == {"P1": Decimal(0), "P2": Decimal(0), "P3": Decimal(25)}


def test_blank_lines_are_ignored():
    text = "Fecha;Hora;AE_kWh\n01/01/2024;1;0,5\n;;\n\n01/01/2024;2;0,5\n"
    result = edistribucion.parse_records(text)

    assert len(result.records) == 2
    assert result.errors == []


@pytest.mark.parametrize(
    "row, reason",
    [
        ("31/02/2024;1;0,5", "Invalid date"),
        ("01/01/2024;26;0,5", "Invalid time"),
        ("01/01/2024;25:00;0,5", "Invalid time"),
        ("01/01/2024;x;0,5", "Invalid time"),
        ("01/01/2024;1;-0,5", "Negative consumption"),
        ("01/01/2024;1;", "Missing value"),
        ("01/01/2024;1", "Missing value"),
    ],
)
def test_invalid_rows(row, reason):
    text = f"Fecha;Hora;AE_kWh\n01/01/2024;1;0,5\n{row}\n"
    result = edistribucion.parse_records(text)

    assert len(result.records) == 1
    assert len(result.errors) == 1
    assert reason in result.errors[0].reason


def test_missing_column_is_fatal():
    with pytest.raises(ParseError, match="consumption column"):
        edistribucion.parse_records("Fecha;Hora;Valor\n01/01/2024;1;0,5\n")


def test_every_row_invalid_is_fatal():
    with pytest.raises(ParseError, match="None of the 2 rows"):
        edistribucion.parse_records("Fecha;Hora;AE_kWh\n01/01/2024;1;x\n01/01/2024;2;y\n")


def test_empty_export():
    with pytest.raises(ParseError, match="empty"):
        edistribucion.parse_records("   \n")

    # A header alone is not an error, there is just nothing to report
    result = edistribucion.parse_records("Fecha;Hora;AE_kWh\n")
    assert result.records == []


@pytest.mark.parametrize(
    "value, expected",
    [
        ("0,123", Decimal("0.123")),
        ("1.234,5", Decimal("1234.5")),
        ("1,234.5", Decimal("1234.5")),
        ("0.5", Decimal("0.5")),
        ("7", Decimal("7")),
    ],
)
def test_parse_consumption(value, expected):
    assert edistribucion.parse_consumption(value) == expected


def test_parse_consumption_explicit_separator():
    assert edistribucion.parse_consumption("1.234", decimal_separator=",") == Decimal("1234")
    with pytest.raises(ParseError):
        edistribucion.parse_consumption("nan")


def test_read_csv_latin1(tmp_path):
    """Test the latin-1 files the portal sometimes produces."""
    path = tmp_path / "consumo.csv"
    path.write_bytes("CUPS;Fecha;Hora;AE_kWh;Método\nES;01/01/2024;1;0,2;R\n".encode("latin-1"))

    result = edistribucion.read_csv(path)
    assert result.records[0].consumption_kwh == Decimal("0.2")


def test_read_csv_utf8_bom(tmp_path):
    path = tmp_path / "consumo.csv"
    path.write_bytes("Fecha;Hora;AE_kWh\n01/01/2024;1;0,2\n".encode("utf-8-sig"))

    result = edistribucion.read_csv(path)
    assert len(result.records) == 1
