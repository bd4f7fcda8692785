"""Consumption totals per tariff period over a date range."""

from collections.abc import Iterable
from datetime import date
from decimal import Decimal, InvalidOperation

from ..models import AggregationResult, ConsumptionRecord, Tariff
from ..tariffs import classify


class InvalidRangeError(ValueError):
    """The start date of a range is after its end date."""


def aggregate(
    records: Iterable[ConsumptionRecord],
    start: date,
    end: date,
    tariff: Tariff,
    holidays: Iterable[date] = (),
) -> AggregationResult:
    """Sum consumption per tariff period for records dated within [start, end].

    Both dates are inclusive. Each record is classified by the start of its
    interval, since the export stamps readings at the interval end. Every
    period of the tariff appears in the result, with zero when nothing
    matched.
    """
    if start > end:
        raise InvalidRangeError(f"Start date {start} is after end date {end}")

    holiday_set = frozenset(holidays)
    totals = {period: Decimal(0) for period in tariff.periods}
    count = 0

    for record in records:
        if not start <= record.date <= end:
            continue
        period = classify(record.date, record.interval_start, tariff, holiday_set)
        totals[period] += record.consumption_kwh
        count += 1

    return AggregationResult(start=start, end=end, totals=totals, record_count=count)


def date_span(records: Iterable[ConsumptionRecord]) -> tuple[date, date] | None:
    """First and last dates present in the records, or None if there are none."""
    dates = [r.date for r in records]
    if not dates:
        return None
    return min(dates), max(dates)


def parse_counter(value: str) -> tuple[str, Decimal]:
    """Parse a carried-over meter counter such as p1=97 or P2=12,5.

    The period name is upper-cased so that p1 and P1 refer to the same period.
    """
    name, sep, amount_text = value.partition("=")
    name = name.strip()
    amount_text = amount_text.strip()

    if not sep:
        raise ValueError(f"invalid counter '{value}', it doesn't have an '='")
    if not name:
        raise ValueError(f"invalid counter '{value}', it doesn't have a period name")
    if not amount_text:
        raise ValueError(f"invalid counter '{value}', it doesn't have a value")

    try:
        amount = Decimal(amount_text.replace(",", "."))
    except InvalidOperation:
        raise ValueError(
            f"invalid counter '{value}', value '{amount_text}' isn't a number"
        ) from None
    if not amount.is_finite() or amount < 0:
        raise ValueError(
            f"invalid counter '{value}', value '{amount_text}' isn't a non-negative number"
        )

    return name.upper(), amount


def apply_counters(
    result: AggregationResult,
    counters: Iterable[tuple[str, Decimal]],
    tariff: Tariff,
) -> tuple[AggregationResult, list[str]]:
    """Attach carried-over counters to a result.

    A period given more than once keeps the last value. Returns the new
    result and the names of counters that match no period of the tariff.
    """
    by_upper = {period.upper(): period for period in tariff.periods}
    carried: dict[str, Decimal] = {}
    unknown: list[str] = []

    for name, amount in counters:
        period = by_upper.get(name.upper())
        if period is None:
            if name not in unknown:
                unknown.append(name)
            continue
        carried[period] = amount

    updated = AggregationResult(
        start=result.start,
        end=result.end,
        totals=dict(result.totals),
        record_count=result.record_count,
        carried_over=carried,
    )
    return updated, unknown


def to_dict(result: AggregationResult, tariff: Tariff) -> dict:
    """Serialize a result for JSON output, in tariff period order."""
    return {
        "tariff": tariff.name,
        "start": result.start.isoformat(),
        "end": result.end.isoformat(),
        "record_count": result.record_count,
        "periods": [
            {
                "period": period,
                "label": label,
                "consumption_kwh": float(result.totals.get(period, Decimal(0))),
                "carried_over_kwh": float(result.carried_over.get(period, Decimal(0))),
                "total_kwh": float(result.total_for(period)),
            }
            for period, label in tariff.periods.items()
        ],
        "total_kwh": float(sum((result.total_for(p) for p in tariff.periods), Decimal(0))),
    }

