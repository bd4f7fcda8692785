"""Data models for consumption readings and tariffs."""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal


@dataclass(frozen=True)
class ConsumptionRecord:
    """A single interval reading from the distribution portal export."""

    date: date
    time: time  # end of the interval, 00:00 closes the last interval of `date`
    consumption_kwh: Decimal
    interval_minutes: int = 60

    @property
    def interval_start(self) -> time:
        """Start of the measured interval, wrapped within the same day."""
        end = datetime.combine(self.date, self.time)
        return (end - timedelta(minutes=self.interval_minutes)).time()


@dataclass(frozen=True)
class RowError:
    """A CSV row that was skipped while parsing."""

    line: int
    reason: str
    row: dict | None = None


@dataclass
class ParseResult:
    """Parsed records plus the rows that had to be skipped."""

    records: list[ConsumptionRecord]
    errors: list[RowError] = field(default_factory=list)


@dataclass(frozen=True)
class TariffWindow:
    """A time window mapped to a tariff period."""

    period: str
    start_time: str  # HH:MM format
    end_time: str  # HH:MM format
    days: str = "*"  # '*' = all, 'weekdays', 'weekends'


@dataclass
class Tariff:
    """A time-of-use tariff: ordered periods and the windows that select them."""

    name: str
    periods: dict[str, str]  # period name -> label, in reporting order
    windows: list[TariffWindow]
    holidays: set[date] = field(default_factory=set)


@dataclass
class AggregationResult:
    """Consumption per tariff period over an inclusive date range."""

    start: date
    end: date
    totals: dict[str, Decimal]
    record_count: int = 0
    carried_over: dict[str, Decimal] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return self.record_count == 0

    def total_for(self, period: str) -> Decimal:
        """Range total plus any carried-over counter for the period."""
        return self.totals.get(period, Decimal(0)) + self.carried_over.get(period, Decimal(0))
