"""Tariff loading and time period classification."""

import os
from datetime import date, datetime, time, timedelta
from pathlib import Path

import yaml

from .models import Tariff, TariffWindow

BUNDLED_CONFIG_PATH = Path(__file__).parent / "tariffs.yaml"
CONFIG_ENV_VAR = "METER_REPORT_TARIFFS"

DAY_TYPES = ("*", "weekdays", "weekends")


class TariffError(ValueError):
    """Invalid or incomplete tariff configuration."""


def get_config_path() -> Path:
    """Find the tariffs.yaml config file."""
    env_path = os.environ.get(CONFIG_ENV_VAR)
    candidates = [
        Path(env_path) if env_path else None,
        Path.cwd() / "config" / "tariffs.yaml",
        Path.home() / ".config" / "meter-report" / "tariffs.yaml",
    ]
    for path in candidates:
        if path is not None and path.exists():
            return path
    return BUNDLED_CONFIG_PATH


def load_tariffs_from_yaml(config_path: Path | None = None) -> list[Tariff]:
    """Load tariff definitions from YAML config file."""
    path = config_path or get_config_path()
    with open(path, encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise TariffError(f"Could not read {path}: {e}") from e
    if not isinstance(data, dict):
        raise TariffError(f"Expected a mapping with a 'tariffs' list in {path}")

    tariffs = []
    for t in data.get("tariffs") or []:
        try:
            periods = {p["name"]: p.get("label", p["name"]) for p in t["periods"]}
            windows = [
                TariffWindow(
                    period=w["period"],
                    start_time=_time_value(w["start"]),
                    end_time=_time_value(w["end"]),
                    days=w.get("days", "*"),
                )
                for w in t.get("windows", [])
            ]
            holidays = set()
            for entry in t.get("holidays", []):
                holidays.update(parse_holidays(str(entry)))
            tariff = Tariff(name=str(t["name"]), periods=periods, windows=windows, holidays=holidays)
        except KeyError as e:
            raise TariffError(f"Missing key {e} in tariff definition in {path}") from e
        except ValueError as e:
            raise TariffError(f"Invalid tariff definition in {path}: {e}") from e

        validate_tariff(tariff)
        tariffs.append(tariff)

    if not tariffs:
        raise TariffError(f"No tariffs defined in {path}")
    return tariffs


def _time_value(value) -> str:
    # Unquoted 12:00 is read by YAML as the integer 720
    if not isinstance(value, str):
        raise ValueError(f"time {value!r} must be a quoted 'HH:MM' string")
    return value


def get_tariff(name: str | None = None, config_path: Path | None = None) -> Tariff:
    """Load a tariff by name, or the first one defined."""
    tariffs = load_tariffs_from_yaml(config_path)
    if name is None:
        return tariffs[0]
    for tariff in tariffs:
        if tariff.name.lower() == name.lower():
            return tariff
    known = ", ".join(t.name for t in tariffs)
    raise TariffError(f"Unknown tariff '{name}' (available: {known})")


def parse_time(time_str: str) -> time:
    """Parse HH:MM string to time object. 24:00 is read as midnight."""
    parts = time_str.split(":")
    if len(parts) != 2:
        raise ValueError(f"invalid time '{time_str}', expected HH:MM")
    try:
        hour, minute = int(parts[0]), int(parts[1])
    except ValueError:
        raise ValueError(f"invalid time '{time_str}', expected HH:MM") from None
    if hour == 24 and minute == 0:
        return time(0, 0)
    return time(hour, minute)


def time_in_range(check_time: time, start: time, end: time) -> bool:
    """Check if a time falls within [start, end) (handles overnight ranges).

    A range whose start equals its end covers the whole day.
    """
    if start == end:
        return True
    if start < end:
        return start <= check_time < end
    else:
        # Overnight range (e.g., 22:00 to 08:00)
        return check_time >= start or check_time < end


def is_weekend_day(day: date, holidays: set[date] | frozenset[date] = frozenset()) -> bool:
    """Saturdays, Sundays and holidays all use the weekend windows."""
    return day.weekday() >= 5 or day in holidays


def window_applies(window: TariffWindow, weekend: bool) -> bool:
    if window.days == "weekdays":
        return not weekend
    if window.days == "weekends":
        return weekend
    return True


def classify(
    day: date,
    check_time: time,
    tariff: Tariff,
    holidays: set[date] | frozenset[date] = frozenset(),
) -> str:
    """Return the tariff period for a date and time of day.

    Windows are half-open, so a boundary time belongs to the window that
    starts there. The first matching window wins.
    """
    weekend = is_weekend_day(day, holidays | tariff.holidays)

    for window in tariff.windows:
        if not window_applies(window, weekend):
            continue

        start = parse_time(window.start_time)
        end = parse_time(window.end_time)

        if time_in_range(check_time, start, end):
            return window.period

    raise TariffError(f"No period found in tariff '{tariff.name}' for {day} {check_time}")


def validate_tariff(tariff: Tariff) -> None:
    """Check windows reference known periods and cover every minute of both day types."""
    for window in tariff.windows:
        if window.period not in tariff.periods:
            raise TariffError(
                f"Tariff '{tariff.name}' window {window.start_time}-{window.end_time} "
                f"uses unknown period '{window.period}'"
            )
        if window.days not in DAY_TYPES:
            raise TariffError(
                f"Tariff '{tariff.name}' window {window.start_time}-{window.end_time} "
                f"has invalid days '{window.days}' (expected one of {', '.join(DAY_TYPES)})"
            )
        try:
            parse_time(window.start_time)
            parse_time(window.end_time)
        except ValueError as e:
            raise TariffError(f"Tariff '{tariff.name}': {e}") from e

    for weekend in (False, True):
        windows = [
            (parse_time(w.start_time), parse_time(w.end_time))
            for w in tariff.windows
            if window_applies(w, weekend)
        ]
        minute = datetime.combine(date.min, time.min)
        for _ in range(24 * 60):
            if not any(time_in_range(minute.time(), s, e) for s, e in windows):
                day_type = "weekends" if weekend else "weekdays"
                raise TariffError(
                    f"Tariff '{tariff.name}' has no period for {minute.strftime('%H:%M')} on {day_type}"
                )
            minute += timedelta(minutes=1)


def parse_holidays(value: str) -> list[date]:
    """Parse a holiday argument such as 2022-12-25 or 2022-12-25,26.

    Extra comma separated days belong to the same year and month as the
    first date. Repeated days are not an error.
    """
    first, *extra_days = value.strip().split(",")
    parts = first.split("-")
    if len(parts) != 3:
        raise ValueError(f"invalid date '{value}', expected YYYY-MM-DD[,DD...]")

    year_month = f"{parts[0]}-{parts[1]}"
    days = [parts[2]] + [d.strip() for d in extra_days]

    holidays = []
    for day in days:
        text = f"{year_month}-{day}"
        try:
            holidays.append(datetime.strptime(text, "%Y-%m-%d").date())
        except ValueError:
            raise ValueError(
                f"invalid date '{text}' in '{value}': not of the format YYYY-MM-DD or not a valid date"
            ) from None
    return holidays
