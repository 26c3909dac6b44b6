"""Chart series for the dashboard: one point per calendar day plus a moving average."""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional, Sequence

import pandas as pd

from sleep_journal.entries import SleepEntry

DEFAULT_CHART_DAYS = 30
DEFAULT_MOVING_AVERAGE_WINDOW = 7

MONTH_ABBREVIATIONS = ("ene", "feb", "mar", "abr", "may", "jun", "jul", "ago", "sept", "oct", "nov", "dic")


@dataclass
class ChartData:
    labels: list[str]
    data: list[Optional[int]]  # rating, or None for days without an entry
    moving_average: list[Optional[float]]


def format_chart_label(day: date) -> str:
    """Short Spanish day label, e.g. '5 oct'."""
    return f"{day.day} {MONTH_ABBREVIATIONS[day.month - 1]}"


def calculate_moving_average(
    data: Sequence[Optional[float]],
    window_size: int = DEFAULT_MOVING_AVERAGE_WINDOW,
) -> list[Optional[float]]:
    """Trailing moving average that skips missing days.

    The first `window_size - 1` positions have no full window and are None.
    A window with no values at all is None as well.
    """
    series = pd.Series(data, dtype="float64")
    averages = series.rolling(window=window_size, min_periods=1).mean()

    result: list[Optional[float]] = []
    for index, value in enumerate(averages):
        if index < window_size - 1 or pd.isna(value):
            result.append(None)
        else:
            result.append(float(round(value, 1)))
    return result


def prepare_chart_data(
    entries: Sequence[SleepEntry],
    days: int = DEFAULT_CHART_DAYS,
    today: Optional[date] = None,
    window_size: int = DEFAULT_MOVING_AVERAGE_WINDOW,
) -> ChartData:
    """Build one point per day for the last `days` days, today included."""
    if today is None:
        today = date.today()
    start = today - timedelta(days=days - 1)

    ratings_by_day = {entry.date: entry.rating for entry in entries}
    calendar = pd.date_range(start=start, end=today, freq="D").date

    labels = [format_chart_label(day) for day in calendar]
    data = [ratings_by_day.get(day) for day in calendar]

    return ChartData(
        labels=labels,
        data=data,
        moving_average=calculate_moving_average(data, window_size),
    )
