"""Sleep entry values handed to the analytics engine, plus small helpers over them.

No database or HTTP dependencies: rows are converted into `SleepEntry`
values at the edge (see `sleep_log_to_entry`).
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional, Sequence

import pandas as pd

TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")

ENTRY_COLUMNS = ["date", "rating", "comments", "start_time", "end_time"]


@dataclass(frozen=True)
class SleepEntry:
    date: date
    rating: int
    comments: Optional[str] = None
    start_time: Optional[str] = None  # HH:MM bedtime
    end_time: Optional[str] = None  # HH:MM wake time, may be "before" start_time (overnight)


@dataclass(frozen=True)
class SleepDuration:
    hours: float  # decimal hours, 2 dp
    minutes: int  # remainder minutes after whole hours
    total_minutes: int


def _parse_sleep_entry(data: dict) -> SleepEntry:
    raw_date = data.get("date", "")
    entry_date = raw_date if isinstance(raw_date, date) else date.fromisoformat(str(raw_date)[:10])
    return SleepEntry(
        date=entry_date,
        rating=int(data.get("rating", 0)),
        comments=data.get("comments") or None,
        start_time=data.get("start_time") or None,
        end_time=data.get("end_time") or None,
    )


def parse_entries(records: Iterable[dict]) -> list[SleepEntry]:
    """Parse JSON-like records (e.g. an API payload) into entries."""
    return [_parse_sleep_entry(record) for record in records]


def sleep_log_to_entry(log) -> SleepEntry:
    """Convert a `SleepLog` row into an engine entry."""
    return SleepEntry(
        date=log.date,
        rating=log.rating,
        comments=log.comments,
        start_time=log.start_time,
        end_time=log.end_time,
    )


def _time_to_minutes(value: str) -> Optional[int]:
    match = TIME_PATTERN.match(value.strip()) if value else None
    if not match:
        return None
    return int(match.group(1)) * 60 + int(match.group(2))


def calculate_sleep_duration(start_time: Optional[str], end_time: Optional[str]) -> Optional[SleepDuration]:
    """Compute how long someone slept between bedtime and wake time.

    A wake time at or before the bedtime is read as the next morning,
    e.g. 23:30 -> 07:15 is 7h45m. Returns None if either time is missing
    or not in HH:MM format.
    """
    start = _time_to_minutes(start_time) if start_time else None
    end = _time_to_minutes(end_time) if end_time else None
    if start is None or end is None:
        return None

    total_minutes = end - start
    if total_minutes <= 0:
        total_minutes += 24 * 60

    return SleepDuration(
        hours=round(total_minutes / 60, 2),
        minutes=total_minutes % 60,
        total_minutes=total_minutes,
    )


def entries_to_dataframe(entries: Sequence[SleepEntry]) -> pd.DataFrame:
    """Convert entries to a DataFrame with a datetime64 `date` column (local midnight)."""
    records = [
        {
            "date": entry.date,
            "rating": entry.rating,
            "comments": entry.comments,
            "start_time": entry.start_time,
            "end_time": entry.end_time,
        }
        for entry in entries
    ]
    df = pd.DataFrame(records, columns=ENTRY_COLUMNS)
    df["date"] = pd.to_datetime(df["date"])
    df["rating"] = df["rating"].astype("int64")
    return df


# Filters (used by the journal listing and bulk selection)

def filter_entries_by_month(entries: Sequence[SleepEntry], year: int, month: int) -> list[SleepEntry]:
    return [e for e in entries if e.date.year == year and e.date.month == month]


def filter_entries_by_rating(entries: Sequence[SleepEntry], min_rating: int, max_rating: int) -> list[SleepEntry]:
    return [e for e in entries if min_rating <= e.rating <= max_rating]


def filter_entries_by_date_range(
    entries: Sequence[SleepEntry],
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> list[SleepEntry]:
    """Keep entries within [date_from, date_to]; either bound may be omitted."""
    return [
        e for e in entries
        if (date_from is None or e.date >= date_from) and (date_to is None or e.date <= date_to)
    ]


def search_entries_by_comment(entries: Sequence[SleepEntry], search_term: str) -> list[SleepEntry]:
    """Case-insensitive substring search over comments. A blank term matches everything."""
    if not search_term or not search_term.strip():
        return list(entries)
    term = search_term.lower()
    return [e for e in entries if e.comments and term in e.comments.lower()]
