"""Tests for sleep entry parsing, durations and filters."""

from datetime import date

import pandas as pd

from sleep_journal.entries import (
    SleepEntry,
    calculate_sleep_duration,
    entries_to_dataframe,
    filter_entries_by_date_range,
    filter_entries_by_month,
    filter_entries_by_rating,
    parse_entries,
    search_entries_by_comment,
)

from conftest import make_entries


class TestCalculateSleepDuration:
    """Tests for calculate_sleep_duration function."""

    def test_overnight_sleep(self):
        """Test that a wake time before bedtime is read as the next morning."""
        duration = calculate_sleep_duration("23:30", "07:15")

        assert duration.total_minutes == 465
        assert duration.hours == 7.75
        assert duration.minutes == 45

    def test_same_day_sleep(self):
        """Test a nap that starts and ends on the same day."""
        duration = calculate_sleep_duration("14:00", "15:20")

        assert duration.total_minutes == 80
        assert duration.hours == 1.33
        assert duration.minutes == 20

    def test_equal_times_are_a_full_day(self):
        """Test that identical times count as 24 hours."""
        duration = calculate_sleep_duration("07:00", "07:00")

        assert duration.total_minutes == 24 * 60
        assert duration.hours == 24.0

    def test_single_digit_hour(self):
        """Test that H:MM is accepted."""
        duration = calculate_sleep_duration("22:00", "6:00")

        assert duration.total_minutes == 480
        assert duration.minutes == 0

    def test_missing_or_malformed_times(self):
        """Test that missing or invalid times give no duration."""
        assert calculate_sleep_duration(None, "07:00") is None
        assert calculate_sleep_duration("23:00", None) is None
        assert calculate_sleep_duration("25:00", "07:00") is None
        assert calculate_sleep_duration("23:00", "7h") is None


class TestParseEntries:
    """Tests for parse_entries function."""

    def test_parses_records(self):
        """Test that API-style records become entries."""
        entries = parse_entries([
            {"date": "2024-01-02T00:00:00Z", "rating": "7", "comments": "", "start_time": "23:00"},
            {"date": date(2024, 1, 1), "rating": 5, "comments": "Ruido en la calle"},
        ])

        assert entries[0] == SleepEntry(date=date(2024, 1, 2), rating=7, start_time="23:00")
        assert entries[1].comments == "Ruido en la calle"
        assert entries[1].end_time is None


class TestEntriesToDataframe:
    """Tests for entries_to_dataframe function."""

    def test_converts_entries(self):
        """Test columns and dtypes."""
        df = entries_to_dataframe(make_entries([7, 8]))

        assert list(df.columns) == ["date", "rating", "comments", "start_time", "end_time"]
        assert pd.api.types.is_datetime64_any_dtype(df["date"])
        assert df["rating"].tolist() == [7, 8]

    def test_empty_input_returns_empty_dataframe(self):
        """Test that no entries give an empty but typed frame."""
        df = entries_to_dataframe([])

        assert isinstance(df, pd.DataFrame)
        assert len(df) == 0
        assert pd.api.types.is_datetime64_any_dtype(df["date"])


class TestFilters:
    """Tests for the entry filters."""

    def test_filter_by_month(self):
        """Test that only entries of the given month are kept."""
        entries = make_entries([5] * 45, start=date(2024, 1, 20))

        february = filter_entries_by_month(entries, 2024, 2)

        assert len(february) == 29
        assert all(entry.date.month == 2 for entry in february)

    def test_filter_by_rating(self):
        """Test the inclusive rating range."""
        entries = make_entries([1, 4, 5, 7, 10])

        assert [e.rating for e in filter_entries_by_rating(entries, 4, 7)] == [4, 5, 7]

    def test_filter_by_date_range(self):
        """Test inclusive bounds and open ends."""
        entries = make_entries([5] * 10)

        assert len(filter_entries_by_date_range(entries, date(2024, 1, 3), date(2024, 1, 5))) == 3
        assert len(filter_entries_by_date_range(entries, date_from=date(2024, 1, 8))) == 3
        assert len(filter_entries_by_date_range(entries, date_to=date(2024, 1, 2))) == 2
        assert len(filter_entries_by_date_range(entries)) == 10

    def test_search_by_comment(self):
        """Test case-insensitive substring search."""
        entries = [
            SleepEntry(date=date(2024, 1, 1), rating=5, comments="Café tarde"),
            SleepEntry(date=date(2024, 1, 2), rating=8, comments="Sin café, genial"),
            SleepEntry(date=date(2024, 1, 3), rating=6),
        ]

        assert len(search_entries_by_comment(entries, "CAFÉ")) == 2
        assert search_entries_by_comment(entries, "genial")[0].rating == 8

    def test_blank_search_returns_everything(self):
        """Test that an empty term matches all entries."""
        entries = make_entries([5, 6])

        assert search_entries_by_comment(entries, "") == entries
        assert search_entries_by_comment(entries, "   ") == entries
