"""Tests for snapshot timestamps."""

from datetime import datetime, timedelta

import pytest
import hypothesis.strategies as st
from hypothesis import given

from pitbackup.timestamp import Timestamp, TimestampError


# Four digit years only, the canonical form has a fixed width
moments = st.datetimes(
    min_value=datetime(1000, 1, 1),
    max_value=datetime(9999, 12, 31, 23, 58),
)


class TestTimestampParse:
    """Tests for Timestamp.parse and the canonical string form."""

    def test_parse_canonical(self):
        ts = Timestamp.parse("2021-03-07_09.05")
        assert ts.moment == datetime(2021, 3, 7, 9, 5)
        assert str(ts) == "2021-03-07_09.05"

    @pytest.mark.parametrize("text", [
        "",
        "2021-03-07",
        "2021-03-07 09.05",
        "2021-03-07_09:05",
        "2021-3-07_09.05",
        "2021-03-07_9.05",
        " 2021-03-07_09.05",
        "2021-03-07_09.05 ",
        "2021-13-07_09.05",
        "2021-02-30_09.05",
        "2021-03-07_24.00",
        "2021-03-07_09.60",
        "2021-03-07_09.05.00",
        "abcd-ef-gh_ij.kl",
    ])
    def test_parse_rejects_invalid(self, text):
        with pytest.raises(TimestampError):
            Timestamp.parse(text)
        assert not Timestamp.is_valid(text)

    def test_timestamp_error_is_value_error(self):
        with pytest.raises(ValueError):
            Timestamp.parse("not a timestamp")

    def test_is_valid(self):
        assert Timestamp.is_valid("1999-12-31_23.59")

    @given(moment=moments)
    def test_round_trip(self, moment):
        """Formatting then parsing gives back the same timestamp."""
        ts = Timestamp(moment)
        assert Timestamp.parse(str(ts)) == ts


class TestTimestampArithmetic:
    """Tests for minute precision, next() and ordering."""

    def test_seconds_are_dropped(self):
        ts = Timestamp(datetime(2020, 1, 1, 10, 30, 59, 999999))
        assert ts == Timestamp(datetime(2020, 1, 1, 10, 30))

    def test_now_has_minute_precision(self):
        ts = Timestamp.now()
        assert ts.moment.second == 0
        assert ts.moment.microsecond == 0

    def test_next_crosses_year_boundary(self):
        ts = Timestamp.parse("2020-12-31_23.59")
        assert str(ts.next()) == "2021-01-01_00.00"

    def test_subtract_margin(self):
        ts = Timestamp.parse("2020-01-01_00.00")
        assert str(ts - timedelta(minutes=1)) == "2019-12-31_23.59"

    @given(moment=moments)
    def test_next_is_one_minute_later(self, moment):
        ts = Timestamp(moment)
        assert ts.next() > ts
        assert ts.next().moment - ts.moment == timedelta(minutes=1)

    @given(a=moments, b=moments)
    def test_order_matches_string_order(self, a, b):
        """Chronological order equals lexical order of the canonical form."""
        ta, tb = Timestamp(a), Timestamp(b)
        assert (ta < tb) == (str(ta) < str(tb))
        assert (ta == tb) == (str(ta) == str(tb))
