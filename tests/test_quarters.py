"""Tests for the QuarterYear value type."""

import math
from datetime import date

import pytest

from dor_tax.errors import InvalidQuarterError
from dor_tax.quarters import QuarterYear


# ── Quarter from date ────────────────────────────────────────────────


@pytest.mark.parametrize("month", range(1, 13))
def test_quarter_is_ceiling_of_month_over_three(month: int):
    qy = QuarterYear.from_date(date(2014, month, 15))
    assert qy.quarter == math.ceil(month / 3)
    assert qy.year == 2014


def test_april_is_second_quarter():
    assert QuarterYear.from_date(date(2014, 4, 1)) == QuarterYear(2014, 2)


def test_december_is_fourth_quarter():
    assert QuarterYear.from_date(date(2014, 12, 31)) == QuarterYear(2014, 4)


def test_january_first_is_first_quarter():
    qy = QuarterYear.from_date(date(2014, 1, 1))
    assert qy == QuarterYear(2014, 1)
    assert qy.is_valid


def test_current_uses_supplied_today():
    assert QuarterYear.current(date(2015, 8, 3)) == QuarterYear(2015, 3)


def test_current_defaults_to_today():
    assert QuarterYear.current() == QuarterYear.from_date(date.today())


# ── Validity ─────────────────────────────────────────────────────────


@pytest.mark.parametrize("year", [2012, 2014, 2020, 2026])
@pytest.mark.parametrize("quarter", [1, 2, 3, 4])
def test_recent_quarters_are_valid(year: int, quarter: int):
    assert QuarterYear(year, quarter).is_valid is True


@pytest.mark.parametrize("quarter", [2, 3, 4])
def test_2008_from_second_quarter_is_valid(quarter: int):
    assert QuarterYear(2008, quarter).is_valid is True


def test_2008_first_quarter_is_invalid():
    assert QuarterYear(2008, 1).is_valid is False


@pytest.mark.parametrize("year", [2009, 2010, 2011])
def test_2009_through_2011_first_half_invalid(year: int):
    assert QuarterYear(year, 1).is_valid is False
    assert QuarterYear(year, 2).is_valid is False


@pytest.mark.parametrize("year", [2009, 2010, 2011])
def test_2009_through_2011_second_half_valid(year: int):
    assert QuarterYear(year, 3).is_valid is True
    assert QuarterYear(year, 4).is_valid is True


def test_validate_rejects_2011_second_quarter():
    with pytest.raises(InvalidQuarterError, match="2011Q2"):
        QuarterYear(2011, 2).validate()


def test_before_2008_is_invalid():
    assert QuarterYear(2007, 4).is_valid is False


@pytest.mark.parametrize("quarter", [0, 5, -1])
def test_out_of_range_quarter_is_invalid(quarter: int):
    assert QuarterYear(2014, quarter).is_valid is False


def test_validate_returns_self():
    qy = QuarterYear(2014, 1)
    assert qy.validate() is qy


def test_validate_raises_for_unpublished_quarter():
    with pytest.raises(InvalidQuarterError, match="2008Q1"):
        QuarterYear(2008, 1).validate()


def test_invalid_quarter_error_is_value_error():
    with pytest.raises(ValueError):
        QuarterYear(2014, 7).validate()


# ── Date ranges ──────────────────────────────────────────────────────


def test_first_quarter_range():
    assert QuarterYear(2014, 1).date_range() == (date(2014, 1, 1), date(2014, 3, 31))


def test_fourth_quarter_range():
    assert QuarterYear(2014, 4).date_range() == (date(2014, 10, 1), date(2014, 12, 31))


def test_second_and_third_quarter_ranges():
    assert QuarterYear(2014, 2).date_range() == (date(2014, 4, 1), date(2014, 6, 30))
    assert QuarterYear(2014, 3).date_range() == (date(2014, 7, 1), date(2014, 9, 30))


def test_leap_year_first_quarter_end():
    start, end = QuarterYear(2016, 1).date_range()
    assert end == date(2016, 3, 31)
    assert QuarterYear(2016, 1).contains(date(2016, 2, 29))


def test_range_raises_for_bad_quarter():
    with pytest.raises(InvalidQuarterError):
        QuarterYear(2014, 5).date_range()


def test_from_date_roundtrips_through_range():
    for quarter in range(1, 5):
        qy = QuarterYear(2019, quarter)
        start, end = qy.date_range()
        assert QuarterYear.from_date(start) == qy
        assert QuarterYear.from_date(end) == qy


# ── Value semantics ──────────────────────────────────────────────────


def test_equality_and_hash():
    assert QuarterYear(2014, 1) == QuarterYear(2014, 1)
    assert QuarterYear(2014, 1) != QuarterYear(2014, 2)
    assert len({QuarterYear(2014, 1), QuarterYear(2014, 1)}) == 1


def test_ordering():
    quarters = [QuarterYear(2015, 1), QuarterYear(2014, 4), QuarterYear(2014, 1)]
    assert sorted(quarters) == [
        QuarterYear(2014, 1),
        QuarterYear(2014, 4),
        QuarterYear(2015, 1),
    ]


def test_immutable():
    qy = QuarterYear(2014, 1)
    with pytest.raises(AttributeError):
        qy.year = 2015  # type: ignore[misc]


def test_str_and_parse():
    assert str(QuarterYear(2014, 3)) == "2014Q3"
    assert QuarterYear.parse("2014Q3") == QuarterYear(2014, 3)
    assert QuarterYear.parse(" 2014q1 ") == QuarterYear(2014, 1)


def test_parse_rejects_garbage():
    with pytest.raises(ValueError):
        QuarterYear.parse("2014-Q5")
