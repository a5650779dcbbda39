"""
Tests for the batch aging engine.

Covers:
- Whole-day age calculation across time zones and times of day
- Freshness band classification and boundaries
- Suggested return percentage
- Edge cases and error handling
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from stock_engines.aging import (
    FRESHNESS_BANDS,
    AgeCategory,
    FreshnessBand,
    age_category,
    age_in_days,
    suggest_return_percentage,
)

NOW = datetime(2024, 1, 10, 12, 0, 0, tzinfo=timezone.utc)


class TestAgeInDays:
    """Tests for age calculation."""

    def test_same_day_is_zero(self):
        assert age_in_days(NOW.replace(hour=0, minute=1), NOW) == 0

    def test_time_of_day_is_truncated(self):
        """23:59 yesterday is one day old at 00:01 today."""
        created = datetime(2024, 1, 9, 23, 59, tzinfo=timezone.utc)
        now = datetime(2024, 1, 10, 0, 1, tzinfo=timezone.utc)

        assert age_in_days(created, now) == 1

    def test_nine_days(self):
        assert age_in_days(NOW - timedelta(days=9), NOW) == 9

    def test_future_timestamp_clamps_to_zero(self):
        assert age_in_days(NOW + timedelta(days=3), NOW) == 0

    def test_offsets_are_normalized_to_utc(self):
        """01:00 at +05:00 on the 10th is still the 9th in UTC."""
        plus_five = timezone(timedelta(hours=5))
        created = datetime(2024, 1, 10, 1, 0, tzinfo=plus_five)

        assert age_in_days(created, NOW) == 1

    def test_naive_datetime_rejected(self):
        with pytest.raises(ValueError, match="Naive"):
            age_in_days(datetime(2024, 1, 1), NOW)


class TestAgeCategory:
    """Tests for band classification."""

    @pytest.mark.parametrize(
        "age,expected",
        [
            (0, AgeCategory.FRESH),
            (2, AgeCategory.FRESH),
            (3, AgeCategory.MEDIUM),
            (7, AgeCategory.MEDIUM),
            (8, AgeCategory.OLD),
            (365, AgeCategory.OLD),
        ],
    )
    def test_band_boundaries(self, age, expected):
        assert age_category(age) == expected

    def test_negative_age_treated_as_fresh(self):
        assert age_category(-4) == AgeCategory.FRESH

    def test_nine_day_old_batch_is_old(self):
        created = NOW - timedelta(days=9)

        assert age_category(age_in_days(created, NOW)) == AgeCategory.OLD

    def test_custom_bands(self):
        bands = (
            FreshnessBand(AgeCategory.FRESH, 0, 0),
            FreshnessBand(AgeCategory.OLD, 1, None),
        )

        assert age_category(0, bands) == AgeCategory.FRESH
        assert age_category(1, bands) == AgeCategory.OLD

    def test_gap_in_bands_raises(self):
        bands = (FreshnessBand(AgeCategory.FRESH, 0, 2),)

        with pytest.raises(ValueError, match="does not fit"):
            age_category(5, bands)

    def test_standard_bands_are_contiguous(self):
        for previous, current in zip(FRESHNESS_BANDS, FRESHNESS_BANDS[1:]):
            assert current.min_days == previous.max_days + 1
        assert FRESHNESS_BANDS[-1].max_days is None


class TestFreshnessBand:
    def test_negative_min_rejected(self):
        with pytest.raises(ValueError):
            FreshnessBand(AgeCategory.FRESH, -1, 2)

    def test_inverted_range_rejected(self):
        with pytest.raises(ValueError):
            FreshnessBand(AgeCategory.MEDIUM, 7, 3)

    def test_unbounded_contains_large_ages(self):
        band = FreshnessBand(AgeCategory.OLD, 8, None)

        assert band.contains(10_000)
        assert not band.contains(7)


class TestSuggestReturnPercentage:
    ALLOWED = (Decimal("100"), Decimal("20"))

    def test_old_stock_suggests_lowest_allowed(self):
        assert suggest_return_percentage(AgeCategory.OLD, Decimal("100"), self.ALLOWED) == Decimal("20")

    @pytest.mark.parametrize("category", [AgeCategory.FRESH, AgeCategory.MEDIUM])
    def test_younger_stock_keeps_product_default(self, category):
        assert suggest_return_percentage(category, Decimal("100"), self.ALLOWED) == Decimal("100")

    def test_no_allowed_values_falls_back_to_default(self):
        assert suggest_return_percentage(AgeCategory.OLD, Decimal("20"), ()) == Decimal("20")


_instants = st.datetimes(
    min_value=datetime(2000, 1, 1),
    max_value=datetime(2100, 1, 1),
    timezones=st.sampled_from(
        [timezone.utc, timezone(timedelta(hours=5, minutes=30)), timezone(timedelta(hours=-8))]
    ),
)


class TestAgeProperties:
    @settings(max_examples=300, deadline=None)
    @given(
        created=_instants,
        now=_instants,
        step=st.timedeltas(min_value=timedelta(0), max_value=timedelta(days=60)),
    )
    def test_age_never_decreases_as_now_advances(self, created, now, step):
        assert age_in_days(created, now + step) >= age_in_days(created, now)

    @settings(max_examples=300, deadline=None)
    @given(created=_instants, now=_instants)
    def test_age_is_never_negative(self, created, now):
        assert age_in_days(created, now) >= 0
