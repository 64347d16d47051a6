"""Tests for derived values and computed billing-period options."""

from __future__ import annotations

from datetime import date

import pytest

from stepform.forms.autofill import (
    calculate_previous_period,
    derived_values,
    format_period_label,
    generate_billing_period_options,
    inject_billing_period_options,
    units_for_building_type,
)


class TestUnitsForBuildingType:
    @pytest.mark.parametrize("building_type,expected", [
        ("einfamilienhaus", 1),
        ("zweifamilienhaus", 2),
        ("wohnteilGemischt", 1),
        ("sonstiges", 1),
    ])
    def test_fixed_counts(self, building_type, expected):
        assert units_for_building_type(building_type, 7) == expected

    @pytest.mark.parametrize("current", [None, "", 1, 2])
    def test_multi_family_raises_to_three(self, current):
        assert units_for_building_type("mehrfamilienhaus", current) == 3

    def test_multi_family_keeps_larger_count(self):
        assert units_for_building_type("mehrfamilienhaus", 6) is None

    def test_unknown_type(self):
        assert units_for_building_type("hochhaus", None) is None


class TestBillingPeriods:
    def test_previous_period(self):
        assert calculate_previous_period("2024-11_2025-10", 1) == "2023-11_2024-10"
        assert calculate_previous_period("2024-01_2024-12", 2) == "2022-01_2022-12"

    @pytest.mark.parametrize("period", ["", "2024-11", "abc_def", "2024-xx_2025-10"])
    def test_previous_period_malformed(self, period):
        assert calculate_previous_period(period, 1) == ""

    def test_label(self):
        assert format_period_label("2024-11_2025-10") == "November 2024 bis Oktober 2025"
        assert format_period_label("2024-03_2025-02") == "März 2024 bis Februar 2025"
        assert format_period_label("garbage") == ""

    def test_options_end_with_last_complete_month(self):
        options = generate_billing_period_options(date(2025, 11, 15))
        assert len(options) == 18
        assert options[0].value == "2024-11_2025-10"
        assert options[0].label == "November 2024 bis Oktober 2025"
        assert options[1].value == "2024-10_2025-09"

    def test_options_in_january(self):
        options = generate_billing_period_options(date(2026, 1, 3), count=2)
        assert [o.value for o in options] == ["2025-01_2025-12", "2024-12_2025-11"]

    def test_inject_options(self, energy_form):
        injected = inject_billing_period_options(energy_form, date(2025, 11, 15))
        period = injected.get_field("billingPeriod1")
        assert period.options[0].value == "2024-11_2025-10"
        assert injected.get_field("billingPeriod2").options == []
        assert energy_form.get_field("billingPeriod1").options == []


class TestDerivedValues:
    def test_billing_period(self):
        assert derived_values("billingPeriod1", "2024-11_2025-10", {}) == {
            "billingPeriod2": "2023-11_2024-10",
            "billingPeriod3": "2022-11_2023-10",
        }

    def test_cleared_billing_period(self):
        assert derived_values("billingPeriod1", "", {}) == {}

    def test_building_type(self):
        assert derived_values("buildingType", "mehrfamilienhaus", {"numberOfUnits": 2}) == {
            "numberOfUnits": 3
        }
        assert derived_values("buildingType", "mehrfamilienhaus", {"numberOfUnits": 9}) == {}

    def test_unrelated_field(self):
        assert derived_values("email", "a@b.de", {}) == {}
