from __future__ import annotations

import math

import pytest

from laser_roi.formulas import (
    ACCELERATED_RATES,
    divide,
    monthly_depreciation,
    monthly_treatments,
    net_price_per_treatment,
    payment_amount,
    ramp_factor,
    seasonality_factor,
    variable_cost_per_treatment,
)


def test_payment_amount_matches_annuity_formula():
    # 12% APR over a year: r = 1% per month.
    assert payment_amount(0.12, 12, 1000.0) == pytest.approx(88.8488, abs=1e-4)


def test_payment_amount_zero_rate_and_zero_term():
    assert payment_amount(0.0, 10, 1000.0) == pytest.approx(100.0)
    assert payment_amount(0.055, 0, 1000.0) == 0.0


def test_ramp_factor_defaults_to_full_utilization_after_curve():
    ramp = (0.4, 0.6)
    assert ramp_factor(1, ramp) == 0.4
    assert ramp_factor(2, ramp) == 0.6
    assert ramp_factor(3, ramp) == 1.0
    assert ramp_factor(1, ()) == 1.0


def test_seasonality_wraps_every_twelve_months():
    season = tuple(0.9 + 0.01 * i for i in range(12))
    assert seasonality_factor(1, season) == season[0]
    assert seasonality_factor(13, season) == season[0]
    assert seasonality_factor(24, season) == season[11]


def test_monthly_treatments_applies_no_show_ramp_and_season():
    ramp = (0.4, 0.6, 0.8, 0.9, 0.95, 1.0)
    season = (1.0,) * 12
    assert monthly_treatments(22, 15, 0.05, 1, ramp, season) == pytest.approx(125.4)
    assert monthly_treatments(22, 15, 0.05, 7, ramp, season) == pytest.approx(313.5)


def test_unit_economics_reference_values():
    net = net_price_per_treatment(500.0, 0.05, 100.0, 0.30)
    assert net == pytest.approx(505.0)
    cost = variable_cost_per_treatment(15.0, 5.0, 150.0, 30.0, 25.0, 0.029, 0.30, net)
    # 15 + 5 + 75 clinical + 12.5 room + 14.645 processing + 0.30 fixed fee
    assert cost == pytest.approx(122.445)


def test_straight_line_depreciation_is_constant():
    first = monthly_depreciation("straight_line", 142000.0, 15000.0, 5, 1)
    later = monthly_depreciation("straight_line", 142000.0, 15000.0, 5, 90)
    assert first == pytest.approx(127000.0 / 60)
    assert later == first


def test_accelerated_depreciation_uses_year_bucket_and_stops_after_table():
    assert monthly_depreciation("accelerated", 120000.0, 0.0, 5, 1) == pytest.approx(120000.0 * 0.20 / 12)
    assert monthly_depreciation("accelerated", 120000.0, 0.0, 5, 13) == pytest.approx(120000.0 * 0.32 / 12)
    last_month_in_table = 12 * len(ACCELERATED_RATES)
    assert monthly_depreciation("accelerated", 120000.0, 0.0, 5, last_month_in_table) > 0
    assert monthly_depreciation("accelerated", 120000.0, 0.0, 5, last_month_in_table + 1) == 0.0


def test_divide_propagates_ieee_results():
    assert divide(6.0, 3.0) == 2.0
    assert math.isinf(divide(1.0, 0.0))
    assert math.isnan(divide(0.0, 0.0))
