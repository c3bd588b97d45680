from __future__ import annotations

from copy import deepcopy
import math

import pytest

from laser_roi.metrics import compute_kpis, estimate_irr, evaluate_scenario, gross_margin_per_treatment, npv, payback_month
from laser_roi.model import CalculatorInputs, project, scheduled_payment, unit_economics


def test_npv_leaves_first_month_undiscounted():
    assert npv([100.0], 0.10) == pytest.approx(100.0)
    assert npv([0.0] * 12 + [110.0], 0.10) == pytest.approx(100.0)


def test_estimate_irr_steps_to_root():
    flows = [-100.0] + [0.0] * 11 + [113.0]
    assert estimate_irr(flows) == pytest.approx(13.0)


def test_estimate_irr_stops_at_iteration_cap_without_root():
    # All-positive flows never cross zero; the search keeps stepping up.
    assert estimate_irr([1.0, 1.0, 1.0]) == pytest.approx(110.0)


def test_payback_month_first_non_negative_or_horizon():
    assert payback_month([-5.0, -1.0, 0.0, 3.0]) == 3
    assert payback_month([2.0, 3.0]) == 1
    assert payback_month([-5.0, -4.0, -3.0]) == 3


def test_kpis_for_reference_scenario(calc_inputs):
    results = project(calc_inputs, 60)
    kpis = compute_kpis(results, calc_inputs)
    payment = scheduled_payment(calc_inputs)

    assert kpis.monthly_payment == pytest.approx(payment)
    assert kpis.monthly_revenue == pytest.approx(sum(r.revenue for r in results) / 60)
    assert kpis.monthly_ebitda == pytest.approx(sum(r.ebitda for r in results) / 60)
    assert kpis.dscr == pytest.approx(kpis.monthly_ebitda / payment)
    assert kpis.npv == pytest.approx(npv([r.cash_flow for r in results], 0.10))
    assert 1 <= kpis.payback_months <= 60
    assert set(kpis.as_dict()) == {
        "monthly_payment",
        "monthly_revenue",
        "monthly_ebitda",
        "breakeven_treatments_per_day",
        "payback_months",
        "npv",
        "irr",
        "dscr",
    }


def test_breakeven_uses_same_unit_economics_as_projection(calc_inputs):
    net_price, variable_cost = unit_economics(calc_inputs)
    assert gross_margin_per_treatment(calc_inputs) == pytest.approx(net_price - variable_cost)

    m1 = project(calc_inputs, 1)[0]
    per_treatment_margin = (m1.gross_profit - 60.0) / m1.treatments
    assert per_treatment_margin == pytest.approx(gross_margin_per_treatment(calc_inputs))

    kpis = compute_kpis(project(calc_inputs, 60), calc_inputs)
    expected = (5653.0 + scheduled_payment(calc_inputs)) / (505.0 - 122.445) / 22.0
    assert kpis.breakeven_treatments_per_day == pytest.approx(expected)


def test_payback_is_first_crossing(calc_inputs):
    results = project(calc_inputs, 60)
    kpis = compute_kpis(results, calc_inputs)
    idx = kpis.payback_months - 1
    assert results[idx].cumulative_cash >= 0
    assert all(r.cumulative_cash < 0 for r in results[:idx])


def test_cash_purchase_dscr_uses_floor_of_one(base_inputs):
    inputs = deepcopy(base_inputs)
    inputs["financing"]["purchase_method"] = "cash"
    calc = CalculatorInputs.from_assumptions(inputs)
    kpis = compute_kpis(project(calc, 60), calc)
    assert kpis.monthly_payment == 0.0
    assert kpis.dscr == pytest.approx(kpis.monthly_ebitda)


def test_payback_equals_horizon_when_never_recovered(base_inputs):
    inputs = deepcopy(base_inputs)
    inputs["utilization"]["treatments_per_day"] = 0.5
    calc = CalculatorInputs.from_assumptions(inputs)
    kpis = compute_kpis(project(calc, 24), calc)
    assert kpis.payback_months == 24


def test_zero_open_days_yields_infinite_breakeven(base_inputs):
    inputs = deepcopy(base_inputs)
    inputs["utilization"]["open_days_per_month"] = 0.0
    _, results, kpis = evaluate_scenario(inputs)
    assert all(r.treatments == 0.0 for r in results)
    assert math.isinf(kpis.breakeven_treatments_per_day)


def test_evaluate_scenario_sanitizes_raw_payload():
    calc, results, kpis = evaluate_scenario({"horizon_months": 36, "financing": {"apr_pct": 250}})
    assert calc.financing.apr == pytest.approx(1.0)
    assert len(results) == 36
    assert kpis.payback_months <= 36
