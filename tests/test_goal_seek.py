from __future__ import annotations

from copy import deepcopy

import pytest

from laser_roi.goal_seek import irr_by_bisection, solve_bounded_scalar, solve_for_input
from laser_roi.metrics import evaluate_scenario, npv


def test_goal_seek_converges_on_simple_monotonic_function():
    result = solve_bounded_scalar(lambda x: 2 * x + 3, target=23, lower_bound=0, upper_bound=20, tol=1e-6)
    assert result.status == "solved"
    assert result.value is not None
    assert abs(result.value - 10.0) < 1e-4


def test_goal_seek_fails_when_target_not_bracketed():
    result = solve_bounded_scalar(lambda x: x * x + 1, target=0, lower_bound=0, upper_bound=5)
    assert result.status == "failed"
    assert "not bracketed" in result.message.lower()


def test_goal_seek_rejects_inverted_bounds():
    result = solve_bounded_scalar(lambda x: x, target=1, lower_bound=5, upper_bound=0)
    assert result.status == "failed"
    assert result.iterations == 0


def test_irr_by_bisection_refines_root():
    flows = [-100.0] + [0.0] * 11 + [113.0]
    result = irr_by_bisection(flows)
    assert result.status == "solved"
    assert result.value == pytest.approx(0.13, abs=1e-3)
    assert abs(npv(flows, result.value)) <= 0.01


def test_solve_for_input_recovers_treatments_per_day(base_inputs):
    scenario = deepcopy(base_inputs)
    scenario["utilization"]["treatments_per_day"] = 12.0
    _, _, kpis = evaluate_scenario(scenario)

    result = solve_for_input(
        base_inputs,
        "utilization.treatments_per_day",
        "npv",
        kpis.npv,
        lower_bound=5.0,
        upper_bound=25.0,
    )
    assert result.status == "solved"
    assert result.value == pytest.approx(12.0, abs=1e-3)
    assert base_inputs["utilization"]["treatments_per_day"] == 15.0


def test_solve_for_input_rejects_unknown_kpi(base_inputs):
    with pytest.raises(ValueError):
        solve_for_input(base_inputs, "pricing.list_price_per_treatment", "gross_margin", 0.0, 100.0, 900.0)
