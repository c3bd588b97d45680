from __future__ import annotations

from copy import deepcopy

import pandas as pd
import pytest

from laser_roi.integrity_checks import run_integrity_checks
from laser_roi.model import run_model


def test_integrity_checks_pass_for_base_scenario(base_inputs):
    inputs = deepcopy(base_inputs)
    findings = run_integrity_checks(run_model(inputs), inputs, tol=1e-5)
    assert findings == []


def test_integrity_checks_pass_for_representative_scenarios(base_inputs):
    scenarios = [
        {"financing": {"purchase_method": "cash"}},
        {"financing": {"purchase_method": "lease_fmv"}},
        {"financing": {"term_months": 12}, "horizon_months": 36},
        {"financing": {"apr_pct": 0.0, "down_payment_type": "dollar", "down_payment": 5000.0}},
        {"device": {"depreciation_method": "accelerated"}, "horizon_months": 96},
        {"utilization": {"treatments_per_day": 0.5}},
    ]
    for updates in scenarios:
        inputs = deepcopy(base_inputs)
        for key, value in updates.items():
            if isinstance(value, dict):
                inputs[key].update(value)
            else:
                inputs[key] = value
        findings = run_integrity_checks(run_model(inputs), inputs, tol=1e-5)
        assert findings == [], f"Unexpected integrity findings for updates={updates}: {findings}"


def test_integrity_checks_detects_identity_break(base_inputs):
    inputs = deepcopy(base_inputs)
    df = run_model(inputs)
    broken = df.copy()
    broken.loc[broken.index[3], "Gross Profit"] += 10.0
    findings = run_integrity_checks(broken, inputs, tol=1e-6)
    by_name = {f["Check"]: f for f in findings}
    assert "Gross profit identity" in by_name
    assert by_name["Gross profit identity"]["Month of Max Delta"] == "M4"
    assert by_name["Gross profit identity"]["Max Abs Delta"] == pytest.approx(10.0)


def test_integrity_checks_detects_negative_balance_and_broken_rollforward(base_inputs):
    inputs = deepcopy(base_inputs)
    broken = run_model(inputs).copy()
    broken.loc[broken.index[-1], "Loan Balance"] = -50.0
    broken.loc[broken.index[0], "Cumulative Cash"] += 1.0
    check_names = {f["Check"] for f in run_integrity_checks(broken, inputs, tol=1e-6)}
    assert "Loan Balance floor" in check_names
    assert "Loan balance roll-forward" in check_names
    assert "Cumulative cash roll-forward" in check_names


def test_integrity_checks_report_missing_frame(base_inputs):
    findings = run_integrity_checks(pd.DataFrame(), base_inputs)
    assert findings[0]["Check"] == "Dataframe not available"
