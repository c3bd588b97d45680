from __future__ import annotations

from copy import deepcopy

from laser_roi.input_metadata import INPUT_GUIDANCE, advisory_warnings, help_with_guidance


def test_help_with_guidance_appends_range_and_note():
    help_text = help_with_guidance("financing.apr_pct", "Annual interest rate on the loan.")
    assert help_text.startswith("Annual interest rate on the loan.")
    assert "Reasonable range: 0 to 18." in help_text
    assert INPUT_GUIDANCE["financing.apr_pct"]["note"] in help_text


def test_help_without_guidance_returns_base_text():
    assert help_with_guidance("device.salvage_value", "Residual value.") == "Residual value."


def test_reference_scenario_has_no_advisories(base_inputs):
    assert advisory_warnings(base_inputs) == []


def test_out_of_range_inputs_are_flagged(base_inputs):
    inputs = deepcopy(base_inputs)
    inputs["utilization"]["treatments_per_day"] = 40.0
    warnings = advisory_warnings(inputs)
    assert any(w.startswith("utilization.treatments_per_day=40.000 is outside") for w in warnings)


def test_unmodeled_purchase_methods_are_flagged(base_inputs):
    inputs = deepcopy(base_inputs)
    inputs["financing"]["purchase_method"] = "lease_fmv"
    warnings = advisory_warnings(inputs)
    assert any("Lease (FMV) has no dedicated cash-flow treatment" in w for w in warnings)


def test_short_loan_term_is_flagged(base_inputs):
    inputs = deepcopy(base_inputs)
    inputs["financing"]["term_months"] = 36
    warnings = advisory_warnings(inputs)
    assert any("Loan term is shorter than the horizon" in w for w in warnings)

    inputs["financing"]["purchase_method"] = "cash"
    assert not any("Loan term" in w for w in advisory_warnings(inputs))
