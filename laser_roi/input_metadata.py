"""Input guidance metadata and advisory range checks."""

from __future__ import annotations

from typing import Any

from laser_roi.schema import MODELED_PURCHASE_METHODS, PURCHASE_METHOD_LABELS, get_path


INPUT_GUIDANCE: dict[str, dict[str, Any]] = {
    "horizon_months": {"min": 12, "max": 120, "note": "Most device decisions are evaluated over 36 to 60 months."},
    "device.msrp": {"min": 20000.0, "max": 300000.0, "note": "List price range for aesthetic laser platforms."},
    "device.discount_pct": {"min": 0.0, "max": 30.0, "note": "Negotiated discount off MSRP, in percent."},
    "device.depreciation_life_years": {"min": 3, "max": 10, "note": "Useful life used for straight-line depreciation."},
    "device.tax_rate_pct": {"min": 15.0, "max": 40.0, "note": "Blended effective tax rate on positive EBIT."},
    "financing.apr_pct": {"min": 0.0, "max": 18.0, "note": "Annual percentage rate on equipment financing."},
    "financing.term_months": {"min": 24, "max": 120, "note": "Typical equipment loan terms run 36 to 84 months."},
    "utilization.open_days_per_month": {"min": 8.0, "max": 26.0, "note": "Days per month the device is bookable."},
    "utilization.treatments_per_day": {"min": 2.0, "max": 25.0, "note": "Steady-state scheduled treatments per open day."},
    "utilization.no_show_rate_pct": {"min": 0.0, "max": 20.0, "note": "Share of booked treatments that do not happen."},
    "utilization.avg_treatment_minutes": {"min": 10.0, "max": 120.0, "note": "Chair time per treatment, drives labor and room cost."},
    "pricing.list_price_per_treatment": {"min": 100.0, "max": 1500.0, "note": "Posted price per treatment before discounts."},
    "pricing.discount_pct": {"min": 0.0, "max": 30.0, "note": "Average discount given on treatments."},
    "pricing.upsell_attach_rate_pct": {"min": 0.0, "max": 60.0, "note": "Share of treatments with a retail or add-on sale."},
    "pricing.membership_pct": {"min": 0.0, "max": 50.0, "note": "Share of membership revenue attributed to the device."},
    "variable_costs.clinical_cost_per_hour": {"min": 40.0, "max": 250.0, "note": "Loaded hourly cost of the treating clinician."},
    "variable_costs.room_overhead_per_hour": {"min": 0.0, "max": 100.0, "note": "Hourly room overhead absorbed by treatments."},
    "variable_costs.payment_processing_pct": {"min": 0.0, "max": 4.0, "note": "Card processing rate on net price."},
}


def _fmt(v: float) -> str:
    if abs(v - round(v)) < 1e-9:
        return f"{int(round(v))}"
    return f"{v:.3f}".rstrip("0").rstrip(".")


def help_with_guidance(key: str, base_help: str) -> str:
    g = INPUT_GUIDANCE.get(key)
    if not g:
        return base_help
    return f"{base_help} Reasonable range: {_fmt(g['min'])} to {_fmt(g['max'])}. {g['note']}"


def advisory_warnings(inputs: dict) -> list[str]:
    warnings: list[str] = []
    for key, g in INPUT_GUIDANCE.items():
        try:
            v = float(get_path(inputs, key))
        except (KeyError, TypeError, ValueError):
            continue
        if v < g["min"] or v > g["max"]:
            warnings.append(
                f"{key}={v:.3f} is outside the recommended range [{_fmt(g['min'])}, {_fmt(g['max'])}]."
            )

    method = inputs.get("financing", {}).get("purchase_method")
    if method is not None and method not in MODELED_PURCHASE_METHODS:
        label = PURCHASE_METHOD_LABELS.get(method, str(method))
        warnings.append(
            f"{label} has no dedicated cash-flow treatment: no acquisition cost or payments are deducted."
        )

    financing = inputs.get("financing", {})
    if method == "loan" and financing.get("term_months", 0) < inputs.get("horizon_months", 0):
        warnings.append("Loan term is shorter than the horizon; the payment keeps being deducted after payoff.")
    return warnings
