"""Assumption schema constants and migration onto the reference scenario."""

from __future__ import annotations

from copy import deepcopy
from typing import Any

from laser_roi.defaults import DEFAULTS


INPUT_GROUPS = ("device", "financing", "utilization", "pricing", "variable_costs", "fixed_opex")

PURCHASE_METHODS = ("cash", "loan", "lease_fmv", "lease_capital", "promo_0")
# Only these two methods carry acquisition or debt-service cash flows.
MODELED_PURCHASE_METHODS = {"cash", "loan"}
DOWN_PAYMENT_TYPES = ("dollar", "percent")
DEPRECIATION_METHODS = ("straight_line", "accelerated")

PURCHASE_METHOD_LABELS = {
    "cash": "Cash Purchase",
    "loan": "Term Loan",
    "lease_fmv": "Lease (FMV)",
    "lease_capital": "Lease (Capital)",
    "promo_0": "0% Promo Financing",
}

ENUM_FIELDS = {
    ("financing", "purchase_method"): PURCHASE_METHODS,
    ("financing", "down_payment_type"): DOWN_PAYMENT_TYPES,
    ("device", "depreciation_method"): DEPRECIATION_METHODS,
}

# Hyphenated spellings used by older form payloads.
_ENUM_ALIASES = {
    "straight-line": "straight_line",
    "macrs": "accelerated",
    "lease-fmv": "lease_fmv",
    "lease-capital": "lease_capital",
    "promo-0": "promo_0",
}

PCT_FIELDS = [
    ("device", "discount_pct"),
    ("device", "tax_rate_pct"),
    ("financing", "apr_pct"),
    ("utilization", "no_show_rate_pct"),
    ("pricing", "discount_pct"),
    ("pricing", "upsell_attach_rate_pct"),
    ("pricing", "membership_pct"),
    ("variable_costs", "payment_processing_pct"),
]

SERIES_FIELDS = [
    ("utilization", "ramp_pct"),
    ("utilization", "seasonality_pct"),
]

AT_LEAST_ONE_FIELDS = [
    ("financing", "term_months"),
    ("device", "depreciation_life_years"),
]

MAX_HORIZON_MONTHS = 120
SEASONALITY_POINTS = 12


def get_path(assumptions: dict, path: str) -> Any:
    """Return the value at a dotted path such as ``utilization.treatments_per_day``."""
    node: Any = assumptions
    for part in path.split("."):
        node = node[part]
    return node


def set_path(assumptions: dict, path: str, value: Any) -> None:
    parts = path.split(".")
    node = assumptions
    for part in parts[:-1]:
        node = node[part]
    node[parts[-1]] = value


def _series(raw: Any, default: list[float], key_name: str, warnings: list[str]) -> list[float]:
    if raw is None or isinstance(raw, (str, bytes, dict)) or not hasattr(raw, "__iter__"):
        warnings.append(f"{key_name} ignored because it is not a list; reset to default.")
        return list(default)
    out: list[float] = []
    for idx, item in enumerate(raw):
        try:
            out.append(max(0.0, float(item)))
        except (TypeError, ValueError):
            warnings.append(f"{key_name}[{idx}] invalid and dropped.")
    return out


def migrate_assumptions(raw_inputs: dict) -> tuple[dict, list[str], list[str]]:
    """Merge a raw grouped payload onto DEFAULTS and sanitize it."""
    warnings: list[str] = []
    unknown_keys: list[str] = []
    inputs = deepcopy(DEFAULTS)
    payload = raw_inputs if isinstance(raw_inputs, dict) else {}

    for key, value in payload.items():
        if key == "horizon_months":
            inputs[key] = value
            continue
        if key not in INPUT_GROUPS:
            unknown_keys.append(key)
            continue
        if not isinstance(value, dict):
            warnings.append(f"{key} ignored because it is not an object.")
            continue
        for field, field_value in value.items():
            # Fixed opex is an open mapping of named monthly buckets.
            if key == "fixed_opex" or field in inputs[key]:
                inputs[key][field] = field_value
            else:
                unknown_keys.append(f"{key}.{field}")

    # Enumerations.
    for (group, field), allowed in ENUM_FIELDS.items():
        val = str(inputs[group].get(field, DEFAULTS[group][field])).strip()
        val = _ENUM_ALIASES.get(val, val)
        if val not in allowed:
            warnings.append(f"{group}.{field} invalid; reset to {DEFAULTS[group][field]}.")
            val = DEFAULTS[group][field]
        inputs[group][field] = val

    try:
        inputs["horizon_months"] = int(min(MAX_HORIZON_MONTHS, max(1, int(inputs["horizon_months"]))))
    except (TypeError, ValueError, OverflowError):
        inputs["horizon_months"] = int(DEFAULTS["horizon_months"])
        warnings.append("horizon_months invalid and reset to default.")

    for group, field in PCT_FIELDS:
        try:
            inputs[group][field] = float(min(100.0, max(0.0, float(inputs[group][field]))))
        except (TypeError, ValueError):
            inputs[group][field] = float(DEFAULTS[group][field])
            warnings.append(f"{group}.{field} invalid and reset to default.")

    for group, field in SERIES_FIELDS:
        inputs[group][field] = _series(inputs[group][field], DEFAULTS[group][field], f"{group}.{field}", warnings)

    seasonality = inputs["utilization"]["seasonality_pct"]
    if len(seasonality) < SEASONALITY_POINTS:
        warnings.append(f"utilization.seasonality_pct has {len(seasonality)} points; padded to 12 with 100.")
        seasonality.extend([100.0] * (SEASONALITY_POINTS - len(seasonality)))
    elif len(seasonality) > SEASONALITY_POINTS:
        warnings.append(f"utilization.seasonality_pct has {len(seasonality)} points; truncated to 12.")
        del seasonality[SEASONALITY_POINTS:]

    skip = set(PCT_FIELDS) | set(SERIES_FIELDS) | set(ENUM_FIELDS)
    for group in INPUT_GROUPS:
        if group == "fixed_opex":
            continue
        for field, default_val in DEFAULTS[group].items():
            if (group, field) in skip or isinstance(default_val, (bool, str)):
                continue
            try:
                if isinstance(default_val, int):
                    inputs[group][field] = max(0, int(inputs[group][field]))
                else:
                    inputs[group][field] = max(0.0, float(inputs[group][field]))
            except (TypeError, ValueError, OverflowError):
                inputs[group][field] = deepcopy(default_val)
                warnings.append(f"{group}.{field} invalid and reset to default.")

    for group, field in AT_LEAST_ONE_FIELDS:
        if inputs[group][field] < 1:
            warnings.append(f"{group}.{field} must be at least 1; reset to 1.")
            inputs[group][field] = 1

    if inputs["financing"]["down_payment_type"] == "percent" and inputs["financing"]["down_payment"] > 100:
        warnings.append("financing.down_payment above 100%; clamped to 100.")
        inputs["financing"]["down_payment"] = 100.0

    fixed_opex: dict[str, float] = {}
    for name, amount in inputs["fixed_opex"].items():
        try:
            fixed_opex[str(name)] = max(0.0, float(amount))
        except (TypeError, ValueError):
            warnings.append(f"fixed_opex.{name} invalid and dropped.")
    inputs["fixed_opex"] = fixed_opex

    return inputs, warnings, sorted(unknown_keys)
