"""Scalar formula primitives used by the monthly projection.

All rates here are fractions (0.05 for 5%); whole-number percentages are
converted once in ``CalculatorInputs.from_assumptions``.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np


# Simplified 5-year MACRS schedule; depreciation stops once the table runs out.
ACCELERATED_RATES = (0.20, 0.32, 0.192, 0.1152, 0.1152, 0.0576)


def divide(numerator: float, denominator: float) -> float:
    """IEEE division: a zero denominator gives +/-inf or nan instead of raising."""
    with np.errstate(divide="ignore", invalid="ignore"):
        return float(np.divide(np.float64(numerator), np.float64(denominator)))


def payment_amount(annual_rate: float, term_months: int, principal: float) -> float:
    """Level monthly payment that amortizes ``principal`` over ``term_months``."""
    if term_months <= 0:
        return 0.0
    r = annual_rate / 12
    if r == 0:
        return principal / term_months
    return r * principal / (1 - (1 + r) ** (-term_months))


def ramp_factor(month: int, ramp: Sequence[float]) -> float:
    if month <= len(ramp):
        return float(ramp[month - 1])
    return 1.0


def seasonality_factor(month: int, seasonality: Sequence[float]) -> float:
    return float(seasonality[(month - 1) % 12])


def monthly_treatments(
    open_days: float,
    treatments_per_day: float,
    no_show_rate: float,
    month: int,
    ramp: Sequence[float],
    seasonality: Sequence[float],
) -> float:
    """Completed treatments for a 1-based projection month."""
    return (
        open_days
        * treatments_per_day
        * (1 - no_show_rate)
        * ramp_factor(month, ramp)
        * seasonality_factor(month, seasonality)
    )


def net_price_per_treatment(
    list_price: float,
    discount: float,
    upsell_avg: float,
    upsell_attach_rate: float,
) -> float:
    return list_price * (1 - discount) + upsell_avg * upsell_attach_rate


def variable_cost_per_treatment(
    consumables: float,
    disposables: float,
    clinical_cost_per_hour: float,
    avg_treatment_minutes: float,
    room_overhead_per_hour: float,
    processing_pct: float,
    processing_fixed: float,
    net_price: float,
) -> float:
    """Direct cost of one treatment; card processing is charged on ``net_price``."""
    clinical = clinical_cost_per_hour * avg_treatment_minutes / 60
    room = room_overhead_per_hour * avg_treatment_minutes / 60
    processing = net_price * processing_pct + processing_fixed
    return consumables + disposables + clinical + room + processing


def monthly_depreciation(
    method: str,
    total_cost: float,
    salvage_value: float,
    life_years: float,
    month: int,
) -> float:
    if method == "straight_line":
        return divide(total_cost - salvage_value, life_years * 12)

    year = (month - 1) // 12
    if year >= len(ACCELERATED_RATES):
        return 0.0
    return total_cost * ACCELERATED_RATES[year] / 12
