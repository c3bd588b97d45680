"""Summary KPIs derived from a completed monthly projection."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Sequence

import numpy as np

from laser_roi.formulas import divide
from laser_roi.model import CalculatorInputs, MonthlyResult, project, scheduled_payment, unit_economics
from laser_roi.schema import migrate_assumptions


NPV_DISCOUNT_RATE = 0.10

IRR_START_RATE = 0.10
IRR_STEP = 0.01
IRR_MAX_ITER = 100
IRR_TOLERANCE = 0.01


@dataclass(frozen=True)
class KPIs:
    monthly_payment: float
    monthly_revenue: float
    monthly_ebitda: float
    breakeven_treatments_per_day: float
    payback_months: int
    npv: float
    irr: float
    dscr: float

    def as_dict(self) -> dict:
        return asdict(self)


def npv(cash_flows: Sequence[float], annual_rate: float) -> float:
    """Discount monthly flows at an annual rate; the first month is undiscounted."""
    flows = np.asarray(cash_flows, dtype=float)
    t = np.arange(len(flows), dtype=float)
    return float(np.sum(flows / (1 + annual_rate) ** (t / 12)))


def estimate_irr(
    cash_flows: Sequence[float],
    start_rate: float = IRR_START_RATE,
    step: float = IRR_STEP,
    max_iter: int = IRR_MAX_ITER,
    tol: float = IRR_TOLERANCE,
) -> float:
    """Coarse IRR in percent, found by stepping the rate one point at a time.

    Precision is bounded by ``step``. Flows with several sign changes or no
    real root leave the rate wherever the last iteration put it; the result is
    not flagged as unconverged.
    """
    rate = start_rate
    for _ in range(max_iter):
        value = npv(cash_flows, rate)
        if abs(value) < tol:
            break
        rate += step if value > 0 else -step
    return rate * 100


def payback_month(cumulative_cash: Sequence[float]) -> int:
    """First 1-based month with non-negative cumulative cash, else the horizon length."""
    for idx, value in enumerate(cumulative_cash):
        if value >= 0:
            return idx + 1
    return len(cumulative_cash)


def gross_margin_per_treatment(inputs: CalculatorInputs) -> float:
    net_price, variable_cost = unit_economics(inputs)
    return net_price - variable_cost


def compute_kpis(
    results: Sequence[MonthlyResult],
    inputs: CalculatorInputs,
    discount_rate: float = NPV_DISCOUNT_RATE,
) -> KPIs:
    months = len(results)
    monthly_revenue = divide(sum(r.revenue for r in results), months)
    monthly_ebitda = divide(sum(r.ebitda for r in results), months)

    monthly_payment = scheduled_payment(inputs)

    breakeven_per_month = divide(inputs.fixed_opex_total + monthly_payment, gross_margin_per_treatment(inputs))
    breakeven_per_day = divide(breakeven_per_month, inputs.utilization.open_days_per_month)

    cash_flows = [r.cash_flow for r in results]

    return KPIs(
        monthly_payment=monthly_payment,
        monthly_revenue=monthly_revenue,
        monthly_ebitda=monthly_ebitda,
        breakeven_treatments_per_day=breakeven_per_day,
        payback_months=payback_month([r.cumulative_cash for r in results]),
        npv=npv(cash_flows, discount_rate),
        irr=estimate_irr(cash_flows),
        dscr=monthly_ebitda / max(monthly_payment, 1.0),
    )


def evaluate_scenario(raw_inputs: dict) -> tuple[CalculatorInputs, list[MonthlyResult], KPIs]:
    """Migrate a raw assumptions dict and return (inputs, projection, KPIs)."""
    assumptions, _, _ = migrate_assumptions(raw_inputs)
    inputs = CalculatorInputs.from_assumptions(assumptions)
    results = project(inputs, inputs.horizon_months)
    return inputs, results, compute_kpis(results, inputs)
