"""Bounded scalar goal-seek helpers."""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, fields
from typing import Callable, Sequence

import numpy as np

from laser_roi.metrics import KPIs, evaluate_scenario, npv
from laser_roi.schema import migrate_assumptions, set_path


IRR_LOWER_BOUND = -0.99
IRR_UPPER_BOUND = 10.0


@dataclass
class GoalSeekResult:
    status: str
    value: float | None
    achieved: float | None
    iterations: int
    message: str


def solve_bounded_scalar(
    evaluator: Callable[[float], float],
    target: float,
    lower_bound: float,
    upper_bound: float,
    tol: float = 1e-3,
    max_iter: int = 60,
) -> GoalSeekResult:
    """Solve evaluator(x)=target for x within [lower_bound, upper_bound] via bisection."""
    lo = float(lower_bound)
    hi = float(upper_bound)
    if hi <= lo:
        return GoalSeekResult("failed", None, None, 0, "Upper bound must be greater than lower bound.")

    y_lo = float(evaluator(lo))
    y_hi = float(evaluator(hi))
    gap_lo = y_lo - target
    gap_hi = y_hi - target
    if abs(gap_lo) <= tol:
        return GoalSeekResult("solved", lo, y_lo, 0, "Solved at lower bound.")
    if abs(gap_hi) <= tol:
        return GoalSeekResult("solved", hi, y_hi, 0, "Solved at upper bound.")
    if np.isnan(gap_lo) or np.isnan(gap_hi) or gap_lo * gap_hi > 0:
        return GoalSeekResult(
            "failed",
            None,
            None,
            0,
            "Target is not bracketed in the selected bounds. Adjust min/max bounds.",
        )

    mid = lo
    y_mid = y_lo
    for i in range(1, max_iter + 1):
        mid = 0.5 * (lo + hi)
        y_mid = float(evaluator(mid))
        gap_mid = y_mid - target
        if abs(gap_mid) <= tol:
            return GoalSeekResult("solved", mid, y_mid, i, "Converged.")
        if (gap_mid < 0) == (gap_lo < 0):
            lo = mid
            gap_lo = gap_mid
        else:
            hi = mid

    return GoalSeekResult(
        "failed",
        mid,
        y_mid,
        max_iter,
        "Reached max iterations before tolerance was met.",
    )


def irr_by_bisection(cash_flows: Sequence[float], tol: float = 0.01, max_iter: int = 200) -> GoalSeekResult:
    """Annual IRR (as a fraction) bracketed between -99% and 1000%.

    Only meaningful for flows with a single sign change.
    """
    flows = list(cash_flows)
    return solve_bounded_scalar(
        lambda rate: npv(flows, rate),
        target=0.0,
        lower_bound=IRR_LOWER_BOUND,
        upper_bound=IRR_UPPER_BOUND,
        tol=tol,
        max_iter=max_iter,
    )


KPI_TARGETS = [f.name for f in fields(KPIs)]


def solve_for_input(
    assumptions: dict,
    input_path: str,
    kpi: str,
    target: float,
    lower_bound: float,
    upper_bound: float,
    tol: float = 1.0,
    max_iter: int = 60,
) -> GoalSeekResult:
    """Find the value of one numeric input (dotted path) that drives ``kpi`` to ``target``."""
    if kpi not in KPI_TARGETS:
        raise ValueError(f"Unknown KPI target: {kpi}")
    base, _, _ = migrate_assumptions(assumptions)

    def _evaluate(x: float) -> float:
        scenario = deepcopy(base)
        set_path(scenario, input_path, x)
        _, _, kpis = evaluate_scenario(scenario)
        return float(getattr(kpis, kpi))

    return solve_bounded_scalar(_evaluate, target, lower_bound, upper_bound, tol=tol, max_iter=max_iter)
