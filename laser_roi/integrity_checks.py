"""P&L, cash and loan roll-forward integrity checks on a projection frame."""

from __future__ import annotations

from typing import Any

import numpy as np
import pandas as pd

from laser_roi.model import CalculatorInputs
from laser_roi.schema import migrate_assumptions


def _finding(
    check: str,
    max_abs_delta: float,
    month: str,
    lhs_name: str,
    rhs_name: str,
) -> dict[str, Any]:
    return {
        "Check": check,
        "Max Abs Delta": float(max_abs_delta),
        "Month of Max Delta": month,
        "LHS": lhs_name,
        "RHS": rhs_name,
    }


def _month_of_max_delta(df: pd.DataFrame, delta: np.ndarray) -> str:
    if len(delta) == 0:
        return ""
    idx = int(np.argmax(np.abs(delta)))
    if "Month_Label" in df.columns and idx < len(df):
        return str(df.iloc[idx]["Month_Label"])
    return str(idx)


def _check_series_identity(
    findings: list[dict[str, Any]],
    df: pd.DataFrame,
    check_name: str,
    lhs_name: str,
    rhs_name: str,
    lhs: np.ndarray,
    rhs: np.ndarray,
    tol: float,
) -> None:
    delta = np.nan_to_num(np.asarray(lhs, dtype=float) - np.asarray(rhs, dtype=float), nan=0.0)
    if len(delta) == 0:
        return
    max_abs = float(np.max(np.abs(delta)))
    if max_abs > float(tol):
        findings.append(_finding(check_name, max_abs, _month_of_max_delta(df, delta), lhs_name, rhs_name))


def _check_floor(
    findings: list[dict[str, Any]],
    df: pd.DataFrame,
    column: str,
    tol: float,
) -> None:
    values = df[column].to_numpy(dtype=float)
    shortfall = np.minimum(values, 0.0)
    if len(shortfall) and float(np.min(shortfall)) < -float(tol):
        findings.append(_finding(f"{column} floor", float(-np.min(shortfall)), _month_of_max_delta(df, shortfall), column, "0"))


def run_integrity_checks(df: pd.DataFrame, assumptions: dict, tol: float = 1e-3) -> list[dict[str, Any]]:
    """Return integrity findings (empty list means all checks passed)."""
    if not isinstance(df, pd.DataFrame) or df.empty:
        return [{"Check": "Dataframe not available", "Max Abs Delta": np.nan, "Month of Max Delta": "", "LHS": "", "RHS": ""}]

    findings: list[dict[str, Any]] = []

    # P&L identities.
    _check_series_identity(
        findings,
        df,
        "Gross profit identity",
        "Gross Profit",
        "Revenue - Variable Costs",
        df["Gross Profit"].to_numpy(),
        (df["Revenue"] - df["Variable Costs"]).to_numpy(),
        tol,
    )
    _check_series_identity(
        findings,
        df,
        "EBITDA identity",
        "EBITDA",
        "Gross Profit - Fixed OPEX",
        df["EBITDA"].to_numpy(),
        (df["Gross Profit"] - df["Fixed OPEX"]).to_numpy(),
        tol,
    )
    _check_series_identity(
        findings,
        df,
        "EBIT identity",
        "EBIT",
        "EBITDA - Depreciation",
        df["EBIT"].to_numpy(),
        (df["EBITDA"] - df["Depreciation"]).to_numpy(),
        tol,
    )
    _check_series_identity(
        findings,
        df,
        "Net income identity",
        "Net Income",
        "EBIT - Taxes",
        df["Net Income"].to_numpy(),
        (df["EBIT"] - df["Taxes"]).to_numpy(),
        tol,
    )
    _check_floor(findings, df, "Taxes", tol)

    # Cash identities.
    _check_series_identity(
        findings,
        df,
        "Cash flow identity",
        "Cash Flow",
        "EBITDA - Taxes - Capital Outlay - Loan Payment",
        df["Cash Flow"].to_numpy(),
        (df["EBITDA"] - df["Taxes"] - df["Capital Outlay"] - df["Loan Payment"]).to_numpy(),
        tol,
    )
    prev_cum = np.concatenate(([0.0], df["Cumulative Cash"].to_numpy()[:-1]))
    _check_series_identity(
        findings,
        df,
        "Cumulative cash roll-forward",
        "Cumulative Cash",
        "Prior Cumulative Cash + Cash Flow",
        df["Cumulative Cash"].to_numpy(),
        prev_cum + df["Cash Flow"].to_numpy(),
        tol,
    )

    # Loan roll-forward.
    migrated, _, _ = migrate_assumptions(assumptions)
    opening_loan_balance = CalculatorInputs.from_assumptions(migrated).loan_principal
    prev_loan_bal = np.concatenate(([opening_loan_balance], df["Loan Balance"].to_numpy()[:-1]))
    _check_series_identity(
        findings,
        df,
        "Loan balance roll-forward",
        "Loan Balance",
        "Prior Balance - Loan Principal",
        df["Loan Balance"].to_numpy(),
        prev_loan_bal - df["Loan Principal"].to_numpy(),
        tol,
    )
    outstanding = prev_loan_bal > tol
    _check_series_identity(
        findings,
        df[outstanding].reset_index(drop=True),
        "Loan payment split",
        "Loan Payment",
        "Interest + Loan Principal",
        df["Loan Payment"].to_numpy()[outstanding],
        (df["Interest"] + df["Loan Principal"]).to_numpy()[outstanding],
        tol,
    )
    _check_floor(findings, df, "Loan Balance", tol)

    return findings
