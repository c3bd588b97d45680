"""Monthly projection engine for a financed laser device."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Dict, Tuple

import pandas as pd

from laser_roi.formulas import (
    monthly_depreciation,
    monthly_treatments,
    net_price_per_treatment,
    payment_amount,
    variable_cost_per_treatment,
)
from laser_roi.schema import migrate_assumptions


def _fraction(pct: float) -> float:
    return float(pct) / 100


@dataclass(frozen=True)
class DeviceInputs:
    msrp: float
    discount: float
    accessories: float
    shipping_install: float
    depreciation_method: str
    depreciation_life_years: float
    salvage_value: float
    tax_rate: float
    warranty_years: float = 0.0
    extended_warranty_cost: float = 0.0

    @property
    def total_cost(self) -> float:
        return self.msrp * (1 - self.discount) + self.accessories + self.shipping_install


@dataclass(frozen=True)
class FinancingInputs:
    purchase_method: str
    down_payment: float
    down_payment_type: str
    apr: float
    term_months: int
    origination_fees: float = 0.0

    def down_payment_amount(self, total_cost: float) -> float:
        if self.purchase_method != "loan":
            return 0.0
        if self.down_payment_type == "percent":
            return total_cost * self.down_payment
        return self.down_payment


@dataclass(frozen=True)
class UtilizationInputs:
    open_days_per_month: float
    treatments_per_day: float
    ramp: Tuple[float, ...]
    no_show_rate: float
    avg_treatment_minutes: float
    seasonality: Tuple[float, ...]


@dataclass(frozen=True)
class PricingInputs:
    list_price_per_treatment: float
    discount: float
    upsell_avg_per_treatment: float
    upsell_attach_rate: float
    membership_mrr: float
    membership_share: float


@dataclass(frozen=True)
class VariableCostInputs:
    consumables: float
    disposables: float
    clinical_cost_per_hour: float
    room_overhead_per_hour: float
    payment_processing: float
    payment_processing_fixed: float


@dataclass(frozen=True)
class CalculatorInputs:
    """Normalized inputs for one run: every rate is a fraction."""

    device: DeviceInputs
    financing: FinancingInputs
    utilization: UtilizationInputs
    pricing: PricingInputs
    variable_costs: VariableCostInputs
    fixed_opex: Dict[str, float] = field(default_factory=dict)
    horizon_months: int = 60

    @classmethod
    def from_assumptions(cls, assumptions: dict) -> "CalculatorInputs":
        """Build inputs from a grouped assumptions dict holding whole-number percentages.

        This is the single place percentages are divided by 100.
        """
        d = assumptions["device"]
        f = assumptions["financing"]
        u = assumptions["utilization"]
        p = assumptions["pricing"]
        v = assumptions["variable_costs"]
        down_payment = float(f["down_payment"])
        if f["down_payment_type"] == "percent":
            down_payment = _fraction(down_payment)
        return cls(
            device=DeviceInputs(
                msrp=float(d["msrp"]),
                discount=_fraction(d["discount_pct"]),
                accessories=float(d["accessories"]),
                shipping_install=float(d["shipping_install"]),
                depreciation_method=str(d["depreciation_method"]),
                depreciation_life_years=float(d["depreciation_life_years"]),
                salvage_value=float(d["salvage_value"]),
                tax_rate=_fraction(d["tax_rate_pct"]),
                warranty_years=float(d.get("warranty_years", 0.0)),
                extended_warranty_cost=float(d.get("extended_warranty_cost", 0.0)),
            ),
            financing=FinancingInputs(
                purchase_method=str(f["purchase_method"]),
                down_payment=down_payment,
                down_payment_type=str(f["down_payment_type"]),
                apr=_fraction(f["apr_pct"]),
                term_months=int(f["term_months"]),
                origination_fees=float(f.get("origination_fees", 0.0)),
            ),
            utilization=UtilizationInputs(
                open_days_per_month=float(u["open_days_per_month"]),
                treatments_per_day=float(u["treatments_per_day"]),
                ramp=tuple(_fraction(x) for x in u["ramp_pct"]),
                no_show_rate=_fraction(u["no_show_rate_pct"]),
                avg_treatment_minutes=float(u["avg_treatment_minutes"]),
                seasonality=tuple(_fraction(x) for x in u["seasonality_pct"]),
            ),
            pricing=PricingInputs(
                list_price_per_treatment=float(p["list_price_per_treatment"]),
                discount=_fraction(p["discount_pct"]),
                upsell_avg_per_treatment=float(p["upsell_avg_per_treatment"]),
                upsell_attach_rate=_fraction(p["upsell_attach_rate_pct"]),
                membership_mrr=float(p["membership_mrr"]),
                membership_share=_fraction(p["membership_pct"]),
            ),
            variable_costs=VariableCostInputs(
                consumables=float(v["consumables"]),
                disposables=float(v["disposables"]),
                clinical_cost_per_hour=float(v["clinical_cost_per_hour"]),
                room_overhead_per_hour=float(v["room_overhead_per_hour"]),
                payment_processing=_fraction(v["payment_processing_pct"]),
                payment_processing_fixed=float(v["payment_processing_fixed"]),
            ),
            fixed_opex={str(k): float(val) for k, val in assumptions["fixed_opex"].items()},
            horizon_months=int(assumptions.get("horizon_months", 60)),
        )

    @property
    def fixed_opex_total(self) -> float:
        return float(sum(self.fixed_opex.values()))

    @property
    def down_payment_amount(self) -> float:
        return self.financing.down_payment_amount(self.device.total_cost)

    @property
    def loan_principal(self) -> float:
        if self.financing.purchase_method != "loan":
            return 0.0
        return self.device.total_cost - self.down_payment_amount


@dataclass(frozen=True)
class MonthlyResult:
    month: int
    treatments: float
    revenue: float
    variable_costs: float
    gross_profit: float
    fixed_opex: float
    ebitda: float
    depreciation: float
    interest: float
    ebit: float
    taxes: float
    net_income: float
    capital_outlay: float
    loan_payment: float
    loan_principal: float
    cash_flow: float
    cumulative_cash: float
    loan_balance: float


RESULT_COLUMNS = {
    "month": "Month",
    "treatments": "Treatments",
    "revenue": "Revenue",
    "variable_costs": "Variable Costs",
    "gross_profit": "Gross Profit",
    "fixed_opex": "Fixed OPEX",
    "ebitda": "EBITDA",
    "depreciation": "Depreciation",
    "interest": "Interest",
    "ebit": "EBIT",
    "taxes": "Taxes",
    "net_income": "Net Income",
    "capital_outlay": "Capital Outlay",
    "loan_payment": "Loan Payment",
    "loan_principal": "Loan Principal",
    "cash_flow": "Cash Flow",
    "cumulative_cash": "Cumulative Cash",
    "loan_balance": "Loan Balance",
}


def unit_economics(inputs: CalculatorInputs) -> tuple[float, float]:
    """Return (net price, variable cost) per treatment; net price feeds processing cost."""
    p = inputs.pricing
    v = inputs.variable_costs
    net_price = net_price_per_treatment(
        p.list_price_per_treatment,
        p.discount,
        p.upsell_avg_per_treatment,
        p.upsell_attach_rate,
    )
    variable_cost = variable_cost_per_treatment(
        v.consumables,
        v.disposables,
        v.clinical_cost_per_hour,
        inputs.utilization.avg_treatment_minutes,
        v.room_overhead_per_hour,
        v.payment_processing,
        v.payment_processing_fixed,
        net_price,
    )
    return net_price, variable_cost


def scheduled_payment(inputs: CalculatorInputs) -> float:
    if inputs.financing.purchase_method != "loan":
        return 0.0
    return payment_amount(inputs.financing.apr, inputs.financing.term_months, inputs.loan_principal)


def calculate_month(
    inputs: CalculatorInputs,
    month: int,
    prior_loan_balance: float = 0.0,
    prior_cumulative_cash: float = 0.0,
) -> MonthlyResult:
    """Compute one month's P&L and cash flow from the prior month's state."""
    u = inputs.utilization
    device = inputs.device
    method = inputs.financing.purchase_method

    treatments = monthly_treatments(
        u.open_days_per_month,
        u.treatments_per_day,
        u.no_show_rate,
        month,
        u.ramp,
        u.seasonality,
    )

    net_price, variable_cost = unit_economics(inputs)
    revenue = treatments * net_price + inputs.pricing.membership_mrr * inputs.pricing.membership_share
    variable_costs = treatments * variable_cost
    gross_profit = revenue - variable_costs

    fixed_opex = inputs.fixed_opex_total

    total_cost = device.total_cost
    depreciation = monthly_depreciation(
        device.depreciation_method,
        total_cost,
        device.salvage_value,
        device.depreciation_life_years,
        month,
    )

    loan_payment = 0.0
    interest = 0.0
    balance = prior_loan_balance
    new_balance = prior_loan_balance
    if method == "loan":
        if month == 1:
            balance = inputs.loan_principal
        loan_payment = scheduled_payment(inputs)
        interest = balance * (inputs.financing.apr / 12)
        new_balance = max(0.0, balance - (loan_payment - interest))
    principal_repaid = balance - new_balance

    ebitda = gross_profit - fixed_opex
    ebit = ebitda - depreciation
    taxes = max(0.0, ebit * device.tax_rate)
    net_income = ebit - taxes

    capital_outlay = 0.0
    if month == 1:
        if method == "cash":
            capital_outlay = total_cost
        elif method == "loan":
            capital_outlay = inputs.down_payment_amount
    # Lease and promo methods fall through with no acquisition or payment flows.
    cash_flow = ebitda - taxes - capital_outlay - loan_payment
    cumulative_cash = prior_cumulative_cash + cash_flow

    return MonthlyResult(
        month=month,
        treatments=treatments,
        revenue=revenue,
        variable_costs=variable_costs,
        gross_profit=gross_profit,
        fixed_opex=fixed_opex,
        ebitda=ebitda,
        depreciation=depreciation,
        interest=interest,
        ebit=ebit,
        taxes=taxes,
        net_income=net_income,
        capital_outlay=capital_outlay,
        loan_payment=loan_payment,
        loan_principal=principal_repaid,
        cash_flow=cash_flow,
        cumulative_cash=cumulative_cash,
        loan_balance=new_balance,
    )


def project(inputs: CalculatorInputs, horizon_months: int = 60) -> list[MonthlyResult]:
    """Run the monthly step for months 1..horizon_months."""
    results: list[MonthlyResult] = []
    loan_balance = 0.0
    cumulative_cash = 0.0
    for month in range(1, int(horizon_months) + 1):
        result = calculate_month(inputs, month, loan_balance, cumulative_cash)
        results.append(result)
        loan_balance = result.loan_balance
        cumulative_cash = result.cumulative_cash
    return results


def results_frame(results: list[MonthlyResult]) -> pd.DataFrame:
    """Tabular view of a projection with display column names."""
    columns = [RESULT_COLUMNS[f.name] for f in fields(MonthlyResult)]
    df = pd.DataFrame([asdict(r) for r in results], columns=[f.name for f in fields(MonthlyResult)])
    df.columns = columns
    df["Month"] = df["Month"].astype(int)
    df.insert(1, "Year", ((df["Month"] - 1) // 12 + 1).astype(int))
    df.insert(2, "Month_Label", [f"M{m}" for m in df["Month"]])
    return df


def run_model(raw_inputs: dict) -> pd.DataFrame:
    """Migrate, normalize and project a raw assumptions dict."""
    assumptions, _, _ = migrate_assumptions(raw_inputs)
    inputs = CalculatorInputs.from_assumptions(assumptions)
    return results_frame(project(inputs, inputs.horizon_months))
