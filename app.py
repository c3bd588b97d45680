import json
from copy import deepcopy
from datetime import date

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

from laser_roi.defaults import DEFAULTS
from laser_roi.goal_seek import KPI_TARGETS, irr_by_bisection, solve_for_input
from laser_roi.input_metadata import INPUT_GUIDANCE, advisory_warnings, help_with_guidance
from laser_roi.integrity_checks import run_integrity_checks
from laser_roi.metrics import evaluate_scenario
from laser_roi.model import CalculatorInputs, results_frame
from laser_roi.report_export import (
    REPORT_TEMPLATES,
    SECTION_TITLES,
    build_pdf_report_bytes,
    report_file_name,
    resolve_template_sections,
)
from laser_roi.runtime_logging import (
    append_runtime_event,
    install_global_exception_logging,
    log_goal_seek_failure,
    log_input_warnings,
    log_integrity_findings,
    read_runtime_events,
    runtime_log_path,
)
from laser_roi.schema import (
    DEPRECIATION_METHODS,
    DOWN_PAYMENT_TYPES,
    PCT_FIELDS,
    PURCHASE_METHOD_LABELS,
    PURCHASE_METHODS,
    get_path,
    migrate_assumptions,
)


install_global_exception_logging()


CHART_MONTHS = 24
TABLE_MONTHS = 12

KPI_LABELS = {
    "monthly_payment": "Monthly Payment",
    "monthly_revenue": "Avg Monthly Revenue",
    "monthly_ebitda": "Avg Monthly EBITDA",
    "breakeven_treatments_per_day": "Breakeven Treatments/Day",
    "payback_months": "Payback (Months)",
    "npv": "NPV @ 10%",
    "irr": "IRR (%)",
    "dscr": "DSCR",
}

SELECT_OPTIONS = {
    "financing.purchase_method": (PURCHASE_METHODS, lambda v: PURCHASE_METHOD_LABELS.get(v, v)),
    "financing.down_payment_type": (DOWN_PAYMENT_TYPES, lambda v: "Percent of cost" if v == "percent" else "Dollar amount"),
    "device.depreciation_method": (DEPRECIATION_METHODS, lambda v: "Straight-line" if v == "straight_line" else "Accelerated (MACRS)"),
}

SERIES_KEYS = {"utilization.ramp_pct", "utilization.seasonality_pct"}

INPUT_SECTIONS = {
    "Model Controls": [
        ("horizon_months", "Horizon (Months)", "Number of months projected."),
    ],
    "Device": [
        ("device.msrp", "Device MSRP ($)", "Manufacturer list price of the platform."),
        ("device.discount_pct", "Device Discount (%)", "Negotiated discount off MSRP."),
        ("device.accessories", "Accessories ($)", "Handpieces, tips and other accessories bought with the device."),
        ("device.shipping_install", "Shipping & Install ($)", "Freight, installation and training charges."),
        ("device.warranty_years", "Warranty (Years)", "Manufacturer warranty included with the device."),
        ("device.extended_warranty_cost", "Extended Warranty ($)", "Cost of optional extended coverage."),
        ("device.depreciation_method", "Depreciation Method", "Straight-line or accelerated book depreciation."),
        ("device.depreciation_life_years", "Depreciation Life (Years)", "Useful life for straight-line depreciation."),
        ("device.salvage_value", "Salvage Value ($)", "Residual value at the end of the useful life."),
        ("device.tax_rate_pct", "Tax Rate (%)", "Effective tax rate applied to positive EBIT."),
    ],
    "Financing": [
        ("financing.purchase_method", "Purchase Method", "How the device is acquired."),
        ("financing.down_payment_type", "Down Payment Type", "Whether the down payment is a percent of cost or a dollar amount."),
        ("financing.down_payment", "Down Payment", "Down payment paid in month 1 on a loan."),
        ("financing.apr_pct", "APR (%)", "Annual interest rate on the loan."),
        ("financing.term_months", "Term (Months)", "Number of monthly loan payments."),
        ("financing.origination_fees", "Origination Fees ($)", "Lender fees shown on the financing summary."),
    ],
    "Utilization": [
        ("utilization.open_days_per_month", "Open Days / Month", "Days per month the device is bookable."),
        ("utilization.treatments_per_day", "Treatments / Day", "Steady-state scheduled treatments per open day."),
        ("utilization.no_show_rate_pct", "No-Show Rate (%)", "Share of booked treatments that do not happen."),
        ("utilization.avg_treatment_minutes", "Avg Treatment (Minutes)", "Chair time per treatment."),
        ("utilization.ramp_pct", "Ramp Curve (%)", "Comma-separated utilization by month during ramp-up; 100 after the list ends."),
        ("utilization.seasonality_pct", "Seasonality Index (%)", "Twelve comma-separated monthly indices; 100 is a neutral month."),
    ],
    "Pricing": [
        ("pricing.list_price_per_treatment", "List Price / Treatment ($)", "Posted price per treatment."),
        ("pricing.discount_pct", "Treatment Discount (%)", "Average discount given on treatments."),
        ("pricing.upsell_avg_per_treatment", "Avg Upsell ($)", "Average add-on sale when an upsell happens."),
        ("pricing.upsell_attach_rate_pct", "Upsell Attach Rate (%)", "Share of treatments with an add-on sale."),
        ("pricing.membership_mrr", "Membership MRR ($)", "Monthly recurring membership revenue."),
        ("pricing.membership_pct", "Membership Share (%)", "Share of membership revenue attributed to the device."),
    ],
    "Variable Costs": [
        ("variable_costs.consumables", "Consumables / Treatment ($)", "Gels, tips and other consumables."),
        ("variable_costs.disposables", "Disposables / Treatment ($)", "Single-use supplies."),
        ("variable_costs.clinical_cost_per_hour", "Clinical Cost / Hour ($)", "Loaded hourly cost of the treating clinician."),
        ("variable_costs.room_overhead_per_hour", "Room Overhead / Hour ($)", "Hourly room cost absorbed by treatments."),
        ("variable_costs.payment_processing_pct", "Processing Rate (%)", "Card processing percentage on net price."),
        ("variable_costs.payment_processing_fixed", "Processing Fixed Fee ($)", "Per-transaction processing fee."),
    ],
}

INT_LIMITS = {
    "horizon_months": (1, 120),
    "financing.term_months": (1, None),
    "device.depreciation_life_years": (1, None),
}

PCT_KEYS = {f"{group}.{field}" for group, field in PCT_FIELDS}

GOAL_SEEK_INPUTS = [
    key
    for key in INPUT_GUIDANCE
    if key != "horizon_months" and isinstance(get_path(DEFAULTS, key), (int, float))
]

UI_DEFAULTS = {
    "practice_name": "Your Practice",
    "device_manufacturer": "",
    "device_model_name": "",
    "device_url": "",
    "report_template": "executive_summary",
    "report_custom_sections": ["header", "executive_summary", "key_metrics", "disclaimer"],
    "report_pdf_bytes": None,
    "report_file_name": "",
    "goal_seek_result": None,
    "goal_input_path": "utilization.treatments_per_day",
    "goal_kpi": "npv",
    "goal_target_value": 0.0,
    "runtime_log_limit": 100,
}


def _format_series(values: list[float]) -> str:
    return ", ".join(f"{v:g}" for v in values)


def _parse_series(text: str) -> list:
    out: list = []
    for token in str(text).split(","):
        token = token.strip()
        if not token:
            continue
        try:
            out.append(float(token))
        except ValueError:
            out.append(token)
    return out


def _fixed_opex_df(fixed_opex: dict) -> pd.DataFrame:
    return pd.DataFrame(
        [{"Bucket": name, "Monthly Amount": float(amount)} for name, amount in fixed_opex.items()],
        columns=["Bucket", "Monthly Amount"],
    )


def _fixed_opex_from_editor(df: pd.DataFrame) -> dict:
    out: dict = {}
    for _, row in df.iterrows():
        name = row.get("Bucket")
        if pd.isna(name) or not str(name).strip():
            continue
        out[str(name).strip()] = row.get("Monthly Amount")
    return out


def _init_state() -> None:
    for section in INPUT_SECTIONS.values():
        for key, _, _ in section:
            if key in st.session_state:
                continue
            value = get_path(DEFAULTS, key)
            st.session_state[key] = _format_series(value) if key in SERIES_KEYS else deepcopy(value)
    if "fixed_opex_base" not in st.session_state:
        st.session_state["fixed_opex_base"] = _fixed_opex_df(DEFAULTS["fixed_opex"])
        st.session_state["fixed_opex_master"] = st.session_state["fixed_opex_base"]
    for key, value in UI_DEFAULTS.items():
        st.session_state.setdefault(key, deepcopy(value))


def _assumptions_from_state() -> dict:
    raw: dict = {"horizon_months": st.session_state["horizon_months"]}
    for section in INPUT_SECTIONS.values():
        for key, _, _ in section:
            if "." not in key:
                continue
            group, field = key.split(".", 1)
            value = st.session_state[key]
            raw.setdefault(group, {})[field] = _parse_series(value) if key in SERIES_KEYS else value
    raw["fixed_opex"] = _fixed_opex_from_editor(st.session_state["fixed_opex_master"])
    return raw


def _selected_device_from_state() -> dict | None:
    device = {
        "manufacturer": st.session_state["device_manufacturer"].strip(),
        "model_name": st.session_state["device_model_name"].strip(),
        "url": st.session_state["device_url"].strip(),
    }
    if not device["manufacturer"] and not device["model_name"]:
        return None
    return device


def _serialize_assumptions(assumptions: dict) -> str:
    return json.dumps(assumptions, sort_keys=True, separators=(",", ":"))


@st.cache_data(show_spinner=False)
def _run_scenario_cached(assumptions_json: str) -> tuple[pd.DataFrame, dict]:
    assumptions = json.loads(assumptions_json)
    _, results, kpis = evaluate_scenario(assumptions)
    return results_frame(results), kpis.as_dict()


def _fmt_money(value: float) -> str:
    if value < 0:
        return f"-${-value:,.0f}"
    return f"${value:,.0f}"


def _render_input(key: str, label: str, base_help: str) -> None:
    help_text = help_with_guidance(key, base_help)
    if key in SELECT_OPTIONS:
        options, fmt = SELECT_OPTIONS[key]
        st.selectbox(label, options=list(options), format_func=fmt, key=key, help=help_text)
        return
    if key in SERIES_KEYS:
        st.text_input(label, key=key, help=help_text)
        return
    if isinstance(get_path(DEFAULTS, key), int):
        lo, hi = INT_LIMITS.get(key, (0, None))
        st.number_input(label, min_value=lo, max_value=hi, step=1, key=key, help=help_text)
        return
    max_value = 100.0 if key in PCT_KEYS else None
    step = 0.1 if key in PCT_KEYS else 1.0
    st.number_input(label, min_value=0.0, max_value=max_value, step=step, key=key, help=help_text)


st.set_page_config(page_title="Laser ROI Calculator", layout="wide")
st.title("Laser ROI Calculator")
st.caption("Monthly P&L, cash flow and return metrics for an aesthetic laser purchase.")

_init_state()

with st.sidebar:
    st.header("Inputs")
    for section_name, entries in INPUT_SECTIONS.items():
        with st.expander(section_name, expanded=section_name in ("Model Controls", "Financing")):
            for key, label, base_help in entries:
                _render_input(key, label, base_help)
    with st.expander("Fixed Monthly OPEX", expanded=False):
        edited = st.data_editor(
            st.session_state["fixed_opex_base"],
            num_rows="dynamic",
            hide_index=True,
            key="fixed_opex_editor",
            width="stretch",
        )
        st.session_state["fixed_opex_master"] = edited
    st.text_input("Practice Name", key="practice_name", help="Shown in the report header.")
    with st.expander("Selected Device", expanded=False):
        st.text_input("Manufacturer", key="device_manufacturer", help="Device maker listed in the report.")
        st.text_input("Model", key="device_model_name", help="Device model listed in the report.")
        st.text_input("Product Link", key="device_url", help="Optional product page listed in the report.")

raw_assumptions = _assumptions_from_state()
assumptions, schema_warnings, unknown_keys = migrate_assumptions(deepcopy(raw_assumptions))
warning_signature = json.dumps([schema_warnings, unknown_keys])
if st.session_state.get("_input_warning_log_signature") != warning_signature:
    log_input_warnings("sidebar", schema_warnings, unknown_keys)
    st.session_state["_input_warning_log_signature"] = warning_signature

input_warnings = list(schema_warnings)
if unknown_keys:
    input_warnings.append(f"Ignored unknown keys: {', '.join(unknown_keys)}")
input_warnings.extend(advisory_warnings(assumptions))
input_warnings = list(dict.fromkeys([w for w in input_warnings if str(w).strip()]))

assumptions_json = _serialize_assumptions(assumptions)
results_df, kpis = _run_scenario_cached(assumptions_json)
calc_inputs = CalculatorInputs.from_assumptions(assumptions)
refined_irr = irr_by_bisection(results_df["Cash Flow"].tolist())

if input_warnings:
    with st.expander(f"[!] Input Warnings ({len(input_warnings)})", expanded=False):
        st.caption("Calculations continue using sanitized values where necessary.")
        for warning in input_warnings:
            st.write(f"- {warning}")

integrity_findings = run_integrity_checks(results_df, assumptions, tol=1e-3)
integrity_signature = json.dumps(integrity_findings, sort_keys=True, default=str)
if integrity_findings and st.session_state.get("_integrity_log_signature") != integrity_signature:
    log_integrity_findings(integrity_findings)
    st.session_state["_integrity_log_signature"] = integrity_signature
elif not integrity_findings:
    st.session_state["_integrity_log_signature"] = ""

summary_tab, charts_tab, pnl_tab, report_tab, diag_tab = st.tabs(
    ["Summary", "Cash Flow Charts", "Monthly P&L", "Report", "Goal Seek & Diagnostics"]
)

with summary_tab:
    st.subheader("Headline KPIs")
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Monthly Payment", _fmt_money(kpis["monthly_payment"]))
    c2.metric("Avg Monthly Revenue", _fmt_money(kpis["monthly_revenue"]))
    c3.metric("Avg Monthly EBITDA", _fmt_money(kpis["monthly_ebitda"]))
    c4.metric("Breakeven Treatments/Day", f"{kpis['breakeven_treatments_per_day']:.1f}")

    d1, d2, d3, d4 = st.columns(4)
    d1.metric("Payback", f"{kpis['payback_months']} months")
    d2.metric("NPV @ 10%", _fmt_money(kpis["npv"]))
    irr_delta = None
    if refined_irr.status == "solved" and refined_irr.value is not None:
        irr_delta = f"Refined {100 * refined_irr.value:.2f}%"
    d3.metric("IRR", f"{kpis['irr']:.1f}%", irr_delta, delta_color="off")
    d4.metric("DSCR", f"{kpis['dscr']:.2f}x")

    st.caption(
        f"Total device cost {_fmt_money(calc_inputs.device.total_cost)}; "
        f"amount financed {_fmt_money(calc_inputs.loan_principal)}."
    )
    if integrity_findings:
        st.warning(f"{len(integrity_findings)} integrity check(s) failed; see Goal Seek & Diagnostics.")
    else:
        st.caption("Integrity checks: passed.")

with charts_tab:
    chart_df = results_df.head(CHART_MONTHS)

    st.plotly_chart(px.bar(chart_df, x="Month_Label", y="Cash Flow", title="Monthly Cash Flow"), width="stretch")

    cum_fig = go.Figure()
    cum_fig.add_trace(go.Scatter(x=chart_df["Month_Label"], y=chart_df["Cumulative Cash"], name="Cumulative Cash"))
    cum_fig.add_hline(y=0, line_dash="dash", annotation_text="Break-even")
    cum_fig.update_layout(title="Cumulative Cash Position")
    st.plotly_chart(cum_fig, width="stretch")

    rc = chart_df[["Month_Label", "Revenue", "Variable Costs", "Fixed OPEX"]].melt(
        "Month_Label", var_name="Series", value_name="Amount"
    )
    st.plotly_chart(px.line(rc, x="Month_Label", y="Amount", color="Series", title="Revenue vs Costs"), width="stretch")

with pnl_tab:
    st.subheader(f"Monthly P&L (First {TABLE_MONTHS} Months)")
    st.dataframe(results_df.head(TABLE_MONTHS).drop(columns=["Month_Label"]), width="stretch", hide_index=True)
    with st.expander("Full Horizon", expanded=False):
        st.dataframe(results_df, width="stretch", hide_index=True)
        st.download_button(
            "Download Projection CSV",
            results_df.to_csv(index=False),
            file_name="laser_roi_projection.csv",
            mime="text/csv",
            help="Export every projected month as CSV.",
        )

with report_tab:
    st.subheader("PDF Report")
    st.selectbox(
        "Report Template",
        options=list(REPORT_TEMPLATES),
        format_func=lambda t: REPORT_TEMPLATES[t]["name"],
        key="report_template",
        help="Pick a preset section layout or build a custom report.",
    )
    template_id = st.session_state["report_template"]
    st.caption(REPORT_TEMPLATES[template_id]["description"])
    custom_sections = None
    if template_id == "custom":
        custom_sections = st.multiselect(
            "Report Sections",
            options=list(SECTION_TITLES),
            format_func=lambda s: SECTION_TITLES[s],
            key="report_custom_sections",
            help="The legal disclaimer is always appended.",
        )
    section_ids = resolve_template_sections(template_id, custom_sections)

    if st.button("Generate PDF Report", help="Render the selected sections to a PDF."):
        report_input = {
            "practice_name": st.session_state["practice_name"],
            "generated_at": date.today().isoformat(),
            "assumptions": assumptions,
            "results_df": results_df,
            "kpis": kpis,
            "selected_device": _selected_device_from_state(),
        }
        st.session_state["report_pdf_bytes"] = build_pdf_report_bytes(
            report_input, section_ids, {"log_event": append_runtime_event}
        )
        st.session_state["report_file_name"] = report_file_name(REPORT_TEMPLATES[template_id]["name"])

    if st.session_state.get("report_pdf_bytes"):
        st.download_button(
            "Download PDF Report",
            st.session_state["report_pdf_bytes"],
            file_name=st.session_state["report_file_name"],
            mime="application/pdf",
            help="Save the generated report.",
        )

with diag_tab:
    st.subheader("Goal Seek")
    st.selectbox(
        "Adjustable Input",
        options=GOAL_SEEK_INPUTS,
        key="goal_input_path",
        help="Input solved for while every other input stays fixed.",
    )
    st.selectbox(
        "Target KPI",
        options=KPI_TARGETS,
        format_func=lambda k: KPI_LABELS.get(k, k),
        key="goal_kpi",
        help="KPI the solver drives to the target value.",
    )
    st.number_input("Target Value", key="goal_target_value", step=100.0, help="Value the KPI should reach.")
    g = INPUT_GUIDANCE.get(st.session_state["goal_input_path"], {})
    bound_low = st.number_input(
        "Solver Lower Bound", value=float(g.get("min", 0.0)), min_value=0.0, step=0.01, help="Smallest value tried."
    )
    bound_high = st.number_input(
        "Solver Upper Bound",
        value=max(float(g.get("max", 1.0)), bound_low + 0.01),
        min_value=bound_low + 0.01,
        step=0.01,
        help="Largest value tried.",
    )
    if st.button("Run Goal Seek", help="Bisect between the bounds until the KPI reaches the target."):
        result = solve_for_input(
            assumptions,
            st.session_state["goal_input_path"],
            st.session_state["goal_kpi"],
            float(st.session_state["goal_target_value"]),
            bound_low,
            bound_high,
            tol=1e-2,
            max_iter=80,
        )
        st.session_state["goal_seek_result"] = {
            "status": result.status,
            "value": result.value,
            "achieved": result.achieved,
            "message": result.message,
            "iterations": result.iterations,
        }
        if result.status != "solved":
            log_goal_seek_failure(
                result.status,
                result.message,
                result.iterations,
                input_path=st.session_state["goal_input_path"],
                kpi=st.session_state["goal_kpi"],
                target_value=float(st.session_state["goal_target_value"]),
                lower_bound=bound_low,
                upper_bound=bound_high,
            )
    gs = st.session_state.get("goal_seek_result")
    if gs:
        if gs["status"] == "solved":
            st.success(
                f"Goal seek solved in {gs['iterations']} iterations: "
                f"{st.session_state['goal_input_path']}={gs['value']:.4f}, achieved={gs['achieved']:.4f}"
            )
        else:
            st.warning(gs["message"])

    st.subheader("Integrity Checks")
    if integrity_findings:
        st.dataframe(pd.DataFrame(integrity_findings), width="stretch", hide_index=True)
    else:
        st.caption("All P&L, cash and loan roll-forward checks passed.")

    st.subheader("Runtime Log")
    st.caption(f"Log file: `{runtime_log_path()}`")
    st.number_input(
        "Events to Show",
        min_value=10,
        max_value=1000,
        step=10,
        key="runtime_log_limit",
        help="Most recent runtime events read from the log.",
    )
    runtime_events = read_runtime_events(limit=int(st.session_state["runtime_log_limit"]))
    if runtime_events:
        runtime_df = pd.DataFrame(runtime_events)
        preferred_cols = ["timestamp_utc", "level", "event", "message", "exception_type", "context"]
        runtime_df = runtime_df[[c for c in preferred_cols if c in runtime_df.columns]]
        if "context" in runtime_df.columns:
            runtime_df["context"] = runtime_df["context"].astype(str)
        st.dataframe(runtime_df.iloc[::-1], width="stretch", hide_index=True)
    else:
        st.caption("No runtime events recorded.")
