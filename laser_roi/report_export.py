"""Template-driven PDF report for a calculator run."""

from __future__ import annotations

from copy import deepcopy
from datetime import date, datetime, timezone
import html
from io import BytesIO
from typing import Any, Callable

import pandas as pd

from laser_roi.formulas import divide
from laser_roi.metrics import KPIs
from laser_roi.model import CalculatorInputs
from laser_roi.schema import PURCHASE_METHOD_LABELS, migrate_assumptions


REPORT_TITLE = "Laser ROI Analysis"
MONTHLY_BREAKDOWN_MONTHS = 12

SECTION_TITLES = {
    "header": "Header & Practice Info",
    "executive_summary": "Executive Summary",
    "key_metrics": "Key Performance Metrics",
    "device_info": "Device Information",
    "financing": "Financing Details",
    "monthly_breakdown": "Monthly P&L Summary (First 12 Months)",
    "assumptions": "Key Assumptions",
    "disclaimer": "Legal Disclaimer",
}

REPORT_TEMPLATES: dict[str, dict[str, Any]] = {
    "executive_summary": {
        "name": "Executive Summary",
        "description": "High-level overview for decision makers",
        "sections": ["header", "executive_summary", "key_metrics", "device_info", "financing", "disclaimer"],
    },
    "detailed_analysis": {
        "name": "Detailed Analysis",
        "description": "Comprehensive report with full financial breakdown",
        "sections": [
            "header",
            "executive_summary",
            "device_info",
            "financing",
            "monthly_breakdown",
            "assumptions",
            "disclaimer",
        ],
    },
    "investor_pitch": {
        "name": "Investor Pitch",
        "description": "Professional presentation for funding requests",
        "sections": ["header", "executive_summary", "key_metrics", "device_info", "financing", "disclaimer"],
    },
    "custom": {
        "name": "Custom Report",
        "description": "Build your own report with selected sections",
        "sections": ["header", "disclaimer"],
    },
}

ASSUMPTION_NOTES = [
    "Treatment pricing is based on the entered list price, discount and upsell attach rate.",
    "Utilization follows the entered ramp curve and repeats the 12-month seasonality index.",
    "The no-show rate reduces scheduled treatments before revenue is recognized.",
    "Fixed costs include every monthly operating bucket entered for the device.",
    "Financing uses a level monthly payment at the entered APR and term.",
    "Taxes are charged at a flat rate on positive EBIT only.",
    "All figures are nominal; no inflation adjustment is applied.",
]

DISCLAIMER_LINES = [
    "IMPORTANT NOTICE:",
    "This analysis contains forward-looking projections based on the inputs entered. It is provided for "
    "informational purposes only and is not financial, investment or business advice.",
    "All projections are estimates and may not reflect actual results.",
    "Market conditions, competition and operational efficiency can materially change outcomes.",
    "Review this analysis with a qualified financial professional before making an investment decision.",
]


def _safe_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return float(default)


def _fmt_currency(value: Any) -> str:
    num = _safe_float(value, 0.0)
    if num < 0:
        return f"-${-num:,.0f}"
    return f"${num:,.0f}"


def _fmt_number(value: Any, digits: int = 1) -> str:
    return f"{_safe_float(value, 0.0):,.{digits}f}"


def _utc_iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _log_event(
    options: dict,
    *,
    level: str,
    event: str,
    message: str,
    context: dict[str, Any] | None = None,
) -> None:
    logger: Callable[..., Any] | None = options.get("log_event")
    if callable(logger):
        logger(level=level, event=event, message=message, context=context or {})


def _kpi_dict(kpis: Any) -> dict:
    if isinstance(kpis, KPIs):
        return kpis.as_dict()
    return dict(kpis or {})


def resolve_template_sections(template_id: str, custom_sections: list[str] | None = None) -> list[str]:
    """Section ids for a template; custom selections keep registry order and always end with the disclaimer."""
    if template_id not in REPORT_TEMPLATES:
        raise ValueError(f"Unknown report template: {template_id}")
    if template_id != "custom" or custom_sections is None:
        return list(REPORT_TEMPLATES[template_id]["sections"])
    chosen = [sid for sid in SECTION_TITLES if sid in set(custom_sections)]
    if "disclaimer" not in chosen:
        chosen.append("disclaimer")
    return chosen


def report_file_name(template_name: str, on_date: date | None = None) -> str:
    stamp = (on_date or date.today()).isoformat()
    return f"Laser_ROI_Analysis_{'_'.join(template_name.split())}_{stamp}.pdf"


def _table(rows: list[tuple[str, str]], headers: tuple[str, ...] = ("Metric", "Value")) -> pd.DataFrame:
    return pd.DataFrame(rows, columns=list(headers))


def _section(section_id: str, paragraphs: list[str] | None = None, tables: list[dict] | None = None) -> dict:
    return {
        "id": section_id,
        "title": SECTION_TITLES[section_id],
        "paragraphs": paragraphs or [],
        "tables": tables or [],
    }


def build_report_sections(report_input: dict, section_ids: list[str]) -> list[dict]:
    """Build section descriptors (paragraphs + tables) consumed by PDF rendering."""
    assumptions, _, _ = migrate_assumptions(deepcopy(report_input.get("assumptions", {})))
    inputs = CalculatorInputs.from_assumptions(assumptions)
    kpis = _kpi_dict(report_input.get("kpis"))
    results_df = report_input.get("results_df")
    if not isinstance(results_df, pd.DataFrame):
        results_df = pd.DataFrame()
    device = report_input.get("selected_device") or {}
    practice = str(report_input.get("practice_name") or "Your Practice")
    generated = str(report_input.get("generated_at") or _utc_iso_now())
    total_cost = inputs.device.total_cost

    sections: list[dict] = []
    for sid in section_ids:
        if sid not in SECTION_TITLES:
            continue

        if sid == "header":
            sections.append(_section(sid, paragraphs=[REPORT_TITLE, f"Practice: {practice}", f"Report Date: {generated}"]))

        elif sid == "executive_summary":
            if not kpis:
                sections.append(_section(sid, paragraphs=["KPIs not available."]))
                continue
            rows = [
                ("Monthly Payment", _fmt_currency(kpis["monthly_payment"])),
                ("Monthly Revenue", _fmt_currency(kpis["monthly_revenue"])),
                ("Monthly EBITDA", _fmt_currency(kpis["monthly_ebitda"])),
                ("Breakeven Treatments/Day", _fmt_number(kpis["breakeven_treatments_per_day"])),
                ("Payback Period", f"{_fmt_number(kpis['payback_months'])} months"),
                ("NPV", _fmt_currency(kpis["npv"])),
                ("IRR", f"{_fmt_number(kpis['irr'])}%"),
                ("DSCR", f"{_fmt_number(kpis['dscr'], 2)}x"),
            ]
            sections.append(_section(sid, tables=[{"title": "Headline KPIs", "dataframe": _table(rows)}]))

        elif sid == "key_metrics":
            if not kpis:
                sections.append(_section(sid, paragraphs=["KPIs not available."]))
                continue
            # Revenue-implied volume; membership revenue is included.
            treatment_volume = divide(kpis["monthly_revenue"], inputs.pricing.list_price_per_treatment)
            rows = [
                ("ROI (NPV / Total Cost)", f"{_fmt_number(_safe_float(kpis['npv']) / total_cost * 100 if total_cost else 0.0)}%", ">15%"),
                ("Monthly Cash Flow", _fmt_currency(kpis["monthly_ebitda"] - kpis["monthly_payment"]), "Positive"),
                ("Treatment Volume", _fmt_number(treatment_volume, 0), ">200"),
                ("Revenue per Treatment", _fmt_currency(inputs.pricing.list_price_per_treatment), ">$400"),
            ]
            sections.append(
                _section(sid, tables=[{"title": "Performance vs Targets", "dataframe": _table(rows, ("Metric", "Value", "Target"))}])
            )

        elif sid == "device_info":
            d = assumptions["device"]
            rows = [
                ("Device MSRP", _fmt_currency(d["msrp"])),
                ("Discount", f"{_fmt_number(d['discount_pct'])}%"),
                ("Accessories", _fmt_currency(d["accessories"])),
                ("Shipping/Install", _fmt_currency(d["shipping_install"])),
                ("Total Cost", _fmt_currency(total_cost)),
            ]
            if device:
                rows.append(("Selected Device", f"{device.get('manufacturer', '')} {device.get('model_name', '')}".strip()))
                if device.get("url"):
                    rows.append(("Device Link", str(device["url"])))
            sections.append(_section(sid, tables=[{"title": "Device", "dataframe": _table(rows, ("Parameter", "Value"))}]))

        elif sid == "financing":
            f = assumptions["financing"]
            if f["down_payment_type"] == "percent":
                down = f"{_fmt_number(f['down_payment'])}%"
            else:
                down = _fmt_currency(f["down_payment"])
            rows = [
                ("Purchase Method", PURCHASE_METHOD_LABELS.get(f["purchase_method"], f["purchase_method"])),
                ("APR", f"{_fmt_number(f['apr_pct'], 2)}%"),
                ("Term", f"{int(f['term_months'])} months"),
                ("Down Payment", down),
                ("Amount Financed", _fmt_currency(inputs.loan_principal)),
                ("Origination Fees", _fmt_currency(f["origination_fees"])),
            ]
            sections.append(_section(sid, tables=[{"title": "Financing", "dataframe": _table(rows, ("Parameter", "Value"))}]))

        elif sid == "monthly_breakdown":
            head = results_df.head(MONTHLY_BREAKDOWN_MONTHS)
            rows = [
                (
                    f"M{int(r['Month'])}",
                    _fmt_number(r["Treatments"], 0),
                    _fmt_currency(r["Revenue"]),
                    _fmt_currency(r["EBITDA"]),
                    _fmt_currency(r["Cash Flow"]),
                    _fmt_currency(r["Cumulative Cash"]),
                )
                for _, r in head.iterrows()
            ]
            table = _table(rows, ("Month", "Treatments", "Revenue", "EBITDA", "Cash Flow", "Cumulative Cash"))
            sections.append(_section(sid, tables=[{"title": "Monthly P&L", "dataframe": table}]))

        elif sid == "assumptions":
            sections.append(_section(sid, paragraphs=[f"- {note}" for note in ASSUMPTION_NOTES]))

        elif sid == "disclaimer":
            sections.append(_section(sid, paragraphs=list(DISCLAIMER_LINES)))

    return sections


def _append_table(story: list[Any], table_spec: dict, styles, rl: dict) -> None:
    from reportlab.lib import colors
    from reportlab.platypus import Paragraph, Spacer, Table, TableStyle

    df = table_spec.get("dataframe")
    story.append(Paragraph(html.escape(str(table_spec.get("title", "Table"))), styles["Heading3"]))
    if not isinstance(df, pd.DataFrame) or df.empty:
        story.append(Paragraph("No data available.", styles["BodyText"]))
        story.append(Spacer(1, 8))
        return
    rows = [[Paragraph(html.escape(str(c)), styles["TableHeader"]) for c in df.columns]]
    for _, row in df.iterrows():
        rows.append([Paragraph(html.escape(str(v)), styles["TableCell"]) for v in row.tolist()])
    width = rl["content_width"] / len(df.columns)
    t = Table(rows, repeatRows=1, colWidths=[width] * len(df.columns))
    t.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#f0f0f0")),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("GRID", (0, 0), (-1, -1), 0.3, colors.HexColor("#c8c8c8")),
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f7fafc")]),
            ]
        )
    )
    story.append(t)
    story.append(Spacer(1, 10))


def build_pdf_report_bytes(report_input: dict, section_ids: list[str], options: dict | None = None) -> bytes:
    """Render the selected sections to PDF bytes with ReportLab."""
    from reportlab.lib import colors
    from reportlab.lib.pagesizes import letter
    from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
    from reportlab.lib.units import inch
    from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer

    options = dict(options or {})
    sections = build_report_sections(report_input, section_ids)

    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(name="SectionHeader", parent=styles["Heading2"], textColor=colors.HexColor("#3b82f6")))
    styles.add(ParagraphStyle(name="Disclaimer", parent=styles["BodyText"], fontSize=8.5, textColor=colors.HexColor("#dc2626")))
    styles.add(ParagraphStyle(name="TableHeader", parent=styles["BodyText"], fontName="Helvetica-Bold", fontSize=9, leading=11))
    styles.add(ParagraphStyle(name="TableCell", parent=styles["BodyText"], fontName="Helvetica", fontSize=9, leading=11))

    buf = BytesIO()
    margin = 0.75 * inch
    doc = SimpleDocTemplate(
        buf,
        pagesize=letter,
        leftMargin=margin,
        rightMargin=margin,
        topMargin=margin,
        bottomMargin=margin,
        title=f"{REPORT_TITLE} - {report_input.get('practice_name') or 'Your Practice'}",
    )
    rl = {"content_width": letter[0] - 2 * margin}

    story: list[Any] = []
    for section in sections:
        if section["id"] == "header":
            title, *rest = section["paragraphs"]
            story.append(Paragraph(html.escape(title), styles["Title"]))
            for para in rest:
                story.append(Paragraph(html.escape(para), styles["BodyText"]))
            story.append(Spacer(1, 12))
            continue
        story.append(Paragraph(html.escape(section["title"]), styles["SectionHeader"]))
        body_style = styles["Disclaimer"] if section["id"] == "disclaimer" else styles["BodyText"]
        for para in section["paragraphs"]:
            story.append(Paragraph(html.escape(para), body_style))
        if section["paragraphs"]:
            story.append(Spacer(1, 8))
        for table_spec in section["tables"]:
            _append_table(story, table_spec, styles, rl)

    doc.build(story)
    pdf_bytes = buf.getvalue()
    _log_event(
        options,
        level="INFO",
        event="pdf_report_built",
        message="PDF report generated.",
        context={"sections": [s["id"] for s in sections], "bytes": len(pdf_bytes)},
    )
    return pdf_bytes
