from __future__ import annotations

from copy import deepcopy
from datetime import date

import pytest

from laser_roi.metrics import evaluate_scenario
from laser_roi.model import results_frame
from laser_roi.report_export import (
    REPORT_TEMPLATES,
    SECTION_TITLES,
    build_pdf_report_bytes,
    build_report_sections,
    report_file_name,
    resolve_template_sections,
)


def _sample_report_input(base_inputs: dict, **extra) -> dict:
    assumptions = deepcopy(base_inputs)
    _, results, kpis = evaluate_scenario(assumptions)
    report_input = {
        "practice_name": "Glow Aesthetics",
        "generated_at": "2026-03-01",
        "assumptions": assumptions,
        "results_df": results_frame(results),
        "kpis": kpis,
    }
    report_input.update(extra)
    return report_input


def test_templates_only_reference_known_sections():
    for template in REPORT_TEMPLATES.values():
        assert set(template["sections"]) <= set(SECTION_TITLES)
        assert template["sections"][-1] == "disclaimer"


def test_custom_sections_keep_registry_order_and_disclaimer():
    sections = resolve_template_sections("custom", ["monthly_breakdown", "header"])
    assert sections == ["header", "monthly_breakdown", "disclaimer"]
    assert resolve_template_sections("investor_pitch") == REPORT_TEMPLATES["investor_pitch"]["sections"]
    with pytest.raises(ValueError):
        resolve_template_sections("quarterly_board_deck")


def test_build_report_sections_for_detailed_analysis(base_inputs):
    section_ids = resolve_template_sections("detailed_analysis")
    sections = build_report_sections(_sample_report_input(base_inputs), section_ids)
    assert [s["id"] for s in sections] == section_ids

    header = sections[0]
    assert "Practice: Glow Aesthetics" in header["paragraphs"]

    device = next(s for s in sections if s["id"] == "device_info")
    device_rows = dict(device["tables"][0]["dataframe"].values.tolist())
    assert device_rows["Total Cost"] == "$142,000"
    assert device_rows["Discount"] == "10.0%"

    financing = next(s for s in sections if s["id"] == "financing")
    financing_rows = dict(financing["tables"][0]["dataframe"].values.tolist())
    assert financing_rows["Purchase Method"] == "Term Loan"
    assert financing_rows["Amount Financed"] == "$99,400"

    monthly = next(s for s in sections if s["id"] == "monthly_breakdown")
    table = monthly["tables"][0]["dataframe"]
    assert len(table) == 12
    assert table["Month"].iloc[0] == "M1"


def test_key_metrics_and_missing_kpis(base_inputs):
    report_input = _sample_report_input(base_inputs)
    kpis = report_input["kpis"]
    sections = build_report_sections(report_input, ["key_metrics"])
    rows = sections[0]["tables"][0]["dataframe"]
    assert rows["Metric"].tolist() == [
        "ROI (NPV / Total Cost)",
        "Monthly Cash Flow",
        "Treatment Volume",
        "Revenue per Treatment",
    ]
    expected_roi = f"{kpis.npv / 142000.0 * 100:,.1f}%"
    assert rows["Value"].iloc[0] == expected_roi
    assert rows["Value"].iloc[2] == f"{kpis.monthly_revenue / 500.0:,.0f}"

    empty = build_report_sections(_sample_report_input(base_inputs, kpis=None), ["executive_summary"])
    assert empty[0]["paragraphs"] == ["KPIs not available."]


def test_unknown_section_ids_are_skipped(base_inputs):
    sections = build_report_sections(_sample_report_input(base_inputs), ["header", "appendix", "disclaimer"])
    assert [s["id"] for s in sections] == ["header", "disclaimer"]


def test_selected_device_is_listed(base_inputs):
    report_input = _sample_report_input(
        base_inputs,
        selected_device={"manufacturer": "Acme Lasers", "model_name": "PicoPulse 2", "url": "https://example.com/pico"},
    )
    device = build_report_sections(report_input, ["device_info"])[0]
    rows = dict(device["tables"][0]["dataframe"].values.tolist())
    assert rows["Selected Device"] == "Acme Lasers PicoPulse 2"
    assert rows["Device Link"] == "https://example.com/pico"


def test_pdf_bytes_and_log_event(base_inputs):
    events: list[dict] = []

    def _capture(**kwargs):
        events.append(kwargs)

    pdf = build_pdf_report_bytes(
        _sample_report_input(base_inputs),
        resolve_template_sections("detailed_analysis"),
        {"log_event": _capture},
    )
    assert pdf.startswith(b"%PDF")
    assert len(pdf) > 1000
    assert events and events[0]["event"] == "pdf_report_built"
    assert "monthly_breakdown" in events[0]["context"]["sections"]


def test_report_file_name():
    assert report_file_name("Executive Summary", date(2026, 3, 1)) == "Laser_ROI_Analysis_Executive_Summary_2026-03-01.pdf"
