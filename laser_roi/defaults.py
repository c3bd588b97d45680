"""Reference scenario for the laser ROI calculator.

Percent-like fields hold whole-number percentages (``5`` means 5%).
"""

from __future__ import annotations


DEFAULTS = {
    "horizon_months": 60,
    "device": {
        "msrp": 150000.0,
        "discount_pct": 10.0,
        "accessories": 5000.0,
        "shipping_install": 2000.0,
        "warranty_years": 2,
        "extended_warranty_cost": 2000.0,
        "depreciation_method": "straight_line",
        "depreciation_life_years": 5,
        "salvage_value": 15000.0,
        "tax_rate_pct": 25.0,
    },
    "financing": {
        "purchase_method": "loan",
        "down_payment": 30.0,
        "down_payment_type": "percent",
        "apr_pct": 5.5,
        "term_months": 84,
        "origination_fees": 500.0,
    },
    "utilization": {
        "open_days_per_month": 22.0,
        "treatments_per_day": 15.0,
        "ramp_pct": [40.0, 60.0, 80.0, 90.0, 95.0, 100.0],
        "no_show_rate_pct": 5.0,
        "avg_treatment_minutes": 30.0,
        "seasonality_pct": [100.0] * 12,
    },
    "pricing": {
        "list_price_per_treatment": 500.0,
        "discount_pct": 5.0,
        "upsell_avg_per_treatment": 100.0,
        "upsell_attach_rate_pct": 30.0,
        "membership_mrr": 300.0,
        "membership_pct": 20.0,
    },
    "variable_costs": {
        "consumables": 15.0,
        "disposables": 5.0,
        "clinical_cost_per_hour": 150.0,
        "room_overhead_per_hour": 25.0,
        "payment_processing_pct": 2.9,
        "payment_processing_fixed": 0.30,
    },
    "fixed_opex": {
        "marketing": 2000.0,
        "staff_allocation": 1500.0,
        "rent_allocation": 1200.0,
        "insurance": 200.0,
        "software_emr": 300.0,
        "maintenance_post_warranty": 300.0,
        "calibration_service": 150.0,
        "downtime_reserve": 3.0,
    },
}
