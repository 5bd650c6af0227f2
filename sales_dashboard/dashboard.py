"""
One-call outputs for the agency dashboard front end.

Everything returned is a plain dict or list of records, ready for cards,
charts and tables without further pandas work.
"""

import logging

import pandas as pd

from .config import BENCHMARK_MODES, INSIGHT_PRESETS, TOP_GROWTH_CUSTOMERS
from .kpis import (
    agency_orders,
    build_customer_metrics,
    build_growth_scatter,
    build_kpi_cards,
    cross_sell_ratio,
    growth_customers,
    growth_segments,
    monthly_new_products,
    region_main,
    region_stats,
)
from .transforms import AnalysisDataset

logger = logging.getLogger(__name__)


def _records(df: pd.DataFrame) -> list[dict]:
    return df.to_dict(orient="records")


def calculate_analysis(
    dataset: AnalysisDataset,
    agency: str,
    benchmark: str = "overall",
) -> dict:
    """Single entry point a front end calls to populate one agency's dashboard.

    Parameters
    ----------
    dataset : Merged dataset from build_analysis_dataset().
    agency : Agency to analyse.
    benchmark : "overall" (all agencies) or "club1000".

    Returns
    -------
    Dict with keys:
        agency, benchmark, kpis, b2b_region_all, region_all, region_main,
        growth_customers, growth_scatter, growth_segments,
        monthly_new_products, cross_sell_ratio
    """
    if benchmark not in BENCHMARK_MODES:
        raise ValueError(f"Unknown benchmark '{benchmark}'. Expected one of {BENCHMARK_MODES}")

    if agency not in set(dataset.orders["agency"]):
        logger.warning("Agency '%s' has no orders in the dataset", agency)

    metrics = build_customer_metrics(dataset)
    growth_list = growth_customers(metrics, agency)
    scatter = build_growth_scatter(metrics, agency)

    analysis = {
        "agency": agency,
        "benchmark": benchmark,
        "kpis": build_kpi_cards(dataset, agency, benchmark, growth_list),
        "b2b_region_all": _records(region_stats(dataset.orders)),
        "region_all": _records(region_stats(agency_orders(dataset, agency))),
        "region_main": _records(region_main(dataset, agency)),
        "growth_customers": _records(growth_list.head(TOP_GROWTH_CUSTOMERS)),
        "growth_scatter": scatter,
        "growth_segments": growth_segments(scatter),
        "monthly_new_products": _records(monthly_new_products(dataset, agency)),
        "cross_sell_ratio": cross_sell_ratio(dataset, agency),
    }

    logger.info("Calculated analysis for %s (benchmark=%s)", agency, benchmark)
    return analysis


def get_available_agencies(dataset: AnalysisDataset) -> list[str]:
    """Return sorted list of agency names for UI dropdowns."""
    if dataset.orders.empty:
        return []
    return sorted(dataset.orders["agency"].unique().tolist())


def get_insight_messages(agency: str, preset_id: str) -> list[str]:
    """Template insight text for a preset.

    This is the text shown when no generated insight is available.
    """
    preset = INSIGHT_PRESETS.get(preset_id)
    if preset is None:
        return ["Undefined insight preset."]

    return [
        f"[{preset['title']}] Key indicators were read for {agency}.",
        f"{preset['objective']}: check {', '.join(preset['focus'])}.",
        f"Recommended output format: {preset['output_hint']}",
    ]
