"""
KPI computation: pure functions over an AnalysisDataset.

Provides delta and tone calculation, benchmark baselines, customer growth
metrics and segments, regional sales breakdowns, new-product trends and
cross-selling ratios for one agency.
"""

import logging

import numpy as np
import pandas as pd

from .config import (
    CLUB_1000_AGENCIES,
    GROWTH_SEGMENT_CONVERSION_LOWER,
    GROWTH_SEGMENT_DEFAULT_AVERAGE,
    GROWTH_SEGMENT_RETENTION_PIVOT,
    GROWTH_SEGMENT_TOP_CUSTOMERS,
    HIGH_POTENTIAL_MULTIPLIER,
    HIGH_POTENTIAL_PERCENTILE,
    METRO_PREFIXES,
    MIN_FIRST_ORDER_AMOUNT_FOR_GROWTH_SCATTER,
    MIN_PURCHASE_COUNT_FOR_GROWTH_SCATTER,
    REGION_SCOPE_EXTENSIONS,
    TONE_NEUTRAL_BAND,
    TOP_REGIONS,
    UNKNOWN_REGION,
)
from .loaders.utils import normalise_label
from .transforms import AnalysisDataset

logger = logging.getLogger(__name__)

_CUSTOMER_KEY = ["biz_no", "agency"]


# ---------------------------------------------------------------------------
# Basic arithmetic
# ---------------------------------------------------------------------------

def percentile(values, p: float) -> float:
    """Lower-index percentile: sorted(values)[floor((n - 1) * p)].

    Returns 0.0 for an empty input.
    """
    arr = np.sort(np.asarray(list(values), dtype=float))
    if arr.size == 0:
        return 0.0
    idx = int(np.floor((arr.size - 1) * p))
    return float(arr[idx])


def safe_delta(base: float, current: float) -> float:
    """Percent change from base to current.

    A zero base yields 0 when current is also zero, otherwise 100.
    """
    if base == 0:
        return 0.0 if current == 0 else 100.0
    return (current - base) / base * 100


def tone_from_delta(delta: float) -> str:
    """Return 'up', 'down' or 'neutral' for a percent delta."""
    if delta > TONE_NEUTRAL_BAND:
        return "up"
    if delta < -TONE_NEUTRAL_BAND:
        return "down"
    return "neutral"


# ---------------------------------------------------------------------------
# Agency slices and benchmark baseline
# ---------------------------------------------------------------------------

def agency_orders(dataset: AnalysisDataset, agency: str) -> pd.DataFrame:
    return dataset.orders[dataset.orders["agency"] == agency]


def agency_products(dataset: AnalysisDataset, agency: str) -> pd.DataFrame:
    """Product lines belonging to any order of the agency."""
    order_set = set(agency_orders(dataset, agency)["order_no"])
    return dataset.products[dataset.products["order_no"].isin(order_set)]


def new_product_ratio(dataset: AnalysisDataset, agency: str) -> float:
    """New-product share of the agency's product sales, in percent."""
    products = agency_products(dataset, agency)
    total = products["sales_amount"].sum()
    if total <= 0:
        return 0.0
    new_sales = products.loc[products["is_new_product"], "sales_amount"].sum()
    return float(new_sales / total * 100)


def get_baseline_agencies(dataset: AnalysisDataset, benchmark: str) -> list[str]:
    """Agencies the selected agency is compared against.

    'overall' uses every agency with orders; 'club1000' only the Club 1000
    members among them.
    """
    agencies = dataset.orders["agency"].drop_duplicates().tolist()
    if benchmark == "overall":
        return agencies
    club = set(CLUB_1000_AGENCIES)
    return [agency for agency in agencies if agency in club]


def average_by_agency(dataset: AnalysisDataset, agencies: list[str]) -> dict:
    """Mean sales, order count and new-product ratio across agencies."""
    if not agencies:
        return {"sales": 0.0, "order_count": 0.0, "new_product_ratio": 0.0}

    orders = dataset.orders[dataset.orders["agency"].isin(agencies)]
    per_agency = orders.groupby("agency")["order_amount"].agg(["sum", "size"])
    per_agency = per_agency.reindex(agencies, fill_value=0)

    ratios = [new_product_ratio(dataset, agency) for agency in agencies]

    return {
        "sales": float(per_agency["sum"].sum() / len(agencies)),
        "order_count": float(per_agency["size"].sum() / len(agencies)),
        "new_product_ratio": float(sum(ratios) / len(agencies)),
    }


# ---------------------------------------------------------------------------
# Customer growth
# ---------------------------------------------------------------------------

def build_customer_metrics(dataset: AnalysisDataset) -> pd.DataFrame:
    """Per-customer cumulative sales, purchase count and growth multiplier.

    growth_multiplier = cumulative_amount / first_order_amount, or 0 when the
    first order amount is unknown.

    Returns
    -------
    DataFrame with columns:
        biz_no, customer_name, agency, first_order_amount, cumulative_amount,
        purchase_count, growth_multiplier
    """
    totals = (
        dataset.orders.groupby(_CUSTOMER_KEY)["order_amount"]
        .agg(cumulative_amount="sum", purchase_count="size")
        .reset_index()
    )

    metrics = dataset.customers.merge(totals, on=_CUSTOMER_KEY, how="left")
    metrics["cumulative_amount"] = metrics["cumulative_amount"].fillna(0.0).astype(float)
    metrics["purchase_count"] = metrics["purchase_count"].fillna(0).astype(int)
    metrics["customer_name"] = metrics["customer_name"].where(
        metrics["customer_name"] != "", metrics["biz_no"]
    )

    first = metrics["first_order_amount"]
    metrics["growth_multiplier"] = (
        metrics["cumulative_amount"].div(first.where(first > 0)).fillna(0.0)
    )

    return metrics[[
        "biz_no", "customer_name", "agency", "first_order_amount",
        "cumulative_amount", "purchase_count", "growth_multiplier",
    ]]


def growth_customers(metrics: pd.DataFrame, agency: str) -> pd.DataFrame:
    """Agency customers ranked by cumulative sales, with a high-potential flag.

    A customer is high-potential when it has at least doubled its first order
    and sits at or above the agency's 70th percentile of cumulative sales.
    """
    agency_metrics = metrics[metrics["agency"] == agency].copy()
    threshold = percentile(agency_metrics["cumulative_amount"], HIGH_POTENTIAL_PERCENTILE)

    agency_metrics["high_potential"] = (
        (agency_metrics["growth_multiplier"] >= HIGH_POTENTIAL_MULTIPLIER)
        & (agency_metrics["cumulative_amount"] >= threshold)
    )

    return agency_metrics.sort_values(
        "cumulative_amount", ascending=False, kind="stable"
    ).reset_index(drop=True)


def _mean(series: pd.Series) -> float:
    return float(series.mean()) if len(series) else 0.0


def build_growth_scatter(metrics: pd.DataFrame, agency: str) -> dict:
    """Scatter points of established customers plus reference averages.

    Only customers with a first order of at least 1,000,000 and two or more
    purchases are plotted.
    """
    points = metrics[
        (metrics["first_order_amount"] >= MIN_FIRST_ORDER_AMOUNT_FOR_GROWTH_SCATTER)
        & (metrics["purchase_count"] >= MIN_PURCHASE_COUNT_FOR_GROWTH_SCATTER)
    ].copy()
    points["is_selected_agency"] = points["agency"] == agency
    selected = points[points["is_selected_agency"]]

    return {
        "points": points.to_dict(orient="records"),
        "average_growth_multiplier": _mean(points["growth_multiplier"]),
        "average_purchase_count": _mean(points["purchase_count"]),
        "selected_average_growth_multiplier": _mean(selected["growth_multiplier"]),
        "selected_average_purchase_count": _mean(selected["purchase_count"]),
        "min_first_order_amount": MIN_FIRST_ORDER_AMOUNT_FOR_GROWTH_SCATTER,
        "min_purchase_count": MIN_PURCHASE_COUNT_FOR_GROWTH_SCATTER,
    }


# ---------------------------------------------------------------------------
# Growth segments
# ---------------------------------------------------------------------------

GROWTH_SEGMENTS = ("growth", "transition", "retention")

_SEGMENT_LABELS = {
    "growth": "Growth customers",
    "transition": "Conversion-managed customers",
    "retention": "Retention customers",
}


def _positive_or(primary: float, fallback: float) -> float:
    if primary > 0:
        return primary
    if fallback > 0:
        return fallback
    return GROWTH_SEGMENT_DEFAULT_AVERAGE


def growth_segment_thresholds(scatter: dict) -> dict:
    """Segment cut-offs from the selected agency's scatter averages.

    Falls back to the all-agency averages, then to 3.0, when the selected
    agency has no points.
    """
    growth_threshold = round(
        _positive_or(scatter["selected_average_growth_multiplier"], scatter["average_growth_multiplier"]), 2
    )
    purchase_average = round(
        _positive_or(scatter["selected_average_purchase_count"], scatter["average_purchase_count"]), 2
    )
    lower = GROWTH_SEGMENT_CONVERSION_LOWER

    return {
        "growth_threshold": growth_threshold,
        "purchase_average": purchase_average,
        "growth_min_purchase": max(2.0, purchase_average - 0.5),
        "conversion_lower": lower,
        "conversion_upper": round(max(lower + 0.1, growth_threshold - 0.01), 2),
    }


def classify_growth_point(point: dict, thresholds: dict) -> str:
    growth = point["growth_multiplier"]
    count = point["purchase_count"]

    if growth >= thresholds["growth_threshold"] and count >= thresholds["growth_min_purchase"]:
        return "growth"
    if growth < thresholds["conversion_lower"] or count <= 2:
        return "retention"
    return "transition"


def _segment_score(segment: str, point: dict, growth_threshold: float) -> float:
    growth = point["growth_multiplier"]
    count = point["purchase_count"]
    size = float(np.log10(max(1.0, point["cumulative_amount"])))

    if segment == "growth":
        return growth * 4 + count * 2 + size
    if segment == "transition":
        return count * 2 + size - abs(growth_threshold - growth)
    return size + max(0.0, GROWTH_SEGMENT_RETENTION_PIVOT - growth)


def _segment_reason(segment: str, point: dict) -> str:
    growth = point["growth_multiplier"]
    if segment == "growth":
        return f"Growth multiplier {growth:.2f} with a clear repeat-purchase pattern."
    if segment == "transition":
        return f"Growth multiplier {growth:.2f} sits near the average line; the next proposal can convert it."
    return f"Steady account at {point['purchase_count']} purchases; keep the relationship warm."


def _segment_criteria(segment: str, thresholds: dict) -> list[str]:
    if segment == "growth":
        return [
            f"growth multiplier >= {thresholds['growth_threshold']:.2f}",
            f"purchase count at or near the average ({thresholds['purchase_average']:.2f})",
            "mid to large cumulative amount",
        ]
    if segment == "transition":
        return [
            f"growth multiplier {thresholds['conversion_lower']:.2f} to {thresholds['conversion_upper']:.2f}",
            "purchase count near the average, or 2 to 3 orders",
            "mid-sized cumulative amount",
        ]
    return [
        f"growth multiplier < {thresholds['conversion_lower']:.2f}",
        "mostly 1 to 2 purchases",
        "small to mid cumulative amount",
    ]


def growth_segments(scatter: dict) -> dict:
    """Sort the selected agency's scatter points into three segments.

    Parameters
    ----------
    scatter : Output of build_growth_scatter().

    Returns
    -------
    Dict with the thresholds used and one row per segment (growth,
    transition, retention), each with its criteria, customer count and up
    to five top customers as {name, reason}.
    """
    thresholds = growth_segment_thresholds(scatter)
    buckets: dict[str, list[dict]] = {segment: [] for segment in GROWTH_SEGMENTS}

    for point in scatter["points"]:
        if point["is_selected_agency"]:
            buckets[classify_growth_point(point, thresholds)].append(point)

    rows = []
    for segment in GROWTH_SEGMENTS:
        ranked = sorted(
            buckets[segment],
            key=lambda point: _segment_score(segment, point, thresholds["growth_threshold"]),
            reverse=True,
        )
        rows.append({
            "segment": segment,
            "label": _SEGMENT_LABELS[segment],
            "criteria": _segment_criteria(segment, thresholds),
            "customer_count": len(ranked),
            "top_customers": [
                {
                    "name": point["customer_name"] or point["biz_no"],
                    "reason": _segment_reason(segment, point),
                }
                for point in ranked[:GROWTH_SEGMENT_TOP_CUSTOMERS]
            ],
        })

    return {"thresholds": thresholds, "segments": rows}


# ---------------------------------------------------------------------------
# Regions
# ---------------------------------------------------------------------------

def normalise_metro(value: str) -> str:
    """Map a city cell ("부산", "부산시", "부산 광역시") to its official name."""
    label = normalise_label(value)
    if not label:
        return ""
    for prefix, metro in METRO_PREFIXES:
        if label.startswith(prefix):
            return metro
    return str(value).strip()


def region_label(city: str, district: str, dong: str) -> str:
    """'<metro> <district>', falling back to whichever part is present."""
    metro = normalise_metro(city)
    district = (district or "").strip()
    if metro and district:
        return f"{metro} {district}"
    return metro or district or dong or UNKNOWN_REGION


def region_stats(orders: pd.DataFrame) -> pd.DataFrame:
    """Sales and share per region, largest first.

    Returns
    -------
    DataFrame with columns: region, sales, share
    """
    if orders.empty:
        return pd.DataFrame(columns=["region", "sales", "share"])

    regions = [
        region_label(city, district, dong)
        for city, district, dong in zip(orders["city"], orders["district"], orders["dong"])
    ]
    total = orders["order_amount"].sum()

    stats = (
        orders.assign(region=regions)
        .groupby("region", sort=False)["order_amount"]
        .sum()
        .rename("sales")
        .reset_index()
    )
    stats["share"] = stats["sales"] / total * 100 if total > 0 else 0.0

    return stats.sort_values("sales", ascending=False, kind="stable").reset_index(drop=True)


def infer_agency_metro(agency: str, orders: pd.DataFrame) -> str:
    """Home metro of an agency: named in the agency, else its top-selling metro."""
    name = normalise_label(agency)
    for hint in ("부산", "대전", "대구", "광주"):
        if hint in name:
            return normalise_metro(hint)

    metros = orders["city"].map(normalise_metro)
    city_sales = orders.assign(metro=metros)
    city_sales = city_sales[city_sales["metro"] != ""]
    if city_sales.empty:
        return ""

    totals = city_sales.groupby("metro", sort=False)["order_amount"].sum()
    return str(totals.sort_values(ascending=False, kind="stable").index[0])


def scoped_metros(base_metro: str) -> set[str]:
    scope = REGION_SCOPE_EXTENSIONS.get(base_metro, [base_metro])
    return {normalise_metro(city) for city in scope}


def region_main(dataset: AnalysisDataset, agency: str) -> pd.DataFrame:
    """Top regions of the agency within its home metro and neighbouring provinces.

    Shares are relative to the agency's in-scope sales.
    """
    orders = agency_orders(dataset, agency)
    metro = infer_agency_metro(agency, orders)
    if metro:
        scope = scoped_metros(metro)
        orders = orders[orders["city"].map(normalise_metro).isin(scope)]

    return region_stats(orders).head(TOP_REGIONS)


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------

def monthly_new_products(dataset: AnalysisDataset, agency: str) -> pd.DataFrame:
    """New-product quantity and amount per order month for the agency.

    Returns
    -------
    DataFrame with columns: month ("YYYY-MM"), quantity, amount
    """
    # One order per order_no; a repeated number resolves to the last row
    orders = dataset.orders.drop_duplicates("order_no", keep="last")[
        ["order_no", "agency", "order_date"]
    ]
    new_products = dataset.products[dataset.products["is_new_product"]]
    joined = new_products.merge(orders, on="order_no", how="inner")
    joined = joined[(joined["agency"] == agency) & joined["order_date"].notna()]

    if joined.empty:
        return pd.DataFrame(columns=["month", "quantity", "amount"])

    joined = joined.assign(month=joined["order_date"].dt.strftime("%Y-%m"))
    monthly = (
        joined.groupby("month")
        .agg(quantity=("quantity", "sum"), amount=("sales_amount", "sum"))
        .reset_index()
    )
    return monthly.sort_values("month").reset_index(drop=True)


def cross_sell_ratio(dataset: AnalysisDataset, agency: str) -> dict:
    """Count agency orders spanning two or more mid categories vs. the rest."""
    products = agency_products(dataset, agency)
    if products.empty:
        return {"solo": 0, "cross_sell": 0}

    categories = products["mid_category"].replace("", pd.NA)
    per_order = categories.groupby(products["order_no"]).nunique()

    cross_sell = int((per_order >= 2).sum())
    return {"solo": int(len(per_order) - cross_sell), "cross_sell": cross_sell}


# ---------------------------------------------------------------------------
# KPI cards
# ---------------------------------------------------------------------------

def _card(card_id: str, label: str, value: str, delta: float) -> dict:
    return {
        "id": card_id,
        "label": label,
        "value": value,
        "delta": delta,
        "tone": tone_from_delta(delta),
    }


def build_kpi_cards(
    dataset: AnalysisDataset,
    agency: str,
    benchmark: str,
    growth_list: pd.DataFrame,
) -> list[dict]:
    """Headline cards for the agency, each with a delta against the benchmark.

    Cards: total sales, order count, new-product ratio, high-potential
    customers (no benchmark, always neutral).
    """
    orders = agency_orders(dataset, agency)
    total_sales = float(orders["order_amount"].sum())
    order_count = len(orders)
    ratio = new_product_ratio(dataset, agency)
    high_potential = int(growth_list["high_potential"].sum()) if not growth_list.empty else 0

    baseline = average_by_agency(dataset, get_baseline_agencies(dataset, benchmark))

    return [
        _card("sales", "Total sales", f"{total_sales:,.0f} KRW",
              safe_delta(baseline["sales"], total_sales)),
        _card("orders", "Purchase count", f"{order_count:,} orders",
              safe_delta(baseline["order_count"], order_count)),
        _card("new-product", "New product share", f"{ratio:.1f}%",
              safe_delta(baseline["new_product_ratio"], ratio)),
        _card("high-potential", "High-potential customers", f"{high_potential:,} customers", 0.0),
    ]
