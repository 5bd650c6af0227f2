"""
Data transforms: turn validated CSV rows into typed order, customer and
product tables and join them into one analysis dataset.
"""

import logging
from dataclasses import dataclass

import pandas as pd

from .config import (
    AGENCY_ALIAS_MAP,
    CLUB_1000_AGENCIES,
    COLUMN_ALIASES,
    NEW_PRODUCT_FLAGS,
)
from .loaders.schema import pick_value
from .loaders.utils import parse_date, parse_number

logger = logging.getLogger(__name__)

ORDER_COLUMNS = [
    "order_no", "biz_no", "agency", "order_amount", "order_date",
    "city", "district", "dong",
]
CUSTOMER_COLUMNS = ["biz_no", "agency", "customer_name", "first_order_amount"]
PRODUCT_COLUMNS = ["order_no", "mid_category", "quantity", "sales_amount", "is_new_product"]

_CUSTOMER_KEY = ["biz_no", "agency"]

_ORDER_ALIASES = COLUMN_ALIASES["orders"]
_CUSTOMER_ALIASES = COLUMN_ALIASES["customers"]
_PRODUCT_ALIASES = COLUMN_ALIASES["products"]


@dataclass
class AnalysisDataset:
    """Merged orders, customers and products ready for KPI computation."""

    orders: pd.DataFrame
    customers: pd.DataFrame
    products: pd.DataFrame

    def counts(self) -> dict[str, int]:
        return {
            "orders": len(self.orders),
            "customers": len(self.customers),
            "products": len(self.products),
        }


# ---------------------------------------------------------------------------
# Agency names
# ---------------------------------------------------------------------------

def normalise_agency_name(name: str | None) -> str:
    """Trim an agency name and map retired names to their successor."""
    trimmed = (name or "").strip()
    return AGENCY_ALIAS_MAP.get(trimmed, trimmed)


def is_club1000_agency(name: str | None) -> bool:
    return normalise_agency_name(name) in CLUB_1000_AGENCIES


def get_club1000_agencies() -> list[str]:
    return list(CLUB_1000_AGENCIES)


# ---------------------------------------------------------------------------
# Per-source preparation
# ---------------------------------------------------------------------------

def prepare_orders(rows: list[dict]) -> pd.DataFrame:
    """Build the order table from validated order rows.

    Returns
    -------
    DataFrame with columns:
        order_no, biz_no, agency, order_amount, order_date, city, district, dong
    """
    records = []
    for row in rows:
        records.append({
            "order_no": pick_value(row, _ORDER_ALIASES["수주번호"]),
            "biz_no": pick_value(row, _ORDER_ALIASES["사업자 등록번호"]),
            "agency": normalise_agency_name(pick_value(row, _ORDER_ALIASES["실적대리점"])),
            "order_amount": parse_number(pick_value(row, _ORDER_ALIASES["수주금액"])),
            "order_date": parse_date(pick_value(row, _ORDER_ALIASES["기준일자"])),
            "city": pick_value(row, _ORDER_ALIASES["시"]),
            "district": pick_value(row, _ORDER_ALIASES["구"]),
            "dong": pick_value(row, _ORDER_ALIASES["동"]),
        })

    df = pd.DataFrame(records, columns=ORDER_COLUMNS)
    df["order_amount"] = df["order_amount"].astype(float)
    df["order_date"] = pd.to_datetime(df["order_date"])

    logger.info("Prepared %d order rows", len(df))
    return df


def _oldest_order_amounts(orders: pd.DataFrame) -> tuple[dict, dict]:
    """Amount of the oldest dated, positive order per (biz_no, agency) and per biz_no."""
    dated = orders[orders["order_date"].notna() & (orders["order_amount"] > 0)]
    # Stable sort keeps the first listed order among equal dates
    dated = dated.sort_values("order_date", kind="stable")

    by_exact = (
        dated.drop_duplicates(_CUSTOMER_KEY, keep="first")
        .set_index(_CUSTOMER_KEY)["order_amount"]
        .to_dict()
    )
    by_biz = (
        dated.drop_duplicates("biz_no", keep="first")
        .set_index("biz_no")["order_amount"]
        .to_dict()
    )
    return by_exact, by_biz


def prepare_customers(rows: list[dict], orders: pd.DataFrame) -> pd.DataFrame:
    """Build the customer table from validated customer rows.

    A missing or non-positive first-order amount is imputed from the
    customer's oldest order: first for the same agency, then for any agency.

    Returns
    -------
    DataFrame with columns: biz_no, agency, customer_name, first_order_amount
    """
    by_exact, by_biz = _oldest_order_amounts(orders)

    records = []
    imputed = 0
    for row in rows:
        agency = normalise_agency_name(pick_value(row, _CUSTOMER_ALIASES["실적대리점"]))
        biz_no = pick_value(row, _CUSTOMER_ALIASES["사업자 등록번호"])

        first_order = parse_number(pick_value(row, _CUSTOMER_ALIASES["최초주문금액"]))
        if first_order <= 0:
            first_order = by_exact.get((biz_no, agency), 0.0) or by_biz.get(biz_no, 0.0)
            if first_order > 0:
                imputed += 1

        records.append({
            "biz_no": biz_no,
            "agency": agency,
            "customer_name": pick_value(row, _CUSTOMER_ALIASES["회사명"]),
            "first_order_amount": first_order,
        })

    df = pd.DataFrame(records, columns=CUSTOMER_COLUMNS)
    df["first_order_amount"] = df["first_order_amount"].astype(float)

    logger.info("Prepared %d customer rows (%d first-order amounts imputed)", len(df), imputed)
    return df


def prepare_products(rows: list[dict]) -> pd.DataFrame:
    """Build the product line table from validated product rows.

    Returns
    -------
    DataFrame with columns:
        order_no, mid_category, quantity, sales_amount, is_new_product
    """
    records = []
    for row in rows:
        flag = pick_value(row, _PRODUCT_ALIASES["신제품구분"]).upper()
        records.append({
            "order_no": pick_value(row, _PRODUCT_ALIASES["수주번호"]),
            "mid_category": pick_value(row, _PRODUCT_ALIASES["카테고리(중분류)"]),
            "quantity": parse_number(pick_value(row, _PRODUCT_ALIASES["수량"])),
            "sales_amount": parse_number(pick_value(row, _PRODUCT_ALIASES["수주금액"])),
            "is_new_product": flag in NEW_PRODUCT_FLAGS,
        })

    df = pd.DataFrame(records, columns=PRODUCT_COLUMNS)
    df["quantity"] = df["quantity"].astype(float)
    df["sales_amount"] = df["sales_amount"].astype(float)
    df["is_new_product"] = df["is_new_product"].astype(bool)

    logger.info("Prepared %d product rows", len(df))
    return df


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------

def build_analysis_dataset(
    orders: pd.DataFrame,
    customers: pd.DataFrame,
    products: pd.DataFrame,
) -> AnalysisDataset:
    """Join the three prepared tables into one consistent dataset.

    Rules
    -----
    - Orders: positive amount and non-empty order_no, biz_no and agency.
    - Customers: only those matching a kept order on (biz_no, agency);
      duplicates collapse to the last customer row for that key.
    - Products: only lines whose order_no belongs to a kept order.
    """
    valid_orders = orders[
        (orders["order_amount"] > 0)
        & (orders["order_no"] != "")
        & (orders["biz_no"] != "")
        & (orders["agency"] != "")
    ].reset_index(drop=True)

    keyed_customers = customers[(customers["biz_no"] != "") & (customers["agency"] != "")]
    keyed_customers = keyed_customers.drop_duplicates(_CUSTOMER_KEY, keep="last")

    order_keys = valid_orders[_CUSTOMER_KEY].drop_duplicates()
    matched_customers = order_keys.merge(keyed_customers, on=_CUSTOMER_KEY, how="inner")
    matched_customers = matched_customers[CUSTOMER_COLUMNS].reset_index(drop=True)

    known_orders = set(valid_orders["order_no"])
    filtered_products = products[products["order_no"].isin(known_orders)].reset_index(drop=True)

    dataset = AnalysisDataset(
        orders=valid_orders,
        customers=matched_customers,
        products=filtered_products,
    )
    logger.info("Built analysis dataset: %s", dataset.counts())
    return dataset


def build_dataset_from_rows(
    order_rows: list[dict],
    customer_rows: list[dict],
    product_rows: list[dict],
) -> AnalysisDataset:
    """Prepare and merge validated rows of all three sources."""
    orders = prepare_orders(order_rows)
    customers = prepare_customers(customer_rows, orders)
    products = prepare_products(product_rows)
    return build_analysis_dataset(orders, customers, products)
