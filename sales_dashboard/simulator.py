"""
Simulated ERP exports for the sales dashboard.

Generates orders, customer master and product line exports with the
column names, encodings and delimiters of the real ERP downloads. All
values are synthetic.
"""

import codecs
from pathlib import Path

import numpy as np
import pandas as pd

# ---------------------------------------------------------------------------
# Typical agency footprint: (agency, city, districts)
# ---------------------------------------------------------------------------
_AGENCIES = [
    ("DM대구칠성", "대구", ["북구", "중구", "수성구"]),
    ("DM공간플러스", "서울", ["송파구", "강남구", "강동구"]),
    ("DM부산센텀", "부산", ["해운대구", "수영구", "남구"]),
    ("DM송파문정", "서울", ["송파구", "강남구"]),
    ("DM광주첨단", "광주", ["광산구", "북구"]),
    ("DM수원영통", "경기", ["수원시 영통구", "용인시 기흥구"]),
    ("DM대전둔산", "대전", ["서구", "유성구"]),
]

# Retired agency name still present in older orders
_RETIRED_AGENCY = ("DM송파오금", "DM공간플러스")

_CATEGORIES = ["책상", "의자", "수납", "소파", "조명", "모니터암"]

_ORDER_COLUMNS = ["수주번호", "기준일자", "사업자 등록번호", "실적대리점", "수주금액", "시", "구", "동"]
_CUSTOMER_COLUMNS = ["사업자 등록번호", "회사명", "실적대리점", "최초주문금액"]
_PRODUCT_COLUMNS = ["수주번호", "카테고리(중분류)", "수량", "신제품구분", "수주금액"]

EXPORT_FILES = {
    "orders": ("매출_수주 데이터.csv", "utf-8", ","),
    "customers": ("고객 마스터 데이터.csv", "utf-16-le", "\t"),
    "products": ("제품 판매 데이터.csv", "cp949", "\t"),
}


def _biz_no(rng: np.random.Generator) -> str:
    a, b, c = rng.integers(100, 999), rng.integers(10, 99), rng.integers(10000, 99999)
    return f"{a}-{b}-{c}"


def generate_customers(n_customers: int = 60, seed: int = 42) -> pd.DataFrame:
    """Generate a simulated customer master export.

    About one in five customers has no first-order amount recorded, as in the
    real master data.
    """
    rng = np.random.default_rng(seed)
    rows = []

    for i in range(n_customers):
        agency = _AGENCIES[i % len(_AGENCIES)][0]
        first_amount = int(rng.lognormal(14.2, 0.6) // 1000 * 1000)
        rows.append({
            "사업자 등록번호": _biz_no(rng),
            "회사명": f"고객사{i + 1:03d}",
            "실적대리점": agency,
            "최초주문금액": "" if rng.random() < 0.2 else f"{first_amount:,}",
        })

    return pd.DataFrame(rows, columns=_CUSTOMER_COLUMNS)


def generate_orders(
    customers: pd.DataFrame,
    n_orders: int = 400,
    start_date: str = "2024-01-01",
    days: int = 365,
    seed: int = 42,
) -> pd.DataFrame:
    """Generate simulated order headers for the given customers."""
    rng = np.random.default_rng(seed + 1)
    footprint = {agency: (city, districts) for agency, city, districts in _AGENCIES}
    start = pd.Timestamp(start_date)
    rows = []

    for i in range(n_orders):
        customer = customers.iloc[int(rng.integers(0, len(customers)))]
        agency = customer["실적대리점"]
        city, districts = footprint[agency]

        # A few old orders were booked under the retired agency name
        if agency == _RETIRED_AGENCY[1] and rng.random() < 0.1:
            agency = _RETIRED_AGENCY[0]

        date = start + pd.Timedelta(days=int(rng.integers(0, days)))
        amount = int(rng.lognormal(14.5, 0.8) // 1000 * 1000)

        rows.append({
            "수주번호": f"SO{i + 1:06d}",
            "기준일자": date.strftime("%Y.%m.%d"),
            "사업자 등록번호": customer["사업자 등록번호"],
            "실적대리점": agency,
            "수주금액": f"{amount:,}",
            "시": city,
            "구": districts[int(rng.integers(0, len(districts)))],
            "동": "",
        })

    return pd.DataFrame(rows, columns=_ORDER_COLUMNS)


def generate_products(orders: pd.DataFrame, seed: int = 42) -> pd.DataFrame:
    """Generate one to three product lines per order, splitting its amount."""
    rng = np.random.default_rng(seed + 2)
    rows = []

    for _, order in orders.iterrows():
        total = float(str(order["수주금액"]).replace(",", ""))
        n_lines = int(rng.integers(1, 4))
        shares = rng.dirichlet(np.ones(n_lines))
        categories = rng.choice(_CATEGORIES, size=n_lines, replace=False)

        for category, share in zip(categories, shares):
            rows.append({
                "수주번호": order["수주번호"],
                "카테고리(중분류)": str(category),
                "수량": int(rng.integers(1, 20)),
                "신제품구분": "신제품" if rng.random() < 0.3 else "기존",
                "수주금액": int(round(total * share, -2)),
            })

    return pd.DataFrame(rows, columns=_PRODUCT_COLUMNS)


def generate_exports(seed: int = 42) -> dict[str, pd.DataFrame]:
    """Generate all three exports as DataFrames keyed by source type."""
    customers = generate_customers(seed=seed)
    orders = generate_orders(customers, seed=seed)
    products = generate_products(orders, seed=seed)
    return {"orders": orders, "customers": customers, "products": products}


def to_csv_bytes(df: pd.DataFrame, encoding: str = "utf-8", sep: str = ",") -> bytes:
    """Serialise an export the way the ERP download does.

    Little-endian UTF-16 exports carry a byte-order mark, as Excel's
    "Unicode text" does.
    """
    text = df.to_csv(sep=sep, index=False, lineterminator="\r\n")
    if encoding.lower() in ("utf-16", "utf-16-le"):
        return codecs.BOM_UTF16_LE + text.encode("utf-16-le")
    return text.encode(encoding)


def write_export_files(directory: str | Path, seed: int = 42) -> dict[str, Path]:
    """Write the three simulated exports into a directory.

    Returns a mapping of source type to the written path.
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    exports = generate_exports(seed)

    paths = {}
    for source, (name, encoding, sep) in EXPORT_FILES.items():
        path = directory / name
        path.write_bytes(to_csv_bytes(exports[source], encoding, sep))
        paths[source] = path

    return paths
