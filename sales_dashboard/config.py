"""
Configuration: decoder candidates, column alias tables, agency registry,
session settings, constants.

COLUMN_ALIASES maps each source type to its canonical column labels and the
header spellings accepted for each of them. Canonical labels are the
column names of the Korean ERP exports the dashboard was built around.
"""

import tempfile
from pathlib import Path

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
DATA_DIR = Path(__file__).resolve().parent.parent / "docs"

SESSION_DIR = Path(tempfile.gettempdir()) / "sales-dashboard-sessions"
SESSION_TTL_SECONDS = 2 * 60 * 60

# ---------------------------------------------------------------------------
# CSV decoder candidates (priority order)
# ---------------------------------------------------------------------------
ENCODING_CANDIDATES: tuple[str, ...] = ("utf-8", "euc-kr", "cp949", "utf-16-le", "utf-16-be")
DELIMITER_CANDIDATES: tuple[str, ...] = (",", ";", "\t", "|", "，")

# ZIP local-file header; every XLSX workbook starts with it
ZIP_MAGIC = b"PK\x03\x04"

# ---------------------------------------------------------------------------
# Source schemas
# ---------------------------------------------------------------------------
SOURCE_TYPES = ("orders", "customers", "products")

REQUIRED_COLUMNS: dict[str, list[str]] = {
    "orders": ["수주번호", "사업자 등록번호", "실적대리점", "수주금액"],
    "customers": ["사업자 등록번호"],
    "products": ["수주번호"],
}

# Shared alias lists, reused across sources
_ORDER_NO = ["수주번호", "주문번호", "오더번호", "order_no", "orderno"]
_BIZ_NO = ["사업자 등록번호", "사업자등록번호", "사업자번호", "biz_no", "business_no"]

COLUMN_ALIASES: dict[str, dict[str, list[str]]] = {
    "orders": {
        "수주번호": _ORDER_NO,
        "사업자 등록번호": _BIZ_NO,
        "실적대리점": ["실적대리점", "대리점", "대리점명", "영업대리점", "agency", "agency_name"],
        "수주금액": ["수주금액", "주문금액", "매출금액", "합계금액", "order_amount", "sales_amount"],
        "기준일자": ["기준일자", "기준일자일", "주문일자", "수주일자", "일자", "date", "order_date"],
        "시": ["시", "시도", "광역시도", "city"],
        "구": ["구", "시군구", "군구", "district"],
        "동": ["동", "읍면동", "행정동", "법정동", "town"],
    },
    "customers": {
        "사업자 등록번호": _BIZ_NO,
        "실적대리점": ["실적대리점", "대리점", "대리점명", "agency", "agency_name"],
        "최초주문금액": ["최초주문금액", "최초주문 금액", "first_order_amount", "first_amount"],
        "회사명": ["회사명", "고객명", "상호", "고객사명", "customer_name", "company_name"],
    },
    "products": {
        "수주번호": _ORDER_NO,
        "카테고리(중분류)": ["카테고리(중분류)", "카테고리중분류", "중분류", "품목중분류", "mid_category"],
        "수량": ["수량", "판매수량", "qty", "quantity"],
        "신제품구분": ["신제품구분", "신제품여부", "신제품", "new_product", "is_new_product"],
        "수주금액": ["수주금액", "주문금액", "품목금액", "amount", "sales_amount"],
    },
}

# Number of leading rows scanned when collecting headers
HEADER_SAMPLE_ROWS = 20

NEW_PRODUCT_FLAGS = {"신제품", "Y", "1", "TRUE"}

# ---------------------------------------------------------------------------
# Default data directory: file name keywords and parse hints per source
# ---------------------------------------------------------------------------
DEFAULT_FILE_KEYWORDS: dict[str, list[str]] = {
    "orders": ["매출_수주", "매출수주", "orders", "order"],
    "customers": ["고객 마스터", "고객마스터", "customers", "customer"],
    "products": ["제품 판매", "제품판매", "products", "product"],
}

DEFAULT_PARSE_HINTS: dict[str, dict] = {
    "orders": {
        "encodings": ["utf-8", "utf-16-le"],
        "delimiters": [",", "\t"],
    },
    "customers": {
        "encodings": ["utf-16-le", "cp949", "utf-8"],
        "delimiters": ["\t", ","],
        "include_matrix": False,
    },
    "products": {
        "encodings": ["utf-16-le", "cp949", "utf-8"],
        "delimiters": ["\t", ","],
        "include_matrix": False,
    },
}

# ---------------------------------------------------------------------------
# Agency registry
# ---------------------------------------------------------------------------
# Agencies that were merged or renamed; orders are booked to the successor
AGENCY_ALIAS_MAP: dict[str, str] = {
    "DM대전둔산2": "DM대구칠성",
    "DM송파오금": "DM공간플러스",
}

# Top-performing agencies used as the "club1000" benchmark group
CLUB_1000_AGENCIES: tuple[str, ...] = (
    "DM대구칠성",
    "DM공간플러스",
    "DM부산센텀",
    "DM송파문정",
    "DM오피스그룹",
    "DM에스엔피",
    "DM더라이즈",
    "DM드림OC",
)

BENCHMARK_MODES = ("overall", "club1000")

# ---------------------------------------------------------------------------
# KPI thresholds
# ---------------------------------------------------------------------------
MIN_FIRST_ORDER_AMOUNT_FOR_GROWTH_SCATTER = 1_000_000
MIN_PURCHASE_COUNT_FOR_GROWTH_SCATTER = 2
HIGH_POTENTIAL_MULTIPLIER = 2.0
HIGH_POTENTIAL_PERCENTILE = 0.7
TONE_NEUTRAL_BAND = 0.5
TOP_GROWTH_CUSTOMERS = 20
TOP_REGIONS = 5

# Growth segments (growth / transition / retention) over the scatter points
GROWTH_SEGMENT_DEFAULT_AVERAGE = 3.0
GROWTH_SEGMENT_CONVERSION_LOWER = 1.5
GROWTH_SEGMENT_RETENTION_PIVOT = 2.2
GROWTH_SEGMENT_TOP_CUSTOMERS = 5

# Metro prefix -> official province/metro name
METRO_PREFIXES: list[tuple[str, str]] = [
    ("부산", "부산광역시"),
    ("대전", "대전광역시"),
    ("대구", "대구광역시"),
    ("광주", "광주광역시"),
    ("서울", "서울특별시"),
    ("인천", "인천광역시"),
    ("울산", "울산광역시"),
    ("세종", "세종특별자치시"),
    ("경기", "경기도"),
    ("강원", "강원특별자치도"),
    ("충북", "충청북도"),
    ("충남", "충청남도"),
    ("전북", "전라북도"),
    ("전남", "전라남도"),
    ("경북", "경상북도"),
    ("경남", "경상남도"),
    ("제주", "제주특별자치도"),
]

# Agencies based in a metro also serve the surrounding provinces
REGION_SCOPE_EXTENSIONS: dict[str, list[str]] = {
    "부산광역시": ["부산광역시", "경상남도"],
    "대전광역시": ["대전광역시", "충청북도", "충청남도"],
    "대구광역시": ["대구광역시", "경상북도"],
    "광주광역시": ["광주광역시", "전라북도", "전라남도"],
}

UNKNOWN_REGION = "기타"

# ---------------------------------------------------------------------------
# Insight presets (static text used when no generated insight is available)
# ---------------------------------------------------------------------------
INSIGHT_PRESETS: dict[str, dict] = {
    "geo_interpretation": {
        "title": "Regional sales distribution",
        "objective": "Interpret the regional distribution pattern",
        "focus": ["concentration in core regions", "room in low-share regions", "deviation from average"],
        "output_hint": "3-4 interpretive bullets",
    },
    "geo_insight": {
        "title": "Regional sales actions",
        "objective": "Propose region-based actions",
        "focus": ["core region retention", "expansion region conversion", "action priority"],
        "output_hint": "3-4 actionable bullets",
    },
    "region_interpretation": {
        "title": "Top 5 core regions",
        "objective": "Interpret the structure of the agency's core regions",
        "focus": ["top 5 by sales share", "regions with extra sales potential"],
        "output_hint": "3-4 interpretive bullets",
    },
    "growth_interpretation": {
        "title": "Growth customer bubble chart",
        "objective": "Interpret the overall and selected-agency customer distribution",
        "focus": ["overall distribution", "selected agency distribution", "position against averages"],
        "output_hint": "2 overall bullets and 2 agency bullets",
    },
    "cross_sell_interpretation": {
        "title": "Cross-selling ratio",
        "objective": "Interpret combined versus single-category purchases",
        "focus": ["cross-sell share", "portfolio maturity", "improvement points"],
        "output_hint": "3-4 interpretive bullets",
    },
}
