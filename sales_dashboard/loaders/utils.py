"""
Shared utilities for data ingestion: header normalisation, number and date
coercion for the string cells produced by the CSV decoder.
"""

import logging
import re
import unicodedata
from typing import Any

import pandas as pd

logger = logging.getLogger(__name__)

_HEADER_QUOTES = re.compile(r"[\"'`]")
_HEADER_PUNCT = re.compile(r"[\s_()\[\]{}\-/]")


def normalise_header(header: Any) -> str:
    """Reduce a column header to a comparison key.

    Strips a BOM, quotes, whitespace, underscores, brackets, hyphens and
    slashes, then lowercases. "사업자 등록번호" and "사업자등록번호" compare
    equal, as do "Order_No" and "orderno".
    """
    s = str(header)
    if s.startswith("\ufeff"):
        s = s[1:]
    s = _HEADER_QUOTES.sub("", s)
    s = _HEADER_PUNCT.sub("", s)
    return s.strip().lower()


def normalise_file_name(name: str) -> str:
    """NFC-normalise, lowercase and drop whitespace, underscores and hyphens.

    macOS stores Hangul file names decomposed (NFD), so matching keywords
    against directory listings needs the NFC form.
    """
    s = unicodedata.normalize("NFC", name).lower()
    s = re.sub(r"\s+", "", s)
    return re.sub(r"[_\-]", "", s)


def normalise_label(value: Any) -> str:
    """Remove all whitespace from a region or member-type label."""
    return re.sub(r"\s+", "", str(value or "")).strip()


def parse_number(val: Any) -> float:
    """Coerce an amount cell to float.

    Thousands separators are removed. Blank or non-numeric values return 0.0
    so that a bad cell never drops an order from the totals.
    """
    if val is None:
        return 0.0
    if isinstance(val, (int, float)):
        return 0.0 if pd.isna(val) else float(val)

    s = str(val).replace(",", "").strip()
    if not s:
        return 0.0
    try:
        result = float(s)
    except ValueError:
        logger.debug("Non-numeric amount: %r", val)
        return 0.0
    # inf / nan spelled out in a cell are not amounts
    if pd.isna(result) or result in (float("inf"), float("-inf")):
        return 0.0
    return result


def parse_date(val: Any) -> pd.Timestamp | None:
    """Parse a date cell such as "2024.03.15", "2024-03-15" or "2024/3/15".

    Dots are read as dashes. Returns None for blank or unparseable values.
    """
    if val is None:
        return None
    if isinstance(val, pd.Timestamp):
        return None if pd.isna(val) else val

    s = str(val).strip().replace(".", "-").rstrip("-")
    if not s:
        return None
    try:
        ts = pd.Timestamp(s)
    except (ValueError, TypeError):
        logger.debug("Could not parse date value: %s", val)
        return None
    if pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert(None)
    return ts
