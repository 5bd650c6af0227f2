"""
Heuristic decoder for CSV exports of unknown encoding, delimiter and
header position.

Spreadsheet exports from the ERP arrive as CP949, UTF-8 or UTF-16 text,
separated by commas or tabs, sometimes with title lines above the real
table. Nothing in the file declares which, so every combination is tried:

    encoding  x  (auto delimiter + each forced delimiter)  x  strategy

Each combination that yields a usable table becomes a scored candidate and
the best candidate's rows are returned.

Strategies
----------
- header: the first row holds the column names.
- matrix: rows are read as a raw grid; the first row with at least two
  non-blank cells becomes the header, so leading title lines are skipped.
"""

import csv
import io
import logging
import re
from dataclasses import dataclass
from pathlib import Path

import pandas as pd

from ..config import DELIMITER_CANDIDATES, ENCODING_CANDIDATES, ZIP_MAGIC

logger = logging.getLogger(__name__)

Row = dict[str, str]

XLSX_MESSAGE = (
    "CSV parse error: the uploaded file looks like a zipped spreadsheet (XLSX), "
    "not CSV. Save it from the spreadsheet application as CSV and upload again."
)

_SEP_DIRECTIVE = re.compile(r"^sep=.+\n", re.IGNORECASE)
_READABLE = re.compile(r"[가-힣A-Za-z0-9\s_()\[\]{}\-/,.:]")

# Quality sample: first rows / first columns of each row
_SAMPLE_ROWS = 8
_SAMPLE_COLS = 6
_SNIFF_LINES = 20

_STRATEGY_RANK = {"header": 0, "matrix": 1}


class CsvDecodeError(ValueError):
    """Raised when no encoding/delimiter combination yields a usable table."""


@dataclass
class ParseCandidate:
    rows: list[Row]
    score: float
    strategy: str
    delimiter: str
    encoding: str = ""
    encoding_rank: int = 0
    sequence: int = 0

    def sort_key(self) -> tuple:
        # Ties: header over matrix, then encoding priority, then generation order
        return (-self.score, _STRATEGY_RANK[self.strategy], self.encoding_rank, self.sequence)


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def text_quality_score(text: str) -> int:
    """Score how human-readable a decoded text sample is.

    Readable characters (Hangul syllables, ASCII letters and digits,
    whitespace, common punctuation) count +1 each. Replacement characters
    and control characters count -12 each; both are what a wrong encoding
    leaves behind. An empty sample scores -1000.
    """
    if not text:
        return -1000

    replacement = 0
    control = 0
    readable = 0

    for ch in text:
        code = ord(ch)
        if ch == "\ufffd":
            replacement += 1
        elif code <= 8 or 11 <= code <= 12 or 14 <= code <= 31:
            control += 1
        elif _READABLE.match(ch):
            readable += 1

    return readable - replacement * 12 - control * 12


def rows_quality_score(rows: list[Row]) -> int:
    """Text quality of the header names plus the top-left corner of the data."""
    if not rows:
        return -1000

    header_text = " ".join(rows[0].keys())
    value_text = " ".join(
        value
        for row in rows[:_SAMPLE_ROWS]
        for value in list(row.values())[:_SAMPLE_COLS]
    )
    return text_quality_score(f"{header_text} {value_text}")


# ---------------------------------------------------------------------------
# Decoding helpers
# ---------------------------------------------------------------------------

def is_likely_xlsx(buffer: bytes) -> bool:
    """True when the buffer starts with the ZIP local-file header."""
    return buffer[:4] == ZIP_MAGIC


def normalise_text(text: str) -> str:
    """Strip BOM and Excel's ``sep=`` directive; canonicalise line endings."""
    if text.startswith("\ufeff"):
        text = text[1:]
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return _SEP_DIRECTIVE.sub("", text, count=1)


def decode_text(buffer: bytes, encoding: str) -> str | None:
    """Decode the whole buffer under one candidate encoding.

    Undecodable bytes become U+FFFD so the quality score can penalise them.
    Returns None if the codec is unavailable or the text is empty.
    """
    try:
        text = buffer.decode(encoding, errors="replace")
    except (LookupError, UnicodeError):
        logger.debug("Encoding %s unavailable, skipping", encoding)
        return None

    text = normalise_text(text)
    return text or None


def unique_headers(headers: list[str]) -> list[str]:
    """De-duplicate header names in order of appearance.

    Repeats get ``_2``, ``_3`` ... suffixes and blank names become
    ``col_<1-based index>``. ``["a", "a", "b"]`` -> ``["a", "a_2", "b"]``.
    """
    counts: dict[str, int] = {}
    used: set[str] = set()
    result = []

    for index, raw in enumerate(headers, start=1):
        base = raw.strip() or f"col_{index}"
        count = counts.get(base, 0) + 1
        name = base if count == 1 else f"{base}_{count}"
        # A literal "a_2" earlier in the row must not be shadowed
        while name in used:
            count += 1
            name = f"{base}_{count}"
        counts[base] = count
        used.add(name)
        result.append(name)

    return result


def _read_grid(text: str, delimiter: str, strict: bool) -> list[list[str]]:
    reader = csv.reader(io.StringIO(text), delimiter=delimiter, strict=strict)
    # Greedy blank-line skipping: rows of whitespace-only cells are dropped
    return [cells for cells in reader if any(cell.strip() for cell in cells)]


def _tokenize(text: str, delimiter: str) -> tuple[list[list[str]], int]:
    """Split text into a grid of cells.

    Returns the grid and the number of quoting errors. Malformed quotes are
    tolerated by re-reading non-strictly and counting one error.
    """
    try:
        return _read_grid(text, delimiter, strict=True), 0
    except csv.Error:
        return _read_grid(text, delimiter, strict=False), 1


def sniff_delimiter(text: str, delimiters: tuple[str, ...] = DELIMITER_CANDIDATES) -> str | None:
    """Guess the delimiter from the first lines, or None if undetectable."""
    sample = "\n".join(text.split("\n", _SNIFF_LINES)[:_SNIFF_LINES])
    try:
        dialect = csv.Sniffer().sniff(sample, delimiters="".join(delimiters))
    except csv.Error:
        return None
    return dialect.delimiter


# ---------------------------------------------------------------------------
# Parse strategies
# ---------------------------------------------------------------------------

def parse_with_header(
    text: str,
    delimiter: str | None = None,
    delimiters: tuple[str, ...] = DELIMITER_CANDIDATES,
) -> ParseCandidate | None:
    """Parse with the first row as header; None if the result is unusable.

    With ``delimiter=None`` the delimiter is sniffed; failing that, comma is
    used and the failed detection counts as a parse error.
    """
    errors = 0
    if delimiter is None:
        delimiter = sniff_delimiter(text, delimiters)
        if delimiter is None:
            delimiter = ","
            errors += 1

    try:
        grid, quote_errors = _tokenize(text, delimiter)
    except csv.Error as exc:
        logger.debug("Header parse with %r rejected: %s", delimiter, exc)
        return None
    errors += quote_errors

    if not grid:
        return None

    fields = [cell.strip() for cell in grid[0]]
    if len({field for field in fields if field}) < 2:
        return None
    fields = unique_headers(fields)

    mismatches = 0
    rows = []
    for cells in grid[1:]:
        if len(cells) != len(fields):
            mismatches += 1
        record = {
            field: cells[idx].strip() if idx < len(cells) else ""
            for idx, field in enumerate(fields)
        }
        if any(record.values()):
            rows.append(record)

    if not rows:
        return None

    score = (
        len(rows) * 10
        + len(fields) * 3
        - mismatches
        - errors * 2
        + rows_quality_score(rows)
    )
    return ParseCandidate(rows=rows, score=score, strategy="header", delimiter=delimiter)


def parse_with_matrix(text: str, delimiter: str) -> ParseCandidate | None:
    """Parse as a raw grid, locating the header row below any title lines."""
    try:
        grid, errors = _tokenize(text, delimiter)
    except csv.Error as exc:
        logger.debug("Matrix parse with %r rejected: %s", delimiter, exc)
        return None

    if len(grid) < 2:
        return None

    header_index = next(
        (idx for idx, cells in enumerate(grid) if sum(1 for c in cells if c.strip()) >= 2),
        None,
    )
    if header_index is None or header_index >= len(grid) - 1:
        return None

    headers = unique_headers(grid[header_index])
    if len(headers) < 2:
        return None

    rows = []
    for cells in grid[header_index + 1:]:
        record = {
            header: cells[idx].strip() if idx < len(cells) else ""
            for idx, header in enumerate(headers)
        }
        if any(record.values()):
            rows.append(record)

    if not rows:
        return None

    score = len(rows) * 8 + len(headers) * 3 - errors * 2 + rows_quality_score(rows)
    return ParseCandidate(rows=rows, score=score, strategy="matrix", delimiter=delimiter)


def _candidates_for_text(
    text: str,
    delimiters: tuple[str, ...],
    include_matrix: bool,
) -> list[ParseCandidate]:
    found = []

    auto = parse_with_header(text, None, delimiters)
    if auto is not None:
        found.append(auto)

    for delimiter in delimiters:
        header_candidate = parse_with_header(text, delimiter)
        if header_candidate is not None:
            found.append(header_candidate)

        if include_matrix:
            matrix_candidate = parse_with_matrix(text, delimiter)
            if matrix_candidate is not None:
                found.append(matrix_candidate)

    return found


def _describe_delimiter(delimiter: str) -> str:
    return "\\t" if delimiter == "\t" else delimiter


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------

def decode_csv_bytes(
    buffer: bytes,
    encodings: list[str] | tuple[str, ...] | None = None,
    delimiters: list[str] | tuple[str, ...] | None = None,
    include_matrix: bool = True,
    exhaustive: bool = True,
) -> list[Row]:
    """Decode a CSV byte buffer into the most plausible list of rows.

    Parameters
    ----------
    buffer : Raw file contents.
    encodings : Candidate encodings in priority order. Defaults to
        ENCODING_CANDIDATES.
    delimiters : Candidate delimiters. Defaults to DELIMITER_CANDIDATES.
    include_matrix : Also try the matrix (title-line tolerant) strategy.
    exhaustive : If False, stop after the first encoding that produces any
        candidate instead of scoring every encoding.

    Returns
    -------
    Non-empty list of rows (column name -> trimmed string value).

    Raises
    ------
    CsvDecodeError
        If the buffer is a zipped spreadsheet or nothing parses.
    """
    buffer = bytes(buffer)
    if is_likely_xlsx(buffer):
        raise CsvDecodeError(XLSX_MESSAGE)

    encodings = tuple(encodings or ENCODING_CANDIDATES)
    delimiters = tuple(delimiters or DELIMITER_CANDIDATES)

    candidates: list[ParseCandidate] = []
    for rank, encoding in enumerate(encodings):
        text = decode_text(buffer, encoding)
        if text is None:
            continue

        found = _candidates_for_text(text, delimiters, include_matrix)
        for candidate in found:
            candidate.encoding = encoding
            candidate.encoding_rank = rank
            candidate.sequence = len(candidates)
            candidates.append(candidate)

        logger.debug("Encoding %s produced %d candidates", encoding, len(found))
        if found and not exhaustive:
            break

    if not candidates:
        if is_likely_xlsx(buffer):
            raise CsvDecodeError(XLSX_MESSAGE)
        raise CsvDecodeError(
            "CSV parse error: could not recognise the file format. Check the encoding "
            f"({', '.join(encodings)}) and the delimiter "
            f"({' '.join(_describe_delimiter(d) for d in delimiters)})."
        )

    best = min(candidates, key=ParseCandidate.sort_key)
    logger.info(
        "Selected %s parse (encoding=%s, delimiter=%r, score=%.1f) from %d candidates",
        best.strategy, best.encoding, best.delimiter, best.score, len(candidates),
    )
    return best.rows


def rows_to_frame(rows: list[Row]) -> pd.DataFrame:
    """Build a string-typed DataFrame from decoded rows."""
    df = pd.DataFrame(rows)
    return df.fillna("").astype(str)


def load_csv(path: str, **hints) -> pd.DataFrame:
    """Read and decode a CSV file from disk.

    Keyword arguments are passed to decode_csv_bytes().

    Returns
    -------
    DataFrame with one string column per detected header.
    """
    try:
        buffer = Path(path).read_bytes()
    except OSError:
        logger.exception("Failed to read CSV file: %s", path)
        raise

    df = rows_to_frame(decode_csv_bytes(buffer, **hints))
    logger.info("Loaded %d rows from %s", len(df), path)
    return df
