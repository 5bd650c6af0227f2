"""
Loader for the default data directory.

The directory holds the three ERP exports (orders, customers, product
lines) under loosely conventional names such as "매출_수주 데이터.csv" or
"customers.csv". Each known export is parsed with encoding/delimiter hints
first and falls back to the full heuristic decoder.

Parsed datasets are cached per file signature (name, size, mtime), so
repeated loads of an unchanged directory skip parsing.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from ..config import DATA_DIR, DEFAULT_FILE_KEYWORDS, DEFAULT_PARSE_HINTS, SOURCE_TYPES
from ..transforms import AnalysisDataset, build_dataset_from_rows
from .csv_decoder import CsvDecodeError, decode_csv_bytes
from .schema import SchemaError, validate_csv_rows
from .utils import normalise_file_name

logger = logging.getLogger(__name__)


@dataclass
class DefaultData:
    dataset: AnalysisDataset
    agencies: list[str]
    files: dict[str, str]
    signature: str = field(default="", repr=False)

    def counts(self) -> dict[str, int]:
        return self.dataset.counts()


_cache: DefaultData | None = None


def find_csv_file(files: list[str], keywords: list[str]) -> str | None:
    """First file whose normalised name contains any normalised keyword."""
    for name in files:
        normalised = normalise_file_name(name)
        if any(normalise_file_name(keyword) in normalised for keyword in keywords):
            return name
    return None


def parse_validated_rows(buffer: bytes, source: str) -> list[dict]:
    """Decode and validate one export, trying the source's parse hints first."""
    hints = DEFAULT_PARSE_HINTS.get(source, {})
    try:
        rows = decode_csv_bytes(buffer, exhaustive=False, **hints)
        return validate_csv_rows(rows, source)
    except (CsvDecodeError, SchemaError) as exc:
        logger.info("Hinted parse of %s failed (%s); retrying with full detection", source, exc)

    rows = decode_csv_bytes(buffer)
    return validate_csv_rows(rows, source)


def _signature(paths: list[Path]) -> str:
    parts = []
    for path in paths:
        stat = path.stat()
        parts.append(f"{path.name}:{stat.st_size}:{int(stat.st_mtime * 1000)}")
    return "|".join(parts)


def load_default_dataset(directory: str | Path = DATA_DIR) -> DefaultData:
    """Locate, parse and merge the three exports in a directory.

    Returns
    -------
    DefaultData with the merged dataset, sorted agency names and the file
    chosen for each source.

    Raises
    ------
    FileNotFoundError
        If the directory is missing or any of the three exports is not found.
    CsvDecodeError, SchemaError
        If an export cannot be parsed or lacks required columns.
    """
    global _cache

    directory = Path(directory)
    if not directory.is_dir():
        raise FileNotFoundError(f"Data directory not found: {directory}")

    csv_files = sorted(
        entry.name for entry in directory.iterdir()
        if entry.is_file() and entry.name.lower().endswith(".csv")
    )

    files = {
        source: find_csv_file(csv_files, DEFAULT_FILE_KEYWORDS[source])
        for source in SOURCE_TYPES
    }
    missing = [source for source, name in files.items() if name is None]
    if missing:
        raise FileNotFoundError(
            f"Could not find the {', '.join(missing)} CSV in {directory}. "
            f"Files present: {csv_files or '(none)'}"
        )

    paths = [directory / files[source] for source in SOURCE_TYPES]
    signature = _signature(paths)
    if _cache is not None and _cache.signature == signature:
        logger.info("Reusing cached default dataset for %s", directory)
        return _cache

    rows = {}
    for source, path in zip(SOURCE_TYPES, paths):
        try:
            buffer = path.read_bytes()
        except OSError:
            logger.exception("Failed to read %s export: %s", source, path)
            raise
        rows[source] = parse_validated_rows(buffer, source)
        logger.info("Loaded %d %s rows from %s", len(rows[source]), source, path)

    dataset = build_dataset_from_rows(rows["orders"], rows["customers"], rows["products"])
    agencies = sorted(dataset.orders["agency"].unique().tolist())

    _cache = DefaultData(dataset=dataset, agencies=agencies, files=files, signature=signature)
    return _cache


def clear_cache() -> None:
    global _cache
    _cache = None
