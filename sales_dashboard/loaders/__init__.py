"""Data ingestion loaders for the sales CSV exports.

default_files is not re-exported here: it depends on the transforms
module, which itself imports from this package.
"""

from .csv_decoder import CsvDecodeError, decode_csv_bytes, load_csv
from .schema import SchemaError, validate_csv_rows, pick_value

__all__ = [
    "CsvDecodeError",
    "decode_csv_bytes",
    "load_csv",
    "SchemaError",
    "validate_csv_rows",
    "pick_value",
]
