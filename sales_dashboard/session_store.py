"""
Session store: keeps merged datasets under an opaque session id for a fixed
time-to-live.

Sessions live in memory and are mirrored to JSON files so they survive a
process restart. Every create/get sweeps expired sessions from both.
"""

import json
import logging
import re
import time
import uuid
from pathlib import Path

import pandas as pd

from .config import SESSION_DIR, SESSION_TTL_SECONDS
from .transforms import (
    CUSTOMER_COLUMNS,
    ORDER_COLUMNS,
    PRODUCT_COLUMNS,
    AnalysisDataset,
)

logger = logging.getLogger(__name__)

_SESSION_ID = re.compile(r"^[0-9a-f]{32}$")

_TABLES = {
    "orders": ORDER_COLUMNS,
    "customers": CUSTOMER_COLUMNS,
    "products": PRODUCT_COLUMNS,
}


def _frame_to_payload(df: pd.DataFrame) -> dict:
    # Timestamps become ISO strings, NaT becomes null
    return json.loads(df.to_json(orient="split", date_format="iso", index=False))


def _frame_from_payload(payload: dict, columns: list[str]) -> pd.DataFrame:
    df = pd.DataFrame(payload["data"], columns=payload["columns"])
    return df.reindex(columns=columns)


def serialise_dataset(dataset: AnalysisDataset) -> dict:
    return {name: _frame_to_payload(getattr(dataset, name)) for name in _TABLES}


def deserialise_dataset(payload: dict) -> AnalysisDataset:
    frames = {
        name: _frame_from_payload(payload[name], columns)
        for name, columns in _TABLES.items()
    }

    orders = frames["orders"]
    orders["order_amount"] = orders["order_amount"].astype(float)
    # Older pandas writes naive timestamps with a "Z" suffix
    orders["order_date"] = pd.to_datetime(orders["order_date"], utc=True).dt.tz_localize(None)

    customers = frames["customers"]
    customers["first_order_amount"] = customers["first_order_amount"].astype(float)

    products = frames["products"]
    products["quantity"] = products["quantity"].astype(float)
    products["sales_amount"] = products["sales_amount"].astype(float)
    products["is_new_product"] = products["is_new_product"].astype(bool)

    return AnalysisDataset(orders=orders, customers=customers, products=products)


class SessionStore:
    """TTL-keyed dataset cache with disk persistence.

    Parameters
    ----------
    ttl_seconds : Session lifetime, measured from creation.
    directory : Where session JSON files are written.
    clock : Time source returning seconds; injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = SESSION_TTL_SECONDS,
        directory: Path | str = SESSION_DIR,
        clock=time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self.directory = Path(directory)
        self._clock = clock
        self._sessions: dict[str, tuple[float, AnalysisDataset]] = {}

    def _path(self, session_id: str) -> Path:
        return self.directory / f"{session_id}.json"

    def _expired(self, created_at: float) -> bool:
        return self._clock() - created_at > self.ttl_seconds

    def _persist(self, session_id: str, created_at: float, dataset: AnalysisDataset) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        payload = {"created_at": created_at, "dataset": serialise_dataset(dataset)}
        self._path(session_id).write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")

    def _delete_persisted(self, session_id: str) -> None:
        self._path(session_id).unlink(missing_ok=True)

    def _read_persisted(self, session_id: str) -> tuple[float, AnalysisDataset] | None:
        path = self._path(session_id)
        if not path.exists():
            return None

        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            return float(payload["created_at"]), deserialise_dataset(payload["dataset"])
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Unreadable session file %s: %s", path, exc)
            return None

    def sweep_expired(self) -> int:
        """Remove expired sessions from memory and disk. Returns the count removed."""
        removed = 0

        for session_id, (created_at, _) in list(self._sessions.items()):
            if self._expired(created_at):
                del self._sessions[session_id]
                self._delete_persisted(session_id)
                removed += 1

        if not self.directory.exists():
            return removed

        for path in self.directory.glob("*.json"):
            session_id = path.stem
            if session_id in self._sessions:
                continue
            persisted = self._read_persisted(session_id)
            if persisted is None or self._expired(persisted[0]):
                self._delete_persisted(session_id)
                removed += 1

        if removed:
            logger.debug("Swept %d expired sessions", removed)
        return removed

    def create(self, dataset: AnalysisDataset) -> str:
        """Store a dataset and return its new session id."""
        self.sweep_expired()

        session_id = uuid.uuid4().hex
        created_at = self._clock()
        self._sessions[session_id] = (created_at, dataset)
        self._persist(session_id, created_at, dataset)

        logger.info("Created session %s (%s)", session_id, dataset.counts())
        return session_id

    def get(self, session_id: str) -> AnalysisDataset | None:
        """Return the session's dataset, or None if unknown or expired."""
        self.sweep_expired()

        if not _SESSION_ID.match(session_id or ""):
            return None

        in_memory = self._sessions.get(session_id)
        if in_memory is not None:
            return in_memory[1]

        persisted = self._read_persisted(session_id)
        if persisted is None:
            return None

        if self._expired(persisted[0]):
            self._delete_persisted(session_id)
            return None

        self._sessions[session_id] = persisted
        return persisted[1]


_default_store: SessionStore | None = None


def get_default_store() -> SessionStore:
    global _default_store
    if _default_store is None:
        _default_store = SessionStore()
    return _default_store


def create_session(dataset: AnalysisDataset) -> str:
    return get_default_store().create(dataset)


def get_session(session_id: str) -> AnalysisDataset | None:
    return get_default_store().get(session_id)
