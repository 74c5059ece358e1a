"""
SQLite store for approved purchase orders.

Acts as the batch pipeline's sync collaborator: every order approved in a
batch is written to a single database file (output/pipeline.db) that:

  - Keeps the full parsed order as JSON alongside denormalised key fields
  - Prices each line with the current pricing rules at approval time
  - Records every approval / deletion in an audit log

Status values
-------------
  approved   Written by the batch pipeline; awaiting downstream product sync.
  synced     Downstream sync confirmed (set by the external sync job).
"""
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from models.pricing import PricingRule
from models.purchase_order import ParsedPurchaseOrder
from models.result import SyncResult
from .pricing import price_order
from .sink import OrderSink

logger = logging.getLogger(__name__)

STATUS_APPROVED = "approved"
STATUS_SYNCED   = "synced"
ALL_STATUSES    = {STATUS_APPROVED, STATUS_SYNCED}

_SCHEMA = """
CREATE TABLE IF NOT EXISTS approved_orders (
    job_id              TEXT PRIMARY KEY,
    status              TEXT NOT NULL DEFAULT 'approved',

    -- Key fields (denormalised for fast filtering / sorting)
    supplier            TEXT NOT NULL,
    po_number           TEXT NOT NULL,
    po_date             TEXT,
    total_items         REAL NOT NULL DEFAULT 0,
    total_value         REAL NOT NULL DEFAULT 0,
    average_confidence  REAL NOT NULL DEFAULT 0,

    -- Full ParsedPurchaseOrder serialised as JSON
    order_data          TEXT NOT NULL,

    -- Priced lines (list of PricedItem) at approval time
    priced_items        TEXT,

    -- Timestamps (ISO-8601 strings)
    approved_at         TEXT NOT NULL,
    synced_at           TEXT
);

CREATE INDEX IF NOT EXISTS idx_orders_status      ON approved_orders (status);
CREATE INDEX IF NOT EXISTS idx_orders_approved_at ON approved_orders (approved_at DESC);
CREATE INDEX IF NOT EXISTS idx_orders_supplier    ON approved_orders (supplier);
CREATE INDEX IF NOT EXISTS idx_orders_po_number   ON approved_orders (po_number);

CREATE TABLE IF NOT EXISTS audit_log (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    job_id      TEXT    NOT NULL,
    timestamp   TEXT    NOT NULL,   -- ISO-8601 UTC
    action      TEXT    NOT NULL,   -- approved | status_changed | deleted
    actor       TEXT    NOT NULL DEFAULT 'system',
    detail      TEXT                -- optional JSON blob with action-specific context
);

CREATE INDEX IF NOT EXISTS idx_audit_job       ON audit_log (job_id);
CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log (timestamp DESC);
"""


class Database(OrderSink):
    """Thin wrapper around an SQLite database file of approved orders."""

    def __init__(
        self,
        db_path: Path,
        rules: Optional[Iterable[PricingRule]] = None,
        category_mapper=None,
    ) -> None:
        self.db_path = db_path
        self.rules: list[PricingRule] = list(rules or [])
        self.category_mapper = category_mapper
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    @contextmanager
    def _conn(self):
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._conn() as conn:
            conn.executescript(_SCHEMA)
        logger.debug("Database schema ready: %s", self.db_path)

    # ------------------------------------------------------------------
    # OrderSink
    # ------------------------------------------------------------------

    def sync(self, job_id: str, order: ParsedPurchaseOrder) -> SyncResult:
        """Store an approved order.  Database errors are reported, not raised."""
        try:
            self.upsert_order(job_id, order)
        except sqlite3.Error as e:
            logger.error("Failed to store order %s: %s", job_id, e)
            return SyncResult(ok=False, error=str(e))
        return SyncResult(ok=True, reference=job_id)

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def upsert_order(self, job_id: str, order: ParsedPurchaseOrder) -> str:
        """
        Insert or replace an approved order, pricing its lines with the
        store's rules.  Returns the assigned status.
        """
        priced = price_order(order, self.rules, self.category_mapper)
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO approved_orders (
                    job_id, status,
                    supplier, po_number, po_date,
                    total_items, total_value, average_confidence,
                    order_data, priced_items, approved_at
                ) VALUES (
                    :job_id, :status,
                    :supplier, :po_number, :po_date,
                    :total_items, :total_value, :average_confidence,
                    :order_data, :priced_items, :approved_at
                )
                ON CONFLICT(job_id) DO UPDATE SET
                    status             = excluded.status,
                    supplier           = excluded.supplier,
                    po_number          = excluded.po_number,
                    po_date            = excluded.po_date,
                    total_items        = excluded.total_items,
                    total_value        = excluded.total_value,
                    average_confidence = excluded.average_confidence,
                    order_data         = excluded.order_data,
                    priced_items       = excluded.priced_items,
                    approved_at        = excluded.approved_at,
                    synced_at          = NULL
                """,
                {
                    "job_id":             job_id,
                    "status":             STATUS_APPROVED,
                    "supplier":           order.supplier,
                    "po_number":          order.po_number,
                    "po_date":            order.date,
                    "total_items":        order.total_items,
                    "total_value":        order.total_value,
                    "average_confidence": order.average_confidence,
                    "order_data":         order.model_dump_json(),
                    "priced_items":       json.dumps([p.model_dump() for p in priced]),
                    "approved_at":        datetime.now(timezone.utc).isoformat(),
                },
            )

        logger.info("DB upserted: %s  po=%s  supplier=%s", job_id, order.po_number, order.supplier)
        self.log_audit(job_id, "approved", detail={"po_number": order.po_number})
        return STATUS_APPROVED

    def update_status(self, job_id: str, status: str) -> bool:
        """
        Set the status of an order.  Records synced_at when moving to
        'synced'.  Returns True if the record was found.
        """
        if status not in ALL_STATUSES:
            raise ValueError(f"Invalid status {status!r}. Must be one of {ALL_STATUSES}")

        with self._conn() as conn:
            if status == STATUS_SYNCED:
                conn.execute(
                    "UPDATE approved_orders SET status=?, synced_at=? WHERE job_id=?",
                    (status, datetime.now(timezone.utc).isoformat(), job_id),
                )
            else:
                conn.execute(
                    "UPDATE approved_orders SET status=?, synced_at=NULL WHERE job_id=?",
                    (status, job_id),
                )
            changed = conn.execute("SELECT changes()").fetchone()[0]

        if changed:
            self.log_audit(job_id, "status_changed", detail={"status": status})
        return changed > 0

    def delete_order(self, job_id: str) -> bool:
        """Delete an approved order record entirely."""
        with self._conn() as conn:
            conn.execute("DELETE FROM approved_orders WHERE job_id = ?", (job_id,))
            deleted = conn.execute("SELECT changes()").fetchone()[0] > 0
        if deleted:
            self.log_audit(job_id, "deleted")
        return deleted

    def log_audit(
        self,
        job_id: str,
        action: str,
        actor: str = "system",
        detail: Optional[dict] = None,
    ) -> None:
        """Append one entry to the audit log."""
        with self._conn() as conn:
            conn.execute(
                """INSERT INTO audit_log (job_id, timestamp, action, actor, detail)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    job_id,
                    datetime.now(timezone.utc).isoformat(),
                    action,
                    actor,
                    json.dumps(detail) if detail is not None else None,
                ),
            )

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get_order(self, job_id: str) -> Optional[dict]:
        """Return the full order record (all columns) or None."""
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM approved_orders WHERE job_id=?", (job_id,)
            ).fetchone()
        return dict(row) if row else None

    def load_order(self, job_id: str) -> Optional[ParsedPurchaseOrder]:
        """Return the stored order as a model, or None."""
        record = self.get_order(job_id)
        if record is None:
            return None
        return ParsedPurchaseOrder.model_validate_json(record["order_data"])

    def list_orders(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 500,
        offset: int = 0,
    ) -> list[dict]:
        """
        Return order summaries (no JSON blobs) ordered newest-first.

        Args:
            status:  Filter by status value, or None for all.
            search:  Case-insensitive substring match on po_number or supplier.
            limit:   Max rows to return.
            offset:  Pagination offset.
        """
        clauses: list[str] = []
        params: list = []

        if status:
            clauses.append("status = ?")
            params.append(status)
        if search:
            clauses.append("(po_number LIKE ? OR supplier LIKE ?)")
            like = f"%{search}%"
            params.extend([like, like])

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.extend([limit, offset])

        with self._conn() as conn:
            rows = conn.execute(
                f"""
                SELECT
                    job_id, status, supplier, po_number, po_date,
                    total_items, total_value, average_confidence,
                    approved_at, synced_at
                FROM approved_orders
                {where}
                ORDER BY approved_at DESC
                LIMIT ? OFFSET ?
                """,
                params,
            ).fetchall()

        return [dict(r) for r in rows]

    def get_stats(self) -> dict:
        """Return aggregate counts by status plus totals."""
        with self._conn() as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total,
                    SUM(CASE WHEN status = 'approved' THEN 1 ELSE 0 END) AS approved,
                    SUM(CASE WHEN status = 'synced'   THEN 1 ELSE 0 END) AS synced,
                    SUM(total_value)   AS total_value,
                    SUM(total_items)   AS total_items,
                    MAX(approved_at)   AS last_approved
                FROM approved_orders
                """
            ).fetchone()
        return dict(row) if row else {}

    def get_audit_log(self, job_id: str) -> list[dict]:
        """Return all audit entries for one order, oldest first."""
        with self._conn() as conn:
            rows = conn.execute(
                """SELECT id, timestamp, action, actor, detail
                   FROM audit_log WHERE job_id = ?
                   ORDER BY timestamp ASC, id ASC""",
                (job_id,),
            ).fetchall()
        return [dict(r) for r in rows]
