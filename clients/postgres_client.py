"""
PostgreSQL access for the ledger.

psycopg2 ThreadedConnectionPool behind a small query API. Outside
transaction() each query borrows a connection and autocommits its own work.
Inside transaction() every query on the calling thread runs on one pinned
connection, so a SELECT ... FOR UPDATE keeps its lock until the block exits.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Tuple

import psycopg2
import psycopg2.extensions
import psycopg2.extras
import psycopg2.pool

logger = logging.getLogger(__name__)

Params = Tuple | Dict | None

_adapters_lock = threading.Lock()
_adapters_registered = False


def _register_adapters() -> None:
    """uuid <-> UUID and jsonb -> Python objects, once per process."""
    global _adapters_registered
    with _adapters_lock:
        if not _adapters_registered:
            psycopg2.extras.register_uuid()
            psycopg2.extras.register_default_jsonb(globally=True)
            _adapters_registered = True


class PostgresClient:
    """
    Pooled client with per-thread transaction pinning.

    Usage:
        db = PostgresClient(database_url)

        with db.transaction():
            invoice = db.execute_single(
                "SELECT * FROM invoices WHERE id = %s FOR UPDATE", (invoice_id,)
            )
            db.execute("UPDATE invoices SET amount_paid_cents = %s WHERE id = %s", (paid, invoice_id))
    """

    def __init__(self, database_url: str, min_connections: int = 1, max_connections: int = 10):
        _register_adapters()
        self._pool = psycopg2.pool.ThreadedConnectionPool(
            minconn=min_connections,
            maxconn=max_connections,
            dsn=database_url,
            connect_timeout=30,
            application_name="careledger",
        )
        self._local = threading.local()
        logger.info(f"PostgreSQL pool ready ({min_connections}-{max_connections} connections)")

    @property
    def in_transaction(self) -> bool:
        return getattr(self._local, "conn", None) is not None

    @contextmanager
    def _connection(self) -> Iterator[psycopg2.extensions.connection]:
        pinned = getattr(self._local, "conn", None)
        if pinned is not None:
            yield pinned
            return

        conn = self._pool.getconn()
        try:
            yield conn
        finally:
            self._pool.putconn(conn)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Run the enclosed queries as one transaction.

        Commits on normal exit, rolls back if the block raises. A nested
        call joins the outer transaction.
        """
        if self.in_transaction:
            yield
            return

        with self._connection() as conn:
            self._local.conn = conn
            try:
                yield
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                self._local.conn = None

    def execute(self, query: str, params: Params = None) -> List[Dict[str, Any]]:
        """Run a statement and return its rows as dicts ([] when it returns none)."""
        with self._connection() as conn:
            try:
                with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                    cur.execute(query, params)
                    rows = [dict(row) for row in cur.fetchall()] if cur.description else []
            except Exception:
                if not self.in_transaction:
                    conn.rollback()
                raise

            if not self.in_transaction:
                conn.commit()
            return rows

    def execute_single(self, query: str, params: Params = None) -> Dict[str, Any] | None:
        """First row, or None."""
        rows = self.execute(query, params)
        return rows[0] if rows else None

    def execute_scalar(self, query: str, params: Params = None) -> Any:
        """First column of the first row, or None."""
        row = self.execute_single(query, params)
        return next(iter(row.values())) if row else None

    def close(self) -> None:
        self._pool.closeall()
        logger.info("PostgreSQL pool closed")
