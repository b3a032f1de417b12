"""PostgreSQL key-value store backing the top riders cache.

Entries live in a single ``cache_entries`` table. Every operation is one
statement so a concurrent sweep and write cannot leave a torn value.

Connection tuning comes from the environment:

* ``DATABASE_URL``: libpq connection string (required)
* ``DB_CONNECT_TIMEOUT``: seconds, 10 when unset
* ``DB_KEEPALIVES``: ``0``/``false`` turns TCP keepalives off
* ``DB_KEEPALIVES_IDLE`` / ``_INTERVAL`` / ``_COUNT``: passed through when set
"""

import os
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import psycopg2
from psycopg2 import pool as pg_pool


_POOL: Optional[pg_pool.AbstractConnectionPool] = None

TABLE_DDL = """
CREATE TABLE IF NOT EXISTS cache_entries (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
)
"""

_KEEPALIVE_TUNABLES = ("IDLE", "INTERVAL", "COUNT")


def _int_setting(name: str) -> Optional[int]:
    raw = os.environ.get(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _connect_kwargs() -> Dict[str, Any]:
    timeout = _int_setting("DB_CONNECT_TIMEOUT")
    keepalives = os.environ.get("DB_KEEPALIVES", "1").strip().lower() not in ("0", "false")
    kwargs: Dict[str, Any] = {
        "connect_timeout": 10 if timeout is None else timeout,
        "keepalives": int(keepalives),
    }
    for tunable in _KEEPALIVE_TUNABLES:
        value = _int_setting(f"DB_KEEPALIVES_{tunable}")
        if value is not None:
            kwargs[f"keepalives_{tunable.lower()}"] = value
    return kwargs


def _database_url() -> str:
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL not set; configure a PostgreSQL connection string")
    return url


def init_pool(minconn: int = 1, maxconn: int = 10) -> None:
    """Create the shared threaded pool once; later calls are no-ops."""
    global _POOL
    if _POOL is not None or not os.environ.get("DATABASE_URL"):
        return
    _POOL = pg_pool.ThreadedConnectionPool(minconn, maxconn, dsn=_database_url(), **_connect_kwargs())


def _healthy(conn) -> bool:
    try:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
        if not getattr(conn, "autocommit", False):
            conn.rollback()
    except psycopg2.Error:
        return False
    return True


def _checkin(conn) -> None:
    # Roll back anything left open (status 1 active, 2 in transaction, 3 in error)
    try:
        open_txn = getattr(conn, "status", 0) in (1, 2, 3)
        if not getattr(conn, "closed", 0) and not getattr(conn, "autocommit", False) and open_txn:
            conn.rollback()
    except psycopg2.Error:
        pass
    finally:
        _POOL.putconn(conn)


def _checkout():
    """Pooled connection that answered a ping; a stale one is replaced once."""
    for _attempt in range(2):
        conn = _POOL.getconn()
        if _healthy(conn):
            return conn
        try:
            _POOL.putconn(conn, close=True)
        except psycopg2.Error:
            pass
    raise psycopg2.OperationalError("Failed to acquire healthy DB connection after retry")


def _rollback_quietly(conn) -> None:
    try:
        conn.rollback()
    except psycopg2.Error:
        pass


@contextmanager
def _get_conn():
    url = _database_url()
    pooled = _POOL is not None
    conn = _checkout() if pooled else psycopg2.connect(url, **_connect_kwargs())
    try:
        yield conn
    except Exception:
        _rollback_quietly(conn)
        raise
    finally:
        if pooled:
            _checkin(conn)
        else:
            conn.close()


class PostgresStore:
    """Key-value store with the same surface as :class:`topriders.cache.MemoryStore`."""

    def __init__(self, ensure_table: bool = True):
        self._table_ready = not ensure_table

    def _ensure_table(self, cur) -> None:
        if not self._table_ready:
            cur.execute(TABLE_DDL)
            self._table_ready = True

    def get(self, key: str) -> Optional[str]:
        with _get_conn() as conn, conn.cursor() as cur:
            self._ensure_table(cur)
            cur.execute("SELECT value FROM cache_entries WHERE key = %s", (key,))
            row = cur.fetchone()
            conn.commit()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with _get_conn() as conn, conn.cursor() as cur:
            self._ensure_table(cur)
            cur.execute(
                """
                INSERT INTO cache_entries (key, value, updated_at)
                VALUES (%s, %s, now())
                ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value, updated_at = EXCLUDED.updated_at
                """,
                (key, value),
            )
            conn.commit()

    def delete(self, key: str) -> None:
        with _get_conn() as conn, conn.cursor() as cur:
            self._ensure_table(cur)
            cur.execute("DELETE FROM cache_entries WHERE key = %s", (key,))
            conn.commit()

    def keys(self, prefix: str = "") -> List[str]:
        like = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"
        with _get_conn() as conn, conn.cursor() as cur:
            self._ensure_table(cur)
            cur.execute("SELECT key FROM cache_entries WHERE key LIKE %s ORDER BY key", (like,))
            rows = cur.fetchall() or []
            conn.commit()
        return [r[0] for r in rows]

    def health(self) -> Dict[str, Any]:
        """Connection info in the shape used by the health endpoint."""
        try:
            with _get_conn() as conn, conn.cursor() as cur:
                self._ensure_table(cur)
                cur.execute("SELECT current_user, current_database(), count(*) FROM cache_entries")
                user, db, count = cur.fetchone()
                conn.commit()
        except Exception as e:  # pragma: no cover - best-effort health output
            return {"connected": False, "status": "error", "error": str(e)}
        return {"connected": True, "status": "ok", "user": user, "database": db, "entries": count}
