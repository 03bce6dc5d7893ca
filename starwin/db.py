"""Persistence adapter over the embedded SQLite store and the PostgreSQL server.

Statements are written once, in the DB-API "format" notation (``%s`` for a
parameter, ``%%`` for a literal percent sign), and run unchanged on either
backend. Rows always come back as plain dicts with the same Python types.

The only RETURNING form accepted is a trailing ``RETURNING id``. It yields
``inserted_id`` for an INSERT that actually inserted a row, and nothing for
any other statement, on both backends.
"""
import logging
import re
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Sequence

import psycopg2
from psycopg2.extras import RealDictCursor

from .config import Settings
from .errors import QueryExecutionError, StoreConnectivityError
from .utils import to_bool, to_utc_datetime, to_float_or_none

logger = logging.getLogger(__name__)

BOOLEAN_COLUMNS = {"is_active", "is_completed"}
DATETIME_COLUMNS = {"createdAt", "updatedAt", "due_datetime", "task_datetime"}
MONEY_COLUMNS = {"agreed_price", "paid_price", "cost_price"}

_PLACEHOLDER = re.compile(r"%([s%])")
_RETURNING_ANY = re.compile(r"\bRETURNING\b", re.IGNORECASE)
_RETURNING_ID = re.compile(r"\s+RETURNING\s+id\s*;?\s*$", re.IGNORECASE)


def _convert_datetime(raw: bytes):
    return to_utc_datetime(raw.decode("utf-8"))


def _convert_boolean(raw: bytes):
    return to_bool(raw.decode("utf-8"))


# declared column types drive conversion, so aliased columns convert too
sqlite3.register_converter("DATETIME", _convert_datetime)
sqlite3.register_converter("BOOLEAN", _convert_boolean)


class ExecuteResult(NamedTuple):
    affected_rows: int
    inserted_id: Optional[int] = None


def _is_insert(statement: str) -> bool:
    return statement.lstrip().upper().startswith("INSERT")


def check_returning(statement: str) -> bool:
    """True when the statement ends in RETURNING id; any other RETURNING is rejected."""
    if _RETURNING_ID.search(statement):
        return True
    if _RETURNING_ANY.search(statement):
        raise QueryExecutionError("Solo se admite 'RETURNING id' al final de la sentencia")
    return False


def normalize_row(row: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    out = dict(row)
    for k, v in out.items():
        if v is None:
            continue
        if isinstance(v, datetime) or k in DATETIME_COLUMNS:
            out[k] = to_utc_datetime(v)
        elif k in BOOLEAN_COLUMNS:
            out[k] = to_bool(v)
        elif k in MONEY_COLUMNS:
            out[k] = to_float_or_none(v)
    return out


def _sqlite_param(value):
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value.isoformat(sep=" ")
    return value


class SqliteBackend:
    name = "sqlite"

    def __init__(self, path: Path):
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        self.path = Path(path)
        # autocommit: every statement is its own unit of work
        self._con = sqlite3.connect(
            str(path),
            check_same_thread=False,
            isolation_level=None,
            detect_types=sqlite3.PARSE_DECLTYPES,
        )
        self._con.row_factory = sqlite3.Row
        self._con.execute("PRAGMA foreign_keys = ON")
        self._lock = threading.Lock()

    @staticmethod
    def translate(statement: str) -> str:
        return _PLACEHOLDER.sub(lambda m: "?" if m.group(1) == "s" else "%", statement)

    def _prepare(self, statement: str, params: Sequence[Any]):
        return self.translate(statement), tuple(_sqlite_param(p) for p in params)

    def execute(self, statement: str, params: Sequence[Any] = ()) -> ExecuteResult:
        wants_id = check_returning(statement)
        sql, args = self._prepare(_RETURNING_ID.sub("", statement), params)
        with self._lock:
            cur = self._con.execute(sql, args)
            # lastrowid survives from earlier inserts; only trust it if this one wrote a row
            inserted = wants_id and _is_insert(sql) and cur.rowcount > 0
            return ExecuteResult(cur.rowcount, cur.lastrowid if inserted else None)

    def fetch_one(self, statement: str, params: Sequence[Any] = ()):
        sql, args = self._prepare(statement, params)
        with self._lock:
            return self._con.execute(sql, args).fetchone()

    def fetch_many(self, statement: str, params: Sequence[Any] = ()):
        sql, args = self._prepare(statement, params)
        with self._lock:
            return self._con.execute(sql, args).fetchall()

    def execute_script(self, script: str) -> None:
        with self._lock:
            self._con.executescript(script)

    def close(self) -> None:
        self._con.close()


class PostgresBackend:
    name = "postgres"

    def __init__(self, dsn: str, sslmode: str = "require"):
        # require: TLS is mandatory; libpq only checks the certificate when a
        # root CA file is present (use verify-full to enforce it)
        self._con = psycopg2.connect(dsn, sslmode=sslmode)
        self._con.autocommit = True

    def execute(self, statement: str, params: Sequence[Any] = ()) -> ExecuteResult:
        wants_id = check_returning(statement) and _is_insert(statement)
        with self._con.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(statement, tuple(params))
            inserted_id = None
            if wants_id and cur.description is not None:
                row = cur.fetchone()
                if row is not None:
                    inserted_id = row["id"]
            return ExecuteResult(cur.rowcount, inserted_id)

    def fetch_one(self, statement: str, params: Sequence[Any] = ()):
        with self._con.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(statement, tuple(params))
            return cur.fetchone()

    def fetch_many(self, statement: str, params: Sequence[Any] = ()):
        with self._con.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(statement, tuple(params))
            return cur.fetchall()

    def execute_script(self, script: str) -> None:
        with self._con.cursor() as cur:
            cur.execute(script)

    def close(self) -> None:
        self._con.close()


class StoreAdapter:
    """One query interface over whichever backend was opened at startup.

    Driver errors propagate unmodified; there are no retries.
    """

    def __init__(self, backend):
        self._backend = backend

    @property
    def backend_name(self) -> str:
        return self._backend.name

    def execute(self, statement: str, params: Sequence[Any] = ()) -> ExecuteResult:
        return self._backend.execute(statement, params)

    def fetch_one(self, statement: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        return normalize_row(self._backend.fetch_one(statement, params))

    def fetch_many(self, statement: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        return [normalize_row(r) for r in self._backend.fetch_many(statement, params)]

    def execute_script(self, script: str) -> None:
        self._backend.execute_script(script)

    def close(self) -> None:
        self._backend.close()


def open_backend(settings: Settings) -> StoreAdapter:
    try:
        if settings.uses_postgres:
            logger.info("DATABASE_URL set, connecting to PostgreSQL (sslmode=%s)", settings.db_sslmode)
            backend = PostgresBackend(settings.database_url, settings.db_sslmode)
        else:
            logger.info("Using embedded SQLite store at %s", settings.db_path)
            backend = SqliteBackend(settings.db_path)
    except (sqlite3.Error, psycopg2.Error, OSError) as exc:
        raise StoreConnectivityError(f"No se pudo abrir la base de datos: {exc}") from exc
    return StoreAdapter(backend)
