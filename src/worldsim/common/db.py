from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Sequence

from .timeutil import to_iso

logger = logging.getLogger(__name__)

JSON_COLUMNS = frozenset(
    {
        "metadata",
        "request_payload",
        "result_summary",
        "terms",
        "payout_terms",
        "event_details",
        "event_data",
        "accepted_genres",
        "focus_slots",
        "exclusivity_categories",
        "targeting_flags",
        "brand_flags",
        "work_days",
        "genre_focus",
        "territories",
    }
)

_OPERATORS = {
    "eq": "=",
    "ne": "!=",
    "lt": "<",
    "lte": "<=",
    "gt": ">",
    "gte": ">=",
}


class StoreError(RuntimeError):
    """Raised when a store call is malformed."""


class ConstraintError(StoreError):
    """A write was rejected by a unique or foreign key constraint."""


def _encode(column: str, value: Any) -> Any:
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, bool):
        return 1 if value else 0
    if column in JSON_COLUMNS and value is not None and not isinstance(value, str):
        return json.dumps(value, default=str)
    return value


def _decode_row(row: sqlite3.Row) -> dict[str, Any]:
    data = dict(row)
    for key, value in data.items():
        if key in JSON_COLUMNS and isinstance(value, str):
            try:
                data[key] = json.loads(value)
            except ValueError:
                pass
    return data


def _check_identifier(name: str) -> str:
    if not name.replace("_", "").isalnum():
        raise StoreError(f"Invalid identifier: {name!r}")
    return name


def _build_where(where: Mapping[str, Any] | None) -> tuple[str, list[Any]]:
    """Translate ``{"cash__lt": 0, "status": "active"}`` style filters to SQL."""
    if not where:
        return "", []
    clauses: list[str] = []
    params: list[Any] = []
    for key, value in where.items():
        column, _, op = key.partition("__")
        column = _check_identifier(column)
        op = op or "eq"
        if op == "in":
            values = list(value)
            if not values:
                clauses.append("0")
                continue
            clauses.append(f"{column} IN ({', '.join('?' for _ in values)})")
            params.extend(_encode(column, item) for item in values)
        elif op == "is_null":
            clauses.append(f"{column} IS NULL" if value else f"{column} IS NOT NULL")
        elif op in _OPERATORS:
            if value is None and op in {"eq", "ne"}:
                clauses.append(f"{column} IS NULL" if op == "eq" else f"{column} IS NOT NULL")
            else:
                clauses.append(f"{column} {_OPERATORS[op]} ?")
                params.append(_encode(column, value))
        else:
            raise StoreError(f"Unsupported filter operator: {op}")
    return " WHERE " + " AND ".join(clauses), params


def connect(db_path: Path | str) -> sqlite3.Connection:
    if str(db_path) != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), check_same_thread=False, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


class DataStore:
    """Small relational facade over SQLite used by every job.

    Writes outside :meth:`transaction` commit immediately. Inside a
    transaction every call joins the open transaction, which is rolled back
    if the block raises.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = db_path
        self._conn = connect(db_path)
        self._lock = threading.RLock()
        self._depth = 0

    def execute_script(self, sql: str) -> None:
        with self._lock:
            self._conn.executescript(sql)

    @contextmanager
    def transaction(self) -> Iterator["DataStore"]:
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self._conn.execute("BEGIN IMMEDIATE")
            else:
                savepoint = f"sp_{self._depth}"
                self._conn.execute(f"SAVEPOINT {savepoint}")
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if outermost:
                    self._conn.execute("ROLLBACK")
                else:
                    self._conn.execute(f"ROLLBACK TO {savepoint}")
                    self._conn.execute(f"RELEASE {savepoint}")
                raise
            else:
                self._depth -= 1
                if outermost:
                    self._conn.execute("COMMIT")
                else:
                    self._conn.execute(f"RELEASE {savepoint}")

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        with self._lock:
            rows = self._conn.execute(sql, tuple(params)).fetchall()
        return [_decode_row(row) for row in rows]

    def select(
        self,
        table: str,
        where: Mapping[str, Any] | None = None,
        *,
        columns: str = "*",
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        clause, params = _build_where(where)
        sql = f"SELECT {columns} FROM {_check_identifier(table)}{clause}"
        if order_by:
            sql += f" ORDER BY {_check_identifier(order_by)} {'DESC' if descending else 'ASC'}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        return self.query(sql, params)

    def get(self, table: str, row_id: Any) -> dict[str, Any] | None:
        if row_id is None:
            return None
        rows = self.select(table, {"id": row_id}, limit=1)
        return rows[0] if rows else None

    def first(self, table: str, where: Mapping[str, Any] | None = None, **kwargs: Any) -> dict[str, Any] | None:
        rows = self.select(table, where, limit=1, **kwargs)
        return rows[0] if rows else None

    def count(self, table: str, where: Mapping[str, Any] | None = None) -> int:
        clause, params = _build_where(where)
        with self._lock:
            row = self._conn.execute(
                f"SELECT COUNT(*) AS total FROM {_check_identifier(table)}{clause}", params
            ).fetchone()
        return int(row["total"])

    def total(self, table: str, column: str, where: Mapping[str, Any] | None = None) -> float:
        clause, params = _build_where(where)
        with self._lock:
            row = self._conn.execute(
                f"SELECT COALESCE(SUM({_check_identifier(column)}), 0) AS total "
                f"FROM {_check_identifier(table)}{clause}",
                params,
            ).fetchone()
        return row["total"]

    def exists(self, table: str, where: Mapping[str, Any]) -> bool:
        return self.first(table, where, columns="1 AS present") is not None

    def insert(self, table: str, values: Mapping[str, Any]) -> dict[str, Any]:
        columns = [_check_identifier(column) for column in values]
        params = [_encode(column, values[column]) for column in values]
        sql = (
            f"INSERT INTO {_check_identifier(table)} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )
        with self._lock:
            try:
                cursor = self._conn.execute(sql, params)
            except sqlite3.IntegrityError as exc:
                raise ConstraintError(f"Insert into {table} rejected: {exc}") from exc
            row_id = cursor.lastrowid
            row = self._conn.execute(f"SELECT * FROM {table} WHERE rowid = ?", (row_id,)).fetchone()
        return _decode_row(row)

    def insert_if_absent(self, table: str, values: Mapping[str, Any]) -> dict[str, Any] | None:
        """Insert unless a unique key already holds a row; ``None`` means it existed."""
        columns = [_check_identifier(column) for column in values]
        params = [_encode(column, values[column]) for column in values]
        sql = (
            f"INSERT INTO {_check_identifier(table)} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)}) ON CONFLICT DO NOTHING"
        )
        with self._lock:
            cursor = self._conn.execute(sql, params)
            if cursor.rowcount == 0:
                return None
            row = self._conn.execute(f"SELECT * FROM {table} WHERE rowid = ?", (cursor.lastrowid,)).fetchone()
        return _decode_row(row)

    def upsert(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        conflict: Sequence[str],
        update: Sequence[str] | None = None,
        increment: Sequence[str] = (),
    ) -> dict[str, Any]:
        """Insert or update on ``conflict``.

        Columns in ``update`` are overwritten with the new value; columns in
        ``increment`` are added to the stored value.
        """
        columns = [_check_identifier(column) for column in values]
        params = [_encode(column, values[column]) for column in values]
        conflict_cols = [_check_identifier(column) for column in conflict]
        if update is None:
            update = [column for column in columns if column not in conflict_cols and column not in increment]
        assignments = [f"{column} = excluded.{column}" for column in update]
        assignments.extend(f"{column} = {column} + excluded.{column}" for column in increment)
        sql = (
            f"INSERT INTO {_check_identifier(table)} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)}) "
            f"ON CONFLICT({', '.join(conflict_cols)}) "
        )
        sql += f"DO UPDATE SET {', '.join(assignments)}" if assignments else "DO NOTHING"
        key_filter = {column: values[column] for column in conflict_cols}
        with self.transaction():
            with self._lock:
                self._conn.execute(sql, params)
            row = self.first(table, key_filter)
        if row is None:
            raise StoreError(f"Upsert into {table} did not produce a row")
        return row

    def update(self, table: str, values: Mapping[str, Any], where: Mapping[str, Any]) -> int:
        if not where:
            raise StoreError("Refusing to update without a filter")
        assignments = [f"{_check_identifier(column)} = ?" for column in values]
        params = [_encode(column, values[column]) for column in values]
        clause, where_params = _build_where(where)
        sql = f"UPDATE {_check_identifier(table)} SET {', '.join(assignments)}{clause}"
        with self._lock:
            cursor = self._conn.execute(sql, params + where_params)
        return cursor.rowcount

    def increment(
        self,
        table: str,
        where: Mapping[str, Any],
        deltas: Mapping[str, float],
        *,
        floor: Mapping[str, float] | None = None,
        ceiling: Mapping[str, float] | None = None,
        values: Mapping[str, Any] | None = None,
    ) -> int:
        """Apply ``col = col + delta`` in the store, clamped per column."""
        if not where:
            raise StoreError("Refusing to increment without a filter")
        floor = floor or {}
        ceiling = ceiling or {}
        assignments: list[str] = []
        params: list[Any] = []
        for column, delta in deltas.items():
            column = _check_identifier(column)
            expression = f"COALESCE({column}, 0) + ?"
            params.append(delta)
            if column in ceiling:
                expression = f"MIN(?, {expression})"
                params.insert(len(params) - 1, ceiling[column])
            if column in floor:
                expression = f"MAX(?, {expression})"
                params.insert(len(params) - (2 if column in ceiling else 1), floor[column])
            assignments.append(f"{column} = {expression}")
        for column, value in (values or {}).items():
            assignments.append(f"{_check_identifier(column)} = ?")
            params.append(_encode(column, value))
        clause, where_params = _build_where(where)
        sql = f"UPDATE {_check_identifier(table)} SET {', '.join(assignments)}{clause}"
        with self._lock:
            cursor = self._conn.execute(sql, params + where_params)
        return cursor.rowcount

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def open_store(db_path: Path | str, schema: str | None = None, statements: Iterable[str] = ()) -> DataStore:
    store = DataStore(db_path)
    if schema:
        store.execute_script(schema)
    for statement in statements:
        store.execute_script(statement)
    logger.info("Opened data store at %s", db_path)
    return store
