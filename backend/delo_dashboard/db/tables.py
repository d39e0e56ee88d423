"""Table-scoped query builder over SQLite.

Reads and writes go through :class:`TableQuery`, a chainable builder that
mirrors the hosted database client the dashboard pages were written against::

    client.table("access_audit_log").select("user_id").gte("created_at", since).execute()

Column names are checked against :data:`TABLES` before any SQL is built, JSON
columns are encoded/decoded transparently and timestamp columns round-trip as
timezone-aware datetimes.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Literal, Mapping, Sequence

import orjson

from delo_dashboard.core.errors import QueryError
from delo_dashboard.core.logging import get_logger
from delo_dashboard.db.sqlite import SQLiteDatabase

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class TableSpec:
    name: str
    columns: tuple[str, ...]
    json_columns: frozenset[str] = frozenset()
    bool_columns: frozenset[str] = frozenset()
    time_columns: frozenset[str] = frozenset()


TABLES: dict[str, TableSpec] = {
    spec.name: spec
    for spec in (
        TableSpec(
            "knowledge_files",
            ("id", "file_path", "domain", "content_type", "access_level", "chunk_count", "indexed_at", "updated_at"),
            time_columns=frozenset({"indexed_at", "updated_at"}),
        ),
        TableSpec(
            "knowledge_chunks",
            (
                "id",
                "file_path",
                "domain",
                "content_type",
                "chunk_text",
                "entity_codes",
                "access_level",
                "metadata",
                "created_at",
            ),
            json_columns=frozenset({"entity_codes", "metadata"}),
            time_columns=frozenset({"created_at"}),
        ),
        TableSpec(
            "entity_descriptions",
            ("code", "canonical_name", "entity_type", "domain", "access_level", "description", "aliases", "parent_code"),
            json_columns=frozenset({"aliases"}),
        ),
        TableSpec(
            "entity_graph",
            ("id", "source_entity", "target_entity", "relationship_type", "weight"),
        ),
        TableSpec(
            "access_audit_log",
            (
                "id",
                "user_id",
                "tool_name",
                "query_text",
                "query_time_ms",
                "chunks_returned",
                "chunks_filtered",
                "access_level",
                "created_at",
            ),
            time_columns=frozenset({"created_at"}),
        ),
        TableSpec(
            "api_keys",
            (
                "id",
                "key_hash",
                "key_prefix",
                "user_id",
                "access_level",
                "display_name",
                "description",
                "is_active",
                "created_at",
                "expires_at",
                "last_used_at",
                "revoked_at",
                "revoke_reason",
                "created_by",
            ),
            bool_columns=frozenset({"is_active"}),
            time_columns=frozenset({"created_at", "expires_at", "last_used_at", "revoked_at"}),
        ),
    )
}


@dataclass(slots=True)
class QueryResult:
    rows: list[dict[str, Any]] = field(default_factory=list)
    count: int | None = None

    def first(self) -> dict[str, Any] | None:
        return self.rows[0] if self.rows else None

    def __len__(self) -> int:
        return len(self.rows)


def to_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def from_ms(value: Any) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so user text matches literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


_Mode = Literal["select", "insert", "update", "delete"]


class TableQuery:
    """Chainable query against a single table."""

    def __init__(self, db: SQLiteDatabase, spec: TableSpec) -> None:
        self.db = db
        self.spec = spec
        self._mode: _Mode = "select"
        self._columns: tuple[str, ...] = spec.columns
        self._count: str | None = None
        self._head = False
        self._where: list[str] = []
        self._params: list[Any] = []
        self._order: list[str] = []
        self._limit: int | None = None
        self._offset: int | None = None
        self._values: list[dict[str, Any]] = []

    # -- verbs -------------------------------------------------------------

    def select(self, columns: str | Sequence[str] = "*", count: str | None = None, head: bool = False) -> "TableQuery":
        self._mode = "select"
        if isinstance(columns, str):
            names = [name.strip() for name in columns.split(",") if name.strip()]
        else:
            names = list(columns)
        if names == ["*"] or not names:
            self._columns = self.spec.columns
        else:
            self._columns = tuple(self._check(name) for name in names)
        if count not in (None, "exact"):
            raise QueryError(f"Unsupported count mode: {count}")
        self._count = count
        self._head = head
        return self

    def insert(self, rows: Mapping[str, Any] | Iterable[Mapping[str, Any]]) -> "TableQuery":
        self._mode = "insert"
        if isinstance(rows, Mapping):
            rows = [rows]
        self._values = [dict(row) for row in rows]
        for row in self._values:
            for name in row:
                self._check(name)
        return self

    def update(self, values: Mapping[str, Any]) -> "TableQuery":
        self._mode = "update"
        self._values = [dict(values)]
        for name in values:
            self._check(name)
        return self

    def delete(self) -> "TableQuery":
        self._mode = "delete"
        return self

    # -- filters -----------------------------------------------------------

    def eq(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, "=", value)

    def neq(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, "!=", value)

    def gte(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, ">=", value)

    def lte(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, "<=", value)

    def ilike(self, column: str, pattern: str) -> "TableQuery":
        self._where.append(f"casefold({self._check(column)}) LIKE casefold(?) ESCAPE '\\'")
        self._params.append(pattern)
        return self

    def not_null(self, column: str) -> "TableQuery":
        self._where.append(f"{self._check(column)} IS NOT NULL")
        return self

    def is_null(self, column: str) -> "TableQuery":
        self._where.append(f"{self._check(column)} IS NULL")
        return self

    def in_(self, column: str, values: Sequence[Any]) -> "TableQuery":
        name = self._check(column)
        if not values:
            self._where.append("0 = 1")
            return self
        placeholders = ",".join("?" for _ in values)
        self._where.append(f"{name} IN ({placeholders})")
        self._params.extend(self._encode(name, value) for value in values)
        return self

    # -- modifiers ---------------------------------------------------------

    def order(self, column: str, desc: bool = False) -> "TableQuery":
        self._order.append(f"{self._check(column)} {'DESC' if desc else 'ASC'}")
        return self

    def limit(self, count: int) -> "TableQuery":
        self._limit = max(0, int(count))
        return self

    def range(self, start: int, end: int) -> "TableQuery":
        """Inclusive row range, e.g. ``range(0, 24)`` for the first page of 25."""
        self._offset = max(0, int(start))
        self._limit = max(0, int(end) - self._offset + 1)
        return self

    # -- execution ---------------------------------------------------------

    def execute(self) -> QueryResult:
        try:
            if self._mode == "select":
                return self._run_select()
            if self._mode == "insert":
                return self._run_insert()
            if self._mode == "update":
                return self._run_update()
            return self._run_delete()
        except sqlite3.Error as exc:
            logger.exception("Query on %s failed: %s", self.spec.name, exc)
            raise QueryError(f"{self.spec.name}: {exc}") from exc

    def _run_select(self) -> QueryResult:
        where_sql = self._where_sql()
        count: int | None = None
        if self._count == "exact":
            rows = self.db.query(f"SELECT COUNT(*) AS n FROM {self.spec.name}{where_sql}", self._params)
            count = int(rows[0]["n"])
        if self._head:
            return QueryResult(rows=[], count=count)
        sql = f"SELECT {', '.join(self._columns)} FROM {self.spec.name}{where_sql}"
        params = list(self._params)
        if self._order:
            sql += " ORDER BY " + ", ".join(self._order)
        if self._limit is not None:
            sql += " LIMIT ?"
            params.append(self._limit)
            if self._offset:
                sql += " OFFSET ?"
                params.append(self._offset)
        rows = [self._decode_row(row) for row in self.db.query(sql, params)]
        return QueryResult(rows=rows, count=count)

    def _run_insert(self) -> QueryResult:
        inserted: list[dict[str, Any]] = []
        with self.db.transaction() as cursor:
            for row in self._values:
                names = list(row)
                placeholders = ",".join("?" for _ in names)
                cursor.execute(
                    f"INSERT INTO {self.spec.name} ({', '.join(names)}) VALUES ({placeholders})",
                    [self._encode(name, row[name]) for name in names],
                )
                record = dict(row)
                if "id" in self.spec.columns and "id" not in record:
                    record["id"] = cursor.lastrowid
                inserted.append(record)
        return QueryResult(rows=inserted, count=len(inserted))

    def _run_update(self) -> QueryResult:
        values = self._values[0]
        if not values:
            return QueryResult(rows=[], count=0)
        assignments = ", ".join(f"{name} = ?" for name in values)
        params = [self._encode(name, value) for name, value in values.items()] + list(self._params)
        with self.db.transaction() as cursor:
            cursor.execute(f"UPDATE {self.spec.name} SET {assignments}{self._where_sql()}", params)
            affected = cursor.rowcount
        return QueryResult(rows=[], count=affected)

    def _run_delete(self) -> QueryResult:
        with self.db.transaction() as cursor:
            cursor.execute(f"DELETE FROM {self.spec.name}{self._where_sql()}", self._params)
            affected = cursor.rowcount
        return QueryResult(rows=[], count=affected)

    # -- helpers -----------------------------------------------------------

    def _filter(self, column: str, op: str, value: Any) -> "TableQuery":
        name = self._check(column)
        self._where.append(f"{name} {op} ?")
        self._params.append(self._encode(name, value))
        return self

    def _where_sql(self) -> str:
        return " WHERE " + " AND ".join(self._where) if self._where else ""

    def _check(self, column: str) -> str:
        if column not in self.spec.columns:
            raise QueryError(f"Unknown column {column!r} on {self.spec.name}")
        return column

    def _encode(self, column: str, value: Any) -> Any:
        if value is None:
            return None
        if column in self.spec.json_columns:
            return orjson.dumps(value).decode("utf-8")
        if column in self.spec.bool_columns:
            return 1 if value else 0
        if column in self.spec.time_columns and isinstance(value, datetime):
            return to_ms(value)
        return value

    def _decode_row(self, row: sqlite3.Row) -> dict[str, Any]:
        record: dict[str, Any] = {}
        for name in row.keys():
            value = row[name]
            if value is not None:
                if name in self.spec.json_columns:
                    value = orjson.loads(value)
                elif name in self.spec.bool_columns:
                    value = bool(value)
                elif name in self.spec.time_columns:
                    value = from_ms(value)
            record[name] = value
        return record


class TableClient:
    """Entry point handing out :class:`TableQuery` builders per table."""

    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db

    def table(self, name: str) -> TableQuery:
        spec = TABLES.get(name)
        if spec is None:
            raise QueryError(f"Unknown table {name!r}")
        return TableQuery(self.db, spec)


__all__ = [
    "TABLES",
    "TableSpec",
    "TableQuery",
    "TableClient",
    "QueryResult",
    "escape_like",
    "from_ms",
    "to_ms",
]
