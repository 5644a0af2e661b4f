"""Generic SQLite models and query builder exposed to extensions.

A model is declared as a schema dict::

    {
        "table_name": "roku_devices",
        "fields": {
            "id": {"type": "integer", "primary_key": True, "auto_increment": True},
            "name": {"type": "string", "required": True},
            "metadata": {"type": "json"},
            "created_at": {"type": "datetime", "default": "CURRENT_TIMESTAMP"},
        },
    }

Identifiers are validated against the schema before they reach SQL;
values always travel as bound parameters.
"""

from __future__ import annotations

import json
import re
from typing import Any

import aiosqlite

from roku_integration.host.base import Model, QueryBuilder

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_SQL_TYPES = {
    "integer": "INTEGER",
    "string": "TEXT",
    "json": "TEXT",
    "datetime": "TEXT",
    "boolean": "INTEGER",
    "float": "REAL",
}
_NOW_SQL = "(strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))"
_OPERATORS = frozenset({"=", "!=", "<", "<=", ">", ">=", "LIKE"})

# JSON and boolean columns of the host-owned tables
_HOST_JSON_COLUMNS: dict[str, tuple[str, ...]] = {
    "device_registry": ("capabilities", "metadata"),
    "entity_states": ("attributes",),
}
_HOST_BOOL_COLUMNS: dict[str, tuple[str, ...]] = {
    "device_registry": ("online",),
}


def _check_identifier(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


def _sql_literal(value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return str(value)
    return "'" + str(value).replace("'", "''") + "'"


def decode_row(
    row: dict[str, Any],
    json_columns: tuple[str, ...] = (),
    bool_columns: tuple[str, ...] = (),
) -> dict[str, Any]:
    """Decode JSON text and integer flags of a fetched row in place."""
    for col in json_columns:
        value = row.get(col)
        if isinstance(value, str):
            try:
                row[col] = json.loads(value)
            except ValueError:
                row[col] = None
    for col in bool_columns:
        if col in row and row[col] is not None:
            row[col] = bool(row[col])
    return row


async def fetchall(
    db: aiosqlite.Connection, sql: str, params: tuple = ()
) -> list[dict[str, Any]]:
    cursor = await db.execute(sql, params)
    rows = await cursor.fetchall()
    if not rows:
        return []
    columns = [desc[0] for desc in cursor.description]
    return [dict(zip(columns, row)) for row in rows]


async def fetchone(
    db: aiosqlite.Connection, sql: str, params: tuple = ()
) -> dict[str, Any] | None:
    cursor = await db.execute(sql, params)
    row = await cursor.fetchone()
    if row is None:
        return None
    columns = [desc[0] for desc in cursor.description]
    return dict(zip(columns, row))


class SQLiteModel(Model):
    """Row access to one extension-owned table described by a schema dict."""

    def __init__(self, db: aiosqlite.Connection, schema: dict[str, Any]) -> None:
        self._db = db
        self.table = _check_identifier(schema["table_name"])
        self.fields: dict[str, dict[str, Any]] = {
            _check_identifier(name): spec for name, spec in schema["fields"].items()
        }
        pks = [name for name, spec in self.fields.items() if spec.get("primary_key")]
        if len(pks) != 1:
            raise ValueError(f"Model {self.table} must declare exactly one primary key")
        self.primary_key = pks[0]
        self.json_fields = tuple(
            name for name, spec in self.fields.items() if spec.get("type") == "json"
        )
        self.bool_fields = tuple(
            name for name, spec in self.fields.items() if spec.get("type") == "boolean"
        )

    # ------------------------------------------------------------------
    # DDL
    # ------------------------------------------------------------------

    def table_sql(self) -> str:
        columns = []
        for name, spec in self.fields.items():
            sql_type = _SQL_TYPES.get(spec.get("type", "string"))
            if sql_type is None:
                raise ValueError(f"Unknown field type {spec.get('type')!r} for {name}")
            parts = [name, sql_type]
            if spec.get("primary_key"):
                parts.append("PRIMARY KEY")
                if spec.get("auto_increment"):
                    parts.append("AUTOINCREMENT")
            if spec.get("required"):
                parts.append("NOT NULL")
            if "default" in spec:
                default = spec["default"]
                parts.append("DEFAULT " + (_NOW_SQL if default == "CURRENT_TIMESTAMP" else _sql_literal(default)))
            columns.append(" ".join(parts))
        return f"CREATE TABLE IF NOT EXISTS {self.table} (\n    " + ",\n    ".join(columns) + "\n)"

    async def create_table(self) -> None:
        await self._db.execute(self.table_sql())
        await self._db.commit()

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def _encode(self, data: dict[str, Any]) -> dict[str, Any]:
        encoded: dict[str, Any] = {}
        for key, value in data.items():
            if key not in self.fields:
                raise ValueError(f"Unknown column {key!r} for {self.table}")
            if key in self.json_fields and value is not None:
                value = json.dumps(value, default=str)
            elif key in self.bool_fields and value is not None:
                value = 1 if value else 0
            encoded[key] = value
        return encoded

    def _decode(self, row: dict[str, Any]) -> dict[str, Any]:
        return decode_row(row, self.json_fields, self.bool_fields)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def find_all(self, where: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        sql = f"SELECT * FROM {self.table}"
        params: tuple = ()
        if where:
            encoded = self._encode(where)
            sql += " WHERE " + " AND ".join(f"{col} = ?" for col in encoded)
            params = tuple(encoded.values())
        sql += f" ORDER BY {self.primary_key}"
        return [self._decode(row) for row in await fetchall(self._db, sql, params)]

    async def find_one(self, where: dict[str, Any]) -> dict[str, Any] | None:
        rows = await self.find_all(where)
        return rows[0] if rows else None

    async def create(self, data: dict[str, Any]) -> int:
        missing = [
            name for name, spec in self.fields.items()
            if spec.get("required") and data.get(name) is None
        ]
        if missing:
            raise ValueError(f"Missing required fields for {self.table}: {', '.join(missing)}")
        encoded = self._encode(data)
        cols = ", ".join(encoded)
        placeholders = ", ".join("?" for _ in encoded)
        cursor = await self._db.execute(
            f"INSERT INTO {self.table} ({cols}) VALUES ({placeholders})",
            tuple(encoded.values()),
        )
        await self._db.commit()
        assert cursor.lastrowid is not None
        return cursor.lastrowid

    async def update(self, pk: int, data: dict[str, Any]) -> None:
        encoded = self._encode({k: v for k, v in data.items() if k != self.primary_key})
        if not encoded:
            return
        assignments = ", ".join(f"{col} = ?" for col in encoded)
        await self._db.execute(
            f"UPDATE {self.table} SET {assignments} WHERE {self.primary_key} = ?",
            (*encoded.values(), pk),
        )
        await self._db.commit()

    async def delete(self, pk: int) -> None:
        await self._db.execute(
            f"DELETE FROM {self.table} WHERE {self.primary_key} = ?", (pk,)
        )
        await self._db.commit()


class SQLiteQueryBuilder(QueryBuilder):
    """``query(table).where(col, op, value).get()`` over any known table."""

    def __init__(
        self,
        db: aiosqlite.Connection,
        table: str,
        json_columns: tuple[str, ...] = (),
        bool_columns: tuple[str, ...] = (),
    ) -> None:
        self._db = db
        self._table = _check_identifier(table)
        self._json_columns = json_columns or _HOST_JSON_COLUMNS.get(table, ())
        self._bool_columns = bool_columns or _HOST_BOOL_COLUMNS.get(table, ())
        self._clauses: list[tuple[str, str, Any]] = []

    def where(self, column: str, op: str, value: Any) -> SQLiteQueryBuilder:
        op = op.upper()
        if op not in _OPERATORS:
            raise ValueError(f"Unsupported operator: {op!r}")
        self._clauses.append((_check_identifier(column), op, value))
        return self

    async def get(self) -> list[dict[str, Any]]:
        sql = f"SELECT * FROM {self._table}"
        if self._clauses:
            sql += " WHERE " + " AND ".join(f"{col} {op} ?" for col, op, _ in self._clauses)
        params = tuple(value for _, _, value in self._clauses)
        rows = await fetchall(self._db, sql, params)
        return [decode_row(row, self._json_columns, self._bool_columns) for row in rows]
