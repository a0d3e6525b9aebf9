"""
PostgreSQL document store.

Each collection is a table in a dedicated schema:

    CREATE TABLE <schema>."<collection>" (
        id      text PRIMARY KEY,
        version integer NOT NULL DEFAULT 1,
        data    jsonb NOT NULL
    )

Filters are compiled to JSONB path expressions. Driver errors are re-raised
as StorageUnavailable so the merge orchestrator can record them per step.
"""

import json
import logging
import uuid
from contextlib import contextmanager
from datetime import date, datetime
from typing import Dict, Any, Iterator, List, Optional, Tuple

import psycopg2
from psycopg2 import sql
from psycopg2.extras import Json, RealDictCursor

from account_merge.errors import StorageUnavailable, ValidationError, WriteConflict
from account_merge.store.base import DocumentStore, SUPPORTED_OPERATORS

logger = logging.getLogger(__name__)

_RESERVED_FIELDS = ("_id", "_version")


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _json(value: Any) -> Json:
    return Json(value, dumps=lambda obj: json.dumps(obj, default=_json_default))


def _json_path(field: str) -> str:
    """Convert a dotted field name to an SQL/JSON path, e.g. '$."emails"."address"'."""
    parts = []
    for part in field.split("."):
        escaped = part.replace("\\", "\\\\").replace('"', '\\"')
        parts.append(f'."{escaped}"')
    return "$" + "".join(parts)


class PostgresDocumentStore(DocumentStore):
    """DocumentStore backed by JSONB tables in PostgreSQL."""

    def __init__(
        self,
        dsn: Optional[str] = None,
        schema: str = "forum",
        connection=None,
        **connect_kwargs
    ):
        """
        Initialize the store.

        Args:
            dsn: libpq connection string
            schema: Schema holding one table per collection
            connection: Existing psycopg2 connection to reuse
            **connect_kwargs: host/port/database/user/password passed to psycopg2.connect
        """
        self.dsn = dsn
        self.schema = schema
        self.connect_kwargs = connect_kwargs
        self._conn = connection

    def connect(self):
        """Open the connection if it is not open yet."""
        if self._conn is not None and not self._conn.closed:
            return self._conn

        target = self.connect_kwargs.get("host") or "dsn"
        logger.info(f"Connecting to PostgreSQL document store ({target}, schema={self.schema})")
        try:
            if self.dsn:
                self._conn = psycopg2.connect(self.dsn, **self.connect_kwargs)
            else:
                self._conn = psycopg2.connect(**self.connect_kwargs)
        except psycopg2.Error as e:
            raise StorageUnavailable(f"Cannot connect to PostgreSQL: {e}") from e

        return self._conn

    def close(self) -> None:
        """Close the connection."""
        if self._conn is not None and not self._conn.closed:
            self._conn.close()
            logger.info("PostgreSQL document store connection closed")
        self._conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @contextmanager
    def _cursor(self):
        conn = self.connect()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                yield cursor
            conn.commit()
        except psycopg2.IntegrityError as e:
            conn.rollback()
            raise ValidationError(f"Integrity violation: {e}") from e
        except psycopg2.Error as e:
            if not conn.closed:
                conn.rollback()
            raise StorageUnavailable(f"PostgreSQL operation failed: {e}") from e
        except Exception:
            if not conn.closed:
                conn.rollback()
            raise

    def _table(self, collection: str) -> sql.Composed:
        return sql.SQL("{}.{}").format(sql.Identifier(self.schema), sql.Identifier(collection))

    def ensure_collection(self, collection: str) -> None:
        """Create the schema and the collection table if missing."""
        with self._cursor() as cursor:
            cursor.execute(sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(sql.Identifier(self.schema)))
            cursor.execute(
                sql.SQL(
                    "CREATE TABLE IF NOT EXISTS {} ("
                    "id text PRIMARY KEY, "
                    "version integer NOT NULL DEFAULT 1, "
                    "data jsonb NOT NULL)"
                ).format(self._table(collection))
            )
        logger.debug(f"Ensured collection table {self.schema}.{collection}")

    def _compile_filter(self, filter: Optional[Dict[str, Any]]) -> Tuple[sql.Composable, List[Any]]:
        """
        Compile a filter dictionary to a WHERE clause.

        Args:
            filter: Filter dictionary

        Returns:
            Tuple of (SQL clause, parameters)
        """
        clauses: List[sql.Composable] = []
        params: List[Any] = []

        for field, expected in (filter or {}).items():
            operator = None
            if isinstance(expected, dict) and len(expected) == 1 and next(iter(expected)) in SUPPORTED_OPERATORS:
                operator, expected = next(iter(expected.items()))

            if field == "_id":
                clause = sql.SQL("id = %s")
                clause_params = [expected]
            elif operator == "$iexact":
                # lax jsonpath unwraps arrays, so "emails.address" matches any member
                clause = sql.SQL(
                    "EXISTS (SELECT 1 FROM jsonb_path_query(data, %s::jsonpath) AS v "
                    "WHERE jsonb_typeof(v) = 'string' AND lower(v #>> '{}') = lower(%s))"
                )
                clause_params = [_json_path(field), expected]
            else:
                path = field.split(".")
                clause = sql.SQL(
                    "((data #> %s) = %s::jsonb OR "
                    "(jsonb_typeof(data #> %s) = 'array' AND (data #> %s) @> %s::jsonb))"
                )
                clause_params = [path, _json(expected), path, path, _json([expected])]

            if operator == "$ne":
                clause = sql.SQL("NOT COALESCE({}, FALSE)").format(clause)

            clauses.append(clause)
            params.extend(clause_params)

        if not clauses:
            return sql.SQL("TRUE"), params
        return sql.SQL(" AND ").join(clauses), params

    def _compile_set(self, set_fields: Dict[str, Any]) -> Tuple[sql.Composable, List[Any]]:
        expression: sql.Composable = sql.SQL("data")
        params: List[Any] = []
        for field, value in set_fields.items():
            if field in _RESERVED_FIELDS:
                raise ValidationError(f"Cannot set reserved field {field}")
            expression = sql.SQL("jsonb_set({}, %s, %s::jsonb, true)").format(expression)
            params.extend([field.split("."), _json(value)])
        return expression, params

    @staticmethod
    def _to_document(row: Dict[str, Any]) -> Dict[str, Any]:
        document = dict(row["data"])
        document["_id"] = row["id"]
        document["_version"] = row["version"]
        return document

    def find(self, collection: str, filter: Optional[Dict[str, Any]] = None) -> Iterator[Dict[str, Any]]:
        where, params = self._compile_filter(filter)
        query = sql.SQL("SELECT id, version, data FROM {} WHERE {} ORDER BY id").format(
            self._table(collection), where
        )

        with self._cursor() as cursor:
            cursor.execute(query, params)
            rows = cursor.fetchall()

        logger.debug(f"Fetched {len(rows)} documents from {collection}")
        for row in rows:
            yield self._to_document(row)

    def count(self, collection: str, filter: Optional[Dict[str, Any]] = None) -> int:
        where, params = self._compile_filter(filter)
        query = sql.SQL("SELECT count(*) AS total FROM {} WHERE {}").format(self._table(collection), where)

        with self._cursor() as cursor:
            cursor.execute(query, params)
            return int(cursor.fetchone()["total"])

    def update_one(
        self,
        collection: str,
        doc_id: str,
        set_fields: Dict[str, Any],
        expected_version: Optional[int] = None
    ) -> bool:
        expression, params = self._compile_set(set_fields)
        query = sql.SQL("UPDATE {} SET data = {}, version = version + 1 WHERE id = %s").format(
            self._table(collection), expression
        )
        params.append(doc_id)

        if expected_version is not None:
            query = query + sql.SQL(" AND version = %s")
            params.append(expected_version)

        with self._cursor() as cursor:
            cursor.execute(query, params)
            updated = cursor.rowcount
            if updated == 0 and expected_version is not None:
                cursor.execute(
                    sql.SQL("SELECT 1 FROM {} WHERE id = %s").format(self._table(collection)),
                    [doc_id]
                )
                if cursor.fetchone() is not None:
                    raise WriteConflict(collection, doc_id, expected_version)

        return updated > 0

    def update_many(self, collection: str, filter: Dict[str, Any], set_fields: Dict[str, Any]) -> int:
        expression, set_params = self._compile_set(set_fields)
        where, where_params = self._compile_filter(filter)
        query = sql.SQL("UPDATE {} SET data = {}, version = version + 1 WHERE {}").format(
            self._table(collection), expression, where
        )

        with self._cursor() as cursor:
            cursor.execute(query, set_params + where_params)
            return cursor.rowcount

    def insert_one(self, collection: str, record: Dict[str, Any]) -> str:
        data = {k: v for k, v in record.items() if k not in _RESERVED_FIELDS}
        doc_id = record.get("_id") or uuid.uuid4().hex
        query = sql.SQL("INSERT INTO {} (id, version, data) VALUES (%s, 1, %s)").format(
            self._table(collection)
        )

        with self._cursor() as cursor:
            cursor.execute(query, [doc_id, _json(data)])

        return doc_id
