from __future__ import annotations

from typing import Any, Dict, List, NoReturn, Optional

import psycopg
from psycopg import errors
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from nodestore.logging import get_logger
from nodestore.storage.codec import Shape, decode_blob, encode_blob
from nodestore.storage.errors import (
    ConstraintViolation,
    DuplicateRecord,
    MissingDependency,
    StorageError,
)
from nodestore.storage.models import DEFAULT_ENVIRONMENT, Node

# node attribute -> blob column
_BLOB_COLUMNS = (
    ("run_list", "run_list", Shape.SEQUENCE),
    ("automatic", "automatic_attr", Shape.MAPPING),
    ("normal", "normal_attr", Shape.MAPPING),
    ("default", "default_attr", Shape.MAPPING),
    ("override", "override_attr", Shape.MAPPING),
)

_FETCH_NODE_SQL = """
    SELECT n.name, e.name AS chef_environment, n.run_list, n.automatic_attr,
           n.normal_attr, n.default_attr, n.override_attr
    FROM nodes n
    JOIN environments e ON n.environment_id = e.id
    WHERE n.name = %s
"""

_UPDATE_NODE_SQL = """
    UPDATE nodes AS n
    SET environment_id = e.id, run_list = %s, automatic_attr = %s,
        normal_attr = %s, default_attr = %s, override_attr = %s,
        updated_at = now()
    FROM environments AS e
    WHERE n.id = %s AND e.name = %s
"""

_INSERT_NODE_SQL = """
    INSERT INTO nodes (name, environment_id, run_list, automatic_attr,
                       normal_attr, default_attr, override_attr,
                       created_at, updated_at)
    VALUES (%s, %s, %s, %s, %s, %s, %s, now(), now())
"""


class PostgresStore:
    """Postgres-backed node store.

    Run lists and attribute trees live in ``bytea`` columns encoded with the
    blob codec; the environment is a foreign key resolved by name.
    """

    def __init__(self, dsn: str, *, min_size: int = 1, max_size: int = 10) -> None:
        self.dsn = dsn
        self.logger = get_logger(__name__)
        self.pool = ConnectionPool(
            self.dsn,
            min_size=min_size,
            max_size=max_size,
            kwargs={"row_factory": dict_row, "autocommit": False},
        )
        self._ensure_schema()

    def _connect(self):
        return self.pool.connection()

    def close(self) -> None:
        self.pool.close()

    def _ensure_schema(self) -> None:
        """Create the node tables if missing and seed the default environment."""

        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS environments (
                    id SERIAL PRIMARY KEY,
                    name TEXT NOT NULL UNIQUE,
                    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS nodes (
                    id SERIAL PRIMARY KEY,
                    name TEXT NOT NULL UNIQUE,
                    environment_id INTEGER NOT NULL REFERENCES environments (id),
                    run_list BYTEA,
                    automatic_attr BYTEA,
                    normal_attr BYTEA,
                    default_attr BYTEA,
                    override_attr BYTEA,
                    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
                )
                """
            )
            conn.execute(
                "INSERT INTO environments (name) VALUES (%s) ON CONFLICT (name) DO NOTHING",
                (DEFAULT_ENVIRONMENT,),
            )
            conn.commit()

    def ensure_environment(self, name: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO environments (name) VALUES (%s) ON CONFLICT (name) DO NOTHING",
                (name,),
            )
            conn.commit()

    def _abort(self, conn, exc: Exception, action: str, name: str) -> NoReturn:
        """Roll back the open transaction and raise a storage error for ``exc``."""

        try:
            conn.rollback()
        except psycopg.Error as rollback_exc:
            self.logger.error(
                "storage_rollback_failed",
                action=action,
                node=name,
                error=str(exc),
                rollback_error=str(rollback_exc),
            )
            raise StorageError(
                f"{action} node {name} had an error '{exc}', and then rolling back "
                f"the transaction gave another error '{rollback_exc}'",
                {"error": str(exc), "rollback_error": str(rollback_exc)},
            ) from exc
        if isinstance(exc, StorageError):
            raise exc
        raise StorageError(str(exc), {"name": name}) from exc

    @staticmethod
    def _node_id(conn, name: str) -> Optional[int]:
        row = conn.execute("SELECT id FROM nodes WHERE name = %s", (name,)).fetchone()
        return row["id"] if row else None

    @staticmethod
    def _environment_id(conn, name: str) -> int:
        row = conn.execute(
            "SELECT id FROM environments WHERE name = %s", (name,)
        ).fetchone()
        if not row:
            raise MissingDependency(
                f"environment {name} not found", {"environment": name}
            )
        return row["id"]

    @staticmethod
    def _encode_node(node: Node) -> List[bytes]:
        return [
            encode_blob(getattr(node, attr), field=attr)
            for attr, _column, _shape in _BLOB_COLUMNS
        ]

    def _insert(self, conn, node: Node, environment_id: int, blobs: List[bytes]) -> None:
        try:
            conn.execute(_INSERT_NODE_SQL, (node.name, environment_id, *blobs))
        except errors.UniqueViolation as exc:
            raise DuplicateRecord(
                f"node {node.name} already exists", {"name": node.name}
            ) from exc
        except errors.ForeignKeyViolation as exc:
            raise MissingDependency(
                f"environment {node.chef_environment} not found",
                {"environment": node.chef_environment},
            ) from exc

    def _write(self, node: Node, *, create_only: bool) -> Node:
        # encoding happens before the transaction so codec faults never open one
        blobs = self._encode_node(node)
        action = "creating" if create_only else "saving"
        with self._connect() as conn:
            try:
                node_id = self._node_id(conn, node.name)
                if node_id is not None and create_only:
                    raise DuplicateRecord(
                        f"node {node.name} already exists", {"name": node.name}
                    )
                environment_id = self._environment_id(conn, node.chef_environment)
                if node_id is None:
                    # the UNIQUE constraint on nodes.name settles a concurrent create
                    self._insert(conn, node, environment_id, blobs)
                else:
                    cur = conn.execute(
                        _UPDATE_NODE_SQL, (*blobs, node_id, node.chef_environment)
                    )
                    if cur.rowcount == 0:
                        raise MissingDependency(
                            f"environment {node.chef_environment} not found",
                            {"environment": node.chef_environment},
                        )
            except (psycopg.Error, ConstraintViolation) as exc:
                self._abort(conn, exc, action, node.name)
            conn.commit()
        self.logger.debug(
            "node_written",
            node=node.name,
            action="insert" if node_id is None else "update",
        )
        return node

    def exists(self, name: str) -> bool:
        with self._connect() as conn:
            try:
                return self._node_id(conn, name) is not None
            except psycopg.Error as exc:
                raise StorageError(str(exc), {"name": name}) from exc

    def create(self, node: Node) -> Node:
        return self._write(node, create_only=True)

    def save(self, node: Node) -> Node:
        return self._write(node, create_only=False)

    def fetch(self, name: str) -> Optional[Node]:
        with self._connect() as conn:
            try:
                row = conn.execute(_FETCH_NODE_SQL, (name,)).fetchone()
            except psycopg.Error as exc:
                raise StorageError(str(exc), {"name": name}) from exc
        if not row:
            return None
        return self._node_from_row(row)

    @staticmethod
    def _node_from_row(row: Dict[str, Any]) -> Node:
        decoded = {
            attr: decode_blob(row.get(column), shape, field=column)
            for attr, column, shape in _BLOB_COLUMNS
        }
        return Node(
            name=row["name"],
            chef_environment=row["chef_environment"],
            **decoded,
        )

    def delete(self, name: str) -> bool:
        with self._connect() as conn:
            try:
                cur = conn.execute("DELETE FROM nodes WHERE name = %s", (name,))
            except psycopg.Error as exc:
                self._abort(conn, exc, "deleting", name)
            conn.commit()
        return cur.rowcount > 0

    def list_names(self) -> List[str]:
        names: List[str] = []
        with self._connect() as conn:
            try:
                for row in conn.execute("SELECT name FROM nodes"):
                    names.append(row["name"])
            except psycopg.Error as exc:
                self.logger.error("node_list_failed", error=str(exc), scanned=len(names))
                raise StorageError(str(exc), {"scanned": len(names)}) from exc
        return names


__all__ = ["PostgresStore"]
