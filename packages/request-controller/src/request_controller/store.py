"""Request persistence: the store contract and its SQLite implementation."""

from __future__ import annotations

import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from .exceptions import ConflictError, RequestNotFoundError, StoreError
from .models import (
    Request,
    RequestMetadata,
    RequestSpec,
    RequestStatus,
    ResourceIdentity,
)

logger = logging.getLogger(__name__)

DEFAULT_STORE_TIMEOUT = 5.0

_SCHEMA = """
CREATE TABLE IF NOT EXISTS requests (
    namespace TEXT NOT NULL,
    name TEXT NOT NULL,
    generation INTEGER NOT NULL DEFAULT 1,
    resource_version INTEGER NOT NULL DEFAULT 1,
    path TEXT NOT NULL,
    method TEXT NOT NULL,
    body TEXT NOT NULL DEFAULT '',
    headers TEXT NOT NULL DEFAULT '[]',
    status_code TEXT NOT NULL DEFAULT '',
    status_body TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    PRIMARY KEY (namespace, name)
);

CREATE INDEX IF NOT EXISTS idx_requests_status
    ON requests(status_code);
"""


class RequestStore(ABC):
    """Get/update contract the reconciler consumes.

    Implementations make each write atomic and never hold a transaction
    open between calls.
    """

    @abstractmethod
    def get(self, identity: ResourceIdentity) -> Request:
        """Return the current Request. Raise RequestNotFoundError if absent."""
        ...

    @abstractmethod
    def update_status(self, request: Request) -> Request:
        """Persist ``request.status`` only.

        Raise ConflictError if the stored resource version no longer matches
        ``request.metadata.resource_version``.
        """
        ...

    @abstractmethod
    def apply(self, request: Request) -> Request:
        """Create the Request, or replace the spec of an existing one."""
        ...

    @abstractmethod
    def delete(self, identity: ResourceIdentity) -> None: ...

    @abstractmethod
    def list(self) -> list[Request]: ...


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as exc:
        raise StoreError(f"Store {action} failed: {exc}") from exc


class SQLiteRequestStore(RequestStore):
    """SQLite-backed persistence for Requests."""

    def __init__(
        self,
        db_path: str | Path = ":memory:",
        timeout: float = DEFAULT_STORE_TIMEOUT,
    ) -> None:
        with _store_errors("open"):
            self._conn = sqlite3.connect(str(db_path), timeout=timeout)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(_SCHEMA)

    def close(self) -> None:
        self._conn.close()

    def get(self, identity: ResourceIdentity) -> Request:
        with _store_errors("get"):
            row = self._fetch_row(identity)
        if row is None:
            raise RequestNotFoundError(str(identity))
        return self._row_to_request(row)

    def update_status(self, request: Request) -> Request:
        identity = request.identity
        expected = request.metadata.resource_version
        with _store_errors("status update"):
            cursor = self._conn.execute(
                """UPDATE requests
                   SET status_code = ?, status_body = ?,
                       resource_version = resource_version + 1
                   WHERE namespace = ? AND name = ? AND resource_version = ?""",
                (
                    request.status.code,
                    request.status.body,
                    identity.namespace,
                    identity.name,
                    expected,
                ),
            )
            self._conn.commit()
            if cursor.rowcount == 0:
                row = self._fetch_row(identity)
                if row is None:
                    raise RequestNotFoundError(str(identity))
                raise ConflictError(str(identity), expected, row["resource_version"])

        updated = request.model_copy(deep=True)
        updated.metadata.resource_version = expected + 1
        return updated

    def apply(self, request: Request) -> Request:
        identity = request.identity
        spec = request.spec
        with _store_errors("apply"), self._conn:
            row = self._fetch_row(identity)
            if row is None:
                self._conn.execute(
                    """INSERT INTO requests
                       (namespace, name, path, method, body, headers, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?)""",
                    (
                        identity.namespace,
                        identity.name,
                        spec.path,
                        spec.method,
                        spec.body,
                        json.dumps(spec.headers),
                        request.metadata.created_at.isoformat(),
                    ),
                )
                logger.info("created %s", identity)
            elif self._row_to_request(row).spec != spec:
                self._conn.execute(
                    """UPDATE requests
                       SET path = ?, method = ?, body = ?, headers = ?,
                           generation = generation + 1,
                           resource_version = resource_version + 1
                       WHERE namespace = ? AND name = ?""",
                    (
                        spec.path,
                        spec.method,
                        spec.body,
                        json.dumps(spec.headers),
                        identity.namespace,
                        identity.name,
                    ),
                )
                logger.info("updated spec of %s", identity)
            row = self._fetch_row(identity)
        return self._row_to_request(row)

    def delete(self, identity: ResourceIdentity) -> None:
        with _store_errors("delete"):
            cursor = self._conn.execute(
                "DELETE FROM requests WHERE namespace = ? AND name = ?",
                (identity.namespace, identity.name),
            )
            self._conn.commit()
        if cursor.rowcount == 0:
            raise RequestNotFoundError(str(identity))

    def list(self) -> list[Request]:
        with _store_errors("list"):
            rows = self._conn.execute(
                "SELECT * FROM requests ORDER BY created_at, namespace, name"
            ).fetchall()
        return [self._row_to_request(r) for r in rows]

    def _fetch_row(self, identity: ResourceIdentity) -> sqlite3.Row | None:
        return self._conn.execute(
            "SELECT * FROM requests WHERE namespace = ? AND name = ?",
            (identity.namespace, identity.name),
        ).fetchone()

    def _row_to_request(self, row: sqlite3.Row) -> Request:
        try:
            return Request(
                metadata=RequestMetadata(
                    name=row["name"],
                    namespace=row["namespace"],
                    generation=row["generation"],
                    resource_version=row["resource_version"],
                    created_at=datetime.fromisoformat(row["created_at"]),
                ),
                spec=RequestSpec(
                    path=row["path"],
                    method=row["method"],
                    body=row["body"],
                    headers=json.loads(row["headers"]),
                ),
                status=RequestStatus(code=row["status_code"], body=row["status_body"]),
            )
        except (ValueError, TypeError) as exc:
            raise StoreError(
                f"Corrupt row for {row['namespace']}/{row['name']}: {exc}"
            ) from exc
