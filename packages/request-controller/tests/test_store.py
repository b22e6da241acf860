"""Tests for the SQLite request store."""

from __future__ import annotations

import pytest

from request_controller import (
    ConflictError,
    Request,
    RequestNotFoundError,
    RequestStatus,
    ResourceIdentity,
    SQLiteRequestStore,
    StoreError,
)


def make_request(name: str = "ping", namespace: str = "default", **spec) -> Request:
    spec = {"path": "http://svc/ping", "method": "get", **spec}
    return Request.from_manifest(
        {"metadata": {"name": name, "namespace": namespace}, "spec": spec}
    )


class TestSQLiteRequestStore:
    def setup_method(self) -> None:
        self.store = SQLiteRequestStore()

    def teardown_method(self) -> None:
        self.store.close()

    def test_apply_creates_with_empty_status(self) -> None:
        request = make_request(headers=["Accept:text/plain"])
        request.status = RequestStatus(code="200", body="ignored")
        created = self.store.apply(request)
        assert created.metadata.generation == 1
        assert created.metadata.resource_version == 1
        assert created.status == RequestStatus()
        assert created.spec.headers == ["Accept:text/plain"]

    def test_get_roundtrips_spec(self) -> None:
        self.store.apply(make_request(method="post", body="{}"))
        fetched = self.store.get(ResourceIdentity(name="ping"))
        assert fetched.spec.method == "post"
        assert fetched.spec.body == "{}"
        assert fetched.identity == ResourceIdentity(namespace="default", name="ping")

    def test_get_missing_raises_not_found(self) -> None:
        with pytest.raises(RequestNotFoundError) as exc_info:
            self.store.get(ResourceIdentity(name="missing"))
        assert exc_info.value.identity == "default/missing"
        assert not exc_info.value.retryable

    def test_namespaces_are_distinct(self) -> None:
        self.store.apply(make_request(namespace="a"))
        self.store.apply(make_request(namespace="b", path="http://other/"))
        assert self.store.get(ResourceIdentity(namespace="b", name="ping")).spec.path == "http://other/"
        assert len(self.store.list()) == 2

    def test_update_status_bumps_resource_version(self) -> None:
        request = self.store.apply(make_request())
        request.status = RequestStatus(code="204", body="")
        updated = self.store.update_status(request)
        assert updated.metadata.resource_version == 2
        assert self.store.get(request.identity).status.code == "204"

    def test_stale_status_write_conflicts(self) -> None:
        first = self.store.apply(make_request())
        second = first.model_copy(deep=True)

        first.status = RequestStatus(code="200", body="a")
        self.store.update_status(first)

        second.status = RequestStatus(code="500", body="b")
        with pytest.raises(ConflictError) as exc_info:
            self.store.update_status(second)
        assert exc_info.value.expected == 1
        assert exc_info.value.actual == 2
        assert exc_info.value.retryable
        assert self.store.get(first.identity).status.body == "a"

    def test_update_status_of_deleted_request(self) -> None:
        request = self.store.apply(make_request())
        self.store.delete(request.identity)
        request.status = RequestStatus(code="200")
        with pytest.raises(RequestNotFoundError):
            self.store.update_status(request)

    def test_reapply_same_spec_is_a_noop(self) -> None:
        self.store.apply(make_request())
        again = self.store.apply(make_request())
        assert again.metadata.generation == 1
        assert again.metadata.resource_version == 1

    def test_reapply_changed_spec_keeps_status(self) -> None:
        request = self.store.apply(make_request())
        request.status = RequestStatus(code="204")
        self.store.update_status(request)

        changed = self.store.apply(make_request(method="delete"))
        assert changed.metadata.generation == 2
        assert changed.metadata.resource_version == 3
        assert changed.spec.method == "delete"
        assert changed.status.code == "204"

    def test_delete(self) -> None:
        request = self.store.apply(make_request())
        self.store.delete(request.identity)
        with pytest.raises(RequestNotFoundError):
            self.store.get(request.identity)

    def test_delete_missing_raises_not_found(self) -> None:
        with pytest.raises(RequestNotFoundError):
            self.store.delete(ResourceIdentity(name="missing"))

    def test_list_in_creation_order(self) -> None:
        for name in ("first", "second", "third"):
            self.store.apply(make_request(name=name))
        assert [r.metadata.name for r in self.store.list()] == ["first", "second", "third"]


def test_store_persists_to_file(tmp_path) -> None:
    db = tmp_path / "requests.db"
    store = SQLiteRequestStore(db)
    request = store.apply(make_request())
    request.status = RequestStatus(code="201", body="created")
    store.update_status(request)
    store.close()

    reopened = SQLiteRequestStore(db)
    try:
        status = reopened.get(ResourceIdentity(name="ping")).status
        assert status == RequestStatus(code="201", body="created")
    finally:
        reopened.close()


def test_sqlite_failure_surfaces_as_store_error() -> None:
    store = SQLiteRequestStore()
    store.close()
    with pytest.raises(StoreError) as exc_info:
        store.get(ResourceIdentity(name="ping"))
    assert exc_info.value.retryable


def test_corrupt_row_surfaces_as_store_error() -> None:
    store = SQLiteRequestStore()
    try:
        store.apply(make_request())
        store._conn.execute("UPDATE requests SET headers = 'not json'")
        store._conn.commit()
        with pytest.raises(StoreError) as exc_info:
            store.get(ResourceIdentity(name="ping"))
        assert "default/ping" in str(exc_info.value)
        with pytest.raises(StoreError):
            store.list()
    finally:
        store.close()
