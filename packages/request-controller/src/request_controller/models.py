"""Data models for Request resources."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_NAMESPACE = "default"


class ResourceIdentity(BaseModel):
    """Namespaced name of a Request, unique within the store."""

    model_config = ConfigDict(frozen=True)

    namespace: str = DEFAULT_NAMESPACE
    name: str

    @classmethod
    def parse(cls, key: str) -> ResourceIdentity:
        """Parse ``namespace/name``; a bare ``name`` lands in the default namespace."""
        namespace, sep, name = key.partition("/")
        if not sep:
            namespace, name = DEFAULT_NAMESPACE, namespace
        if not namespace or not name or "/" in name:
            raise ValueError(f"Invalid resource key: {key!r}")
        return cls(namespace=namespace, name=name)

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


class RequestSpec(BaseModel):
    """The desired HTTP call."""

    path: str
    method: str
    body: str = ""
    headers: list[str] = Field(default_factory=list)


class RequestStatus(BaseModel):
    """The observed outcome of the HTTP call. An empty code means not yet run."""

    code: str = ""
    body: str = ""


def is_completed(status: RequestStatus) -> bool:
    """Whether the action already ran for this resource."""
    return status.code != ""


class RequestMetadata(BaseModel):
    name: str
    namespace: str = DEFAULT_NAMESPACE
    generation: int = 1
    resource_version: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Request(BaseModel):
    """A declarative HTTP call: desired spec plus observed status."""

    metadata: RequestMetadata
    spec: RequestSpec
    status: RequestStatus = Field(default_factory=RequestStatus)

    @property
    def identity(self) -> ResourceIdentity:
        return ResourceIdentity(
            namespace=self.metadata.namespace, name=self.metadata.name
        )

    @classmethod
    def from_manifest(cls, data: dict[str, Any]) -> Request:
        """Build a Request from its wire format (``metadata``/``spec``/``status``)."""
        return cls.model_validate(data)

    def to_manifest(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class ActionOutcome(BaseModel):
    """Result of one executed HTTP call."""

    code: str
    body: str


class ReconcileOutcome(Enum):
    NOT_FOUND = "not_found"
    ALREADY_COMPLETED = "already_completed"
    COMPLETED = "completed"
    REJECTED = "rejected"


class ReconcileResult(BaseModel):
    """What a single reconciliation pass did."""

    identity: ResourceIdentity
    outcome: ReconcileOutcome
    status: RequestStatus | None = None
    error: str | None = None

    @property
    def acted(self) -> bool:
        return self.outcome == ReconcileOutcome.COMPLETED
