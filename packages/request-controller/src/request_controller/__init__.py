"""Request controller: reconcile declarative HTTP Requests into recorded responses."""

from .controller import Controller
from .exceptions import (
    ConflictError,
    ExecutionError,
    MalformedRequestError,
    RequestControllerError,
    RequestNotFoundError,
    ResponseReadError,
    StatusPersistError,
    StoreError,
    TransportError,
)
from .executor import ActionExecutor, HTTPActionExecutor
from .models import (
    ActionOutcome,
    ReconcileOutcome,
    ReconcileResult,
    Request,
    RequestMetadata,
    RequestSpec,
    RequestStatus,
    ResourceIdentity,
    is_completed,
)
from .notifications import (
    REQUEST_COMPLETED,
    REQUEST_FAILED,
    REQUEST_REJECTED,
    REQUEST_SKIPPED,
    Event,
    EventRecorder,
)
from .reconciler import RequestReconciler
from .store import RequestStore, SQLiteRequestStore

__all__ = [
    "Controller",
    "ConflictError",
    "ExecutionError",
    "MalformedRequestError",
    "RequestControllerError",
    "RequestNotFoundError",
    "ResponseReadError",
    "StatusPersistError",
    "StoreError",
    "TransportError",
    "ActionExecutor",
    "HTTPActionExecutor",
    "ActionOutcome",
    "ReconcileOutcome",
    "ReconcileResult",
    "Request",
    "RequestMetadata",
    "RequestSpec",
    "RequestStatus",
    "ResourceIdentity",
    "is_completed",
    "REQUEST_COMPLETED",
    "REQUEST_FAILED",
    "REQUEST_REJECTED",
    "REQUEST_SKIPPED",
    "Event",
    "EventRecorder",
    "RequestReconciler",
    "RequestStore",
    "SQLiteRequestStore",
]
