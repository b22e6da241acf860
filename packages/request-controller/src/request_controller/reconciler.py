"""Request reconciler: the read, decide, act, write cycle."""

from __future__ import annotations

import logging

from .exceptions import (
    ConflictError,
    ExecutionError,
    MalformedRequestError,
    RequestNotFoundError,
    StatusPersistError,
    StoreError,
)
from .executor import ActionExecutor
from .models import (
    ReconcileOutcome,
    ReconcileResult,
    RequestStatus,
    ResourceIdentity,
    is_completed,
)
from .notifications import (
    REQUEST_COMPLETED,
    REQUEST_FAILED,
    REQUEST_REJECTED,
    REQUEST_SKIPPED,
    EventRecorder,
    EventType,
)
from .store import RequestStore

logger = logging.getLogger(__name__)


class RequestReconciler:
    """Drives one Request towards a recorded HTTP response.

    Each call to ``reconcile`` is a single pass: one fetch, at most one HTTP
    call, at most one status write. Whether to act is decided only from the
    freshly fetched status, so redundant or overlapping deliveries for the
    same Request are safe. Retryable failures are raised; everything else is
    reported in the returned ReconcileResult.
    """

    def __init__(
        self,
        store: RequestStore,
        executor: ActionExecutor,
        events: EventRecorder | None = None,
        terminal_on_malformed: bool = True,
    ) -> None:
        self._store = store
        self._executor = executor
        self.events = events or EventRecorder()
        self._terminal_on_malformed = terminal_on_malformed

    def reconcile(self, identity: ResourceIdentity) -> ReconcileResult:
        logger.info("reconcile %s", identity)

        try:
            request = self._store.get(identity)
        except RequestNotFoundError:
            logger.info("%s not found, assuming deleted", identity)
            self.events.record(identity, REQUEST_SKIPPED, "not found")
            return ReconcileResult(identity=identity, outcome=ReconcileOutcome.NOT_FOUND)
        except StoreError as exc:
            logger.exception("unable to fetch %s", identity)
            self.events.record(identity, REQUEST_FAILED, str(exc), EventType.WARNING)
            raise

        if is_completed(request.status):
            logger.info("%s already made (code %s)", identity, request.status.code)
            self.events.record(identity, REQUEST_SKIPPED, "already completed")
            return ReconcileResult(
                identity=identity,
                outcome=ReconcileOutcome.ALREADY_COMPLETED,
                status=request.status,
            )

        try:
            outcome = self._executor.execute(request.spec)
        except MalformedRequestError as exc:
            logger.error("%s is malformed: %s", identity, exc)
            if not self._terminal_on_malformed:
                exc.retryable = True
                self.events.record(identity, REQUEST_FAILED, str(exc), EventType.WARNING)
                raise
            self.events.record(identity, REQUEST_REJECTED, str(exc), EventType.WARNING)
            return ReconcileResult(
                identity=identity, outcome=ReconcileOutcome.REJECTED, error=str(exc)
            )
        except ExecutionError as exc:
            logger.warning("request for %s failed: %s", identity, exc)
            self.events.record(identity, REQUEST_FAILED, str(exc), EventType.WARNING)
            raise

        request.status = RequestStatus(code=outcome.code, body=outcome.body)
        try:
            self._store.update_status(request)
        except RequestNotFoundError:
            logger.warning("%s deleted before its status could be saved", identity)
            self.events.record(identity, REQUEST_SKIPPED, "deleted during execution")
            return ReconcileResult(identity=identity, outcome=ReconcileOutcome.NOT_FOUND)
        except ConflictError as exc:
            logger.error("unable to update status of %s: %s", identity, exc)
            self.events.record(identity, REQUEST_FAILED, str(exc), EventType.WARNING)
            raise
        except StoreError as exc:
            logger.error("unable to update status of %s: %s", identity, exc)
            self.events.record(identity, REQUEST_FAILED, str(exc), EventType.WARNING)
            raise StatusPersistError(str(identity), str(exc)) from exc

        logger.info("%s completed with code %s", identity, outcome.code)
        self.events.record(identity, REQUEST_COMPLETED, f"code {outcome.code}")
        return ReconcileResult(
            identity=identity,
            outcome=ReconcileOutcome.COMPLETED,
            status=request.status,
        )
