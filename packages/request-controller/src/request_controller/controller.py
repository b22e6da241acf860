"""In-process work queue that feeds identities to the reconciler."""

from __future__ import annotations

import heapq
import itertools
import logging
import time
from typing import Callable

from .exceptions import RequestControllerError
from .models import ReconcileResult, ResourceIdentity
from .reconciler import RequestReconciler
from .store import RequestStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 5
DEFAULT_BACKOFF_BASE = 0.5
DEFAULT_BACKOFF_MAX = 30.0


class Controller:
    """Delivers identities to a RequestReconciler, one pass at a time.

    An identity waiting in the queue is never queued twice. Retryable
    failures are re-queued with exponential backoff until ``max_retries`` is
    used up; non-retryable failures are dropped immediately. Dropped
    identities and their last error end up in ``failures``.
    """

    def __init__(
        self,
        reconciler: RequestReconciler,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        backoff_max: float = DEFAULT_BACKOFF_MAX,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._reconciler = reconciler
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._clock = clock
        self._sleep = sleep
        self._queue: list[tuple[float, int, ResourceIdentity]] = []
        self._queued: set[ResourceIdentity] = set()
        self._attempts: dict[ResourceIdentity, int] = {}
        self._seq = itertools.count()
        self.failures: dict[ResourceIdentity, str] = {}

    def __len__(self) -> int:
        return len(self._queue)

    def enqueue(self, identity: ResourceIdentity, delay: float = 0.0) -> bool:
        """Queue an identity. Returns False if it was already waiting."""
        if identity in self._queued:
            return False
        self._queued.add(identity)
        heapq.heappush(self._queue, (self._clock() + delay, next(self._seq), identity))
        return True

    def resync(self, store: RequestStore) -> int:
        """Queue every Request in the store. Returns how many were added."""
        return sum(self.enqueue(r.identity) for r in store.list())

    def backoff(self, attempt: int) -> float:
        return min(self._backoff_base * 2 ** (attempt - 1), self._backoff_max)

    def process_next(self) -> ReconcileResult | None:
        """Run one pass for the earliest due identity.

        Returns None when the queue is empty or the pass failed.
        """
        if not self._queue:
            return None
        ready_at, _, identity = heapq.heappop(self._queue)
        self._queued.discard(identity)

        wait = ready_at - self._clock()
        if wait > 0:
            self._sleep(wait)

        try:
            result = self._reconciler.reconcile(identity)
        except RequestControllerError as exc:
            self._handle_error(identity, exc)
            return None

        self._attempts.pop(identity, None)
        self.failures.pop(identity, None)
        return result

    def run(self) -> list[ReconcileResult]:
        """Process until the queue drains."""
        results: list[ReconcileResult] = []
        while self._queue:
            result = self.process_next()
            if result is not None:
                results.append(result)
        return results

    def _handle_error(self, identity: ResourceIdentity, exc: RequestControllerError) -> None:
        if not exc.retryable:
            logger.error("dropping %s: %s", identity, exc)
            self._drop(identity, exc)
            return

        attempt = self._attempts.get(identity, 0) + 1
        if attempt > self._max_retries:
            logger.error("giving up on %s after %d retries: %s", identity, self._max_retries, exc)
            self._drop(identity, exc)
            return

        self._attempts[identity] = attempt
        delay = self.backoff(attempt)
        logger.warning("requeue %s in %.2fs (retry %d/%d): %s",
                       identity, delay, attempt, self._max_retries, exc)
        self.enqueue(identity, delay)

    def _drop(self, identity: ResourceIdentity, exc: RequestControllerError) -> None:
        self._attempts.pop(identity, None)
        self.failures[identity] = str(exc)
