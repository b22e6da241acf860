"""Custom exceptions for the request controller.

Every error carries a ``retryable`` flag. The controller work queue re-queues
retryable failures and drops the rest.
"""


class RequestControllerError(Exception):
    """Base exception for request controller errors."""

    retryable = True


class RequestNotFoundError(RequestControllerError):
    """Raised when a Request does not exist in the store."""

    retryable = False

    def __init__(self, identity: str) -> None:
        super().__init__(f"Request not found: {identity}")
        self.identity = identity


class StoreError(RequestControllerError):
    """Raised when the backing store fails to read or write."""


class ConflictError(StoreError):
    """Raised when a status write races another writer."""

    def __init__(self, identity: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Conflict updating {identity}: read resource version {expected}, "
            f"store has {actual}"
        )
        self.identity = identity
        self.expected = expected
        self.actual = actual


class StatusPersistError(StoreError):
    """Raised when the action ran but its outcome could not be recorded."""

    def __init__(self, identity: str, reason: str) -> None:
        super().__init__(f"Request {identity} executed but status not saved: {reason}")
        self.identity = identity
        self.reason = reason


class ExecutionError(RequestControllerError):
    """Base for failures of the outbound HTTP call."""


class MalformedRequestError(ExecutionError):
    """Raised when the desired request cannot be turned into an HTTP call."""

    retryable = False

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"Malformed {field}: {reason}")
        self.field = field
        self.reason = reason


class TransportError(ExecutionError):
    """Raised when the HTTP call fails before a response arrives."""

    def __init__(self, method: str, url: str, reason: str) -> None:
        super().__init__(f"{method} {url} failed: {reason}")
        self.method = method
        self.url = url
        self.reason = reason


class ResponseReadError(ExecutionError):
    """Raised when the response body cannot be read to completion."""

    def __init__(self, method: str, url: str, reason: str) -> None:
        super().__init__(f"Reading response of {method} {url} failed: {reason}")
        self.method = method
        self.url = url
        self.reason = reason


class ConfigError(RequestControllerError):
    """Raised when the controller configuration cannot be loaded."""

    retryable = False

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"Invalid configuration in {source}: {reason}")
        self.source = source
        self.reason = reason
