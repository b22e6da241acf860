"""Action executors: turn a RequestSpec into exactly one HTTP call."""

from __future__ import annotations

import logging
import re
import time
from abc import ABC, abstractmethod
from typing import Callable

import httpx

from .exceptions import MalformedRequestError, ResponseReadError, TransportError
from .models import ActionOutcome, RequestSpec

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_DEADLINE = 120.0

# RFC 9110 token characters, used for both methods and header names.
_TOKEN = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")


class ActionExecutor(ABC):
    """Performs the side-effecting action for a Request.

    Implementations make exactly one attempt per call and never retry;
    retry policy belongs to whoever drives reconciliation.
    """

    @abstractmethod
    def execute(self, spec: RequestSpec) -> ActionOutcome:
        """Run the action. Raise an ExecutionError subclass on failure."""
        ...


def parse_header(entry: str) -> tuple[str, str]:
    """Split a ``name:value`` entry on its first colon."""
    name, sep, value = entry.partition(":")
    if not sep:
        raise MalformedRequestError("header", f"missing ':' in {entry!r}")
    name = name.strip()
    if not _TOKEN.match(name):
        raise MalformedRequestError("header", f"invalid header name in {entry!r}")
    if "\r" in value or "\n" in value:
        raise MalformedRequestError("header", f"line break in value of {name!r}")
    return name, value.strip()


def normalize_method(method: str) -> str:
    normalized = method.strip().upper()
    if not _TOKEN.match(normalized):
        raise MalformedRequestError("method", f"invalid HTTP method {method!r}")
    return normalized


def parse_url(path: str) -> httpx.URL:
    try:
        url = httpx.URL(path)
    except httpx.InvalidURL as exc:
        raise MalformedRequestError("path", str(exc)) from exc
    if url.scheme not in ("http", "https") or not url.host:
        raise MalformedRequestError("path", f"not an absolute http(s) URL: {path!r}")
    return url


class HTTPActionExecutor(ActionExecutor):
    """Executes a RequestSpec with httpx.

    Pass ``client`` to share a connection pool (or a mock transport in
    tests); otherwise the executor creates and owns one.

    ``timeout`` bounds each connect, write and read step on its own, so a
    server trickling bytes could stretch a call indefinitely. ``deadline``
    caps the whole call: once it has passed, reading the body stops with a
    ResponseReadError.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        deadline: float = DEFAULT_DEADLINE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client()
        self._timeout = httpx.Timeout(timeout)
        self._deadline = deadline
        self._clock = clock

    def close(self) -> None:
        """Close the HTTP client if this executor created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HTTPActionExecutor:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def build_request(self, spec: RequestSpec) -> httpx.Request:
        """Validate the spec and build the outgoing request without sending it."""
        method = normalize_method(spec.method)
        url = parse_url(spec.path)
        headers = [parse_header(h) for h in spec.headers]
        return self._client.build_request(
            method,
            url,
            headers=headers,
            content=spec.body.encode() if spec.body else None,
            timeout=self._timeout,
        )

    def execute(self, spec: RequestSpec) -> ActionOutcome:
        request = self.build_request(spec)
        method, url = request.method, str(request.url)
        logger.debug("sending %s %s", method, url)
        expires_at = self._clock() + self._deadline

        try:
            response = self._client.send(request, stream=True)
        except httpx.TransportError as exc:
            raise TransportError(method, url, str(exc) or type(exc).__name__) from exc

        chunks: list[bytes] = []
        try:
            for chunk in response.iter_bytes():
                chunks.append(chunk)
                if self._clock() > expires_at:
                    raise ResponseReadError(
                        method, url, f"exceeded deadline of {self._deadline}s"
                    )
        except (httpx.HTTPError, httpx.StreamError) as exc:
            raise ResponseReadError(method, url, str(exc) or type(exc).__name__) from exc
        finally:
            response.close()

        logger.debug("%s %s returned %d", method, url, response.status_code)
        body = b"".join(chunks).decode(response.charset_encoding or "utf-8", errors="replace")
        return ActionOutcome(code=str(response.status_code), body=body)
