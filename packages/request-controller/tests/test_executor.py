"""Tests for the HTTP action executor against an httpx mock transport."""

from __future__ import annotations

import httpx
import pytest

from request_controller import (
    HTTPActionExecutor,
    MalformedRequestError,
    RequestSpec,
    ResponseReadError,
    TransportError,
)
from request_controller.executor import parse_header


class FailingStream(httpx.SyncByteStream):
    def __init__(self) -> None:
        self.closed = False

    def __iter__(self):
        yield b"partial"
        raise httpx.ReadError("connection reset")

    def close(self) -> None:
        self.closed = True


class TestHTTPActionExecutor:
    def setup_method(self) -> None:
        self.sent: list[httpx.Request] = []
        self.response = httpx.Response(200, text="pong")
        self.client = httpx.Client(transport=httpx.MockTransport(self._handle))
        self.executor = HTTPActionExecutor(self.client, timeout=5.0)

    def teardown_method(self) -> None:
        self.executor.close()
        self.client.close()

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.sent.append(request)
        return self.response

    def test_returns_code_and_body(self) -> None:
        outcome = self.executor.execute(RequestSpec(path="http://svc/ping", method="GET"))
        assert outcome.code == "200"
        assert outcome.body == "pong"
        assert len(self.sent) == 1

    def test_method_is_upper_cased(self) -> None:
        self.executor.execute(RequestSpec(path="http://svc/users", method="post"))
        assert self.sent[0].method == "POST"

    def test_headers_split_on_first_colon(self) -> None:
        spec = RequestSpec(
            path="http://svc/users",
            method="get",
            headers=["Content-Type:application/json", "Authorization: Bearer a:b"],
        )
        self.executor.execute(spec)
        headers = self.sent[0].headers
        assert headers["Content-Type"] == "application/json"
        assert headers["Authorization"] == "Bearer a:b"

    def test_repeated_headers_all_sent(self) -> None:
        spec = RequestSpec(
            path="http://svc/", method="get", headers=["X-Tag:one", "X-Tag:two"]
        )
        self.executor.execute(spec)
        assert self.sent[0].headers.get_list("X-Tag") == ["one", "two"]

    def test_header_without_colon_rejected_before_sending(self) -> None:
        spec = RequestSpec(path="http://svc/", method="get", headers=["Content-Type"])
        with pytest.raises(MalformedRequestError) as exc_info:
            self.executor.execute(spec)
        assert exc_info.value.field == "header"
        assert not exc_info.value.retryable
        assert self.sent == []

    def test_body_sent_verbatim(self) -> None:
        spec = RequestSpec(path="http://svc/users", method="post", body='{"name": "ada"}')
        self.executor.execute(spec)
        assert self.sent[0].content == b'{"name": "ada"}'

    def test_empty_body_sends_no_content(self) -> None:
        self.executor.execute(RequestSpec(path="http://svc/ping", method="get"))
        assert self.sent[0].content == b""
        assert "Content-Length" not in self.sent[0].headers

    def test_timeout_attached_to_request(self) -> None:
        self.executor.execute(RequestSpec(path="http://svc/ping", method="get"))
        assert self.sent[0].extensions["timeout"]["read"] == 5.0

    @pytest.mark.parametrize("path", ["svc/ping", "/ping", "ftp://svc/file", "http://"])
    def test_non_absolute_url_rejected(self, path: str) -> None:
        with pytest.raises(MalformedRequestError) as exc_info:
            self.executor.execute(RequestSpec(path=path, method="get"))
        assert exc_info.value.field == "path"
        assert self.sent == []

    @pytest.mark.parametrize("method", ["", "GE T", "GE:T"])
    def test_invalid_method_rejected(self, method: str) -> None:
        with pytest.raises(MalformedRequestError) as exc_info:
            self.executor.execute(RequestSpec(path="http://svc/", method=method))
        assert exc_info.value.field == "method"
        assert self.sent == []

    def test_non_2xx_is_still_an_outcome(self) -> None:
        self.response = httpx.Response(503, text="unavailable")
        outcome = self.executor.execute(RequestSpec(path="http://svc/", method="get"))
        assert outcome.code == "503"
        assert outcome.body == "unavailable"


class TestExecutorFailures:
    def _executor(self, handler) -> HTTPActionExecutor:
        return HTTPActionExecutor(httpx.Client(transport=httpx.MockTransport(handler)))

    def test_connection_refused_is_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransportError) as exc_info:
            self._executor(handler).execute(RequestSpec(path="http://svc/", method="get"))
        assert exc_info.value.retryable
        assert exc_info.value.method == "GET"
        assert "connection refused" in str(exc_info.value)

    def test_timeout_is_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(TransportError):
            self._executor(handler).execute(RequestSpec(path="http://svc/", method="get"))

    def test_body_read_failure_closes_response(self) -> None:
        stream = FailingStream()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, stream=stream)

        with pytest.raises(ResponseReadError) as exc_info:
            self._executor(handler).execute(RequestSpec(path="http://svc/", method="get"))
        assert exc_info.value.retryable
        assert stream.closed


class TestClientOwnership:
    def test_owned_client_closed(self) -> None:
        with HTTPActionExecutor() as executor:
            client = executor._client
        assert client.is_closed

    def test_borrowed_client_left_open(self) -> None:
        client = httpx.Client()
        with HTTPActionExecutor(client):
            pass
        assert not client.is_closed
        client.close()


def test_parse_header_trims_whitespace() -> None:
    assert parse_header("Accept : text/plain ") == ("Accept", "text/plain")


def test_parse_header_rejects_empty_name() -> None:
    with pytest.raises(MalformedRequestError):
        parse_header(":value")


class TrickleStream(httpx.SyncByteStream):
    def __init__(self) -> None:
        self.chunks_sent = 0
        self.closed = False

    def __iter__(self):
        for chunk in (b"a", b"b", b"c", b"d"):
            self.chunks_sent += 1
            yield chunk

    def close(self) -> None:
        self.closed = True


def test_slow_body_stopped_at_deadline() -> None:
    stream = TrickleStream()
    ticks = iter([0.0, 6.0, 12.0, 18.0, 24.0])
    client = httpx.Client(
        transport=httpx.MockTransport(lambda request: httpx.Response(200, stream=stream))
    )
    executor = HTTPActionExecutor(client, deadline=10.0, clock=lambda: next(ticks))

    with pytest.raises(ResponseReadError) as exc_info:
        executor.execute(RequestSpec(path="http://svc/slow", method="get"))
    assert "deadline" in str(exc_info.value)
    assert stream.chunks_sent == 2
    assert stream.closed
    client.close()


def test_body_within_deadline_read_in_full() -> None:
    stream = TrickleStream()
    client = httpx.Client(
        transport=httpx.MockTransport(lambda request: httpx.Response(200, stream=stream))
    )
    outcome = HTTPActionExecutor(client, deadline=10.0).execute(
        RequestSpec(path="http://svc/slow", method="get")
    )
    assert outcome.body == "abcd"
    client.close()
