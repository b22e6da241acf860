"""Demo: reconcile two Requests against an in-process responder.

Usage:
    python -m examples.demo

The first pass executes both calls and records their responses; the second
pass finds every status filled in and makes no calls at all.
"""

from __future__ import annotations

import httpx

from request_controller import (
    REQUEST_COMPLETED,
    REQUEST_SKIPPED,
    Controller,
    HTTPActionExecutor,
    Request,
    RequestReconciler,
    SQLiteRequestStore,
)

calls: list[str] = []


def responder(request: httpx.Request) -> httpx.Response:
    calls.append(f"{request.method} {request.url}")
    if request.url.path == "/ping":
        return httpx.Response(204)
    return httpx.Response(201, text=request.content.decode())


def main() -> None:
    store = SQLiteRequestStore()
    client = httpx.Client(transport=httpx.MockTransport(responder))
    reconciler = RequestReconciler(store, HTTPActionExecutor(client))
    reconciler.events.on(REQUEST_COMPLETED, lambda e: print(f"✅ {e.identity}: {e.message}"))
    reconciler.events.on(REQUEST_SKIPPED, lambda e: print(f"⏭️  {e.identity}: {e.message}"))

    store.apply(Request.from_manifest({
        "metadata": {"name": "ping"},
        "spec": {"path": "http://svc/ping", "method": "get"},
    }))
    store.apply(Request.from_manifest({
        "metadata": {"name": "create-user", "namespace": "team-a"},
        "spec": {
            "path": "http://svc/users",
            "method": "post",
            "body": '{"name": "ada"}',
            "headers": ["Content-Type:application/json"],
        },
    }))

    for attempt in (1, 2):
        controller = Controller(reconciler)
        controller.resync(store)
        controller.run()
        print(f"after pass {attempt}: {len(calls)} outbound call(s)\n")

    for request in store.list():
        print(f"{request.identity}: {request.status.code} {request.status.body!r}")

    client.close()
    store.close()


if __name__ == "__main__":
    main()
