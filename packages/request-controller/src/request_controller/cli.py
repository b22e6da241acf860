"""CLI entry point for the `request-controller` command."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import tomllib
from pathlib import Path
from typing import Any

from .config import ControllerSettings, load_settings
from .controller import Controller
from .exceptions import RequestControllerError
from .executor import HTTPActionExecutor
from .models import ReconcileOutcome, ReconcileResult, Request, ResourceIdentity
from .reconciler import RequestReconciler
from .store import SQLiteRequestStore

LOG_LEVELS = ["debug", "info", "warning", "error"]


def _load_manifests(path: Path) -> list[Request]:
    """Load one Request, or a list of them, from a JSON or TOML file."""
    text = path.read_text()
    data: Any
    if path.suffix == ".toml":
        data = tomllib.loads(text)
        data = data.get("items", data)
    else:
        data = json.loads(text)
    items = data if isinstance(data, list) else [data]
    return [Request.from_manifest(item) for item in items]


def _format_result(result: ReconcileResult) -> str:
    line = f"{result.identity}: {result.outcome.value}"
    if result.status is not None and result.status.code:
        line += f" ({result.status.code})"
    if result.error:
        line += f": {result.error}"
    return line


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="request-controller",
        description="Reconcile declarative HTTP Requests into recorded responses",
    )
    parser.add_argument("--config", help="TOML config file")
    parser.add_argument("--db", dest="db_path", help="SQLite database path")
    parser.add_argument("--log-level", choices=LOG_LEVELS, help="Log level (default: info)")

    sub = parser.add_subparsers(dest="command", required=True)

    apply = sub.add_parser("apply", help="Create or update Requests from a manifest file")
    apply.add_argument("file", type=Path, help="JSON or TOML manifest")

    get = sub.add_parser("get", help="Print a Request as JSON")
    get.add_argument("name", help="namespace/name (namespace defaults to 'default')")

    delete = sub.add_parser("delete", help="Delete a Request")
    delete.add_argument("name", help="namespace/name")

    sub.add_parser("list", help="List Requests and their status codes")

    reconcile = sub.add_parser("reconcile", help="Reconcile the named Requests")
    reconcile.add_argument("names", nargs="+", help="namespace/name")

    sub.add_parser("run", help="Reconcile every stored Request until the queue drains")

    return parser


def _reconcile(controller: Controller) -> int:
    results = controller.run()
    for result in results:
        print(_format_result(result))
    for identity, error in controller.failures.items():
        print(f"{identity}: failed: {error}", file=sys.stderr)
    rejected = any(r.outcome == ReconcileOutcome.REJECTED for r in results)
    return 1 if controller.failures or rejected else 0


def _run_command(args: argparse.Namespace, settings: ControllerSettings) -> int:
    store = SQLiteRequestStore(settings.db_path, timeout=settings.store_timeout_seconds)
    try:
        if args.command == "apply":
            for request in _load_manifests(args.file):
                applied = store.apply(request)
                print(f"{applied.identity} applied (generation {applied.metadata.generation})")
            return 0
        if args.command == "get":
            request = store.get(ResourceIdentity.parse(args.name))
            print(json.dumps(request.to_manifest(), indent=2))
            return 0
        if args.command == "delete":
            identity = ResourceIdentity.parse(args.name)
            store.delete(identity)
            print(f"{identity} deleted")
            return 0
        if args.command == "list":
            for request in store.list():
                print(f"{request.identity}\t{request.spec.method.upper()}\t"
                      f"{request.spec.path}\t{request.status.code or '-'}")
            return 0

        with HTTPActionExecutor(
            timeout=settings.http_timeout_seconds,
            deadline=settings.http_deadline_seconds,
        ) as executor:
            reconciler = RequestReconciler(
                store, executor, terminal_on_malformed=settings.terminal_on_malformed
            )
            controller = Controller(
                reconciler,
                max_retries=settings.max_retries,
                backoff_base=settings.backoff_base_seconds,
                backoff_max=settings.backoff_max_seconds,
            )
            if args.command == "reconcile":
                for name in args.names:
                    controller.enqueue(ResourceIdentity.parse(name))
            else:
                controller.resync(store)
            return _reconcile(controller)
    finally:
        store.close()


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(
            args.config, db_path=args.db_path, log_level=args.log_level
        )
    except RequestControllerError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        code = _run_command(args, settings)
    except (RequestControllerError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    if code:
        sys.exit(code)
