"""Command line entry point: one-shot health check or the HTTP server."""

from __future__ import annotations

import argparse
import json
import sys

from stack_health.config import get_settings
from stack_health.middleware import configure_structured_logging
from stack_health.services.manager import build_manager


def check_once(pretty: bool = False) -> int:
    """Print the full health report; exit 0 when healthy, 1 otherwise."""
    settings = get_settings()
    configure_structured_logging(settings)
    report = build_manager(settings).run_all()
    print(json.dumps(report.to_dict(), indent=2 if pretty else None))
    return 0 if report.healthy else 1


def serve(host: str, port: int) -> int:
    import uvicorn

    uvicorn.run("stack_health.app:create_app", host=host, port=port, factory=True)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="stack_health")
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", help="run all checks once and print JSON")
    check.add_argument("--pretty", action="store_true")

    server = sub.add_parser("serve", help="serve /health and the demo page")
    server.add_argument("--host", default="0.0.0.0")
    server.add_argument("--port", type=int, default=8080)

    args = parser.parse_args(argv)
    if args.command == "check":
        return check_once(pretty=args.pretty)
    return serve(args.host, args.port)


if __name__ == "__main__":
    sys.exit(main())
