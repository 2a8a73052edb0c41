#!/usr/bin/env python3
"""
Command-line interface for the rewards state-sync core.

Usage:
    uv run python cli.py [command] [options]

Commands:
    demo        Walk through one or all client-state scenarios
    settings    Print the effective settings (after REWARDS_SYNC_* overrides)
    test        Run the test suite
    serve       Start the demo HTTP API

Examples:
    uv run python cli.py demo points
    uv run python cli.py demo all --log-level INFO
    uv run python cli.py serve --storage ./device.json --debounce 0.2
"""

import argparse
import os
import subprocess
import sys
from typing import Optional

from core.config import ENV_PREFIX, SyncSettings

SCENARIO_CHOICES = ["points", "cart", "realtime", "toasts", "all"]


def cmd_demo(args: argparse.Namespace) -> int:
    from client.demo import run_demo

    run_demo(args.scenario, log_level=args.log_level)
    return 0


def cmd_settings(args: argparse.Namespace) -> int:
    settings = SyncSettings.from_env()
    print(settings.model_dump_json(indent=2))
    return 0


def cmd_test(args: argparse.Namespace) -> int:
    return subprocess.run(["uv", "run", "pytest", *args.pytest_args]).returncode


def cmd_serve(args: argparse.Namespace) -> int:
    """Run uvicorn with settings overrides passed through the environment."""
    env = dict(os.environ)
    if args.storage:
        env[f"{ENV_PREFIX}STORAGE_PATH"] = args.storage
    if args.debounce is not None:
        env[f"{ENV_PREFIX}CART_DEBOUNCE_SECONDS"] = str(args.debounce)
    if args.log_level:
        env[f"{ENV_PREFIX}LOG_LEVEL"] = args.log_level

    cmd = ["uv", "run", "uvicorn", "api.main:app", f"--host={args.host}", f"--port={args.port}"]
    if args.reload:
        cmd.append("--reload")

    storage = args.storage or "in-memory"
    print(f"Serving rewards state-sync at http://{args.host}:{args.port} (storage: {storage})")
    print(f"Interactive docs at http://{args.host}:{args.port}/docs")
    return subprocess.run(cmd, env=env).returncode


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Rewards client state-sync tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s demo cart
  %(prog)s settings
  %(prog)s test -k cart
  %(prog)s serve --reload
        """,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    demo = subparsers.add_parser("demo", help="Run demo scenarios")
    demo.add_argument("scenario", choices=SCENARIO_CHOICES, help="Which scenario to run")
    demo.add_argument("--log-level", default="WARNING", help="Log level while the demo runs")
    demo.set_defaults(func=cmd_demo)

    settings = subparsers.add_parser("settings", help="Show effective settings")
    settings.set_defaults(func=cmd_settings)

    test = subparsers.add_parser("test", help="Run the test suite")
    test.add_argument("pytest_args", nargs="*", default=[], help="Arguments passed to pytest")
    test.set_defaults(func=cmd_test)

    serve = subparsers.add_parser("serve", help="Start the demo API server")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Enable auto-reload")
    serve.add_argument("--storage", help="JSON file to use as device storage")
    serve.add_argument("--debounce", type=float, help="Cart write debounce in seconds")
    serve.add_argument("--log-level", help="Server log level")
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 1
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
