#!/usr/bin/env python3
"""
liveview-collector: resilient multi-source weather/traffic/river snapshot collection.

Usage:
    python main.py collect              # Run every collector once and store the snapshot (for cron)
    python main.py collect --deadline 60
    python main.py runs                 # Show recent collection runs
    python main.py stats                # Show stored record counts
    python main.py serve                # Start the status API
"""

import argparse
import json
import logging
import sys

from collectors import build_units
from config import load_config
from delivery import deliver_cli
from orchestrator import collect
from storage import Storage


def setup_logging(verbose: bool = False):
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # requests/urllib3 are chatty at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def cmd_collect(config, storage, deadline: float | None = None) -> int:
    """Run all collectors concurrently, persist the snapshot. Returns sources that succeeded."""
    units = build_units(storage, config)
    result = collect(
        units,
        policy=config.retry_policy(),
        deadline=deadline if deadline is not None else config.deadline,
    )
    run_id = storage.save_collection_run(result)
    deliver_cli(result, run_id)
    return len(result.succeeded)


def cmd_runs(config, storage, limit: int):
    """Print recent runs as JSON."""
    print(json.dumps(storage.get_runs(limit=limit), indent=2))


def cmd_stats(config, storage):
    """Print record stats."""
    stats = storage.get_stats()
    print(f"Collection runs: {stats['total_runs']} (latest: {stats['latest_run'] or 'never'})")
    for table, count in stats["records"].items():
        print(f"  {table}: {count}")
    print(f"  open incidents: {stats['open_incidents']}")

    for name, status in storage.get_source_status().items():
        line = f"  [{name}] {status['status']} at {status['last_run']}"
        if status["last_error"]:
            line += f" ({status['last_error']})"
        print(line)


def cmd_serve(config, args):
    """Start the status API server."""
    from api.server import create_app

    if not config.db_path.exists():
        print(f"No database at {config.db_path}. Run 'python main.py collect' first.")
        sys.exit(1)

    app = create_app(db_path=config.db_path)
    print(f"Starting server at http://{args.host}:{args.port}")
    app.run(host=args.host, port=args.port, debug=args.verbose)


def cli():
    parser = argparse.ArgumentParser(
        prog="liveview",
        description="Collect weather, alert, traffic and river gauge snapshots",
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")

    sub = parser.add_subparsers(dest="command", help="Command to run")

    collect_parser = sub.add_parser("collect", parents=[common], help="Run all collectors once")
    collect_parser.add_argument(
        "--deadline", type=float, default=None,
        help="Seconds before pending retries are cancelled (default: LIVEVIEW_DEADLINE_SECONDS)",
    )

    runs_parser = sub.add_parser("runs", parents=[common], help="Show recent collection runs")
    runs_parser.add_argument("--limit", type=int, default=10, help="Number of runs (default 10)")

    sub.add_parser("stats", parents=[common], help="Show stored record counts")

    serve_parser = sub.add_parser("serve", parents=[common], help="Start status API server")
    serve_parser.add_argument("--port", type=int, default=5003, help="Port (default 5003)")
    serve_parser.add_argument("--host", type=str, default="127.0.0.1", help="Host (default 127.0.0.1)")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.verbose)
    config = load_config()

    # serve opens its own read-only connections
    if args.command == "serve":
        cmd_serve(config, args)
        return

    storage = Storage(config.db_path)

    try:
        match args.command:
            case "collect":
                succeeded = cmd_collect(config, storage, args.deadline)
                if succeeded == 0:
                    sys.exit(1)
            case "runs":
                cmd_runs(config, storage, args.limit)
            case "stats":
                cmd_stats(config, storage)
            case _:
                parser.print_help()
    finally:
        storage.close()


if __name__ == "__main__":
    cli()
