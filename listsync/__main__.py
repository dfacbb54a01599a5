"""CLI entry point for listsync."""

import argparse
import asyncio
import json
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path

from .config import Config, load_config
from .client import ChangeEvent, Synchronizer
from .store import LocalStore


# Library loggers that are only interesting when debugging a connection.
_CHATTY_LOGGERS = ("websockets", "httpx", "httpcore", "uvicorn.access")

_LEVELS = {
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


class JSONFormatter(logging.Formatter):
    """One JSON object per log line, for piping relay or client logs."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = "".join(traceback.format_exception(*record.exc_info))

        # Log messages may embed entry text from peers
        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure the root logger for the listsync CLI.

    ``--log-level`` wins over ``-v``. Transport libraries stay at WARNING
    unless running at DEBUG.
    """
    if log_level:
        level = _LEVELS.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
                datefmt="%H:%M:%S",
            )
        )

    logging.basicConfig(level=level, handlers=[handler])

    if level > logging.DEBUG:
        for name in _CHATTY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def _open_store(config: Config) -> LocalStore:
    store = LocalStore(config.client.store_path, key=config.client.store_key)
    store.connect()
    return store


def _make_synchronizer(config: Config, store: LocalStore, on_change=None) -> Synchronizer:
    return Synchronizer(
        store,
        config.client.relay_url,
        reconnect_delay=config.client.reconnect_delay_seconds,
        resync_mode=config.client.resync_mode,
        on_change=on_change,
    )


async def cmd_relay(args: argparse.Namespace) -> int:
    """Serve the relay."""
    config = load_config(args.config)

    import uvicorn

    from .relay import create_app

    host = args.host or config.relay.host
    port = args.port or config.relay.port

    print(f"Starting listsync relay: {config.node.name}")
    print(f"URL: ws://{host}:{port}{config.relay.path}")

    app = create_app(config)

    verbose = getattr(args, "verbose", False)
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=host,
            port=port,
            log_level="info" if verbose else "warning",
        )
    )
    await server.serve()

    return 0


async def cmd_status(args: argparse.Namespace) -> int:
    """Query the relay's statistics."""
    import httpx

    config = load_config(args.config)
    url = f"{config.client.relay_http_url}/api/stats"

    try:
        async with httpx.AsyncClient(timeout=5.0) as client:
            response = await client.get(url)
            response.raise_for_status()
            stats = response.json()
    except httpx.HTTPError as e:
        if args.json:
            print(json.dumps({"relay_url": config.client.relay_url, "reachable": False, "error": str(e)}))
        else:
            print(f"Relay ({config.client.relay_url}):")
            print(f"  Status: Not reachable ({e})")
        return 1

    if args.json:
        print(json.dumps({"relay_url": config.client.relay_url, "reachable": True, **stats}, indent=2))
    else:
        print(f"Relay ({config.client.relay_url}):")
        print(f"  Status: Reachable")
        print(f"  Node: {stats.get('node_name')}")
        print(f"  Clients connected: {stats.get('clients_connected')}")
        print(f"  Entries: {stats.get('entry_count')}")
        print(f"  Messages relayed: {stats.get('messages_relayed')}")
        print(f"  Messages dropped: {stats.get('messages_dropped')}")

    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """Print the locally persisted entries."""
    config = load_config(args.config)
    store = _open_store(config)
    try:
        entries = store.load()
    finally:
        store.close()

    if not entries:
        print("No entries.")
    for i, entry in enumerate(entries, start=1):
        print(f"{i:3}. {entry}")
    return 0


async def _run_action(args: argparse.Namespace, action) -> int:
    """Connect, wait for the handshake, run one local action and disconnect."""
    config = load_config(args.config)
    store = _open_store(config)
    sync = _make_synchronizer(config, store)

    try:
        await sync.start()
        if not await sync.wait_synced(timeout=args.timeout):
            print(
                f"Relay not reachable at {config.client.relay_url}; "
                "change saved locally and will sync on next connect",
                file=sys.stderr,
            )
        await action(sync)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await sync.stop()
        store.close()

    return 0


async def cmd_add(args: argparse.Namespace) -> int:
    """Add an entry."""
    entry = args.entry.strip()
    if not entry:
        print("Error: entry must not be empty", file=sys.stderr)
        return 1

    async def action(sync: Synchronizer) -> None:
        if not await sync.add(entry):
            print(f"Already present: {entry}")

    return await _run_action(args, action)


async def cmd_remove(args: argparse.Namespace) -> int:
    """Remove an entry."""

    async def action(sync: Synchronizer) -> None:
        if not await sync.remove(args.entry):
            print(f"Not present locally: {args.entry}")

    return await _run_action(args, action)


async def cmd_reorder(args: argparse.Namespace) -> int:
    """Reorder the entries."""

    async def action(sync: Synchronizer) -> None:
        await sync.reorder(args.entries)

    return await _run_action(args, action)


async def cmd_watch(args: argparse.Namespace) -> int:
    """Stay connected and print every change until interrupted."""
    config = load_config(args.config)
    store = _open_store(config)

    def on_change(event: ChangeEvent) -> None:
        origin = "remote" if event.remote else "local"
        print(f"[{origin}] {event.kind}: {', '.join(event.entries) or '(empty)'}")

    sync = _make_synchronizer(config, store, on_change=on_change)
    print(f"Watching {config.client.relay_url} as {sync.client_id} (Ctrl+C to stop)")

    try:
        await sync.start()
        await asyncio.Event().wait()
    except (KeyboardInterrupt, asyncio.CancelledError):
        print("\nShutting down...")
    finally:
        await sync.stop()
        store.close()

    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="listsync",
        description="Real-time list synchronization over a WebSocket relay",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: built-in defaults)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Relay command
    relay_parser = subparsers.add_parser("relay", help="Start the relay server")
    relay_parser.add_argument(
        "-p", "--port",
        type=int,
        default=None,
        help="Port to listen on (default: from config, 8080)",
    )
    relay_parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind to (default: from config, 0.0.0.0)",
    )
    relay_parser.set_defaults(func=cmd_relay)

    # Status command
    status_parser = subparsers.add_parser("status", help="Show relay statistics")
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Output status as JSON",
    )
    status_parser.set_defaults(func=cmd_status)

    # List command
    list_parser = subparsers.add_parser("list", help="Show locally stored entries")
    list_parser.set_defaults(func=cmd_list)

    # Entry commands
    add_parser = subparsers.add_parser("add", help="Add an entry")
    add_parser.add_argument("entry", help="Entry text")
    add_parser.set_defaults(func=cmd_add)

    remove_parser = subparsers.add_parser("remove", help="Remove an entry")
    remove_parser.add_argument("entry", help="Entry text")
    remove_parser.set_defaults(func=cmd_remove)

    reorder_parser = subparsers.add_parser("reorder", help="Set a new order for all entries")
    reorder_parser.add_argument("entries", nargs="+", help="All entries in their new order")
    reorder_parser.set_defaults(func=cmd_reorder)

    for action_parser in (add_parser, remove_parser, reorder_parser):
        action_parser.add_argument(
            "-t", "--timeout",
            type=float,
            default=5.0,
            help="Seconds to wait for the relay before working offline (default: 5)",
        )

    # Watch command
    watch_parser = subparsers.add_parser("watch", help="Stay connected and print changes")
    watch_parser.set_defaults(func=cmd_watch)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, getattr(args, "json", False))

    if not args.command:
        parser.print_help()
        return 1

    func = args.func
    try:
        if asyncio.iscoroutinefunction(func):
            return asyncio.run(func(args))
        return func(args)
    except KeyboardInterrupt:
        return 0
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
