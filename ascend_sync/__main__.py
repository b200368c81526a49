"""CLI entry point for ascend-sync."""

import argparse
import asyncio
import json
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path

from .config import load_config
from .runtime import SyncRuntime, create_runtime
from .sync import SyncCoordinator


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        try:
            return json.dumps(log_data)
        except (TypeError, ValueError):
            log_data["message"] = str(log_data["message"])
            if "exception" in log_data:
                log_data["exception"] = str(log_data["exception"])
            return json.dumps(log_data)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level_map = {
            "warning": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }
        level = level_map.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )


def _resolve_user(args: argparse.Namespace, runtime: SyncRuntime) -> str | None:
    user_id = getattr(args, "user", None) or runtime.config.sync.user_id
    if not user_id:
        print("Error: no user id (use --user or ASCEND_USER_ID)", file=sys.stderr)
    return user_id


def _sync_disabled(runtime: SyncRuntime) -> bool:
    if runtime.config.sync.enabled:
        return False
    print("Sync is disabled (sync.enabled / ASCEND_SYNC_ENABLED)")
    return True


async def cmd_sync(args: argparse.Namespace) -> int:
    """Drain the queue, then run a full sync."""
    runtime = create_runtime(load_config(args.config))
    try:
        if _sync_disabled(runtime):
            return 0
        user_id = _resolve_user(args, runtime)
        if not user_id:
            return 1

        queued = await runtime.engine.process_queue(user_id)
        print(
            f"Queue: processed={queued.processed}, "
            f"failed={queued.failed}, skipped={queued.skipped}"
        )

        result = await runtime.engine.full_sync(user_id)
        if not result.success:
            print(f"Sync failed: {result.error}", file=sys.stderr)
            return 1

        print(
            f"Sync complete: pulled={result.pulled}, "
            f"deleted={result.deleted}, pushed={result.pushed}"
        )
        if result.push_failures:
            print(f"Push failed for: {', '.join(result.push_failures)}", file=sys.stderr)
        return 0
    finally:
        await runtime.close()


async def cmd_status(args: argparse.Namespace) -> int:
    """Show sync status and pending queue count."""
    runtime = create_runtime(load_config(args.config))
    try:
        status_data = runtime.status.snapshot().to_dict()
        status_data["remote_configured"] = runtime.remote.is_configured
        status_data["pending_changes"] = runtime.engine.get_queue_count()
        status_data["local"] = runtime.store.get_stats()

        if args.json:
            print(json.dumps(status_data, indent=2))
        else:
            print("Ascend Sync Status")
            print("==================")
            print(f"Remote configured: {'Yes' if status_data['remote_configured'] else 'No'}")
            print(f"Last sync: {status_data['last_sync_time'] or 'never'}")
            print(f"Pending changes: {status_data['pending_changes']}")
            print()
            print("Local records:")
            for name, count in status_data["local"].items():
                print(f"  {name}: {count}")
        return 0
    finally:
        await runtime.close()


async def cmd_queue_list(args: argparse.Namespace) -> int:
    """List queued mutations."""
    runtime = create_runtime(load_config(args.config))
    try:
        items = runtime.queue.list_items()
        if args.json:
            print(json.dumps([item.to_dict() for item in items], indent=2))
            return 0

        if not items:
            print("Queue is empty")
        for item in items:
            retry = f" retry={item.retry_count}" if item.retry_count else ""
            print(
                f"{item.created_at.isoformat()}  {item.operation:<6} "
                f"{item.collection.value}:{item.item_id}{retry}"
            )
        return 0
    finally:
        await runtime.close()


async def cmd_queue_process(args: argparse.Namespace) -> int:
    """Replay queued mutations now."""
    runtime = create_runtime(load_config(args.config))
    try:
        if _sync_disabled(runtime):
            return 0
        user_id = _resolve_user(args, runtime)
        if not user_id:
            return 1

        result = await runtime.engine.process_queue(user_id)
        print(
            f"processed={result.processed} failed={result.failed} "
            f"skipped={result.skipped}"
        )
        return 0 if result.failed == 0 else 1
    finally:
        await runtime.close()


async def cmd_entitlement(args: argparse.Namespace) -> int:
    """Look up the user's current entitlement."""
    runtime = create_runtime(load_config(args.config))
    try:
        user_id = _resolve_user(args, runtime)
        if not user_id:
            return 1

        if args.entitlement_command == "refresh":
            info = await runtime.entitlements.refresh_from_remote(user_id)
        else:
            info = await runtime.entitlements.get_entitlement(user_id)

        if info is None:
            print("No active entitlement")
        elif args.json:
            print(json.dumps(info.to_dict(), indent=2))
        else:
            expires = info.expires_at.isoformat() if info.expires_at else "never"
            print(f"Tier: {info.tier} ({info.type}), expires: {expires}")
        return 0
    finally:
        await runtime.close()


async def cmd_run(args: argparse.Namespace) -> int:
    """Run the sync coordinator until interrupted."""
    config = load_config(args.config)
    runtime = create_runtime(config)
    if _sync_disabled(runtime):
        await runtime.close()
        return 0
    user_id = _resolve_user(args, runtime)
    if not user_id:
        await runtime.close()
        return 1

    coordinator = SyncCoordinator(
        runtime.engine,
        user_id,
        interval_seconds=config.sync.sync_interval_minutes * 60,
    )
    unsubscribe = runtime.engine.on_status_change(
        lambda state: print(f"Sync status: {state.value}")
    )

    print(f"Starting sync for user {user_id}")
    try:
        if runtime.monitor:
            await runtime.monitor.start()
        await coordinator.on_sign_in()
        await coordinator.start()
        await asyncio.Event().wait()
    except (KeyboardInterrupt, asyncio.CancelledError):
        print("\nShutting down...")
    finally:
        unsubscribe()
        await coordinator.stop()
        await runtime.close()

    return 0


def cmd_export(args: argparse.Namespace) -> int:
    """Write a JSON backup of the local store."""
    runtime = create_runtime(load_config(args.config), online=False)
    try:
        args.path.write_text(runtime.store.export_data())
        print(f"Exported to {args.path}")
        return 0
    finally:
        asyncio.run(runtime.close())


def cmd_import(args: argparse.Namespace) -> int:
    """Restore the local store from a JSON backup."""
    runtime = create_runtime(load_config(args.config), online=False)
    try:
        try:
            content = args.path.read_text()
        except OSError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        result = runtime.store.import_data(content)
        if not result.success:
            print(f"Import failed: {result.error}", file=sys.stderr)
            return 1
        print(f"Imported {result.imported} records")
        return 0
    finally:
        asyncio.run(runtime.close())


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="ascend-sync",
        description="Local-first data sync for the Ascend training app",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: none, environment only)",
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
        "--log-json",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )
    parser.add_argument(
        "-u", "--user",
        type=str,
        default=None,
        help="User id to sync (default: sync.user_id / ASCEND_USER_ID)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Sync command
    sync_parser = subparsers.add_parser("sync", help="Process the queue and run a full sync")
    sync_parser.set_defaults(func=cmd_sync)

    # Status command
    status_parser = subparsers.add_parser("status", help="Show sync status")
    status_parser.add_argument("--json", action="store_true", help="Output status as JSON")
    status_parser.set_defaults(func=cmd_status)

    # Queue commands
    queue_parser = subparsers.add_parser("queue", help="Inspect or process the retry queue")
    queue_subparsers = queue_parser.add_subparsers(dest="queue_command", help="Queue commands")

    queue_list = queue_subparsers.add_parser("list", help="List queued operations")
    queue_list.add_argument("--json", action="store_true", help="Output as JSON")
    queue_list.set_defaults(func=cmd_queue_list)

    queue_process = queue_subparsers.add_parser("process", help="Replay queued operations")
    queue_process.set_defaults(func=cmd_queue_process)

    # Entitlement commands
    ent_parser = subparsers.add_parser("entitlement", help="Check purchase entitlement")
    ent_subparsers = ent_parser.add_subparsers(dest="entitlement_command", help="Entitlement commands")
    for name, help_text in (
        ("get", "Current entitlement (remote, falling back to cache)"),
        ("refresh", "Force a remote read"),
    ):
        ent_cmd = ent_subparsers.add_parser(name, help=help_text)
        ent_cmd.add_argument("--json", action="store_true", help="Output as JSON")
        ent_cmd.set_defaults(func=cmd_entitlement)

    # Run command
    run_parser = subparsers.add_parser("run", help="Run periodic sync until interrupted")
    run_parser.set_defaults(func=cmd_run)

    # Backup commands
    export_parser = subparsers.add_parser("export", help="Export local data to a JSON file")
    export_parser.add_argument("path", type=Path, help="Output file")
    export_parser.set_defaults(func=cmd_export)

    import_parser = subparsers.add_parser("import", help="Import local data from a JSON file")
    import_parser.add_argument("path", type=Path, help="Backup file")
    import_parser.set_defaults(func=cmd_import)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.log_json)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "queue" and not args.queue_command:
        queue_parser.print_help()
        return 1

    if args.command == "entitlement" and not args.entitlement_command:
        ent_parser.print_help()
        return 1

    func = args.func
    if asyncio.iscoroutinefunction(func):
        return asyncio.run(func(args))
    return func(args)


if __name__ == "__main__":
    sys.exit(main())
