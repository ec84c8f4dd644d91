"""
TaskTrack CLI — database bootstrap and task progress commands.

Commands:
- tasktrack init      — Create tables, seed the first admin user
- tasktrack tree      — Print a task and its subtasks with progress
- tasktrack progress  — Move a leaf task's progress by a signed amount
- tasktrack complete  — Mark a task completed

Every command takes --config (default: tasktrack.yaml, auto-discovered).
"""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import sys
from typing import Any, Dict, Optional, Tuple

from tasktrack.engine.errors import TaskTrackError

logger = logging.getLogger("tasktrack.cli")


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="tasktrack",
        description="TaskTrack — project and task tracking with progress rollup",
    )
    parser.add_argument("--config", default=None, help="Path to tasktrack.yaml")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # tasktrack init
    init_parser = subparsers.add_parser("init", help="Create tables and the first admin user")
    init_parser.add_argument("--admin-email", default="admin@example.com", help="Admin email")
    init_parser.add_argument("--admin-name", default="Administrator", help="Admin display name")
    init_parser.add_argument(
        "--admin-password", help="Admin password (prompted if not provided)"
    )

    # tasktrack tree
    tree_parser = subparsers.add_parser("tree", help="Show a task and its subtasks")
    tree_parser.add_argument("task_id", type=int, help="Root task id")
    tree_parser.add_argument("--user-id", type=int, default=1, help="Acting user id (default: 1)")
    tree_parser.add_argument("--json", action="store_true", help="Print as JSON")

    # tasktrack progress
    progress_parser = subparsers.add_parser("progress", help="Adjust a leaf task's progress")
    progress_parser.add_argument("task_id", type=int, help="Leaf task id")
    progress_parser.add_argument("amount", help="Signed amount, e.g. +10 or -5")
    progress_parser.add_argument("--note", "-n", help="History note (default: the amount)")
    progress_parser.add_argument("--user-id", type=int, default=1, help="Acting user id (default: 1)")

    # tasktrack complete
    complete_parser = subparsers.add_parser("complete", help="Mark a task completed")
    complete_parser.add_argument("task_id", type=int, help="Task id")
    complete_parser.add_argument("--user-id", type=int, default=1, help="Acting user id (default: 1)")

    args = parser.parse_args(argv)

    if args.command == "init":
        return cmd_init(args)
    elif args.command == "tree":
        return cmd_tree(args)
    elif args.command == "progress":
        return cmd_progress(args)
    elif args.command == "complete":
        return cmd_complete(args)
    else:
        parser.print_help()
        return 0


def _bootstrap(config_path: Optional[str], create_tables: bool = False) -> Tuple[Any, Any]:
    """Load config, start event logging, open the database, wire services."""
    from tasktrack.db.session import init_db
    from tasktrack.engine.config import load_config
    from tasktrack.engine.logging import init_logging, log, log_system_event
    from tasktrack.services import build_services

    config = load_config(config_path)
    logging.basicConfig(level=config.logging.level, format="%(levelname)s %(name)s: %(message)s")
    init_logging(
        log_dir=config.logging.directory,
        flush_interval_ms=config.logging.flush_interval_ms,
        flush_batch_size=config.logging.flush_batch_size,
        max_queue_size=config.logging.max_queue_size,
        level=config.logging.level,
    )
    log(log_system_event("startup", details={"name": config.name, "environment": config.environment}))
    session_factory = init_db(config.database, create_tables=create_tables)
    if create_tables:
        log(log_system_event("schema_created", details={"database": _display_url(config.database.url)}))
    return config, build_services(config, session_factory)


def _display_url(url: str) -> str:
    from sqlalchemy.engine import make_url

    return make_url(url).render_as_string(hide_password=True)


def _shutdown() -> None:
    from tasktrack.db.session import close_db
    from tasktrack.engine.logging import get_log_queue, log, log_system_event, shutdown_logging

    if get_log_queue() is not None:
        log(log_system_event("shutdown"))
    shutdown_logging()
    close_db()


def _as_user(user_id: int) -> None:
    from tasktrack.engine.context import ExecutionContext, set_execution_context

    set_execution_context(ExecutionContext(user_id=user_id))


def _prompt_password() -> str:
    while True:
        password = getpass.getpass("  Enter admin password: ")
        confirm = getpass.getpass("  Confirm password: ")
        if password == confirm:
            return password
        print("  Passwords do not match. Try again.")


def cmd_init(args: argparse.Namespace) -> int:
    """
    Bootstrap the database:
    1. Load config
    2. Create all tables
    3. Create the admin user (skipped if the email already exists)
    """
    print("=" * 60)
    print("  TaskTrack Initialization")
    print("=" * 60)

    try:
        config, services = _bootstrap(args.config, create_tables=True)
        print(f"[OK] Database ready at {_display_url(config.database.url)}")
        password = args.admin_password or _prompt_password()
        admin = services.users.bootstrap_admin(args.admin_name, args.admin_email, password)
        print(f"[OK] Admin user {admin['email']} (id={admin['id']})")
        return 0
    except TaskTrackError as e:
        print(f"[ERROR] {e.message}")
        return 1
    finally:
        _shutdown()


def _print_tree(node: Dict[str, Any], depth: int = 0) -> None:
    indent = "  " * depth
    print(f"{indent}#{node['id']} {node['title']} [{node['status']}] {node['progress']}% (w={node['weight']})")
    for child in node["children"]:
        _print_tree(child, depth + 1)


def cmd_tree(args: argparse.Namespace) -> int:
    """Print a task subtree."""
    try:
        _, services = _bootstrap(args.config)
        _as_user(args.user_id)
        tree = services.tasks.get_subtree(args.task_id)
    except TaskTrackError as e:
        print(f"[ERROR] {e.message}")
        return 1
    finally:
        _shutdown()

    if args.json:
        print(json.dumps(tree, indent=2))
    else:
        _print_tree(tree)
    return 0


def _report(result: Any) -> int:
    task = result.task
    print(f"[OK] Task #{task.id} at {task.progress}% ({task.status})")
    for update in result.rollup.updates:
        print(f"  rolled up #{update.task_id} -> {update.progress}%")
    for warning in result.warnings:
        print(f"  [WARN] {warning}")
    return 0


def cmd_progress(args: argparse.Namespace) -> int:
    """Adjust a leaf task's progress and roll it up."""
    try:
        _, services = _bootstrap(args.config)
        _as_user(args.user_id)
        result = services.tasks.update_progress(args.task_id, args.amount, note=args.note)
    except TaskTrackError as e:
        print(f"[ERROR] {e.message}")
        return 1
    finally:
        _shutdown()
    return _report(result)


def cmd_complete(args: argparse.Namespace) -> int:
    """Complete a task and roll it up."""
    try:
        _, services = _bootstrap(args.config)
        _as_user(args.user_id)
        result = services.tasks.complete_task(args.task_id)
    except TaskTrackError as e:
        print(f"[ERROR] {e.message}")
        return 1
    finally:
        _shutdown()
    return _report(result)


if __name__ == "__main__":
    sys.exit(main())
