"""CLI entry point for reposync."""

import asyncio
import sys

import structlog

from reposync.app import build_controller
from reposync.core.config import RepoSyncConfig, load_config
from reposync.exceptions import ConfigError
from reposync.git.controller import SyncController
from reposync.git.formatter import format_help, format_result, format_snapshot
from reposync.git.models import OperationResult

logger = structlog.get_logger()


async def dispatch(controller: SyncController, line: str) -> str | None:
    """Run one console command and return the text to print, if any."""
    command, _, arg = line.strip().partition(" ")
    arg = arg.strip()

    result: OperationResult
    match command.lower():
        case "status":
            return format_snapshot(controller.session)
        case "help":
            return format_help()
        case "refresh":
            result = await controller.refresh()
        case "fetch":
            result = await controller.fetch()
        case "pull":
            result = await controller.pull()
        case "push":
            result = await controller.push()
        case "add" if arg == ".":
            result = await controller.stage_all()
        case "add" if arg:
            result = await controller.stage_file(arg)
        case "reset" if arg:
            result = await controller.unstage_file(arg)
        case "reset":
            result = await controller.unstage_all()
        case "discard" if arg:
            result = await controller.discard_file(arg)
        case "message":
            controller.session.commit_message = arg
            return f"Commit message set: {arg!r}" if arg else "Commit message cleared."
        case "commit":
            result = await controller.commit(arg or None)
        case "upstream":
            result = await controller.set_upstream()
        case "remote" if arg:
            result = await controller.select_remote(arg)
        case "remote":
            remotes = ", ".join(controller.session.available_remotes)
            return f"Remotes: {remotes} (selected: {controller.session.selected_remote})"
        case _:
            return f"Unknown command: {line.strip()}. Type 'help' for commands."

    return format_result(result)


async def _run_cli(config: RepoSyncConfig) -> None:
    controller = build_controller(config)
    await controller.initialize()

    logger.info("cli_starting", repository=str(config.repository_root))
    print(f"reposync ready for {config.repository_root}")
    print("Enter a command ('help' for a list, Ctrl+D to exit):\n")

    try:
        while True:
            try:
                line = input("> ")
            except EOFError:
                break

            if not line.strip():
                continue

            output = await dispatch(controller, line)
            if output:
                print(f"\n{output}\n")
    except KeyboardInterrupt:
        pass
    finally:
        logger.info("cli_shutting_down")
        print("\nShutdown complete.")


async def main() -> None:
    try:
        config = load_config()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        print("Set REPOSYNC_REPOSITORY_ROOT or create a .env file.", file=sys.stderr)
        sys.exit(1)

    await _run_cli(config)


def run() -> None:
    asyncio.run(main())
