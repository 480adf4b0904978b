"""Composition root — wires all components into a SyncController."""

import logging
import logging.handlers
from pathlib import Path

import structlog

from reposync.core.audit import AuditLogger
from reposync.core.config import RepoSyncConfig
from reposync.core.events import EventBus
from reposync.core.session import SyncSession
from reposync.git.controller import SyncController
from reposync.git.runner import GitRunner
from reposync.panel.base import BasePanel
from reposync.panel.console import ConsolePanel

logger = structlog.get_logger()

STATE_DIR = Path.home() / ".reposync"


def _configure_logging(config: RepoSyncConfig, *, log_dir: Path | None = None) -> None:
    """Set up structlog with console output and optional rotating JSON file handler."""
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]

    root_logger = logging.getLogger()
    root_logger.setLevel(config.log_level)
    root_logger.handlers.clear()

    # Console handler (stderr)
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(),
        )
    )
    root_logger.addHandler(console_handler)

    # File handler — JSON lines for machine parsing
    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / "reposync.log",
            maxBytes=config.log_max_bytes,
            backupCount=config.log_backup_count,
        )
        file_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=structlog.processors.JSONRenderer(),
            )
        )
        root_logger.addHandler(file_handler)

    structlog.configure(
        processors=shared_processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _resolve_audit_path(config: RepoSyncConfig) -> Path:
    # Relative paths never land inside the synchronized repository.
    path = config.audit_log_path.expanduser()
    if path.is_absolute():
        return path
    return (config.log_dir or STATE_DIR) / path


def build_controller(
    config: RepoSyncConfig | None = None,
    panel: BasePanel | None = None,
) -> SyncController:
    """Build a fully wired controller for ``config.repository_root``."""
    if config is None:
        config = RepoSyncConfig()

    _configure_logging(config, log_dir=config.log_dir)

    logger.info(
        "controller_building",
        repository=str(config.repository_root),
        remote=config.default_remote,
        git_binary=config.git_binary,
        log_level=config.log_level,
    )

    runner = GitRunner(
        git_binary=config.git_binary, timeout_seconds=config.git_timeout_seconds
    )
    session = SyncSession(
        repository_root=str(config.repository_root),
        selected_remote=config.default_remote,
        available_remotes=[config.default_remote],
    )
    audit = AuditLogger(_resolve_audit_path(config), enabled=config.audit_enabled)

    return SyncController(
        runner,
        panel or ConsolePanel(),
        session,
        audit,
        EventBus(),
        default_remote=config.default_remote,
        max_log_entries=config.max_log_entries,
    )
