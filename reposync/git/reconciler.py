"""Folds independent git queries into one RepositorySnapshot."""

from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict

from reposync.git.models import CommitLog, RepositorySnapshot
from reposync.git.parser import (
    ParsedStatus,
    parse_count,
    parse_porcelain_status,
    split_log_lines,
)
from reposync.git.runner import GitRunner

logger = structlog.get_logger()

MAX_LOG_ENTRIES = 10

BEHIND_RANGE = "HEAD..@{u}"
AHEAD_RANGE = "@{u}..HEAD"

STATUS_ARGS = ("status", "--porcelain", "-uall")
UPSTREAM_ARGS = ("rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}")
_ONELINE_FORMAT = "--pretty=format:%h %s"
_HISTORY_FORMAT = "--pretty=format:%h %ad | %s (%an)"

# Failures that simply mean "this branch tracks nothing".
_NO_UPSTREAM_MARKERS = (
    "no upstream configured",
    "fatal: no upstream",
    "unknown revision",
)


class UpstreamState(BaseModel):
    model_config = ConfigDict(frozen=True)

    configured: bool = False
    ref: str | None = None


async def query_status(runner: GitRunner, cwd: Path) -> tuple[ParsedStatus, str]:
    """Parsed status plus an error string (empty on success)."""
    result = await runner.run(*STATUS_ARGS, cwd=cwd)
    if not result.success:
        logger.error("status_query_failed", error=result.output)
        return ParsedStatus(), result.friendly_error or "git status failed"
    return parse_porcelain_status(result.stdout), ""


async def query_upstream(runner: GitRunner, cwd: Path) -> UpstreamState:
    result = await runner.run(*UPSTREAM_ARGS, cwd=cwd)
    if result.success:
        ref = result.stdout.strip()
        if not ref:
            logger.warning("upstream_check_empty")
            return UpstreamState()
        return UpstreamState(configured=True, ref=ref)

    error = result.stderr.strip()
    if error and not any(marker in error for marker in _NO_UPSTREAM_MARKERS):
        logger.warning("upstream_check_failed", error=error)
    return UpstreamState()


async def query_count(runner: GitRunner, cwd: Path, revision_range: str) -> int:
    result = await runner.run("rev-list", "--count", revision_range, cwd=cwd)
    if not result.success:
        logger.warning(
            "commit_count_failed", range=revision_range, error=result.output
        )
        return 0
    return parse_count(result.stdout)


async def query_log(
    runner: GitRunner, cwd: Path, revision_range: str, limit: int = MAX_LOG_ENTRIES
) -> CommitLog:
    result = await runner.run(
        "log",
        "--oneline",
        _ONELINE_FORMAT,
        f"--max-count={limit}",
        revision_range,
        cwd=cwd,
    )
    if not result.success:
        logger.error("commit_log_failed", range=revision_range, error=result.output)
        return CommitLog.failed(result.output)
    return CommitLog.ok(split_log_lines(result.stdout, limit))


async def query_history(
    runner: GitRunner, cwd: Path, limit: int = MAX_LOG_ENTRIES
) -> CommitLog:
    result = await runner.run(
        "log", _HISTORY_FORMAT, "--date=relative", f"--max-count={limit}", cwd=cwd
    )
    if not result.success:
        logger.error("commit_history_failed", error=result.output)
        return CommitLog.failed(result.output)
    return CommitLog.ok(split_log_lines(result.stdout, limit))


def build_snapshot(
    parsed: ParsedStatus,
    upstream: UpstreamState,
    *,
    behind_count: int = 0,
    ahead_count: int = 0,
    pull_log: CommitLog | None = None,
    push_log: CommitLog | None = None,
    commit_history: CommitLog | None = None,
    status_error: str = "",
) -> RepositorySnapshot:
    """The only constructor for snapshots used by the rest of the package.

    Counts and logs are discarded when no upstream is configured, logs are
    discarded when their count is zero, and ``has_conflicts`` is derived from
    the entries rather than trusted from the caller.
    """
    if not upstream.configured:
        behind_count = 0
        ahead_count = 0
    behind_count = max(behind_count, 0)
    ahead_count = max(ahead_count, 0)

    if behind_count == 0 or pull_log is None:
        pull_log = CommitLog.skipped()
    if ahead_count == 0 or push_log is None:
        push_log = CommitLog.skipped()

    staged = sorted(parsed.staged, key=lambda e: e.path.casefold())
    unstaged = sorted(parsed.unstaged, key=lambda e: e.path.casefold())
    has_conflicts = any(e.is_conflicted for e in staged) or any(
        e.is_conflicted for e in unstaged
    )

    return RepositorySnapshot(
        staged=staged,
        unstaged=unstaged,
        has_conflicts=has_conflicts,
        upstream_configured=upstream.configured,
        upstream_ref=upstream.ref if upstream.configured else None,
        behind_count=behind_count,
        ahead_count=ahead_count,
        pull_log=pull_log,
        push_log=push_log,
        commit_history=commit_history or CommitLog.skipped(),
        status_error=status_error,
    )


async def collect_snapshot(
    runner: GitRunner, cwd: Path, *, max_log_entries: int = MAX_LOG_ENTRIES
) -> RepositorySnapshot:
    """Run every status query in order and reconcile the answers."""
    parsed, status_error = await query_status(runner, cwd)
    upstream = await query_upstream(runner, cwd)

    behind_count = 0
    ahead_count = 0
    pull_log: CommitLog | None = None
    push_log: CommitLog | None = None

    if upstream.configured:
        behind_count = await query_count(runner, cwd, BEHIND_RANGE)
        if behind_count > 0:
            pull_log = await query_log(runner, cwd, BEHIND_RANGE, max_log_entries)

        ahead_count = await query_count(runner, cwd, AHEAD_RANGE)
        if ahead_count > 0:
            push_log = await query_log(runner, cwd, AHEAD_RANGE, max_log_entries)

    history = await query_history(runner, cwd, max_log_entries)

    snapshot = build_snapshot(
        parsed,
        upstream,
        behind_count=behind_count,
        ahead_count=ahead_count,
        pull_log=pull_log,
        push_log=push_log,
        commit_history=history,
        status_error=status_error,
    )
    logger.info(
        "snapshot_collected",
        staged=len(snapshot.staged),
        unstaged=len(snapshot.unstaged),
        conflicts=snapshot.has_conflicts,
        upstream=snapshot.upstream_ref,
        behind=snapshot.behind_count,
        ahead=snapshot.ahead_count,
    )
    return snapshot
