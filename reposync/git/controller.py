"""Runs panel actions against one repository session.

Only one operation runs at a time per session. An operation claims the
session's busy flag, checks its gate, runs git, refreshes the snapshot while
still holding the flag, and always releases the flag on the way out.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

import structlog

from reposync.core.events import (
    OPERATION_FINISHED,
    OPERATION_STARTED,
    PULL_COMPLETED,
    SNAPSHOT_REFRESHED,
    Event,
)
from reposync.exceptions import GitCommandError, OperationBusyError
from reposync.git import formatter, gate
from reposync.git.errors import GitErrorKind, friendly_prefix
from reposync.git.models import (
    ActionGates,
    GateDecision,
    GitCommandResult,
    OperationResult,
    RepositorySnapshot,
)
from reposync.git.parser import parse_porcelain_status, parse_remotes
from reposync.git.reconciler import STATUS_ARGS, collect_snapshot
from reposync.git.runner import is_repository

if TYPE_CHECKING:
    from reposync.core.audit import AuditLogger
    from reposync.core.events import EventBus
    from reposync.core.session import SyncSession
    from reposync.git.runner import GitRunner
    from reposync.panel.base import BasePanel

logger = structlog.get_logger()

BUSY_MESSAGE = "Another git operation is in progress."
NOT_A_REPOSITORY_MESSAGE = "Error: Project root is not a Git repository."
_NO_REMOTE_DETECTED = "No repository or remote detected."

Check = Callable[[], GateDecision]
Action = Callable[[], Awaitable[OperationResult]]


class SyncController:
    def __init__(
        self,
        runner: GitRunner,
        panel: BasePanel,
        session: SyncSession,
        audit: AuditLogger,
        event_bus: EventBus,
        *,
        default_remote: str = "origin",
        max_log_entries: int = 10,
    ) -> None:
        self._runner = runner
        self._panel = panel
        self._session = session
        self._audit = audit
        self._event_bus = event_bus
        self._default_remote = default_remote
        self._max_log_entries = max_log_entries

    @property
    def session(self) -> SyncSession:
        return self._session

    @property
    def _root(self) -> Path:
        return Path(self._session.repository_root)

    def gates(self) -> ActionGates:
        """Current permission for every snapshot-wide action."""
        s = self._session
        return gate.evaluate(
            s.snapshot,
            fetch_completed=s.fetch_completed,
            repo_detected=s.repo_detected,
            busy=s.busy,
            commit_message=s.commit_message,
        )

    # ── Lifecycle ────────────────────────────────────────────────────

    async def initialize(self) -> OperationResult:
        """Check git, detect the repository and remote, then refresh."""
        if self._session.busy:
            return _busy_result("Initialize")
        self._session.reset(self._default_remote)
        return await self._execute(
            "Initialize", self._initialize, refresh=False, audited=False
        )

    async def _initialize(self) -> OperationResult:
        version = await self._runner.version(self._root)
        self._session.git_version = version
        if version and not any(
            marker in version for marker in ("git version 2", "git version 3")
        ):
            logger.warning("git_version_outdated", version=version)

        if not is_repository(self._root):
            self._session.repo_detected = False
            return OperationResult(
                operation="Initialize",
                success=False,
                message=NOT_A_REPOSITORY_MESSAGE,
                error_kind=GitErrorKind.NOT_A_REPOSITORY,
            )

        await self._load_remotes()
        detected = await self._detect_remote_url()
        if not detected.success:
            return detected.model_copy(update={"operation": "Initialize"})

        await self._refresh_snapshot()
        return OperationResult(
            operation="Initialize",
            success=True,
            message=self._session.status_message,
        )

    async def select_remote(self, name: str) -> OperationResult:
        """Switch the remote used for fetch and set-upstream."""

        def check() -> GateDecision:
            if name not in self._session.available_remotes:
                return GateDecision(allowed=False, reason=f"Unknown remote '{name}'.")
            return GateDecision(allowed=True)

        async def action() -> OperationResult:
            self._session.selected_remote = name
            self._session.fetch_completed = False
            detected = await self._detect_remote_url()
            return detected.model_copy(update={"operation": "Select Remote"})

        return await self._execute(
            "Select Remote", action, check=check, audited=False
        )

    async def refresh(self) -> OperationResult:
        """Re-read every piece of repository state."""

        def check() -> GateDecision:
            if not is_repository(self._root):
                return GateDecision(allowed=False, reason=NOT_A_REPOSITORY_MESSAGE)
            return GateDecision(allowed=True)

        async def action() -> OperationResult:
            await self._refresh_snapshot()
            snapshot = self._session.snapshot
            return OperationResult(
                operation="Refresh",
                success=not snapshot.status_error,
                message=self._session.status_message,
                details=snapshot.status_error,
            )

        return await self._execute(
            "Refresh", action, check=check, refresh=False, audited=False
        )

    # ── Remote operations ────────────────────────────────────────────

    async def fetch(self) -> OperationResult:
        remote = self._session.selected_remote

        async def action() -> OperationResult:
            self._session.fetch_completed = False
            result = await self._git("fetch", remote)
            if result.success:
                self._session.fetch_completed = True
                return _ok("Fetch", "Fetch successful.")
            return _failed("Fetch", result, "Fetch failed. See log.")

        return await self._execute(
            "Fetch", action, check=self._requires_repo(None), detail=remote
        )

    async def pull(self) -> OperationResult:
        def check() -> GateDecision:
            return gate.can_pull(
                self._session.snapshot, fetch_completed=self._session.fetch_completed
            )

        async def action() -> OperationResult:
            if self._session.snapshot.has_uncommitted_changes:
                proceed = await self._panel.confirm(
                    "Uncommitted Changes",
                    "You have uncommitted changes.\n"
                    "Pulling might cause conflicts or overwrite local work.\n\n"
                    "Consider stashing or committing first.\n\n"
                    "Proceed anyway?",
                    ok="Proceed with Pull",
                )
                if not proceed:
                    return OperationResult(
                        operation="Pull",
                        success=False,
                        message="Pull cancelled due to uncommitted changes.",
                        skipped=True,
                    )

            result = await self._git("pull")
            if not result.success:
                failure = _failed(
                    "Pull",
                    result,
                    "Pull failed. Check log (e.g., conflicts, network issue, "
                    "authentication).",
                )
                if result.mentions("conflict"):
                    failure = failure.model_copy(
                        update={"error_kind": GitErrorKind.MERGE_CONFLICT}
                    )
                return failure

            if await self._has_conflicts_on_disk():
                return OperationResult(
                    operation="Pull",
                    success=False,
                    message="Pull completed with MERGE CONFLICTS. Resolve conflicts "
                    "manually, then stage and commit.",
                    details=result.output,
                    error_kind=GitErrorKind.MERGE_CONFLICT,
                )

            await self._event_bus.emit(
                Event(
                    name=PULL_COMPLETED,
                    data={"repository": self._session.repository_root},
                )
            )
            return _ok("Pull", "Pull successful.", result.output)

        return await self._execute("Pull", action, check=self._requires_repo(check))

    async def push(self) -> OperationResult:
        count = self._session.snapshot.ahead_count

        async def action() -> OperationResult:
            result = await self._git("push")
            if not result.success:
                return _failed(
                    "Push",
                    result,
                    "Push failed. See log (e.g., rejected, auth error, network issue).",
                )
            if result.mentions("Everything up-to-date"):
                return _ok("Push", "Push successful (already up-to-date).")
            return _ok("Push", f"Push successful ({count} commit(s)).", result.output)

        return await self._execute(
            "Push",
            action,
            check=self._requires_repo(lambda: gate.can_push(self._session.snapshot)),
        )

    async def set_upstream(self) -> OperationResult:
        remote = self._session.selected_remote

        async def action() -> OperationResult:
            try:
                head = await self._runner.run_checked(
                    "rev-parse", "--abbrev-ref", "HEAD", cwd=self._root
                )
            except GitCommandError as e:
                logger.error("current_branch_failed", error=e.result.output)
                return OperationResult(
                    operation="Set Upstream",
                    success=False,
                    message="Error: Could not determine current branch name.",
                    details=e.result.output,
                    error_kind=e.result.error_kind,
                )

            branch = head.stdout.strip()
            if not branch or branch == "HEAD":
                logger.error("current_branch_invalid", branch=branch)
                return OperationResult(
                    operation="Set Upstream",
                    success=False,
                    message="Error: Cannot set upstream in detached HEAD state or "
                    "unable to determine current branch.",
                )

            result = await self._git("push", "--set-upstream", remote, branch)
            if result.success:
                return _ok(
                    "Set Upstream",
                    f"Upstream set for '{branch}' to {remote}/{branch}.",
                )

            failure = _failed(
                "Set Upstream", result, f"Error setting upstream for '{branch}'."
            )
            hint = ""
            if failure.error_kind == GitErrorKind.REPOSITORY_NOT_FOUND or (
                result.mentions("does not appear to be a git repository")
            ):
                hint = " Ensure the remote repository exists and you have permissions."
            elif failure.error_kind == GitErrorKind.BAD_REFSPEC:
                hint = f" The branch '{branch}' might not exist locally or failed to push."
            return failure.model_copy(update={"message": failure.message + hint})

        # The busy flag is ours while the check runs, so only the repository
        # half of the gate is meaningful here.
        return await self._execute(
            "Set Upstream",
            action,
            check=lambda: gate.can_set_upstream(
                repo_detected=self._session.repo_detected, busy=False
            ),
            detail=remote,
        )

    # ── Index and working tree ───────────────────────────────────────

    async def stage_all(self) -> OperationResult:
        async def action() -> OperationResult:
            result = await self._git("add", ".")
            if result.success:
                return _ok("Stage All", "Staged all changes.")
            return _failed("Stage All", result, "Error staging all changes. See log.")

        return await self._execute(
            "Stage All",
            action,
            check=self._requires_repo(
                lambda: gate.can_stage_all(self._session.snapshot)
            ),
        )

    async def unstage_all(self) -> OperationResult:
        async def action() -> OperationResult:
            result = await self._git("reset")
            if result.success:
                return _ok("Unstage All", "Unstaged all changes.")
            return _failed(
                "Unstage All", result, "Error unstaging all changes. See log."
            )

        return await self._execute(
            "Unstage All",
            action,
            check=self._requires_repo(
                lambda: gate.can_unstage_all(self._session.snapshot)
            ),
        )

    async def stage_file(self, path: str) -> OperationResult:
        name = _display_name(path)

        async def action() -> OperationResult:
            result = await self._git("add", "--", path)
            if result.success:
                return _ok("Stage File", f"Staged: {name}")
            return _failed("Stage File", result, f"Error staging {name}. See log.")

        return await self._execute(
            "Stage File",
            action,
            check=self._requires_repo(
                lambda: gate.can_stage_one(self._session.snapshot, path)
            ),
            detail=path,
        )

    async def unstage_file(self, path: str) -> OperationResult:
        name = _display_name(path)

        async def action() -> OperationResult:
            result = await self._git("reset", "HEAD", "--", path)
            if result.success:
                return _ok("Unstage File", f"Unstaged: {name}")
            return _failed("Unstage File", result, f"Error unstaging {name}. See log.")

        return await self._execute(
            "Unstage File",
            action,
            check=self._requires_repo(
                lambda: gate.can_unstage_one(self._session.snapshot, path)
            ),
            detail=path,
        )

    async def discard_file(self, path: str) -> OperationResult:
        name = _display_name(path)

        async def action() -> OperationResult:
            confirmed = await self._panel.confirm(
                "Discard Changes?",
                f"Discard all unstaged changes to:\n{path}\n\n"
                "This action cannot be easily undone.",
                ok="Discard Changes",
            )
            if not confirmed:
                return OperationResult(
                    operation="Discard File",
                    success=False,
                    message="Discard cancelled.",
                    skipped=True,
                )
            result = await self._git("checkout", "--", path)
            if result.success:
                return _ok("Discard File", f"Discarded changes for: {name}")
            return _failed(
                "Discard File", result, f"Error discarding changes for {name}. See log."
            )

        return await self._execute(
            "Discard File",
            action,
            check=self._requires_repo(
                lambda: gate.can_discard(self._session.snapshot, path)
            ),
            detail=path,
        )

    async def commit(self, message: str | None = None) -> OperationResult:
        """Commit staged changes with *message*, or the session's draft."""
        if message is not None and not self._session.busy:
            self._session.commit_message = message

        async def action() -> OperationResult:
            text = self._session.commit_message
            result = await self._git("commit", "-m", text)
            if not result.success:
                return _failed("Commit", result, "Commit failed. See log.")
            if result.mentions("nothing to commit"):
                return _ok("Commit", "Commit resulted in 'nothing to commit'.")
            self._session.commit_message = ""
            return _ok("Commit", "Commit successful.", result.stdout.strip())

        return await self._execute(
            "Commit",
            action,
            check=self._requires_repo(
                lambda: gate.can_commit(
                    self._session.snapshot, self._session.commit_message
                )
            ),
            detail=self._session.commit_message,
        )

    # ── Busy machine ─────────────────────────────────────────────────

    def _claim(self, operation: str) -> None:
        if self._session.busy:
            raise OperationBusyError(
                f"'{self._session.current_operation}' is still running"
            )
        self._session.busy = True
        self._session.current_operation = operation

    def _release(self) -> None:
        self._session.busy = False
        self._session.current_operation = None

    async def _execute(
        self,
        operation: str,
        action: Action,
        *,
        check: Check | None = None,
        refresh: bool = True,
        audited: bool = True,
        detail: str = "",
    ) -> OperationResult:
        try:
            self._claim(operation)
        except OperationBusyError as e:
            logger.info("operation_ignored_busy", operation=operation, reason=str(e))
            return _busy_result(operation)

        denied = False
        try:
            await self._event_bus.emit(
                Event(name=OPERATION_STARTED, data={"operation": operation})
            )
            decision = check() if check is not None else None
            if decision is not None and not decision.allowed:
                denied = True
                result = OperationResult(
                    operation=operation,
                    success=False,
                    message=decision.reason,
                    skipped=True,
                )
            else:
                result = await self._run_action(operation, action)
                if refresh and not result.skipped and self._session.repo_detected:
                    result = await self._refresh_after(operation, result)
        finally:
            self._release()

        if not result.success:
            self._session.status_message = result.message
        if audited and not result.skipped:
            self._audit.log_operation(
                operation,
                repository=self._session.repository_root,
                success=result.success,
                detail=detail,
                error_kind=result.error_kind.value if result.error_kind else None,
            )

        await self._panel.notify(f"{operation} Blocked" if denied else result.message)
        await self._panel.render(formatter.format_snapshot(self._session))
        await self._event_bus.emit(
            Event(
                name=OPERATION_FINISHED,
                data={"operation": operation, "result": result.model_dump()},
            )
        )
        return result

    async def _run_action(self, operation: str, action: Action) -> OperationResult:
        try:
            result = await action()
        except Exception:
            logger.exception("operation_error", operation=operation)
            return _exception_result(operation)
        if not result.success and not result.skipped:
            logger.error(
                "operation_failed",
                operation=operation,
                message=result.message,
                details=result.details,
                error_kind=result.error_kind,
            )
        return result

    async def _refresh_after(
        self, operation: str, result: OperationResult
    ) -> OperationResult:
        try:
            await self._refresh_snapshot()
        except Exception:
            logger.exception("refresh_error", operation=operation)
            if result.success:
                return _exception_result("Refresh Status & History")
        return result

    # ── Helpers ───────────────────────────────────────────────────────

    def _requires_repo(self, check: Check | None) -> Check:
        def combined() -> GateDecision:
            if not self._session.repo_detected:
                return GateDecision(allowed=False, reason=_NO_REMOTE_DETECTED)
            if check is None:
                return GateDecision(allowed=True)
            return check()

        return combined

    async def _git(self, *args: str) -> GitCommandResult:
        return await self._runner.run(*args, cwd=self._root)

    async def _refresh_snapshot(self) -> None:
        s = self._session
        s.snapshot = RepositorySnapshot.empty()
        snapshot = await collect_snapshot(
            self._runner, self._root, max_log_entries=self._max_log_entries
        )
        s.replace_snapshot(snapshot)
        s.status_message = formatter.overall_status_message(
            snapshot, fetch_completed=s.fetch_completed, repo_detected=s.repo_detected
        )
        await self._event_bus.emit(
            Event(
                name=SNAPSHOT_REFRESHED,
                data={"repository": s.repository_root, "snapshot": snapshot},
            )
        )

    async def _has_conflicts_on_disk(self) -> bool:
        result = await self._git(*STATUS_ARGS)
        if not result.success:
            return False
        parsed = parse_porcelain_status(result.stdout)
        return any(e.is_conflicted for e in (*parsed.staged, *parsed.unstaged))

    async def _load_remotes(self) -> None:
        s = self._session
        result = await self._git("remote")
        if not result.success:
            logger.error("remote_list_failed", error=result.output)
            s.available_remotes = [self._default_remote]
            s.selected_remote = self._default_remote
            return

        remotes = parse_remotes(result.stdout)
        if not remotes:
            remotes = [self._default_remote]
            s.status_message = (
                f"Warning: No remotes found, defaulting to '{self._default_remote}'."
            )
        s.available_remotes = remotes
        if s.selected_remote not in remotes:
            s.selected_remote = remotes[0]

    async def _detect_remote_url(self) -> OperationResult:
        s = self._session
        remote = s.selected_remote
        result = await self._git("remote", "get-url", remote)

        if result.success:
            url = result.stdout.strip()
            s.remote_url = url
            s.repo_detected = bool(url)
            if not url:
                return OperationResult(
                    operation="Detect Remote",
                    success=False,
                    message=f"Error: Remote '{remote}' found, but URL is empty.",
                )
            return _ok("Detect Remote", f"Remote '{remote}': {url}")

        s.remote_url = ""
        s.repo_detected = False
        match result.error_kind:
            case GitErrorKind.NO_SUCH_REMOTE:
                message = f"Error: No remote named '{remote}' found."
            case GitErrorKind.GIT_NOT_FOUND:
                message = "Error: Git command not found. Is Git installed and in PATH?"
            case _:
                logger.error("remote_url_failed", remote=remote, error=result.output)
                message = f"Error getting URL for remote '{remote}'. See log."
        return OperationResult(
            operation="Detect Remote",
            success=False,
            message=message,
            details=result.output,
            error_kind=result.error_kind,
        )


def _display_name(path: str) -> str:
    return PurePosixPath(path).name or path


def _ok(operation: str, message: str, details: str = "") -> OperationResult:
    return OperationResult(
        operation=operation, success=True, message=message, details=details
    )


def _failed(
    operation: str, result: GitCommandResult, fallback: str
) -> OperationResult:
    """Failure result led by the friendly prefix when the error is recognised."""
    return OperationResult(
        operation=operation,
        success=False,
        message=friendly_prefix(result.error_kind) or fallback,
        details=result.output,
        error_kind=result.error_kind,
    )


def _busy_result(operation: str) -> OperationResult:
    return OperationResult(
        operation=operation, success=False, message=BUSY_MESSAGE, skipped=True
    )


def _exception_result(operation: str) -> OperationResult:
    return OperationResult(
        operation=operation,
        success=False,
        message=f"Error during '{operation}'. Check the log for details.",
    )
