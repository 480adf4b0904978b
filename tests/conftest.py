"""Shared fixtures, a mock panel and a scripted git runner for testing."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from reposync.core.audit import AuditLogger
from reposync.core.config import RepoSyncConfig
from reposync.core.events import EventBus
from reposync.core.session import SyncSession
from reposync.exceptions import GitCommandError
from reposync.git.controller import SyncController
from reposync.git.errors import classify
from reposync.git.models import GitCommandResult
from reposync.panel.base import BasePanel


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Prevent .env file and shell env from leaking into tests."""
    monkeypatch.setitem(RepoSyncConfig.model_config, "env_file", None)
    for key in list(os.environ):
        if key.startswith("REPOSYNC_"):
            monkeypatch.delenv(key, raising=False)


class MockPanel(BasePanel):
    """In-memory panel for testing."""

    def __init__(self, *, confirm_answer: bool = True) -> None:
        self.notifications: list[str] = []
        self.confirmations: list[dict] = []
        self.renders: list[str] = []
        self.confirm_answer = confirm_answer

    async def notify(self, title: str) -> None:
        self.notifications.append(title)

    async def confirm(
        self, title: str, message: str, *, ok: str = "OK", cancel: str = "Cancel"
    ) -> bool:
        self.confirmations.append({"title": title, "message": message, "ok": ok})
        return self.confirm_answer

    async def render(self, text: str) -> None:
        self.renders.append(text)


class ScriptedRunner:
    """Stands in for GitRunner with canned answers.

    An answer is keyed by the git subcommand plus any other tokens that must
    appear in the invocation; the most specific matching key wins. So
    ``("log", "HEAD..@{u}")`` answers the pull log while ``("log",)`` answers
    every other log query. Anything unscripted succeeds with empty output.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []
        self._answers: dict[tuple[str, ...], GitCommandResult] = {}
        self._errors: dict[tuple[str, ...], Exception] = {}

    def ok(self, *key: str, stdout: str = "", stderr: str = "") -> None:
        self._answers[key] = GitCommandResult(
            args=key, returncode=0, stdout=stdout, stderr=stderr, success=True
        )

    def fail(
        self, *key: str, stderr: str = "", stdout: str = "", returncode: int = 1
    ) -> None:
        self._answers[key] = GitCommandResult(
            args=key,
            returncode=returncode,
            stdout=stdout,
            stderr=stderr,
            success=False,
            error_kind=classify(stderr),
        )

    def raise_on(self, *key: str, error: Exception) -> None:
        self._errors[key] = error

    def clean_repo(self, *, upstream: str | None = "origin/main") -> None:
        """Script a clean working tree, optionally tracking ``upstream``."""
        self.ok("--version", stdout="git version 2.43.0\n")
        self.ok("remote", stdout="origin\n")
        self.ok("remote", "get-url", stdout="git@example.com:team/project.git\n")
        self.ok("status", stdout="")
        if upstream:
            self.ok("rev-parse", "--symbolic-full-name", stdout=f"{upstream}\n")
        else:
            self.fail(
                "rev-parse",
                "--symbolic-full-name",
                stderr="fatal: no upstream configured for branch 'main'",
                returncode=128,
            )
        self.ok("rev-list", stdout="0\n")
        self.ok("log", stdout="abc1234 2 days ago | Initial commit (Dev)\n")

    @staticmethod
    def _matches(key: tuple[str, ...], args: tuple[str, ...]) -> bool:
        return bool(args) and args[0] == key[0] and all(t in args for t in key[1:])

    def _lookup(self, args: tuple[str, ...], table: dict) -> object | None:
        best: tuple[str, ...] | None = None
        for key in table:
            if self._matches(key, args) and (best is None or len(key) > len(best)):
                best = key
        return table[best] if best is not None else None

    def calls_for(self, *key: str) -> list[tuple[str, ...]]:
        return [call for call in self.calls if self._matches(key, call)]

    def called(self, *key: str) -> bool:
        return bool(self.calls_for(*key))

    async def run(self, *args: str, cwd: Path) -> GitCommandResult:
        self.calls.append(args)
        error = self._lookup(args, self._errors)
        if error is not None:
            raise error  # type: ignore[misc]
        result = self._lookup(args, self._answers)
        if result is None:
            return GitCommandResult(args=args, returncode=0, success=True)
        return result.model_copy(update={"args": args})  # type: ignore[union-attr]

    async def run_checked(self, *args: str, cwd: Path) -> GitCommandResult:
        result = await self.run(*args, cwd=cwd)
        if not result.success:
            raise GitCommandError(result)
        return result

    async def version(self, cwd: Path) -> str | None:
        result = await self.run("--version", cwd=cwd)
        if not result.success:
            return None
        return result.stdout.strip() or None


@pytest.fixture
def repo_dir(tmp_path):
    root = tmp_path / "project"
    (root / ".git").mkdir(parents=True)
    return root


@pytest.fixture
def config(repo_dir, tmp_path):
    return RepoSyncConfig(
        repository_root=repo_dir,
        audit_log_path=tmp_path / "audit.jsonl",
    )


@pytest.fixture
def mock_panel():
    return MockPanel()


@pytest.fixture
def runner():
    return ScriptedRunner()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def audit_logger(tmp_path):
    return AuditLogger(tmp_path / "audit.jsonl")


@pytest.fixture
def sync_session(repo_dir):
    return SyncSession(repository_root=str(repo_dir))


@pytest.fixture
def controller(runner, mock_panel, sync_session, audit_logger, event_bus):
    return SyncController(
        runner,  # type: ignore[arg-type]
        mock_panel,
        sync_session,
        audit_logger,
        event_bus,
    )
