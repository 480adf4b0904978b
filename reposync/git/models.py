"""Data models for repository state and git command results."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator

from reposync.git.errors import GitErrorKind, describe_failure

LogState = Literal["ok", "empty", "error", "skipped"]


class StatusEntry(BaseModel):
    """One line of ``git status --porcelain``."""

    model_config = ConfigDict(frozen=True)

    path: str
    index_code: str
    tree_code: str
    original_path: str | None = None

    @field_validator("index_code", "tree_code")
    @classmethod
    def single_character(cls, v: str) -> str:
        if len(v) != 1:
            raise ValueError(f"status code must be one character, got {v!r}")
        return v

    @property
    def status_code(self) -> str:
        return self.index_code + self.tree_code

    @property
    def is_staged(self) -> bool:
        return self.index_code not in (" ", "?")

    @property
    def is_unstaged_modification(self) -> bool:
        return self.tree_code != " "

    @property
    def is_untracked(self) -> bool:
        return self.index_code == "?" and self.tree_code == "?"

    @property
    def is_conflicted(self) -> bool:
        # UU, AU, UD, DU ... any side reporting unmerged
        return "U" in self.status_code

    @property
    def is_renamed(self) -> bool:
        return self.index_code == "R"

    @property
    def is_copied(self) -> bool:
        return self.index_code == "C"

    @property
    def is_deleted_in_index(self) -> bool:
        return self.index_code == "D"

    @property
    def is_deleted_in_tree(self) -> bool:
        return self.tree_code == "D"


class CommitLog(BaseModel):
    """One-line commit summaries plus how they were obtained.

    ``skipped`` means the query was never run (no upstream, or nothing to
    list); ``empty`` means it ran and returned nothing; ``error`` means it
    failed and ``error`` holds git's output.
    """

    model_config = ConfigDict(frozen=True)

    state: LogState
    entries: list[str] = []
    error: str = ""

    @classmethod
    def ok(cls, entries: list[str]) -> CommitLog:
        if not entries:
            return cls.empty()
        return cls(state="ok", entries=entries)

    @classmethod
    def empty(cls) -> CommitLog:
        return cls(state="empty")

    @classmethod
    def failed(cls, error: str) -> CommitLog:
        return cls(state="error", error=error)

    @classmethod
    def skipped(cls) -> CommitLog:
        return cls(state="skipped")

    def __len__(self) -> int:
        return len(self.entries)


class RepositorySnapshot(BaseModel):
    """Reconciled repository state. Build via ``reconciler.build_snapshot``."""

    model_config = ConfigDict(frozen=True)

    staged: list[StatusEntry] = []
    unstaged: list[StatusEntry] = []
    has_conflicts: bool = False
    upstream_configured: bool = False
    upstream_ref: str | None = None
    behind_count: int = 0
    ahead_count: int = 0
    pull_log: CommitLog = CommitLog.skipped()
    push_log: CommitLog = CommitLog.skipped()
    commit_history: CommitLog = CommitLog.skipped()
    status_error: str = ""

    @classmethod
    def empty(cls) -> RepositorySnapshot:
        return cls()

    @property
    def is_behind_remote(self) -> bool:
        return self.upstream_configured and self.behind_count > 0

    @property
    def is_ahead_remote(self) -> bool:
        return self.upstream_configured and self.ahead_count > 0

    @property
    def has_uncommitted_changes(self) -> bool:
        return bool(self.staged or self.unstaged)

    @property
    def untracked_count(self) -> int:
        return sum(1 for e in self.unstaged if e.is_untracked)

    @property
    def modified_unstaged_count(self) -> int:
        return sum(
            1 for e in self.unstaged if not e.is_untracked and not e.is_conflicted
        )

    def find_unstaged(self, path: str) -> StatusEntry | None:
        return next((e for e in self.unstaged if e.path == path), None)

    def find_staged(self, path: str) -> StatusEntry | None:
        return next((e for e in self.staged if e.path == path), None)


class GitCommandResult(BaseModel):
    """Outcome of a single git invocation."""

    model_config = ConfigDict(frozen=True)

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    success: bool
    error_kind: GitErrorKind | None = None
    timed_out: bool = False

    @property
    def output(self) -> str:
        """Stripped stderr, falling back to stdout."""
        return self.stderr.strip() or self.stdout.strip()

    @property
    def friendly_error(self) -> str:
        if self.success:
            return ""
        return describe_failure(self)

    def mentions(self, text: str) -> bool:
        """Case-sensitive search of both streams."""
        return text in self.stdout or text in self.stderr


class GateDecision(BaseModel):
    """Whether a user action is currently permitted, and why not."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allowed


class ActionGates(BaseModel):
    """Every gate evaluated against one snapshot."""

    model_config = ConfigDict(frozen=True)

    stage_all: GateDecision
    unstage_all: GateDecision
    commit: GateDecision
    push: GateDecision
    pull: GateDecision
    set_upstream: GateDecision


class OperationResult(BaseModel):
    """Result of a user-triggered panel operation."""

    model_config = ConfigDict(frozen=True)

    operation: str
    success: bool
    message: str
    details: str = ""
    error_kind: GitErrorKind | None = None
    skipped: bool = False
