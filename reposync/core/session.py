"""Per-repository panel session: busy flag, snapshot, remote selection."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from reposync.git.models import RepositorySnapshot

INITIAL_STATUS = "Initializing..."
DEFAULT_REMOTE = "origin"


# Intentionally mutable — the controller updates fields in place; the snapshot
# itself is immutable and always replaced wholesale.
class SyncSession(BaseModel):
    repository_root: str
    busy: bool = False
    current_operation: str | None = None
    snapshot: RepositorySnapshot = Field(default_factory=RepositorySnapshot.empty)
    fetch_completed: bool = False
    repo_detected: bool = False
    remote_url: str = ""
    available_remotes: list[str] = Field(default_factory=lambda: [DEFAULT_REMOTE])
    selected_remote: str = DEFAULT_REMOTE
    status_message: str = INITIAL_STATUS
    commit_message: str = ""
    git_version: str | None = None
    last_refreshed: datetime | None = None

    def reset(self, default_remote: str = DEFAULT_REMOTE) -> None:
        """Return to the state of a freshly opened panel."""
        self.busy = False
        self.current_operation = None
        self.snapshot = RepositorySnapshot.empty()
        self.fetch_completed = False
        self.repo_detected = False
        self.remote_url = ""
        self.available_remotes = [default_remote]
        self.selected_remote = default_remote
        self.status_message = INITIAL_STATUS
        self.commit_message = ""
        self.last_refreshed = None

    def replace_snapshot(self, snapshot: RepositorySnapshot) -> None:
        self.snapshot = snapshot
        self.last_refreshed = datetime.now(UTC)
