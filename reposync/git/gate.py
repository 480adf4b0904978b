"""Pure decisions about which panel actions are currently permitted.

Every function takes the current snapshot (plus whatever user input the
action needs) and returns a GateDecision. Nothing here is cached; callers
re-evaluate after each refresh.
"""

from reposync.git.models import ActionGates, GateDecision, RepositorySnapshot

_ALLOW = GateDecision(allowed=True)


def _deny(reason: str) -> GateDecision:
    return GateDecision(allowed=False, reason=reason)


def can_stage_all(snapshot: RepositorySnapshot) -> GateDecision:
    if not snapshot.unstaged:
        return _deny("Nothing to stage.")
    return _ALLOW


def can_unstage_all(snapshot: RepositorySnapshot) -> GateDecision:
    if not snapshot.staged:
        return _deny("Nothing to unstage.")
    return _ALLOW


def can_discard(snapshot: RepositorySnapshot, path: str) -> GateDecision:
    entry = snapshot.find_unstaged(path)
    if entry is None:
        return _deny("File not found in unstaged list.")
    if entry.is_untracked:
        return _deny("Cannot discard untracked file via checkout.")
    if entry.is_conflicted:
        return _deny("Cannot discard conflicted file. Resolve conflicts manually.")
    return _ALLOW


def can_stage_one(snapshot: RepositorySnapshot, path: str) -> GateDecision:
    entry = snapshot.find_unstaged(path)
    if entry is None:
        return _deny("File not found in unstaged list.")
    if entry.is_conflicted:
        return _deny("Resolve conflict before staging.")
    if entry.is_deleted_in_index:
        return _deny("Cannot stage this file state.")
    return _ALLOW


def can_unstage_one(snapshot: RepositorySnapshot, path: str) -> GateDecision:
    if snapshot.find_staged(path) is None:
        return _deny("File not found in staged list.")
    return _ALLOW


def can_commit(snapshot: RepositorySnapshot, message: str) -> GateDecision:
    if snapshot.has_conflicts:
        return _deny("Cannot commit with merge conflicts.")
    if snapshot.is_behind_remote:
        return _deny("Cannot commit while behind remote. Pull first.")
    if not snapshot.staged:
        return _deny("Nothing staged to commit.")
    if not message.strip():
        return _deny("Commit message cannot be empty.")
    return _ALLOW


def can_push(snapshot: RepositorySnapshot) -> GateDecision:
    if snapshot.has_conflicts:
        return _deny("Cannot push with merge conflicts.")
    if snapshot.is_behind_remote:
        return _deny("Cannot push while behind remote. Pull first.")
    if not snapshot.upstream_configured:
        return _deny("Cannot push: Upstream branch not configured.")
    if not snapshot.is_ahead_remote:
        return _deny("Nothing to push.")
    return _ALLOW


def can_pull(snapshot: RepositorySnapshot, *, fetch_completed: bool) -> GateDecision:
    if snapshot.has_conflicts:
        return _deny(
            "Error: Cannot pull with existing merge conflicts. Resolve conflicts first."
        )
    if not snapshot.upstream_configured:
        return _deny("Pull requires upstream branch configuration.")
    if not fetch_completed:
        return _deny("Fetch remote status before pulling.")
    if not snapshot.is_behind_remote:
        return _deny("Already up-to-date.")
    return _ALLOW


def can_set_upstream(*, repo_detected: bool, busy: bool) -> GateDecision:
    if busy:
        return _deny("Another git operation is in progress.")
    if not repo_detected:
        return _deny("No repository or remote detected.")
    return _ALLOW


def evaluate(
    snapshot: RepositorySnapshot,
    *,
    fetch_completed: bool,
    repo_detected: bool,
    busy: bool,
    commit_message: str,
) -> ActionGates:
    """Evaluate every snapshot-wide gate at once."""
    return ActionGates(
        stage_all=can_stage_all(snapshot),
        unstage_all=can_unstage_all(snapshot),
        commit=can_commit(snapshot, commit_message),
        push=can_push(snapshot),
        pull=can_pull(snapshot, fetch_completed=fetch_completed),
        set_upstream=can_set_upstream(repo_detected=repo_detected, busy=busy),
    )
