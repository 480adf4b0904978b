"""Pure functions to format repository state for panel display."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

from reposync.git import gate

if TYPE_CHECKING:
    from reposync.core.session import SyncSession
    from reposync.git.models import (
        CommitLog,
        OperationResult,
        RepositorySnapshot,
        StatusEntry,
    )

_STATUS_NAMES = {
    "M": "Modified",
    "A": "Added",
    "D": "Deleted",
    "R": "Renamed",
    "C": "Copied",
    "U": "Unmerged",
}

LogKind = Literal["pull", "push", "history"]

_LOG_TITLES: dict[LogKind, str] = {
    "pull": "Commits to Pull",
    "push": "Commits to Push",
    "history": "Recent Commit History",
}

_LOG_ERRORS: dict[LogKind, str] = {
    "pull": "Error retrieving pull log",
    "push": "Error retrieving push log",
    "history": "Error retrieving commit history.",
}


def _status_name(code: str) -> str:
    return _STATUS_NAMES.get(code, code)


def format_entry(entry: StatusEntry) -> str:
    """One human-readable line for a status entry."""
    if entry.is_renamed:
        return f"Renamed: {entry.original_path or '?'} -> {entry.path}"
    if entry.is_untracked:
        return f"Untracked: {entry.path}"
    if entry.is_conflicted:
        return f"CONFLICT: {entry.path}"

    staged = _status_name(entry.index_code) if entry.is_staged else ""
    unstaged = (
        _status_name(entry.tree_code) if entry.is_unstaged_modification else ""
    )

    if staged and unstaged:
        return f"{staged}/{unstaged}: {entry.path}"
    if staged:
        return f"{staged} (Staged): {entry.path}"
    if unstaged:
        return f"{unstaged} (Unstaged): {entry.path}"
    return f"Unknown ({entry.status_code}): {entry.path}"


def format_commit_log(log: CommitLog, kind: LogKind) -> str:
    """Render a log section; empty string when there is nothing to show."""
    title = _LOG_TITLES[kind]
    match log.state:
        case "ok":
            lines = [f"{title} ({len(log)}):"]
            lines.extend(f"  {c}" for c in log.entries)
            return "\n".join(lines)
        case "error":
            return f"{title}:\n  {_LOG_ERRORS[kind]}"
        case "empty" if kind == "history":
            return f"{title}:\n  No commits found in history."
        case _:
            return ""


def overall_status_message(
    snapshot: RepositorySnapshot, *, fetch_completed: bool, repo_detected: bool
) -> str:
    """One-line summary shown at the top of the panel after a refresh."""
    if snapshot.has_conflicts:
        return "Error: Merge conflicts detected! Resolve conflicts, then stage and commit."

    if snapshot.status_error:
        return "Error getting file status. See log."

    if not snapshot.upstream_configured and repo_detected:
        message = (
            "Warning: Branch has no upstream configured. Push/Pull requires setup."
        )
        parts = _change_counts(snapshot)
        if parts:
            message += f" Current status: {', '.join(parts)}."
        return message

    parts: list[str] = []
    if snapshot.is_behind_remote:
        parts.append(f"Behind remote ({snapshot.behind_count})")
    if snapshot.is_ahead_remote:
        parts.append(f"Ahead of remote ({snapshot.ahead_count})")
    parts.extend(_change_counts(snapshot))

    if parts:
        return ", ".join(parts) + "."
    if fetch_completed:
        return "Repository is clean and up-to-date."
    if repo_detected:
        return "Local repository is clean. Fetch remote status?"
    return "Status refreshed."


def _change_counts(snapshot: RepositorySnapshot) -> list[str]:
    parts: list[str] = []
    if snapshot.staged:
        parts.append(f"{len(snapshot.staged)} staged")
    if snapshot.modified_unstaged_count:
        parts.append(f"{snapshot.modified_unstaged_count} unstaged")
    if snapshot.untracked_count:
        parts.append(f"{snapshot.untracked_count} untracked")
    return parts


def commit_hint(snapshot: RepositorySnapshot, message: str) -> str:
    """Context help shown under the commit box; empty when none applies."""
    if snapshot.has_conflicts:
        return "Resolve merge conflicts before committing or pushing."
    if snapshot.is_behind_remote:
        return "Local branch is behind remote. Pull changes before committing or pushing."
    if not snapshot.staged and snapshot.unstaged:
        return "Stage changes before committing."
    if not snapshot.staged and not snapshot.is_ahead_remote:
        return "No changes staged for commit."
    if snapshot.staged and not message.strip():
        return "Enter a commit message."
    if snapshot.is_ahead_remote and not snapshot.upstream_configured:
        return "Set upstream branch before pushing."
    return ""


def format_snapshot(session: SyncSession) -> str:
    """Full panel text for the current session."""
    snapshot = session.snapshot
    lines: list[str] = [f"Status: {session.status_message}"]

    remote = session.selected_remote
    if session.remote_url:
        lines.append(f"Remote: {remote} ({session.remote_url})")
    else:
        lines.append(f"Remote: {remote}")
    if snapshot.upstream_ref:
        lines.append(f"Upstream: {snapshot.upstream_ref}")
    if session.busy and session.current_operation:
        lines.append(f"Busy: {session.current_operation}")

    lines.append("")
    lines.append(f"Unstaged Changes ({len(snapshot.unstaged)}):")
    if snapshot.unstaged:
        lines.extend(f"  {format_entry(e)}" for e in snapshot.unstaged)
    else:
        lines.append("  No unstaged changes.")

    lines.append(f"Staged Changes ({len(snapshot.staged)}):")
    if snapshot.staged:
        lines.extend(f"  {format_entry(e)}" for e in snapshot.staged)
    else:
        lines.append("  No staged changes.")

    hint = commit_hint(snapshot, session.commit_message)
    if hint:
        lines.append("")
        lines.append(hint)

    gates = gate.evaluate(
        snapshot,
        fetch_completed=session.fetch_completed,
        repo_detected=session.repo_detected,
        busy=session.busy,
        commit_message=session.commit_message,
    )
    actions = [
        name
        for name, decision in (
            ("pull", gates.pull),
            ("push", gates.push),
            ("commit", gates.commit),
            ("add .", gates.stage_all),
            ("reset", gates.unstage_all),
        )
        if decision
    ]
    if actions:
        lines.append("")
        lines.append(f"Available: {', '.join(actions)}")

    for log, kind in (
        (snapshot.pull_log, "pull"),
        (snapshot.push_log, "push"),
        (snapshot.commit_history, "history"),
    ):
        section = format_commit_log(log, kind)  # type: ignore[arg-type]
        if section:
            lines.append("")
            lines.append(section)

    return "\n".join(lines)


def format_result(result: OperationResult) -> str:
    """Format an OperationResult with a success/failure indicator."""
    if result.skipped:
        icon = "⏸"
    else:
        icon = "✅" if result.success else "❌"
    text = f"{icon} {result.message}"
    if result.details and not result.success:
        text += f"\n{result.details}"
    return text


def format_help() -> str:
    """Return help text listing all console commands."""
    return (
        "\U0001f6e0 Commands:\n"
        "\n"
        "status — Show the panel\n"
        "refresh — Re-read repository state\n"
        "fetch — Fetch from the selected remote\n"
        "pull — Pull from upstream\n"
        "push — Push to upstream\n"
        "add . — Stage all changes\n"
        "add <path> — Stage one file\n"
        "reset — Unstage all changes\n"
        "reset <path> — Unstage one file\n"
        "discard <path> — Discard unstaged changes to a file\n"
        "message <text> — Set the commit message\n"
        "commit [<text>] — Commit staged changes\n"
        "upstream — Track the current branch on the selected remote\n"
        "remote <name> — Select a remote\n"
        "help — This message"
    )
