"""Parsers for git's plain-text output.

``parse_porcelain_status`` expects the output of
``git status --porcelain -uall``: two status characters, a space, then the
path. Renames and copies carry ``"old -> new"`` in the path column, and git
wraps paths containing special characters in double quotes.
"""

import re

from pydantic import BaseModel, ConfigDict

from reposync.git.models import StatusEntry

_LINE_SPLIT_RE = re.compile(r"[\r\n]+")
_RENAME_SEPARATOR = " -> "
_MIN_LINE_LENGTH = 4


class ParsedStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    staged: list[StatusEntry] = []
    unstaged: list[StatusEntry] = []


def split_lines(text: str) -> list[str]:
    """Split on any run of CR/LF and drop empty lines."""
    return [line for line in _LINE_SPLIT_RE.split(text) if line]


def strip_quotes(path: str) -> str:
    """Remove one layer of enclosing double quotes."""
    if len(path) >= 2 and path.startswith('"') and path.endswith('"'):
        return path[1:-1]
    return path


def parse_status_line(line: str) -> StatusEntry | None:
    """Parse one porcelain line; None for lines too short to carry a path."""
    if len(line) < _MIN_LINE_LENGTH:
        return None

    index_code = line[0]
    tree_code = line[1]
    payload = line[3:]
    path = payload
    original_path: str | None = None

    if index_code in ("R", "C"):
        arrow = payload.find(_RENAME_SEPARATOR)
        if arrow > 0:
            original_path = strip_quotes(payload[:arrow])
            path = payload[arrow + len(_RENAME_SEPARATOR) :]

    return StatusEntry(
        path=strip_quotes(path),
        index_code=index_code,
        tree_code=tree_code,
        original_path=original_path,
    )


def parse_porcelain_status(text: str) -> ParsedStatus:
    """Split porcelain output into staged and unstaged entries.

    A path with both index and worktree changes appears in both lists.
    Untracked paths only ever appear in ``unstaged``. Both lists are sorted
    by path, case-insensitively.
    """
    staged: list[StatusEntry] = []
    unstaged: list[StatusEntry] = []
    seen_unstaged: set[str] = set()

    for line in split_lines(text):
        entry = parse_status_line(line)
        if entry is None:
            continue

        if entry.is_staged:
            staged.append(entry)

        if entry.is_untracked or entry.is_unstaged_modification:
            if entry.path not in seen_unstaged:
                seen_unstaged.add(entry.path)
                unstaged.append(entry)

    staged.sort(key=_path_sort_key)
    unstaged.sort(key=_path_sort_key)
    return ParsedStatus(staged=staged, unstaged=unstaged)


def parse_count(text: str) -> int:
    """Parse ``rev-list --count`` output; anything unusable counts as zero."""
    try:
        value = int(text.strip())
    except ValueError:
        return 0
    return max(value, 0)


def split_log_lines(text: str, limit: int) -> list[str]:
    return split_lines(text)[:limit]


def parse_remotes(text: str) -> list[str]:
    """Remote names from ``git remote``, with ``origin`` first when present."""
    remotes = [line.strip() for line in split_lines(text) if line.strip()]
    if "origin" in remotes and remotes[0] != "origin":
        remotes.remove("origin")
        remotes.insert(0, "origin")
    return remotes


def _path_sort_key(entry: StatusEntry) -> str:
    return entry.path.casefold()
