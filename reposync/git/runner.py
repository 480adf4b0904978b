"""Async wrapper for invoking the git binary."""

import asyncio
import contextlib
import os
from pathlib import Path

import structlog

from reposync.exceptions import GitCommandError
from reposync.git.errors import GitErrorKind, classify
from reposync.git.models import GitCommandResult

logger = structlog.get_logger()

DEFAULT_TIMEOUT = 3600

# Forces untranslated messages; the error classifier and benign-exit checks
# match on English text.
_GIT_ENV_OVERRIDES = {
    "LANG": "en_US.UTF-8",
    "LC_ALL": "en_US.UTF-8",
    "GIT_TERMINAL_PROMPT": "0",
}

# (leading args, marker text) pairs for which exit code 1 is not a failure.
_BENIGN_EXITS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("commit",), "nothing to commit"),
    (("stash", "push"), "No local changes to save"),
    (("reset",), "Unstaged changes after reset"),
)


class GitRunner:
    """Runs git commands in a working directory and captures their output."""

    def __init__(
        self, *, git_binary: str = "git", timeout_seconds: int = DEFAULT_TIMEOUT
    ) -> None:
        self._git = git_binary
        self._timeout = timeout_seconds

    @property
    def timeout_seconds(self) -> int:
        return self._timeout

    async def run(self, *args: str, cwd: Path) -> GitCommandResult:
        """Execute ``git <args>`` in *cwd* and wait for it to exit."""
        if not cwd.is_dir():
            return GitCommandResult(
                args=args,
                returncode=1,
                stderr=f"Directory does not exist: {cwd}",
                success=False,
                error_kind=GitErrorKind.NOT_A_REPOSITORY,
            )

        cmd = (self._git, *args)
        env = {**os.environ, **_GIT_ENV_OVERRIDES}
        logger.debug("git_exec", command=cmd, cwd=str(cwd))

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=cwd,
                env=env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            logger.error("git_not_found", git_binary=self._git)
            return GitCommandResult(
                args=args,
                returncode=127,
                stderr=f"'{self._git}' command not found. Ensure Git is installed "
                "and added to the PATH.",
                success=False,
                error_kind=GitErrorKind.GIT_NOT_FOUND,
            )
        except OSError as e:
            logger.error("git_exec_error", command=cmd, error=str(e))
            return GitCommandResult(
                args=args,
                returncode=1,
                stderr=str(e),
                success=False,
                error_kind=GitErrorKind.UNKNOWN,
            )

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(), timeout=self._timeout
            )
        except TimeoutError:
            logger.warning("git_exec_timeout", command=cmd, timeout=self._timeout)
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            return GitCommandResult(
                args=args,
                returncode=-1,
                stderr=f"Command 'git {' '.join(args)}' timed out after "
                f"{self._timeout} seconds.",
                success=False,
                error_kind=GitErrorKind.TIMEOUT,
                timed_out=True,
            )

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        returncode = proc.returncode or 0

        if returncode == 0 or _is_benign_exit(args, returncode, stdout, stderr):
            return GitCommandResult(
                args=args,
                returncode=returncode,
                stdout=stdout,
                stderr=stderr,
                success=True,
            )

        kind = classify(stderr)
        logger.debug(
            "git_exec_failed", command=cmd, returncode=returncode, error_kind=kind
        )
        return GitCommandResult(
            args=args,
            returncode=returncode,
            stdout=stdout,
            stderr=stderr,
            success=False,
            error_kind=kind,
        )

    async def run_checked(self, *args: str, cwd: Path) -> GitCommandResult:
        """Like ``run`` but raises GitCommandError on failure."""
        result = await self.run(*args, cwd=cwd)
        if not result.success:
            raise GitCommandError(result)
        return result

    async def version(self, cwd: Path) -> str | None:
        result = await self.run("--version", cwd=cwd)
        if not result.success:
            return None
        return result.stdout.strip() or None


def is_repository(root: Path) -> bool:
    """True when *root* has a ``.git`` directory or gitfile (worktrees)."""
    try:
        return (root / ".git").exists()
    except OSError as e:
        logger.error("git_dir_check_failed", root=str(root), error=str(e))
        return False


def _is_benign_exit(
    args: tuple[str, ...], returncode: int, stdout: str, stderr: str
) -> bool:
    if returncode != 1:
        return False
    for prefix, marker in _BENIGN_EXITS:
        if args[: len(prefix)] != prefix:
            continue
        # reset only reports this on stderr; the others may use either stream
        if prefix == ("reset",):
            if marker in stderr:
                return True
        elif marker in stdout or marker in stderr:
            return True
    return False
