"""Unified configuration via pydantic-settings."""

from pathlib import Path

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from reposync.exceptions import ConfigError

_REMOTE_NAME_CHARS = frozenset(
    "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789._-/"
)


class RepoSyncConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="REPOSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Repository
    repository_root: Path = Field(default_factory=Path.cwd)
    default_remote: str = "origin"

    # Git invocation
    git_binary: str = "git"
    git_timeout_seconds: int = Field(default=3600, gt=0)
    max_log_entries: int = Field(default=10, ge=1, le=100)

    # Logging
    log_level: str = "INFO"
    log_dir: Path | None = None
    log_max_bytes: int = 10_485_760
    log_backup_count: int = 5

    # Audit
    audit_enabled: bool = True
    audit_log_path: Path = Path("reposync-audit.jsonl")

    @field_validator("repository_root")
    @classmethod
    def resolve_repository_root(cls, v: Path) -> Path:
        resolved = v.expanduser().resolve()
        if not resolved.is_dir():
            raise ValueError(f"repository root does not exist: {resolved}")
        return resolved

    @field_validator("default_remote")
    @classmethod
    def validate_default_remote(cls, v: str) -> str:
        v = v.strip()
        if not v or not set(v) <= _REMOTE_NAME_CHARS:
            raise ValueError(f"invalid remote name: {v!r}")
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return level


def load_config(**overrides: object) -> RepoSyncConfig:
    """Build the config from env/.env plus explicit overrides."""
    try:
        return RepoSyncConfig(**overrides)  # type: ignore[arg-type]
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigError(problems) from e
