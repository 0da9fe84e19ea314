from __future__ import annotations

import os
import re
import socket
import stat
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_CONFIG_PATH = "dostic.yaml"
DEFAULT_BACKUP_BASE = Path("/backups")
DEFAULT_CACHE_VOLUME = "restic-cache"
DEFAULT_RESTIC_IMAGE = "restic/restic"
DEFAULT_POSTGRES_USER_VARIABLE = "POSTGRES_USER"

ALLOWED_PASSWORD_FILE_MODES = (0o600, 0o700)

_SHELL_VARIABLE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class ConfigurationError(Exception):
    """Raised when the dostic configuration is invalid."""


class RepositoryKind(str, Enum):
    LOCAL = "local"
    S3 = "s3"


def repository_kind(location: str) -> RepositoryKind:
    if location.startswith("s3:"):
        return RepositoryKind.S3
    if location.startswith("/"):
        return RepositoryKind.LOCAL
    raise ConfigurationError(
        f"Unsupported repository type: {location}. "
        "Supported types: local path (/path/to/repo) or S3 (s3:endpoint/bucket)"
    )


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# --- Repository --------------------------------------------------------------


class ObjectStoreCredentials(_Frozen):
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None


class RepositoryConfig(_Frozen):
    location: Optional[str] = Field(default=None, description="Local path or s3: URL of the restic repository.")
    password_file: Optional[Path] = Field(default=None, description="File holding the repository password.")
    credentials: ObjectStoreCredentials = ObjectStoreCredentials()
    cache_volume: str = DEFAULT_CACHE_VOLUME

    @property
    def kind(self) -> RepositoryKind:
        if not self.location:
            raise ConfigurationError("REPOSITORY is not set in configuration")
        return repository_kind(self.location)


# --- Discovery rules ---------------------------------------------------------


class ExclusionRuleSet(_Frozen):
    exact_names: FrozenSet[str] = frozenset()
    regex: Optional[str] = None

    @field_validator("exact_names", mode="before")
    @classmethod
    def _split_names(cls, value: Any) -> Any:
        if value is None:
            return frozenset()
        if isinstance(value, str):
            value = value.split(",")
        elif not isinstance(value, (list, tuple, set, frozenset)):
            value = [value]
        # YAML turns names such as 2024 into numbers.
        names = (str(name).strip() for name in value if name is not None)
        return frozenset(name for name in names if name)

    @field_validator("regex")
    @classmethod
    def _compile_regex(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"Invalid volume exclusion regex '{value}': {exc}") from exc
        return value

    @property
    def pattern(self) -> Optional[re.Pattern]:
        return re.compile(self.regex) if self.regex else None

    def reason_excluded(self, name: str) -> Optional[str]:
        if name in self.exact_names:
            return "exact_match"
        pattern = self.pattern
        if pattern is not None and pattern.search(name):
            return "regex_match"
        return None


# --- Retention ---------------------------------------------------------------


class RetentionPolicy(_Frozen):
    keep_daily: int = Field(default=14, ge=0)
    keep_weekly: int = Field(default=12, ge=0)
    keep_monthly: int = Field(default=12, ge=0)
    keep_yearly: int = Field(default=5, ge=0)
    prune: bool = True


# --- Root --------------------------------------------------------------------


class DosticConfig(_Frozen):
    repository: RepositoryConfig = RepositoryConfig()
    backup_base: Path = DEFAULT_BACKUP_BASE
    host: str = Field(default_factory=socket.gethostname)
    folders: str = Field(default="", description="Comma separated 'path' or 'path:tag' entries.")
    exclusions: ExclusionRuleSet = ExclusionRuleSet()
    retention: RetentionPolicy = RetentionPolicy()
    postgres_user_variable: str = DEFAULT_POSTGRES_USER_VARIABLE
    restic_image: str = DEFAULT_RESTIC_IMAGE

    @field_validator("backup_base")
    @classmethod
    def _expand_backup_base(cls, value: Path) -> Path:
        return value.expanduser()

    @field_validator("postgres_user_variable")
    @classmethod
    def _require_shell_variable(cls, value: str) -> str:
        if not _SHELL_VARIABLE.match(value):
            raise ValueError(f"'{value}' is not a valid environment variable name")
        return value


# Environment variables understood on top of the YAML file, mapped to their
# location in the configuration tree.
ENVIRONMENT_KEYS: Dict[str, Tuple[str, ...]] = {
    "REPOSITORY": ("repository", "location"),
    "RESTIC_PASSWORD_FILE": ("repository", "password_file"),
    "CACHE_VOLUME_NAME": ("repository", "cache_volume"),
    "AWS_ACCESS_KEY_ID": ("repository", "credentials", "access_key_id"),
    "AWS_SECRET_ACCESS_KEY": ("repository", "credentials", "secret_access_key"),
    "BACKUP_BASEDIR": ("backup_base",),
    "HOST": ("host",),
    "BACKUP_FOLDERS": ("folders",),
    "EXCLUDE_VOLUMES": ("exclusions", "exact_names"),
    "EXCLUDE_VOLUMES_REGEX": ("exclusions", "regex"),
    "KEEP_DAILY": ("retention", "keep_daily"),
    "KEEP_WEEKLY": ("retention", "keep_weekly"),
    "KEEP_MONTHLY": ("retention", "keep_monthly"),
    "KEEP_YEARLY": ("retention", "keep_yearly"),
    "POSTGRES_USER_VARIABLE": ("postgres_user_variable",),
    "RESTIC_IMAGE": ("restic_image",),
}


def _apply_environment(raw: Dict[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    for variable, key_path in ENVIRONMENT_KEYS.items():
        value = environ.get(variable)
        if not value:
            continue
        node = raw
        for key in key_path[:-1]:
            child = node.get(key)
            if not isinstance(child, dict):
                child = {}
                node[key] = child
            node = child
        node[key_path[-1]] = value
    return raw


def _check_password_file(password_file: Optional[Path]) -> List[str]:
    if password_file is None:
        return ["RESTIC_PASSWORD_FILE is not set in configuration"]
    if not password_file.is_file():
        return [f"Password file '{password_file}' does not exist"]

    mode = stat.S_IMODE(password_file.stat().st_mode)
    if mode not in ALLOWED_PASSWORD_FILE_MODES:
        return [
            f"Password file '{password_file}' must have permissions 0600 or 0700 "
            f"(current: {mode:o}). Fix with: chmod 600 {password_file}"
        ]
    return []


def _check_repository(repository: RepositoryConfig) -> List[str]:
    try:
        kind = repository.kind
    except ConfigurationError as exc:
        return [str(exc)]

    errors: List[str] = []
    if kind is RepositoryKind.S3:
        if not repository.credentials.access_key_id:
            errors.append("AWS_ACCESS_KEY_ID required for S3 repository")
        if not repository.credentials.secret_access_key:
            errors.append("AWS_SECRET_ACCESS_KEY required for S3 repository")
    else:
        parent = Path(repository.location).parent
        if not parent.is_dir():
            errors.append(f"Parent directory '{parent}' for local repository does not exist")
    return errors


def validate_config(config: DosticConfig) -> DosticConfig:
    """Run the pre-flight checks that must pass before any backup group starts."""
    errors = _check_password_file(config.repository.password_file)
    errors.extend(_check_repository(config.repository))
    if errors:
        raise ConfigurationError("; ".join(errors))
    return config


def load_config(
    path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
    *,
    required: bool = False,
) -> DosticConfig:
    raw: Dict[str, Any] = {}
    if path is not None:
        if path.exists():
            with path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            if not isinstance(raw, dict):
                raise ConfigurationError(f"Configuration file {path} must contain a mapping")
        elif required:
            raise ConfigurationError(f"Configuration file not found: {path}")

    raw = _apply_environment(raw, os.environ if environ is None else environ)

    try:
        config = DosticConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc

    return validate_config(config)
