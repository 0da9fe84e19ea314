from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

from .config import DosticConfig, RepositoryConfig, RepositoryKind
from .runtime import ContainerRuntime
from .targets import BackupTarget, TargetKind

LOG = logging.getLogger(__name__)

RESTIC_CONTAINER_NAME = "restic"
REPOSITORY_MOUNT = "/repository"
CACHE_MOUNT = "/root/.cache/restic"
PASSWORD_MOUNT = "/restic"
BACKUP_ROOT = "/backups"
HOST_TIME_FILES = ("/etc/localtime", "/etc/timezone")


class InvocationError(Exception):
    """Raised when the snapshot tool exits non-zero for a target."""


@dataclass(frozen=True)
class RepositoryParams:
    """docker run parameters that connect restic to its repository.

    Environment values are handed to the docker client process and only
    their names appear on the command line.
    """

    kind: RepositoryKind
    mounts: Tuple[str, ...]
    environment: Tuple[Tuple[str, str], ...]

    @property
    def env(self) -> Dict[str, str]:
        return dict(self.environment)

    def as_args(self) -> List[str]:
        args: List[str] = []
        for mount in self.mounts:
            args.extend(["-v", mount])
        for name, _ in self.environment:
            args.extend(["-e", name])
        return args


def resolve_repository_params(repository: RepositoryConfig) -> RepositoryParams:
    password_file = Path(repository.password_file)
    mounts = [
        f"{repository.cache_volume}:{CACHE_MOUNT}",
        f"{password_file.parent}:{PASSWORD_MOUNT}:ro",
    ]
    mounts.extend(f"{path}:{path}:ro" for path in HOST_TIME_FILES if Path(path).exists())
    environment = [("RESTIC_PASSWORD_FILE", f"{PASSWORD_MOUNT}/{password_file.name}")]

    kind = repository.kind
    if kind is RepositoryKind.S3:
        environment.extend(
            [
                ("RESTIC_REPOSITORY", repository.location),
                ("AWS_ACCESS_KEY_ID", repository.credentials.access_key_id or ""),
                ("AWS_SECRET_ACCESS_KEY", repository.credentials.secret_access_key or ""),
            ]
        )
    else:
        mounts.append(f"{repository.location}:{REPOSITORY_MOUNT}")
        environment.append(("RESTIC_REPOSITORY", REPOSITORY_MOUNT))

    return RepositoryParams(kind=kind, mounts=tuple(mounts), environment=tuple(environment))


def container_path_for(target: BackupTarget) -> str:
    if target.kind is TargetKind.VOLUME:
        return f"{BACKUP_ROOT}/volumes/{target.identifier}"
    return f"{BACKUP_ROOT}/{target.tag}"


@dataclass(frozen=True)
class SnapshotInvocation:
    target: BackupTarget
    source_mount: str
    container_path: str
    host: str
    repository: RepositoryParams

    @property
    def tag(self) -> str:
        return self.target.tag

    def restic_args(self) -> List[str]:
        return ["backup", "--host", self.host, "--tag", self.tag, "--verbose", self.container_path]


class InvocationBuilder:
    """Builds and runs restic container calls against one repository."""

    def __init__(self, config: DosticConfig, runtime: ContainerRuntime) -> None:
        self._config = config
        self._runtime = runtime
        self._repository = resolve_repository_params(config.repository)

    @property
    def repository_params(self) -> RepositoryParams:
        return self._repository

    def build(self, target: BackupTarget) -> SnapshotInvocation:
        container_path = container_path_for(target)
        return SnapshotInvocation(
            target=target,
            source_mount=f"{target.source_path}:{container_path}:ro",
            container_path=container_path,
            host=self._config.host,
            repository=self._repository,
        )

    def invoke(self, invocation: SnapshotInvocation) -> bool:
        LOG.info("Starting backup source=%s target=%s", invocation.target.source_path, invocation.tag)
        returncode = self.run(invocation.restic_args(), extra_mounts=[invocation.source_mount])
        if returncode != 0:
            LOG.error("Backup failed target=%s rc=%s", invocation.tag, returncode)
            return False
        LOG.info("Backup completed target=%s", invocation.tag)
        return True

    def command(self, restic_args: Sequence[str], extra_mounts: Sequence[str] = ()) -> List[str]:
        args = ["--rm", "--name", RESTIC_CONTAINER_NAME, *self._repository.as_args()]
        for mount in extra_mounts:
            args.extend(["-v", mount])
        args.append(self._config.restic_image)
        args.extend(restic_args)
        return args

    def run(self, restic_args: Sequence[str], extra_mounts: Sequence[str] = ()) -> int:
        return self._runtime.run_container(self.command(restic_args, extra_mounts), env=self._repository.env)
