from __future__ import annotations

import logging
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dostic.runtime import ContainerRuntime, RuntimeCommandError
from dostic.targets import BackupTarget, TargetKind

LOG = logging.getLogger(__name__)

CONTAINER_DUMP_PATH = "/tmp/export.sql"


class ExtractionError(Exception):
    """Raised when a database dump cannot be staged on the host."""


@dataclass(frozen=True)
class CredentialStrategy:
    """One named way of running the dump tool inside a container."""

    name: str
    script: str


def artifact_path(target: BackupTarget) -> Path:
    return Path(target.source_path) / f"{target.identifier}.dump.sql"


class DatabaseExtractor(ABC):
    """Dumps a database container into its staging directory.

    Strategies are tried in order until one exits successfully. The dump is
    copied out of the container and the in-container copy removed, whether
    or not the copy succeeded.
    """

    kind: TargetKind

    def __init__(self, runtime: ContainerRuntime) -> None:
        self._runtime = runtime

    @abstractmethod
    def strategies(self) -> List[CredentialStrategy]:
        """Credential strategies in the order they are tried."""

    def extract(self, target: BackupTarget) -> Optional[Path]:
        if target.kind is not self.kind:
            raise ValueError(f"{self.__class__.__name__} cannot extract {target.kind.value} targets")

        staging_dir = Path(target.source_path)
        for strategy in self.strategies():
            _reset_staging(staging_dir)
            LOG.debug("Trying dump container=%s strategy=%s", target.identifier, strategy.name)
            if self._runtime.exec_shell(target.identifier, strategy.script):
                artifact = self._collect(target)
                LOG.info(
                    "Database dump completed container=%s type=%s strategy=%s",
                    target.identifier,
                    self.kind.value,
                    strategy.name,
                )
                return artifact

        LOG.warning("Failed to dump database with any credential container=%s type=%s", target.identifier, self.kind.value)
        return None

    def _collect(self, target: BackupTarget) -> Path:
        artifact = artifact_path(target)
        try:
            self._runtime.copy_from(target.identifier, CONTAINER_DUMP_PATH, artifact)
        except RuntimeCommandError as exc:
            raise ExtractionError(f"Failed to copy dump out of container {target.identifier}: {exc}") from exc
        finally:
            self._runtime.remove_file(target.identifier, CONTAINER_DUMP_PATH)
        return artifact


def _reset_staging(staging_dir: Path) -> None:
    if staging_dir.exists():
        shutil.rmtree(staging_dir)
    staging_dir.mkdir(parents=True, exist_ok=True)
