from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TargetKind(str, Enum):
    """Backup groups, declared in the order a full backup runs them."""

    POSTGRES = "postgres"
    MYSQL = "mysql"
    VOLUME = "volume"
    FOLDER = "folders"

    @property
    def is_database(self) -> bool:
        return self in (TargetKind.POSTGRES, TargetKind.MYSQL)


GROUP_ORDER = (TargetKind.POSTGRES, TargetKind.MYSQL, TargetKind.VOLUME, TargetKind.FOLDER)


@dataclass(frozen=True)
class BackupTarget:
    """A single unit captured by one snapshot call.

    ``source_path`` is the host staging directory for databases, the volume
    name for volumes and the absolute folder path for folders.
    """

    kind: TargetKind
    identifier: str
    source_path: str

    @property
    def tag(self) -> str:
        return f"{self.kind.value}/{self.identifier}"
