from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .config import DosticConfig, ExclusionRuleSet
from .runtime import ContainerRuntime
from .targets import BackupTarget, TargetKind

LOG = logging.getLogger(__name__)

POSTGRES_PORT = 5432
MYSQL_PORT = 3306

DATABASE_PORTS = {
    TargetKind.POSTGRES: POSTGRES_PORT,
    TargetKind.MYSQL: MYSQL_PORT,
}

# Anonymous volumes are named after a 64 character hash.
_ANONYMOUS_VOLUME = re.compile(r"^.{64}$")


def parse_folder_specs(spec_string: str, cwd: Optional[Path] = None) -> List[Tuple[Path, str]]:
    """Parse ``path[:tag]`` entries separated by commas.

    Missing paths are dropped with a warning. The tag defaults to the base
    name of the path. Tags must be unique, so a later entry repeating an
    earlier tag is dropped with a warning.
    """
    base = cwd or Path.cwd()
    folders: List[Tuple[Path, str]] = []
    seen: Dict[str, Path] = {}

    for entry in (spec_string or "").split(","):
        entry = entry.strip()
        if not entry:
            continue

        raw_path, _, tag = entry.partition(":")
        raw_path, tag = raw_path.strip(), tag.strip()
        if not raw_path:
            LOG.warning("Folder entry without a path, skipping entry=%s", entry)
            continue

        source = Path(raw_path).expanduser()
        if not source.is_absolute():
            source = (base / source).resolve()
        if not tag:
            tag = source.name

        if not source.exists():
            LOG.warning("Folder does not exist, skipping path=%s", source)
            continue
        if tag in seen:
            LOG.warning("Duplicate folder tag, skipping tag=%s path=%s first=%s", tag, source, seen[tag])
            continue
        seen[tag] = source
        folders.append((source, tag))

    return folders


class TargetDiscovery:
    """Enumerates backup targets from containers, volumes and folder specs."""

    def __init__(self, config: DosticConfig, runtime: ContainerRuntime) -> None:
        self._config = config
        self._runtime = runtime

    def discover_database_containers(self, port_signature: int) -> List[str]:
        published = re.compile(rf"(?<!\d){port_signature}/tcp")
        return [name for name, ports in self._runtime.list_containers() if published.search(ports)]

    def discover_volumes(self, rules: ExclusionRuleSet) -> List[str]:
        cache_volume = self._config.repository.cache_volume
        volumes: List[str] = []
        for name in self._runtime.list_volumes():
            if _ANONYMOUS_VOLUME.match(name):
                continue
            if name == cache_volume:
                LOG.debug("Skipping cache volume volume=%s", name)
                continue
            reason = rules.reason_excluded(name)
            if reason:
                LOG.info("Skipping excluded volume volume=%s reason=%s", name, reason)
                continue
            volumes.append(name)
        return volumes

    def targets_for(self, kind: TargetKind) -> List[BackupTarget]:
        if kind.is_database:
            return self._database_targets(kind)
        if kind is TargetKind.VOLUME:
            return [
                BackupTarget(kind=kind, identifier=name, source_path=name)
                for name in self.discover_volumes(self._config.exclusions)
            ]
        if not self._config.folders.strip():
            LOG.warning("BACKUP_FOLDERS not set in configuration, skipping folder backup")
            return []
        return [
            BackupTarget(kind=kind, identifier=tag, source_path=str(path))
            for path, tag in parse_folder_specs(self._config.folders)
        ]

    def _database_targets(self, kind: TargetKind) -> List[BackupTarget]:
        staging_root = self._config.backup_base / kind.value
        return [
            BackupTarget(kind=kind, identifier=name, source_path=str(staging_root / name))
            for name in self.discover_database_containers(DATABASE_PORTS[kind])
        ]
