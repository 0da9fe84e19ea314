from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

from .invocation import InvocationBuilder

LOG = logging.getLogger(__name__)

RESTORE_MOUNT = "/restore"


class ResticRepository:
    """Repository-level restic commands run through the restic container."""

    def __init__(self, builder: InvocationBuilder, location: str) -> None:
        self._builder = builder
        self._location = location

    def init(self) -> bool:
        LOG.info("Initializing restic repository repo=%s", self._location)
        return self._run(["init", "--verbose"], "Repository initialized", "Repository initialization failed")

    def snapshots(self) -> bool:
        return self._run(["snapshots"], None, "Failed to retrieve snapshots")

    def stats(self) -> bool:
        return self._run(["stats", "--mode", "raw-data"], None, "Failed to retrieve repository statistics")

    def prune(self) -> bool:
        return self._run(["prune"], "Repository pruned", "Failed to prune repository")

    def unlock(self) -> bool:
        return self._run(["unlock"], "Repository unlocked", "Failed to unlock repository")

    def check(self) -> bool:
        return self._run(["check"], "Repository integrity verified", "Repository integrity check failed")

    def forget(self, keep_args: Sequence[str]) -> bool:
        return self._run(["forget", *keep_args], "Old snapshots removed", "Failed to remove old snapshots")

    def restore(self, snapshot_id: str, target_path: Path) -> bool:
        if not snapshot_id:
            LOG.error("Snapshot ID is required")
            return False

        if not target_path.is_dir():
            LOG.info("Creating target directory path=%s", target_path)
            target_path.mkdir(parents=True, exist_ok=True)
        target_path = target_path.resolve()

        LOG.info("Restoring snapshot snapshot=%s target=%s", snapshot_id, target_path)
        returncode = self._builder.run(
            ["restore", snapshot_id, "--target", RESTORE_MOUNT, "--verbose"],
            extra_mounts=[f"{target_path}:{RESTORE_MOUNT}"],
        )
        if returncode != 0:
            LOG.error("Restore failed snapshot=%s target=%s", snapshot_id, target_path)
            return False
        LOG.info("Restore completed snapshot=%s target=%s", snapshot_id, target_path)
        return True

    def _run(self, restic_args: Sequence[str], success_message: Optional[str], failure_message: str) -> bool:
        returncode = self._builder.run(restic_args)
        if returncode != 0:
            LOG.error("%s repo=%s rc=%s", failure_message, self._location, returncode)
            return False
        if success_message:
            LOG.info("%s repo=%s", success_message, self._location)
        return True
