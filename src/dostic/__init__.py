"""dostic: Docker + restic backup orchestration package."""

from __future__ import annotations

__version__ = "0.2.0"

from .config import load_config, DosticConfig  # noqa: E402,F401
from .orchestrator import BackupOrchestrator  # noqa: E402,F401
