from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from .config import DosticConfig
from .discovery import TargetDiscovery
from .extraction import DatabaseExtractor, ExtractionError, create_extractor
from .invocation import InvocationBuilder, InvocationError
from .runtime import ContainerRuntime, RuntimeCommandError
from .targets import GROUP_ORDER, BackupTarget, TargetKind

LOG = logging.getLogger(__name__)

ExtractorFactory = Callable[[TargetKind, DosticConfig, ContainerRuntime], DatabaseExtractor]

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"


@dataclass
class TargetResult:
    tag: str
    status: str
    started_at: datetime
    completed_at: datetime
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == STATUS_SUCCESS


class BackupOrchestrator:
    """Runs discovery, extraction and snapshot calls group by group.

    A failing target is recorded and the run moves on to the next one; the
    caller decides the overall status from the returned results.
    """

    def __init__(
        self,
        config: DosticConfig,
        runtime: ContainerRuntime,
        discovery: Optional[TargetDiscovery] = None,
        builder: Optional[InvocationBuilder] = None,
        extractor_factory: ExtractorFactory = create_extractor,
    ) -> None:
        self._config = config
        self._runtime = runtime
        self._discovery = discovery or TargetDiscovery(config, runtime)
        self._builder = builder or InvocationBuilder(config, runtime)
        self._extractor_factory = extractor_factory

    def run(self, groups: Sequence[TargetKind] = GROUP_ORDER) -> List[TargetResult]:
        results: List[TargetResult] = []
        for group in groups:
            results.extend(self.run_group(group))
        return results

    def run_group(self, group: TargetKind) -> List[TargetResult]:
        LOG.info("Starting group type=%s", group.value)
        try:
            targets = self._discovery.targets_for(group)
        except RuntimeCommandError as exc:
            now = datetime.now(timezone.utc)
            LOG.error("Target discovery failed type=%s: %s", group.value, exc)
            return [
                TargetResult(
                    tag=f"{group.value}/*",
                    status=STATUS_FAILED,
                    started_at=now,
                    completed_at=now,
                    errors=[f"Discovery failed: {exc}"],
                )
            ]

        if not targets:
            LOG.info("No targets found, skipping type=%s", group.value)
            return []

        extractor = self._extractor_factory(group, self._config, self._runtime) if group.is_database else None
        return [self._backup_target(target, extractor) for target in targets]

    def _backup_target(self, target: BackupTarget, extractor: Optional[DatabaseExtractor]) -> TargetResult:
        started_at = datetime.now(timezone.utc)
        status = STATUS_SUCCESS
        errors: List[str] = []

        try:
            if extractor is not None:
                LOG.info("Extracting database container=%s type=%s", target.identifier, target.kind.value)
                if extractor.extract(target) is None:
                    raise ExtractionError(f"All credential attempts failed for {target.identifier}")
            self._snapshot(target)
        except (ExtractionError, InvocationError, RuntimeCommandError, OSError) as exc:
            status = STATUS_FAILED
            errors.append(str(exc))
            LOG.error("Target failed target=%s: %s", target.tag, exc)

        return TargetResult(
            tag=target.tag,
            status=status,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
            errors=errors,
        )

    def _snapshot(self, target: BackupTarget) -> None:
        invocation = self._builder.build(target)
        if not self._builder.invoke(invocation):
            raise InvocationError(f"Snapshot tool failed for {target.tag}")
