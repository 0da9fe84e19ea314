from __future__ import annotations

import logging
from typing import List

from .config import RetentionPolicy
from .repository import ResticRepository

LOG = logging.getLogger(__name__)


def forget_args(policy: RetentionPolicy) -> List[str]:
    args = [
        "--keep-daily",
        str(policy.keep_daily),
        "--keep-weekly",
        str(policy.keep_weekly),
        "--keep-monthly",
        str(policy.keep_monthly),
        "--keep-yearly",
        str(policy.keep_yearly),
    ]
    if policy.prune:
        args.append("--prune")
    return args


class RetentionManager:
    """Applies the keep policy to the repository's snapshot history."""

    def __init__(self, repository: ResticRepository) -> None:
        self._repository = repository

    def apply(self, policy: RetentionPolicy) -> bool:
        LOG.info(
            "Applying retention policy daily=%s weekly=%s monthly=%s yearly=%s prune=%s",
            policy.keep_daily,
            policy.keep_weekly,
            policy.keep_monthly,
            policy.keep_yearly,
            policy.prune,
        )
        return self._repository.forget(forget_args(policy))
