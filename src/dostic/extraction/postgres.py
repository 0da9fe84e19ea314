from __future__ import annotations

from typing import List, Optional

from dostic.config import DEFAULT_POSTGRES_USER_VARIABLE
from dostic.runtime import ContainerRuntime
from dostic.targets import TargetKind

from .base import CONTAINER_DUMP_PATH, CredentialStrategy, DatabaseExtractor

LOCK_WAIT_TIMEOUT = 600


def pg_dumpall_script(user: Optional[str]) -> str:
    user_arg = f"-U {user} " if user else ""
    return f"pg_dumpall -v --lock-wait-timeout={LOCK_WAIT_TIMEOUT} -c {user_arg}-f {CONTAINER_DUMP_PATH}"


def postgres_strategies(user_variable: str = DEFAULT_POSTGRES_USER_VARIABLE) -> List[CredentialStrategy]:
    # Variables and $(whoami) are expanded by the shell inside the container.
    return [
        CredentialStrategy("postgres", pg_dumpall_script("postgres")),
        CredentialStrategy(f"${user_variable}", pg_dumpall_script(f'"${{{user_variable}}}"')),
        CredentialStrategy("whoami", pg_dumpall_script('"$(whoami)"')),
        CredentialStrategy("default", pg_dumpall_script(None)),
    ]


class PostgresExtractor(DatabaseExtractor):
    kind = TargetKind.POSTGRES

    def __init__(self, runtime: ContainerRuntime, user_variable: str = DEFAULT_POSTGRES_USER_VARIABLE) -> None:
        super().__init__(runtime)
        self._strategies = postgres_strategies(user_variable)

    def strategies(self) -> List[CredentialStrategy]:
        return list(self._strategies)
