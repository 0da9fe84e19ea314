from __future__ import annotations

from typing import List

from dostic.targets import TargetKind

from .base import CONTAINER_DUMP_PATH, CredentialStrategy, DatabaseExtractor

# The root password comes from the container's own environment.
MYSQLDUMP_SCRIPT = f'mysqldump -uroot -p"${{MYSQL_ROOT_PASSWORD}}" -A -r {CONTAINER_DUMP_PATH}'


class MySQLExtractor(DatabaseExtractor):
    kind = TargetKind.MYSQL

    def strategies(self) -> List[CredentialStrategy]:
        return [CredentialStrategy("root", MYSQLDUMP_SCRIPT)]
