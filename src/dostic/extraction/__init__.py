from __future__ import annotations

from dostic.config import DosticConfig
from dostic.runtime import ContainerRuntime
from dostic.targets import TargetKind

from .base import CONTAINER_DUMP_PATH, CredentialStrategy, DatabaseExtractor, ExtractionError, artifact_path
from .mysql import MySQLExtractor
from .postgres import PostgresExtractor, postgres_strategies


def create_extractor(kind: TargetKind, config: DosticConfig, runtime: ContainerRuntime) -> DatabaseExtractor:
    if kind is TargetKind.POSTGRES:
        return PostgresExtractor(runtime, user_variable=config.postgres_user_variable)
    if kind is TargetKind.MYSQL:
        return MySQLExtractor(runtime)
    raise ValueError(f"No extractor registered for '{kind.value}'.")


__all__ = [
    "CONTAINER_DUMP_PATH",
    "CredentialStrategy",
    "DatabaseExtractor",
    "ExtractionError",
    "MySQLExtractor",
    "PostgresExtractor",
    "artifact_path",
    "create_extractor",
    "postgres_strategies",
]
