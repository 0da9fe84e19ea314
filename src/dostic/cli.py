from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from . import __version__
from .config import DEFAULT_CONFIG_PATH, ConfigurationError, DosticConfig, load_config
from .invocation import InvocationBuilder
from .logger import configure_logging
from .orchestrator import BackupOrchestrator, TargetResult
from .repository import ResticRepository
from .retention import RetentionManager
from .runtime import ContainerRuntime, DockerRuntime
from .targets import GROUP_ORDER, TargetKind

LOG = logging.getLogger(__name__)


class Command(str, Enum):
    INIT = "init"
    BACKUP = "backup"
    BACKUP_POSTGRES = "backup-postgres"
    BACKUP_MYSQL = "backup-mysql"
    BACKUP_VOLUMES = "backup-volumes"
    BACKUP_FOLDERS = "backup-folders"
    SNAPSHOTS = "snapshots"
    STATS = "stats"
    RESTORE = "restore"
    FORGET = "forget"
    PRUNE = "prune"
    UNLOCK = "unlock"
    CHECK = "check"
    VERSION = "version"
    HELP = "help"


COMMAND_HELP: Dict[Command, str] = {
    Command.INIT: "Initialize a new backup repository",
    Command.BACKUP: "Run full backup (postgres, mysql, volumes, folders)",
    Command.BACKUP_POSTGRES: "Backup only PostgreSQL databases",
    Command.BACKUP_MYSQL: "Backup only MySQL databases",
    Command.BACKUP_VOLUMES: "Backup only Docker volumes",
    Command.BACKUP_FOLDERS: "Backup only system folders",
    Command.SNAPSHOTS: "Show current snapshots",
    Command.STATS: "Show repository statistics",
    Command.RESTORE: "Restore a snapshot into a target path",
    Command.FORGET: "Remove old snapshots according to the retention policy",
    Command.PRUNE: "Remove old snapshot data from the repository",
    Command.UNLOCK: "Unlock the repository",
    Command.CHECK: "Verify repository integrity",
    Command.VERSION: "Show version information",
    Command.HELP: "Show this help",
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

BACKUP_GROUPS: Dict[Command, Tuple[TargetKind, ...]] = {
    Command.BACKUP: GROUP_ORDER,
    Command.BACKUP_POSTGRES: (TargetKind.POSTGRES,),
    Command.BACKUP_MYSQL: (TargetKind.MYSQL,),
    Command.BACKUP_VOLUMES: (TargetKind.VOLUME,),
    Command.BACKUP_FOLDERS: (TargetKind.FOLDER,),
}


@dataclass(frozen=True)
class CommandContext:
    config: DosticConfig
    runtime: ContainerRuntime
    builder: InvocationBuilder
    repository: ResticRepository

    @classmethod
    def create(cls, config: DosticConfig, runtime: Optional[ContainerRuntime] = None) -> "CommandContext":
        runtime = runtime or DockerRuntime()
        builder = InvocationBuilder(config, runtime)
        return cls(
            config=config,
            runtime=runtime,
            builder=builder,
            repository=ResticRepository(builder, config.repository.location),
        )


Handler = Callable[[CommandContext, argparse.Namespace], int]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dostic",
        description=f"dostic v{__version__} - Docker + Restic Backup Solution",
    )
    parser.add_argument(
        "--config",
        default=os.getenv("DOSTIC_CONFIG"),
        help=f"Path to configuration YAML file (default ./{DEFAULT_CONFIG_PATH} when present).",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Log level (default INFO).",
    )
    parser.add_argument(
        "--syslog",
        action="store_true",
        default=os.getenv("DOSTIC_SYSLOG", "").lower() in ("1", "true", "yes"),
        help="Also send logs to the local syslog/journal socket.",
    )
    subparsers = parser.add_subparsers(dest="command", metavar="<command>")
    for command in Command:
        subparser = subparsers.add_parser(command.value, help=COMMAND_HELP[command])
        if command is Command.RESTORE:
            subparser.add_argument("snapshot_id", nargs="?", help="Snapshot to restore.")
            subparser.add_argument("target_path", nargs="?", help="Directory to restore into.")
    return parser


def load_configuration(config_arg: Optional[str]) -> DosticConfig:
    path = Path(config_arg or DEFAULT_CONFIG_PATH).expanduser()
    try:
        return load_config(path, required=config_arg is not None)
    except ConfigurationError as exc:
        raise SystemExit(f"Configuration error: {exc}") from exc


def run_backup(context: CommandContext, groups: Sequence[TargetKind]) -> int:
    orchestrator = BackupOrchestrator(config=context.config, runtime=context.runtime, builder=context.builder)
    results = orchestrator.run(groups)
    return report_results(results)


def report_results(results: List[TargetResult]) -> int:
    success = True
    for result in results:
        if result.success:
            LOG.info(
                "Target %s succeeded in %.2fs",
                result.tag,
                (result.completed_at - result.started_at).total_seconds(),
            )
        else:
            success = False
            LOG.error("Target %s failed: %s", result.tag, "; ".join(result.errors))

    failed = sum(1 for result in results if not result.success)
    LOG.info("Backup finished targets=%s failed=%s", len(results), failed)
    return 0 if success else 1


def _exit_code(ok: bool) -> int:
    return 0 if ok else 1


def _init(context: CommandContext, args: argparse.Namespace) -> int:
    return _exit_code(context.repository.init())


def _backup(context: CommandContext, args: argparse.Namespace) -> int:
    command = Command(args.command)
    if command is not Command.BACKUP:
        return run_backup(context, BACKUP_GROUPS[command])

    LOG.info("dostic v%s - Full Backup host=%s", __version__, context.config.host)
    exit_code = run_backup(context, BACKUP_GROUPS[command])
    if not context.repository.snapshots():
        LOG.warning("Could not list snapshots after backup")
    return exit_code


def _snapshots(context: CommandContext, args: argparse.Namespace) -> int:
    return _exit_code(context.repository.snapshots())


def _stats(context: CommandContext, args: argparse.Namespace) -> int:
    return _exit_code(context.repository.stats())


def _restore(context: CommandContext, args: argparse.Namespace) -> int:
    if not args.snapshot_id or not args.target_path:
        LOG.error("Snapshot ID and target path are required")
        LOG.info("Usage: dostic restore <snapshot-id> <target-path>")
        return 1
    return _exit_code(context.repository.restore(args.snapshot_id, Path(args.target_path).expanduser()))


def _forget(context: CommandContext, args: argparse.Namespace) -> int:
    return _exit_code(RetentionManager(context.repository).apply(context.config.retention))


def _prune(context: CommandContext, args: argparse.Namespace) -> int:
    return _exit_code(context.repository.prune())


def _unlock(context: CommandContext, args: argparse.Namespace) -> int:
    return _exit_code(context.repository.unlock())


def _check(context: CommandContext, args: argparse.Namespace) -> int:
    return _exit_code(context.repository.check())


HANDLERS: Dict[Command, Handler] = {
    Command.INIT: _init,
    Command.BACKUP: _backup,
    Command.BACKUP_POSTGRES: _backup,
    Command.BACKUP_MYSQL: _backup,
    Command.BACKUP_VOLUMES: _backup,
    Command.BACKUP_FOLDERS: _backup,
    Command.SNAPSHOTS: _snapshots,
    Command.STATS: _stats,
    Command.RESTORE: _restore,
    Command.FORGET: _forget,
    Command.PRUNE: _prune,
    Command.UNLOCK: _unlock,
    Command.CHECK: _check,
}

# version and help run before configuration is loaded.
CONFIGLESS_COMMANDS = frozenset({Command.VERSION, Command.HELP})

_missing = set(Command) - set(HANDLERS) - CONFIGLESS_COMMANDS
if _missing:
    raise RuntimeError(f"Commands without a handler: {sorted(c.value for c in _missing)}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    # argparse skips the choices check for defaults taken from LOG_LEVEL.
    if args.log_level not in LOG_LEVELS:
        raise SystemExit(f"Invalid log level: {args.log_level}. Choose from {', '.join(LOG_LEVELS)}")
    configure_logging(args.log_level, syslog=args.syslog)

    if args.command is None:
        parser.print_help()
        return 1

    command = Command(args.command)
    if command is Command.HELP:
        parser.print_help()
        return 0
    if command is Command.VERSION:
        print(f"dostic v{__version__}")
        return 0

    config = load_configuration(args.config)
    context = CommandContext.create(config)
    return HANDLERS[command](context, args)


if __name__ == "__main__":
    sys.exit(main())
