"""
Shared pytest fixtures for dostic tests.

This module provides fixtures for:
- A secured restic password file
- Validated configuration objects built on temporary directories
- A fake container runtime that records docker calls
"""

from pathlib import Path

import pytest

from dostic.config import ENVIRONMENT_KEYS, DosticConfig


class FakeRuntime:
    """
    In-memory stand-in for DockerRuntime.

    exec_results maps a container to the outcomes of successive exec calls;
    run_results maps a snapshot tag to the docker run return code.
    """

    def __init__(self, containers=None, volumes=None):
        self.containers = list(containers or [])
        self.volumes = list(volumes or [])
        self.exec_results = {}
        self.run_results = {}
        self.default_returncode = 0
        self.exec_calls = []
        self.copy_calls = []
        self.removed = []
        self.runs = []
        self.list_calls = 0

    def list_containers(self):
        self.list_calls += 1
        return list(self.containers)

    def list_volumes(self):
        self.list_calls += 1
        return list(self.volumes)

    def exec_shell(self, container, script):
        self.exec_calls.append((container, script))
        outcomes = self.exec_results.get(container, [])
        return outcomes.pop(0) if outcomes else False

    def copy_from(self, container, source, destination):
        self.copy_calls.append((container, source, Path(destination)))
        Path(destination).write_text(f"-- dump of {container}\n")

    def remove_file(self, container, path):
        self.removed.append((container, path))

    def run_container(self, args, env=None):
        args = list(args)
        self.runs.append((args, dict(env or {})))
        if "--tag" in args:
            tag = args[args.index("--tag") + 1]
            return self.run_results.get(tag, self.default_returncode)
        return self.default_returncode

    def backed_up_tags(self):
        return [args[args.index("--tag") + 1] for args, _ in self.runs if "--tag" in args]


@pytest.fixture
def make_runtime():
    """Factory for FakeRuntime instances."""
    return FakeRuntime


@pytest.fixture
def fake_runtime():
    """Fake container runtime with no containers or volumes."""
    return FakeRuntime()


@pytest.fixture
def password_file(tmp_path):
    """Restic password file with 0600 permissions."""
    secrets_dir = tmp_path / "secrets"
    secrets_dir.mkdir()
    path = secrets_dir / "restic.pw"
    path.write_text("correct horse battery staple\n")
    path.chmod(0o600)
    return path


@pytest.fixture
def make_config(tmp_path, password_file):
    """
    Factory for configuration objects backed by a local repository.

    Keyword arguments are merged over the defaults.
    """
    repo_dir = tmp_path / "repo"

    def _make(**overrides):
        repository = {
            "location": str(repo_dir),
            "password_file": str(password_file),
            "cache_volume": "restic-cache",
        }
        repository.update(overrides.pop("repository", {}))
        raw = {
            "repository": repository,
            "backup_base": str(tmp_path / "backups"),
            "host": "testhost",
        }
        raw.update(overrides)
        return DosticConfig.model_validate(raw)

    return _make


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every environment variable dostic reads."""
    for variable in list(ENVIRONMENT_KEYS) + ["DOSTIC_CONFIG", "DOSTIC_SYSLOG", "LOG_LEVEL"]:
        monkeypatch.delenv(variable, raising=False)
    return monkeypatch
