from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

LOG = logging.getLogger(__name__)

DOCKER_BINARY = "docker"


class RuntimeCommandError(Exception):
    """Raised when a container runtime call fails."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class ContainerRuntime(Protocol):
    def list_containers(self) -> List[Tuple[str, str]]:
        ...

    def list_volumes(self) -> List[str]:
        ...

    def exec_shell(self, container: str, script: str) -> bool:
        ...

    def copy_from(self, container: str, source: str, destination: Path) -> None:
        ...

    def remove_file(self, container: str, path: str) -> None:
        ...

    def run_container(self, args: Sequence[str], env: Optional[Mapping[str, str]] = None) -> int:
        ...


class DockerRuntime:
    """Thin wrapper around the docker CLI."""

    def __init__(self, binary: str = DOCKER_BINARY) -> None:
        self._binary = binary

    def list_containers(self) -> List[Tuple[str, str]]:
        """Return ``(name, ports)`` for running and stopped containers."""
        output = self._capture(["ps", "-a", "--format", "{{.Names}}\t{{.Ports}}"])
        containers: List[Tuple[str, str]] = []
        for line in output.splitlines():
            if not line.strip():
                continue
            name, _, ports = line.partition("\t")
            containers.append((name.strip(), ports.strip()))
        return containers

    def list_volumes(self) -> List[str]:
        output = self._capture(["volume", "ls", "-q"])
        return [line.strip() for line in output.splitlines() if line.strip()]

    def exec_shell(self, container: str, script: str) -> bool:
        cmd = [self._binary, "exec", container, "sh", "-c", script]
        result = self._run(cmd, capture=True)
        if result.returncode != 0:
            LOG.debug("Command failed in container=%s rc=%s stderr=%s", container, result.returncode, result.stderr.strip())
            return False
        return True

    def copy_from(self, container: str, source: str, destination: Path) -> None:
        self._capture(["cp", f"{container}:{source}", str(destination)])

    def remove_file(self, container: str, path: str) -> None:
        cmd = [self._binary, "exec", container, "rm", "-f", path]
        result = self._run(cmd, capture=True)
        if result.returncode != 0:
            LOG.warning("Failed to remove %s from container=%s: %s", path, container, result.stderr.strip())

    def run_container(self, args: Sequence[str], env: Optional[Mapping[str, str]] = None) -> int:
        """Run ``docker run`` with output attached to the current terminal."""
        cmd = [self._binary, "run", *args]
        merged_env: Optional[Dict[str, str]] = None
        if env:
            merged_env = os.environ.copy()
            merged_env.update(env)
        return self._run(cmd, capture=False, env=merged_env).returncode

    def _capture(self, args: Sequence[str]) -> str:
        cmd = [self._binary, *args]
        result = self._run(cmd, capture=True)
        if result.returncode != 0:
            stderr = result.stderr.strip()
            LOG.error("docker %s failed: %s", args[0], stderr)
            raise RuntimeCommandError(
                f"'docker {' '.join(args[:2])}' exited with {result.returncode}",
                returncode=result.returncode,
                stderr=stderr,
            )
        return result.stdout

    def _run(
        self,
        cmd: List[str],
        *,
        capture: bool,
        env: Optional[Dict[str, str]] = None,
    ) -> subprocess.CompletedProcess:
        LOG.debug("Running %s", " ".join(cmd[:3]))
        try:
            return subprocess.run(cmd, check=False, capture_output=capture, text=True, env=env)
        except FileNotFoundError as exc:
            raise RuntimeCommandError(f"Container runtime '{self._binary}' not found") from exc
