"""
Docker CLI implementation of the image builder and container runtime.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from ..core.exceptions import BuildFailure, ContainerStartFailure
from .base import ContainerRuntime, ImageBuilder, execute_command

logger = logging.getLogger(__name__)

HEALTH_FORMAT = "{{if .State.Health}}{{.State.Health.Status}}{{else}}none{{end}}"
PORTS_FORMAT = "{{json .Config.ExposedPorts}}"


class DockerCLI(ImageBuilder, ContainerRuntime):
    """
    Drives the ``docker`` binary through subprocess calls.

    Every call carries a timeout so a hung daemon cannot block the run
    indefinitely.
    """

    def __init__(self, binary: str = "docker", timeout: int = 600):
        """
        Initialize the Docker driver.

        Args:
            binary: Path or name of the docker executable
            timeout: Timeout in seconds for build/run calls
        """
        self.binary = binary
        self.timeout = timeout

    def _docker(self, *args: str, timeout: Optional[int] = None) -> Dict:
        command: List[str] = [self.binary, *args]
        logger.debug("Running: %s", " ".join(command))
        return execute_command(command, timeout=timeout or self.timeout)

    def build(self, dockerfile: Path, context: Path, tag: str) -> str:
        result = self._docker("build", "-f", str(dockerfile), "-t", tag, str(context))
        if not result['success']:
            stderr = result['stderr'].strip().splitlines()
            detail = stderr[-1] if stderr else f"exit code {result['exit_code']}"
            raise BuildFailure(f"Failed to build image {tag}: {detail}")
        return tag

    def remove_image(self, image: str) -> None:
        result = self._docker("rmi", "-f", image, timeout=60)
        if not result['success']:
            logger.debug("Could not remove image %s: %s", image, result['stderr'].strip())

    def run(self, image: str, name: str, ports: Optional[Dict[int, int]] = None) -> str:
        args = ["run", "-d", "--name", name]
        for host_port, container_port in (ports or {}).items():
            args.extend(["-p", f"{host_port}:{container_port}"])
        args.append(image)

        result = self._docker(*args)
        if not result['success']:
            raise ContainerStartFailure(
                f"Failed to start container {name}: {result['stderr'].strip()}"
            )
        return result['stdout'].strip() or name

    def inspect_user(self, handle: str) -> str:
        # id -u is missing from distroless images, so fall back to the
        # configured user; an empty configured user means root.
        result = self._docker("exec", handle, "id", "-u", timeout=30)
        if result['success'] and result['stdout'].strip():
            return result['stdout'].strip()

        result = self._docker("exec", handle, "whoami", timeout=30)
        if result['success'] and result['stdout'].strip():
            return result['stdout'].strip()

        result = self._docker("inspect", "--format", "{{.Config.User}}", handle, timeout=30)
        if result['success']:
            return result['stdout'].strip() or "root"
        return "unknown"

    def inspect_health(self, handle: str) -> str:
        result = self._docker("inspect", "--format", HEALTH_FORMAT, handle, timeout=30)
        if not result['success']:
            return "unknown"
        return result['stdout'].strip() or "none"

    def shell_access(self, handle: str) -> bool:
        result = self._docker("exec", handle, "sh", "-c", "echo 'shell access'", timeout=30)
        return result['success'] and result['stdout'].strip() == "shell access"

    def exposed_ports(self, handle: str) -> List[str]:
        result = self._docker("inspect", "--format", PORTS_FORMAT, handle, timeout=30)
        if not result['success']:
            return []
        try:
            ports = json.loads(result['stdout'].strip() or "null")
        except json.JSONDecodeError:
            logger.debug("Unparseable exposed ports for %s: %s", handle, result['stdout'])
            return []
        return sorted(ports or {})

    def stop_and_remove(self, handle: str) -> None:
        self._docker("stop", handle, timeout=60)
        result = self._docker("rm", "-f", handle, timeout=60)
        if not result['success']:
            logger.warning("Could not remove container %s: %s", handle, result['stderr'].strip())
