"""
Interfaces of the external tools the lifecycle delegates to.

The image builder, container runtime and vulnerability scanner are
external programs. Implementations wrap them behind these abstract
classes so the runner and scanner adapter can be tested with fakes.
"""

import shlex
import subprocess
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union


def execute_command(command: Union[str, List[str]], timeout: int = 30) -> Dict[str, Any]:
    """
    Execute a command with timeout.

    Args:
        command: Command to execute, as a string or argument list
        timeout: Timeout in seconds

    Returns:
        Dict[str, Any]: Execution result with stdout, stderr, and exit code
    """
    start_time = time.monotonic()

    if isinstance(command, str):
        cmd_args = shlex.split(command)
    else:
        cmd_args = list(command)

    try:
        result = subprocess.run(
            cmd_args,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False
        )

        execution_time_ms = int((time.monotonic() - start_time) * 1000)

        return {
            'stdout': result.stdout,
            'stderr': result.stderr,
            'exit_code': result.returncode,
            'execution_time_ms': execution_time_ms,
            'success': result.returncode == 0
        }

    except subprocess.TimeoutExpired:
        return {
            'stdout': '',
            'stderr': f'Command timed out after {timeout} seconds',
            'exit_code': -1,
            'execution_time_ms': timeout * 1000,
            'success': False
        }
    except OSError as e:
        # Binary missing or not executable
        return {
            'stdout': '',
            'stderr': str(e),
            'exit_code': -1,
            'execution_time_ms': 0,
            'success': False
        }


class ImageBuilder(ABC):
    """Builds container images from a Dockerfile."""

    @abstractmethod
    def build(self, dockerfile: Path, context: Path, tag: str) -> str:
        """
        Build an image.

        Args:
            dockerfile: Dockerfile to build
            context: Build context directory
            tag: Image tag to apply

        Returns:
            str: Image reference

        Raises:
            BuildFailure: If the build fails
        """
        pass

    @abstractmethod
    def remove_image(self, image: str) -> None:
        """Remove an image, ignoring images that no longer exist."""
        pass


class ContainerRuntime(ABC):
    """Runs and inspects containers."""

    @abstractmethod
    def run(self, image: str, name: str, ports: Optional[Dict[int, int]] = None) -> str:
        """
        Start a detached container.

        Args:
            image: Image to run
            name: Container name
            ports: Host port -> container port mappings

        Returns:
            str: Container handle

        Raises:
            ContainerStartFailure: If the container cannot be started
        """
        pass

    @abstractmethod
    def inspect_user(self, handle: str) -> str:
        """Effective user the container's processes run as (uid or name)."""
        pass

    @abstractmethod
    def inspect_health(self, handle: str) -> str:
        """Docker health status: starting, healthy, unhealthy or none."""
        pass

    @abstractmethod
    def shell_access(self, handle: str) -> bool:
        """Whether ``sh`` can be executed inside the container."""
        pass

    @abstractmethod
    def exposed_ports(self, handle: str) -> List[str]:
        """Ports the image exposes, as ``<port>/<proto>`` strings."""
        pass

    @abstractmethod
    def stop_and_remove(self, handle: str) -> None:
        """Stop and remove a container. Must not raise."""
        pass


class VulnerabilityScanner(ABC):
    """Scans an image and returns the scanner's textual report."""

    def available(self) -> bool:
        """Whether the scanner can run at all. Checked before building."""
        return True

    @abstractmethod
    def scan(self, image: str) -> str:
        """
        Scan an image for vulnerabilities.

        Raises:
            ScanUnavailable: If the scanner is missing or fails
        """
        pass
