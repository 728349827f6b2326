"""
Runtime test runner.

Each service goes through Built -> Started -> Probed -> Torn Down. Once a
container has been started it is always stopped and removed, whatever
happens during probing.
"""

import logging
from typing import Any, Dict, Optional

import requests

from ..core.models import HealthOutcome, RuntimeStage, RuntimeTestResult, Service
from ..utils.polling import poll_until
from .base import ContainerRuntime, ImageBuilder

logger = logging.getLogger(__name__)

ROOT_IDENTITIES = {"0", "root"}
_SETTLED_HEALTH = {"healthy", "unhealthy", "none"}


class RuntimeTestRunner:
    """Builds, starts, probes and tears down a container per service."""

    def __init__(self, builder: ImageBuilder, runtime: ContainerRuntime,
                 settings: Optional[Dict[str, Any]] = None, sleep=None):
        """
        Initialize the runner.

        Args:
            builder: Image builder
            runtime: Container runtime
            settings: The ``runtime`` configuration section
            sleep: Sleep function passed to the poller (tests inject a no-op)
        """
        settings = settings or {}
        self.builder = builder
        self.runtime = runtime
        self.health_timeout = float(settings.get("health_timeout", 30))
        self.poll_interval = float(settings.get("poll_interval", 1.0))
        self.poll_backoff = float(settings.get("poll_backoff", 2.0))
        self.poll_max_interval = float(settings.get("poll_max_interval", 8.0))
        self.shell_check = bool(settings.get("shell_check", True))
        self.expected_port = settings.get("expected_port")
        self._poll_kwargs = {"sleep": sleep} if sleep else {}

    def run(self, service: Service, dry_run: bool = False) -> RuntimeTestResult:
        """
        Run the runtime security test for one service.

        Args:
            service: Service to test
            dry_run: Report the plan without touching docker

        Returns:
            RuntimeTestResult: Observations from every stage reached

        Raises:
            BuildFailure: If the image cannot be built
            ContainerStartFailure: If the container cannot be started
        """
        image = f"security-test-{service.name}"
        container = f"test-{service.name}"
        result = RuntimeTestResult(service=service.name, image=image, container=container)

        if dry_run:
            result.messages.append(f"Would build {image} and run container {container}")
            return result

        try:
            self.builder.build(service.active_config_path, service.build_context, image)
        except Exception:
            result.stage = RuntimeStage.FAILED
            raise
        result.stage = RuntimeStage.BUILT

        try:
            self._start_and_probe(service, image, container, result)
        finally:
            self.builder.remove_image(image)

        return result

    def _start_and_probe(self, service: Service, image: str, container: str,
                         result: RuntimeTestResult) -> None:
        ports = {service.health_port: service.health_port} if service.health_port else None
        try:
            handle = self.runtime.run(image, container, ports)
        except Exception:
            result.stage = RuntimeStage.FAILED
            raise
        result.container = handle
        result.stage = RuntimeStage.STARTED

        try:
            self._probe_identity(handle, result)
            self._probe_health(handle, result)
            if self.shell_check:
                self._check_shell(handle, result)
            expected_port = service.health_port or self.expected_port
            if expected_port:
                self._check_ports(handle, expected_port, result)
            if service.health_port:
                self._probe_endpoint(service, result)
            result.stage = RuntimeStage.PROBED
        finally:
            self.runtime.stop_and_remove(handle)
            result.torn_down = True
            result.stage = RuntimeStage.TORN_DOWN

    def _probe_identity(self, handle: str, result: RuntimeTestResult) -> None:
        identity = self.runtime.inspect_user(handle)
        result.identity = identity
        result.identity_ok = identity.strip().lower() not in ROOT_IDENTITIES and identity != "unknown"
        if result.identity_ok:
            result.messages.append(f"Running as non-root user ({identity})")
        else:
            result.messages.append(f"Running as root user ({identity})")

    def _probe_health(self, handle: str, result: RuntimeTestResult) -> None:
        poll = poll_until(
            lambda: self.runtime.inspect_health(handle),
            lambda status: status in _SETTLED_HEALTH,
            timeout=self.health_timeout,
            interval=self.poll_interval,
            backoff=self.poll_backoff,
            max_interval=self.poll_max_interval,
            **self._poll_kwargs,
        )
        status = poll.value or "unknown"
        result.health_status = status
        result.health_wait_seconds = poll.elapsed

        if status == "healthy":
            result.health_outcome = HealthOutcome.HEALTHY
            result.messages.append("Health check working (healthy)")
        elif status == "starting":
            result.health_outcome = HealthOutcome.DEGRADED
            result.messages.append(
                f"Health check still starting after {self.health_timeout:g}s"
            )
        elif status == "unhealthy":
            result.health_outcome = HealthOutcome.UNHEALTHY
            result.messages.append("Health check reports unhealthy")
        elif status == "none":
            result.health_outcome = HealthOutcome.NO_HEALTHCHECK
            result.messages.append("Image defines no health check")
        else:
            result.health_outcome = HealthOutcome.TIMEOUT
            result.messages.append(
                f"Health status unavailable after {self.health_timeout:g}s (last: {status})"
            )

    def _check_shell(self, handle: str, result: RuntimeTestResult) -> None:
        result.shell_access = self.runtime.shell_access(handle)
        if result.shell_access:
            result.messages.append("Shell access available - consider using distroless for production")
        else:
            result.messages.append("Limited shell access")

    def _check_ports(self, handle: str, port: int, result: RuntimeTestResult) -> None:
        expected = f"{port}/tcp"
        result.exposed_ports = self.runtime.exposed_ports(handle)
        result.ports_ok = expected in result.exposed_ports
        if result.ports_ok:
            result.messages.append(f"Port {port} is properly exposed")
        else:
            found = ", ".join(result.exposed_ports) or "none"
            result.messages.append(f"Expected port {port} to be exposed, found: {found}")

    def _probe_endpoint(self, service: Service, result: RuntimeTestResult) -> None:
        url = f"http://localhost:{service.health_port}{service.health_path}"

        def probe() -> Optional[int]:
            try:
                return requests.get(url, timeout=5).status_code
            except requests.RequestException as e:
                logger.debug("Health endpoint %s not reachable yet: %s", url, e)
                return None

        poll = poll_until(
            probe,
            lambda code: code is not None and code < 400,
            timeout=self.health_timeout,
            interval=self.poll_interval,
            backoff=self.poll_backoff,
            max_interval=self.poll_max_interval,
            **self._poll_kwargs,
        )
        result.endpoint_ok = not poll.timed_out
        if result.endpoint_ok:
            result.messages.append(f"Health endpoint is accessible ({url} -> {poll.value})")
        else:
            result.messages.append(
                f"Health endpoint test failed for {url} (may be normal in test environment)"
            )
