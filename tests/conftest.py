"""
Test fixtures and utilities for the container hardening test suite.

Provides a temporary service tree, Dockerfile samples, and fake docker /
trivy drivers used across multiple test modules.
"""

import pytest
import yaml
from pathlib import Path

from container_hardening.core.config import load_config
from container_hardening.core.exceptions import (
    BuildFailure, ContainerStartFailure, ScanUnavailable
)
from container_hardening.core.orchestrator import LifecycleOrchestrator
from container_hardening.registry.loader import ServiceRegistry
from container_hardening.runtime.base import (
    ContainerRuntime, ImageBuilder, VulnerabilityScanner
)


INSECURE_DOCKERFILE = """FROM node:18
WORKDIR /app
COPY . .
RUN npm install
EXPOSE 8080
CMD npm start
"""

HARDENED_DOCKERFILE = """# syntax=docker/dockerfile:1
FROM golang:1.22@sha256:0f2b7d3c6a1e4b5d8c9e0f1a2b3c4d5e6f708192a3b4c5d6e7f8091a2b3c4d5e AS build
WORKDIR /src
COPY . .
RUN go build -o /app ./...

FROM gcr.io/distroless/static@sha256:1a2b3c4d5e6f708192a3b4c5d6e7f8091a2b3c4d5e6f708192a3b4c5d6e7f80
LABEL security.scan="enabled" \\
      security.non-root="true"
COPY --from=build --chown=65532:65532 /app /app
USER 65532:65532
HEALTHCHECK --interval=30s --timeout=3s CMD ["/app", "healthcheck"]
ENTRYPOINT ["/app"]
"""

TRIVY_OUTPUT = """
scan-ui (alpine 3.18.4)
=======================
Total: 5 (UNKNOWN: 0, LOW: 2, MEDIUM: 1, HIGH: 1, CRITICAL: 1)

+----------+----------------+----------+-------------------+
| LIBRARY  | VULNERABILITY  | SEVERITY | INSTALLED VERSION |
+----------+----------------+----------+-------------------+
| openssl  | CVE-2023-0001  | CRITICAL | 3.1.0             |
+----------+----------------+----------+-------------------+
"""


class FakeBuilder(ImageBuilder):
    """Records builds and image removals instead of calling docker."""

    def __init__(self, fail_on=None):
        self.fail_on = set(fail_on or [])
        self.built = []
        self.removed = []

    def build(self, dockerfile, context, tag):
        if tag in self.fail_on:
            raise BuildFailure(f"Failed to build image {tag}: simulated")
        self.built.append((Path(dockerfile), Path(context), tag))
        return tag

    def remove_image(self, image):
        self.removed.append(image)


class FakeRuntime(ContainerRuntime):
    """Container runtime with scripted identity and health answers."""

    def __init__(self, user="65532", health=None, fail_start=False, user_error=None,
                 shell=False, ports=None):
        self.user = user
        self.shell = shell
        self.ports = ports
        self.health = list(health or ["healthy"])
        self.fail_start = fail_start
        self.user_error = user_error
        self.started = []
        self.removed = []
        self.health_calls = 0

    def run(self, image, name, ports=None):
        if self.fail_start:
            raise ContainerStartFailure(f"Failed to start container {name}: simulated")
        self.started.append((image, name, ports))
        return name

    def inspect_user(self, handle):
        if self.user_error:
            raise self.user_error
        return self.user

    def inspect_health(self, handle):
        self.health_calls += 1
        if len(self.health) > 1:
            return self.health.pop(0)
        return self.health[0]

    def shell_access(self, handle):
        return self.shell

    def exposed_ports(self, handle):
        # default: the image exposes whatever container ports were published
        if self.ports is not None:
            return list(self.ports)
        published = self.started[-1][2] if self.started else None
        return [f"{port}/tcp" for port in (published or {}).values()]

    def stop_and_remove(self, handle):
        self.removed.append(handle)


class FakeScanner(VulnerabilityScanner):
    """Scanner returning canned Trivy output."""

    def __init__(self, output=TRIVY_OUTPUT, is_available=True, error=None):
        self.output = output
        self.is_available = is_available
        self.error = error
        self.scanned = []

    def available(self):
        return self.is_available

    def scan(self, image):
        self.scanned.append(image)
        if self.error:
            raise ScanUnavailable(self.error)
        return self.output


@pytest.fixture
def insecure_dockerfile():
    return INSECURE_DOCKERFILE


@pytest.fixture
def hardened_dockerfile():
    return HARDENED_DOCKERFILE


@pytest.fixture
def project_dir(tmp_path):
    """
    Create a service tree with three services.

    ``ui`` and ``catalog`` carry both an insecure Dockerfile and a hardened
    variant; ``cart`` has no hardened variant.
    """
    for name in ("ui", "catalog", "cart"):
        service_dir = tmp_path / "src" / name
        service_dir.mkdir(parents=True)
        (service_dir / "Dockerfile").write_text(INSECURE_DOCKERFILE)
        if name != "cart":
            (service_dir / "Dockerfile.secure").write_text(HARDENED_DOCKERFILE)

    config = {
        "project_root": ".",
        "services": ["ui", "catalog", "cart"],
        "runtime": {"health_timeout": 0},
    }
    with open(tmp_path / "container-hardening.yaml", "w") as f:
        yaml.safe_dump(config, f)

    return tmp_path


@pytest.fixture
def config_file(project_dir):
    return project_dir / "container-hardening.yaml"


@pytest.fixture
def project_config(config_file):
    return load_config(str(config_file))


@pytest.fixture
def registry(project_config):
    return ServiceRegistry.from_config(project_config)


@pytest.fixture
def ui_service(registry):
    return registry.get("ui")


@pytest.fixture
def fake_builder():
    return FakeBuilder()


@pytest.fixture
def fake_runtime():
    return FakeRuntime()


@pytest.fixture
def fake_scanner():
    return FakeScanner()


@pytest.fixture
def orchestrator(project_config, fake_builder, fake_runtime, fake_scanner):
    """Orchestrator over the temporary project with fake external tools."""
    return LifecycleOrchestrator(
        config=project_config,
        builder=fake_builder,
        runtime=fake_runtime,
        scanner=fake_scanner,
        poll_sleep=lambda seconds: None,
    )


@pytest.fixture
def snapshot():
    """Return a function mapping every file under a root to its bytes."""
    def take(root: Path) -> dict:
        return {
            str(p.relative_to(root)): p.read_bytes()
            for p in sorted(root.rglob("*")) if p.is_file()
        }
    return take
