"""
Error taxonomy for lifecycle operations.

Argument-level errors abort before any service is touched. Everything
else is raised by a single service step and caught at the orchestrator's
per-service loop boundary.
"""


class HardeningError(Exception):
    """Base class for all tool errors."""

    def __init__(self, message: str, service: str = None):
        super().__init__(message)
        self.service = service


class InvalidArgument(HardeningError):
    """Unknown command or service name. Raised before any mutation."""


class RegistryError(HardeningError):
    """The service registry configuration could not be loaded."""


class ConfigNotFound(HardeningError):
    """The service's active Dockerfile does not exist."""


class HardenedConfigMissing(HardeningError):
    """Deploy requested but the hardened variant is absent."""


class BackupNotFound(HardeningError):
    """Rollback requested but the service has no backups."""


class BuildFailure(HardeningError):
    """The image for a service could not be built."""


class ContainerStartFailure(HardeningError):
    """A built image could not be started as a container."""


class ScanUnavailable(HardeningError):
    """The vulnerability scanner could not produce a result."""
