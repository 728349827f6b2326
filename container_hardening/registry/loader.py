"""
Service registry for the managed fleet.

Builds the immutable list of services and their file locations from
configuration once at start-up, and resolves the scope of a command.
"""

from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pydantic import ValidationError

from ..core.exceptions import InvalidArgument, RegistryError
from ..core.models import Service


class ServiceRegistry:
    """
    Read-only, ordered collection of managed services.

    Services keep the order they were declared in, which is the order
    every command processes them in.
    """

    def __init__(self, services: List[Service]):
        """
        Initialize the registry.

        Args:
            services: Services in processing order

        Raises:
            RegistryError: If two services share a name
        """
        seen = set()
        for service in services:
            if service.name in seen:
                raise RegistryError(f"Duplicate service in registry: {service.name}")
            seen.add(service.name)

        self._services: Tuple[Service, ...] = tuple(services)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "ServiceRegistry":
        """
        Build a registry from a loaded configuration mapping.

        Entries in ``services`` are either plain names, which use the
        default layout ``<project_root>/<services_dir>/<name>``, or
        mappings that override individual locations.
        """
        root = Path(config.get("project_root", "."))
        paths = config.get("paths", {})
        services_dir = root / paths.get("services_dir", "src")
        active_name = paths.get("active_name", "Dockerfile")
        hardened_name = paths.get("hardened_name", "Dockerfile.secure")
        backup_root = paths.get("backup_dir")

        services = []
        for entry in config.get("services", []):
            if isinstance(entry, str):
                entry = {"name": entry}
            if not isinstance(entry, dict) or "name" not in entry:
                raise RegistryError(f"Invalid service entry: {entry!r}")

            name = entry["name"]
            context = cls._resolve(root, entry.get("path"), services_dir / str(name))
            active = cls._resolve(root, entry.get("dockerfile"), context / active_name)
            hardened = cls._resolve(root, entry.get("hardened"), context / hardened_name)

            if entry.get("backup_dir"):
                backup_dir = cls._resolve(root, entry["backup_dir"], context)
            elif backup_root:
                backup_dir = cls._resolve(root, backup_root, context) / str(name)
            else:
                backup_dir = active.parent

            try:
                services.append(Service(
                    name=name,
                    active_config_path=active,
                    hardened_config_path=hardened,
                    backup_dir=backup_dir,
                    build_context=context,
                    health_port=entry.get("health_port"),
                    health_path=entry.get("health_path", "/health"),
                ))
            except ValidationError as e:
                raise RegistryError(f"Invalid service definition for {name!r}: {e}")

        if not services:
            raise RegistryError("Service registry is empty")

        return cls(services)

    @staticmethod
    def _resolve(root: Path, value: Optional[str], default: Path) -> Path:
        if not value:
            return default
        path = Path(value)
        return path if path.is_absolute() else root / path

    def __iter__(self) -> Iterator[Service]:
        return iter(self._services)

    def __len__(self) -> int:
        return len(self._services)

    def __contains__(self, name: object) -> bool:
        return any(s.name == name for s in self._services)

    @property
    def names(self) -> List[str]:
        return [s.name for s in self._services]

    def get(self, name: str) -> Service:
        """
        Look up a service by name.

        Raises:
            InvalidArgument: If no service has that name
        """
        for service in self._services:
            if service.name == name:
                return service
        raise InvalidArgument(
            f"Invalid service: {name} (valid services: {', '.join(self.names)})"
        )

    def resolve_scope(self, service_name: Optional[str] = None) -> List[Service]:
        """Return the single named service, or every service when None."""
        if service_name is None:
            return list(self._services)
        return [self.get(service_name)]
