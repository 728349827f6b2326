"""
Deployment engine: puts a service's hardened Dockerfile into effect.
"""

import logging

from ..core.exceptions import HardenedConfigMissing
from ..core.models import Service
from .files import file_checksum, replace_contents

logger = logging.getLogger(__name__)


class DeploymentEngine:
    """Copies hardened Dockerfiles over active ones, failing closed."""

    def deploy(self, service: Service, dry_run: bool = False) -> bool:
        """
        Overwrite the active Dockerfile with the hardened variant.

        Args:
            service: Service to deploy
            dry_run: Check preconditions without writing

        Returns:
            bool: True if the active Dockerfile content changed (or would change)

        Raises:
            HardenedConfigMissing: If the hardened variant is absent. The
                active Dockerfile is left untouched.
        """
        hardened = service.hardened_config_path
        active = service.active_config_path

        if not hardened.is_file():
            raise HardenedConfigMissing(
                f"Security-hardened Dockerfile not found: {hardened}", service.name
            )

        if dry_run:
            return not active.exists() or file_checksum(hardened) != file_checksum(active)

        changed = replace_contents(hardened, active)
        logger.debug("Deployed %s -> %s (changed=%s)", hardened, active, changed)
        return changed
