"""
Rollback manager: restores a service's Dockerfile from its latest backup.
"""

import logging
from typing import Optional

from ..core.exceptions import BackupNotFound
from ..core.models import Backup, Service
from .backup import BackupManager
from .files import replace_contents

logger = logging.getLogger(__name__)


class RollbackManager:
    """Restores active Dockerfiles from the most recent backup."""

    def __init__(self, backup_manager: Optional[BackupManager] = None):
        self.backup_manager = backup_manager or BackupManager()

    def rollback(self, service: Service, dry_run: bool = False) -> Backup:
        """
        Restore the active Dockerfile from the latest backup.

        The backup itself is kept.

        Args:
            service: Service to roll back
            dry_run: Select the backup without writing

        Returns:
            Backup: The backup that was (or would be) restored

        Raises:
            BackupNotFound: If the service has no backups
        """
        backup = self.backup_manager.latest_backup(service)
        if backup is None:
            raise BackupNotFound(f"No backup found for service: {service.name}", service.name)

        if not dry_run:
            replace_contents(backup.path, service.active_config_path)
            logger.debug("Restored %s from %s", service.active_config_path, backup.path)

        return backup
