"""
Backup manager for service Dockerfiles.

Backups are plain copies named ``<Dockerfile>.backup.<YYYYmmdd_HHMMSS>``.
The timestamp only has second granularity, so a second backup taken in
the same second gets a ``.<n>`` counter suffix instead of overwriting
the first. Backups are never modified or deleted by this tool.
"""

import logging
import re
import shutil
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..core.exceptions import ConfigNotFound
from ..core.models import Backup, Service

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


class BackupManager:
    """Creates and lists timestamped snapshots of active Dockerfiles."""

    def backup(self, service: Service, started_at: Optional[datetime] = None,
               dry_run: bool = False) -> Backup:
        """
        Snapshot the service's active Dockerfile.

        Args:
            service: Service to back up
            started_at: Operation start time used as the backup timestamp
            dry_run: Compute the backup path without writing anything

        Returns:
            Backup: The created (or, in dry-run, planned) backup

        Raises:
            ConfigNotFound: If the active Dockerfile does not exist
        """
        if not service.active_config_path.is_file():
            raise ConfigNotFound(
                f"Dockerfile not found for service: {service.name}", service.name
            )

        timestamp = (started_at or datetime.now()).replace(microsecond=0)
        stamp = timestamp.strftime(TIMESTAMP_FORMAT)

        sequence = 0
        path = service.backup_dir / f"{service.backup_prefix}{stamp}"
        while path.exists():
            sequence += 1
            path = service.backup_dir / f"{service.backup_prefix}{stamp}.{sequence}"

        backup = Backup(service=service.name, path=path,
                        timestamp=timestamp, sequence=sequence)

        if dry_run:
            logger.debug("Dry run: would back up %s to %s", service.active_config_path, path)
            return backup

        service.backup_dir.mkdir(parents=True, exist_ok=True)
        shutil.copy2(service.active_config_path, path)
        logger.debug("Backed up %s to %s", service.active_config_path, path)
        return backup

    def list_backups(self, service: Service) -> List[Backup]:
        """Return the service's backups ordered oldest first."""
        if not service.backup_dir.is_dir():
            return []

        pattern = re.compile(
            rf"^{re.escape(service.backup_prefix)}(\d{{8}}_\d{{6}})(?:\.(\d+))?$"
        )
        backups = []
        for path in service.backup_dir.iterdir():
            match = pattern.match(path.name)
            if not match or not path.is_file():
                continue
            try:
                timestamp = datetime.strptime(match.group(1), TIMESTAMP_FORMAT)
            except ValueError:
                logger.debug("Ignoring backup with malformed timestamp: %s", path)
                continue
            backups.append(Backup(
                service=service.name,
                path=path,
                timestamp=timestamp,
                sequence=int(match.group(2) or 0),
            ))

        return sorted(backups, key=lambda b: b.sort_key)

    def latest_backup(self, service: Service) -> Optional[Backup]:
        """Return the most recent backup, or None if there are none."""
        backups = self.list_backups(service)
        return backups[-1] if backups else None
