"""
File helpers shared by the backup, deploy and rollback operations.
"""

import hashlib
import shutil
from pathlib import Path


def file_checksum(file_path: Path) -> str:
    """
    Calculate SHA256 checksum of a file.

    Raises:
        FileNotFoundError: If file doesn't exist
    """
    if not Path(file_path).exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    sha256_hash = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(4096), b""):
            sha256_hash.update(chunk)

    return sha256_hash.hexdigest()


def replace_contents(source: Path, target: Path) -> bool:
    """
    Overwrite ``target`` with the bytes of ``source``.

    Returns:
        bool: False when the contents were already identical
    """
    if target.exists() and file_checksum(source) == file_checksum(target):
        return False
    shutil.copyfile(source, target)
    return True
