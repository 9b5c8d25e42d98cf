"""Single-level undo backups for stored files."""

from __future__ import annotations

import os
import shutil
from pathlib import Path


def create_undo_backup(filepath, undo_filepath) -> None:
    """Replace the undo backup with a copy of ``filepath``.

    Any old backup is removed first. A missing ``filepath`` leaves no backup
    and is not an error. Raises ``OSError`` if the backup cannot be written.
    """
    source = Path(filepath)
    backup = Path(undo_filepath)
    backup.unlink(missing_ok=True)
    if not source.is_file():
        return
    shutil.copyfile(source, backup)


def perform_undo(filepath, undo_filepath) -> bool:
    """Restore ``filepath`` from its backup, consuming the backup.

    Returns False when there is no backup or it cannot be moved into place.
    """
    backup = Path(undo_filepath)
    if not backup.exists():
        return False
    try:
        os.replace(backup, filepath)
    except OSError:
        return False
    return True