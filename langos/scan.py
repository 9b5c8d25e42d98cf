"""Directory scan that a storage server reports to the name server on start-up."""

from __future__ import annotations

import os

from .protocol import log_message


def scan_directory(path) -> str:
    """List the files stored under ``path`` as ``"[name1,name2,...]"``.

    Undo backups are left out. An unreadable directory gives ``"[]"``.
    """
    try:
        names = sorted(os.listdir(path))
    except OSError as exc:
        log_message("SS", f"Could not scan {path}: {exc}")
        return "[]"
    return "[" + ",".join(name for name in names if ".undo" not in name) + "]"