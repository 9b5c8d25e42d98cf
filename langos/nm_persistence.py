"""Name server state on disk: file metadata and the list of known users."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable

from .protocol import log_message, split_string, trim_newline
from .structures import FileMetadata, FileTable

NM_FILES_FILE = Path("data/name_server/files.meta")
NM_USERS_FILE = Path("data/name_server/users.meta")

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _atoi(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def _format_entry(meta: FileMetadata) -> str:
    access = "".join(f"{user},{perm};" for user, perm in meta.access)
    return (
        f"{meta.filename}|{meta.owner}|{meta.ss_ip}|{meta.ss_client_port}|{access}"
        f"|{meta.size}|{meta.word_count}|{meta.char_count}|{meta.last_modified}\n"
    )


def save_files(table: FileTable, path=NM_FILES_FILE) -> None:
    """Write one line per file in ``table``.

    Each line reads
    ``filename|owner|ss_ip|ss_port|user,perm;...|size|words|chars|mod_time``.
    A file that cannot be written is logged, not raised.
    """
    log_message("NM", "Saving file state to disk...")
    lines: list[str] = []
    with table.lock:
        for meta in table.files():
            with meta.lock:
                lines.append(_format_entry(meta))
    try:
        Path(path).write_text("".join(lines), encoding="utf-8")
    except OSError as exc:
        log_message("NM-ERROR", f"Failed to save file state! ({exc})")
        return
    log_message("NM", "File state saved.")


def _parse_entry(line: str) -> FileMetadata | None:
    parts = split_string(trim_newline(line), "|")
    if len(parts) < 9:
        return None
    meta = FileMetadata(
        filename=parts[0],
        owner=parts[1],
        ss_ip=parts[2],
        ss_client_port=_atoi(parts[3]),
    )
    meta.access.add(meta.owner, "W")
    for entry in split_string(parts[4], ";"):
        pair = split_string(entry, ",")
        if len(pair) == 2:
            meta.access.add(pair[0], pair[1][0])
    meta.size = _atoi(parts[5])
    meta.word_count = _atoi(parts[6])
    meta.char_count = _atoi(parts[7])
    meta.last_modified = _atoi(parts[8])
    return meta


def load_files(path=NM_FILES_FILE) -> list[FileMetadata]:
    """Read the metadata saved by :func:`save_files`, in file order.

    Lines with fewer than nine fields are skipped. Creation and access times
    are set to now. A missing file gives an empty list.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError:
        log_message("NM", "No file state file found. Starting fresh.")
        return []
    log_message("NM", "Loading file state from disk...")
    entries = [meta for meta in map(_parse_entry, text.splitlines()) if meta is not None]
    log_message("NM", "File state loaded.")
    return entries


def save_users(users: Iterable[str], path=NM_USERS_FILE) -> None:
    """Write one user name per line, in the order given."""
    log_message("NM", "Saving user state to disk...")
    try:
        Path(path).write_text("".join(f"{name}\n" for name in users), encoding="utf-8")
    except OSError as exc:
        log_message("NM-ERROR", f"Failed to save user state! ({exc})")
        return
    log_message("NM", "User state saved.")


def load_users(path=NM_USERS_FILE) -> list[str]:
    """Read saved user names, newest first.

    Each line is pushed to the front as it is read, so the result is the
    file's order reversed. Blank lines are skipped; a missing file gives [].
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError:
        log_message("NM", "No user state file found. Starting fresh.")
        return []
    log_message("NM", "Loading user state from disk...")
    users: list[str] = []
    for line in text.splitlines():
        name = trim_newline(line)
        if name:
            users.insert(0, name)
    log_message("NM", "User state loaded.")
    return users