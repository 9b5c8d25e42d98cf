"""Command handling of the name server: files, permissions and users."""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Iterable

from . import nm_persistence
from .nm_registry import Registry
from .protocol import log_message, send_message, split_string, trim_newline
from .structures import FileMetadata, FileTable, Trie

_ACCESS_USAGE = (
    "400 ERROR: Usage:\n"
    "  ADDACCESS -R|-W <filename> <username>\n"
    "  REMACCESS <filename> <username>"
)
_DETAIL_RULE = "-" * 80 + "\n"
_DETAIL_HEADER = (
    "| Filename             | Owner     | Size     | Words | Chars | Last Modified\n"
    "|----------------------|-----------|----------|-------|-------|-------------------\n"
)


def check_access(metadata: FileMetadata, username: str, required_perm: str) -> bool:
    """True if ``username`` holds ``required_perm`` ('R' or 'W') on the file.

    The owner holds every permission; write permission implies read.
    """
    if metadata.owner == username:
        return True
    perm = metadata.access.get(username)
    if required_perm == "R":
        return perm in ("R", "W")
    if required_perm == "W":
        return perm == "W"
    return False


def _stamp(seconds: int, fmt: str = "%Y-%m-%d %H:%M:%S") -> str:
    return time.strftime(fmt, time.localtime(seconds))


class NameService:
    """File table, user list and storage server registry behind the name server.

    Every command method returns the reply to send to the client.
    EXEC is carried out by the server itself, not here.
    """

    def __init__(self, data_dir) -> None:
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.files_path = self.data_dir / "files.meta"
        self.users_path = self.data_dir / "users.meta"
        self.table = FileTable()
        self.trie = Trie()
        self.registry = Registry()
        self._users_lock = threading.Lock()

        for meta in nm_persistence.load_files(self.files_path):
            try:
                self.table.insert(meta)
            except ValueError:
                continue
            self.trie.insert(meta.filename)
        self._users: list[str] = nm_persistence.load_users(self.users_path)

    @property
    def users(self) -> list[str]:
        """Every user ever registered, newest first."""
        with self._users_lock:
            return list(self._users)

    # --- persistence ---

    def save_files(self) -> None:
        nm_persistence.save_files(self.table, self.files_path)

    def save_users(self) -> None:
        nm_persistence.save_users(self.users, self.users_path)

    def register_user(self, username: str) -> bool:
        """Add ``username`` to the persistent user list; False if already known."""
        with self._users_lock:
            if username in self._users:
                return False
            self._users.insert(0, username)
        self.save_users()
        log_message("NM", f"Registered new persistent user: {username}")
        return True

    # --- dispatch ---

    def handle(self, username: str, line: str) -> str | None:
        """Carry out one command line; None when the line holds no command."""
        line = trim_newline(line)
        log_message("NM", f"Received from {username}: '{line}'")
        args = split_string(line, " ")
        if not args:
            return None
        cmd = args[0]
        if cmd == "VIEW":
            return self.view(username, args)
        if cmd == "CREATE":
            return self.create_delete(username, args, True)
        if cmd == "DELETE":
            return self.create_delete(username, args, False)
        if cmd in ("READ", "WRITE", "STREAM", "UNDO"):
            return self.read_write_stream(username, args)
        if cmd == "INFO":
            return self.info(username, args)
        if cmd in ("ADDACCESS", "REMACCESS"):
            return self.access(username, args)
        if cmd == "LIST":
            return self.list_users()
        return "400 ERROR: Unknown command."

    # --- commands ---

    def view(self, username: str, args: list[str]) -> str:
        """List files: readable ones, or all with ``-a``; a table with ``-l``."""
        flags = args[1] if len(args) > 1 else ""
        show_all = "a" in flags
        show_details = "l" in flags

        lines: list[str] = []
        if show_details:
            lines.append(_DETAIL_RULE)
            lines.append(_DETAIL_HEADER)
        with self.table.lock:
            for meta in self.table.files():
                if not (show_all or check_access(meta, username, "R")):
                    continue
                if show_details:
                    modified = _stamp(meta.last_modified, "%Y-%m-%d %H:%M")
                    lines.append(
                        f"| {meta.filename:<20} | {meta.owner:<9} | {meta.size:<8} "
                        f"| {meta.word_count:<5} | {meta.char_count:<5} | {modified}\n"
                    )
                else:
                    lines.append(f"{meta.filename}\n")
        if show_details:
            lines.append(_DETAIL_RULE)
        response = "".join(lines)
        return response or "(No files to display)\n"

    def _send_to_ss(self, sock, message: str) -> None:
        try:
            send_message(sock, message)
        except OSError as exc:
            log_message("NM", f"Send to storage server failed: {exc}")

    def create_delete(self, username: str, args: list[str], is_create: bool) -> str:
        if len(args) < 2:
            return "400 ERROR: Usage: CREATE/DELETE <filename>"
        filename = args[1]

        if is_create:
            if self.table.get(filename) is not None:
                return "409 ERROR: File already exists."
            ss = self.registry.ss_for_new_file()
            if ss is None:
                return "503 ERROR: No storage servers available."
            meta = FileMetadata(
                filename=filename,
                owner=username,
                ss_ip=ss.ip,
                ss_client_port=ss.client_port,
            )
            meta.access.add(username, "W")
            self._send_to_ss(ss.sock, f"CREATE {filename}")
            self.table.insert(meta)
            self.trie.insert(filename)
            log_message(
                "NM",
                f"User '{username}' created file '{filename}' on SS {ss.ip}:{ss.client_port}",
            )
            self.save_files()
            return "201 OK: File created successfully!"

        meta = self.table.get(filename)
        if meta is None:
            return "404 ERROR: File not found."
        if meta.owner != username:
            return "401 ERROR: Only the owner can delete a file."
        ss = self.registry.find_ss(meta.ss_ip, meta.ss_client_port)
        if ss is not None:
            self._send_to_ss(ss.sock, f"DELETE {filename}")
        self.table.delete(filename)
        self.trie.delete(filename)
        log_message("NM", f"User '{username}' deleted file '{filename}'")
        self.save_files()
        return "200 OK: File deleted successfully."

    def read_write_stream(self, username: str, args: list[str]) -> str:
        """Check access for READ, WRITE, STREAM or UNDO and point at the storage server."""
        if len(args) < 2:
            return "400 ERROR: Missing filename."
        cmd, filename = args[0], args[1]
        meta = self.table.get(filename)
        if meta is None:
            return "404 ERROR: File not found."
        perm = "W" if cmd in ("WRITE", "UNDO") else "R"
        if not check_access(meta, username, perm):
            return f"401 ERROR: {perm} access denied."
        with meta.lock:
            meta.last_accessed = int(time.time())
        if self.registry.find_ss(meta.ss_ip, meta.ss_client_port) is None:
            return "503 ERROR: Storage server for this file is offline."
        return f"202 OK {meta.ss_ip}:{meta.ss_client_port}"

    def info(self, username: str, args: list[str]) -> str:
        if len(args) < 2:
            return "400 ERROR: Usage: INFO <filename>"
        meta = self.table.get(args[1])
        if meta is None:
            return "404 ERROR: File not found."
        if not check_access(meta, username, "R"):
            return "401 ERROR: Read access denied."
        with meta.lock:
            return (
                f"--- File Info: {meta.filename} ---\n"
                f"  Owner: {meta.owner}\n"
                f"  Created: {_stamp(meta.created_at)}\n"
                f"  Modified: {_stamp(meta.last_modified)}\n"
                f"  Accessed: {_stamp(meta.last_accessed)}\n"
                f"  Size: {meta.size} bytes\n"
                f"  Words: {meta.word_count}\n"
                f"  Chars: {meta.char_count}\n"
                f"  Access: {meta.access.format()}"
            )

    def access(self, username: str, args: list[str]) -> str:
        """ADDACCESS -R|-W <file> <user> or REMACCESS <file> <user>; owner only."""
        cmd = args[0] if args else ""
        is_add = cmd == "ADDACCESS"
        perm = ""
        if is_add and len(args) == 4:
            filename, target = args[2], args[3]
            perm = {"-R": "R", "-W": "W"}.get(args[1], "")
            if not perm:
                return "400 ERROR: Invalid permission flag. Use -R or -W."
        elif cmd == "REMACCESS" and len(args) == 3:
            filename, target = args[1], args[2]
        else:
            return _ACCESS_USAGE

        meta = self.table.get(filename)
        if meta is None:
            return "404 ERROR: File not found."
        if meta.owner != username:
            return "401 ERROR: Only the owner can change permissions."
        with meta.lock:
            if is_add:
                meta.access.add(target, perm)
                reply = "200 OK: Access granted."
            else:
                meta.access.remove(target)
                reply = "200 OK: Access removed."
        self.save_files()
        return reply

    def list_users(self) -> str:
        return "--- Registered Users ---\n" + "".join(f"{name}\n" for name in self.users)

    # --- storage server events ---

    def apply_ss_init(self, ss_ip: str, client_port: int, files: Iterable[str]) -> list[str]:
        """Point known files at a (re)connected storage server.

        Returns the names that came back online; unknown names are logged
        and ignored.
        """
        online: list[str] = []
        for name in files:
            meta = self.table.get(name)
            if meta is None:
                log_message(
                    "NM", f"SS {ss_ip}:{client_port} reported orphan file '{name}'. Ignoring."
                )
                continue
            with meta.lock:
                meta.ss_ip = ss_ip
                meta.ss_client_port = client_port
            log_message("NM", f"File '{name}' is back online on SS {ss_ip}:{client_port}")
            online.append(name)
        return online

    def apply_info_update(self, filename: str, size: int, words: int, chars: int) -> bool:
        """Store new statistics for ``filename``; False if the file is unknown."""
        meta = self.table.get(filename)
        if meta is None:
            return False
        with meta.lock:
            meta.size = size
            meta.word_count = words
            meta.char_count = chars
            meta.last_modified = int(time.time())
        self.save_files()
        return True