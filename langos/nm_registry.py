"""Connected clients and storage servers as seen by the name server."""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from typing import Any, NamedTuple

from .protocol import log_message, split_string

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _atoi(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


@dataclass
class StorageServerInfo:
    """A connected storage server and the port its clients use."""

    sock: Any
    ip: str
    client_port: int


class SsInit(NamedTuple):
    client_port: int
    files: list[str]


class InfoUpdate(NamedTuple):
    filename: str
    size: int
    words: int
    chars: int


class Registry:
    """Thread-safe lists of active client sessions and storage servers.

    Both lists keep the newest entry first.
    """

    def __init__(self) -> None:
        self._clients: list[tuple[Any, str]] = []
        self._servers: list[StorageServerInfo] = []
        self._client_lock = threading.Lock()
        self._ss_lock = threading.Lock()
        self._next_ss_index = 0

    @property
    def clients(self) -> list[tuple[Any, str]]:
        with self._client_lock:
            return list(self._clients)

    @property
    def servers(self) -> list[StorageServerInfo]:
        with self._ss_lock:
            return list(self._servers)

    def add_client(self, sock: Any, username: str) -> None:
        with self._client_lock:
            self._clients.insert(0, (sock, username))
        log_message("NM", f"Client connected: {username}")

    def remove_client(self, sock: Any) -> str | None:
        """Drop the session on ``sock``; returns its user name, if any."""
        with self._client_lock:
            for pos, (client_sock, username) in enumerate(self._clients):
                if client_sock == sock:
                    del self._clients[pos]
                    break
            else:
                return None
        log_message("NM", f"Client disconnected: {username}")
        return username

    def add_ss(self, sock: Any, ip: str, client_port: int) -> StorageServerInfo:
        info = StorageServerInfo(sock, ip, client_port)
        with self._ss_lock:
            self._servers.insert(0, info)
        log_message("NM", f"Storage Server connected: {ip}:{client_port}")
        return info

    def remove_ss(self, sock: Any) -> StorageServerInfo | None:
        """Drop the storage server on ``sock``; returns it, if it was known."""
        with self._ss_lock:
            for pos, info in enumerate(self._servers):
                if info.sock == sock:
                    del self._servers[pos]
                    break
            else:
                return None
        if info.client_port > 0:
            log_message(
                "NM",
                f"Storage Server disconnected: {info.ip}:{info.client_port}. "
                "Files are now offline.",
            )
        return info

    def ss_for_new_file(self) -> StorageServerInfo | None:
        """Pick a storage server round-robin; None when none is connected."""
        with self._ss_lock:
            if not self._servers:
                return None
            if self._next_ss_index >= len(self._servers):
                self._next_ss_index = 0
            chosen = self._servers[self._next_ss_index]
            self._next_ss_index += 1
            return chosen

    def find_ss(self, ip: str, client_port: int) -> StorageServerInfo | None:
        with self._ss_lock:
            return next(
                (
                    info
                    for info in self._servers
                    if info.ip == ip and info.client_port == client_port
                ),
                None,
            )


def parse_ss_init(message: str) -> SsInit:
    """Parse ``INIT_SS <client_port> [file1,file2,...]``.

    Raises ``ValueError`` when the message is not a valid INIT_SS.
    """
    parts = split_string(message, " ")
    if len(parts) < 3 or parts[0] != "INIT_SS":
        raise ValueError("Invalid INIT_SS message")
    inner = parts[2][1:-1]
    files = split_string(inner, ",") if inner else []
    return SsInit(_atoi(parts[1]), files)


def parse_info_update(message: str) -> InfoUpdate | None:
    """Parse ``INFO_UPDATE <file> <size> <words> <chars>``; None for anything else."""
    parts = split_string(message, " ")
    if len(parts) != 5 or parts[0] != "INFO_UPDATE":
        return None
    return InfoUpdate(parts[1], _atoi(parts[2]), _atoi(parts[3]), _atoi(parts[4]))