"""Wire helpers, logging and small text and file utilities shared by every component."""

from __future__ import annotations

import re
import socket
import threading
import time
from enum import IntEnum
from pathlib import Path

NM_PORT = 8000
MAX_CONNECTIONS = 20
BUFFER_SIZE = 4096
MAX_FILENAME_LEN = 256
MAX_USERNAME_LEN = 256
MAX_IP_LEN = 16
MAX_PATH_LEN = 1024
ENCODING = "utf-8"

_WORD_SPLIT = re.compile(rb"[ \t\n\v\f\r.!?]+")
_FIRST_LINE = re.compile(r"[^\r\n]*")

_log_lock = threading.Lock()


class StatusCode(IntEnum):
    """Numeric status codes that prefix protocol replies."""

    SUCCESS = 200
    OK = 201
    ACK = 202
    INVALID_COMMAND = 400
    UNAUTHORIZED_ACCESS = 401
    FILE_NOT_FOUND = 404
    ALREADY_EXISTS = 409
    FILE_LOCKED = 423
    SYSTEM_FAILURE = 500
    SS_UNAVAILABLE = 503


def log_message(component: str, message: str) -> None:
    """Print a timestamped log line for ``component`` to standard output."""
    stamp = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime())
    with _log_lock:
        print(f"[{stamp}] [{component}] {message}", flush=True)


def send_message(sock: socket.socket, message: str) -> None:
    """Send ``message`` over ``sock``; raises ``OSError`` on failure."""
    sock.sendall(message.encode(ENCODING))


def recv_message(sock: socket.socket) -> str:
    """Receive one chunk of at most ``BUFFER_SIZE - 1`` bytes.

    Returns an empty string when the peer has closed or reset the connection.
    """
    try:
        data = sock.recv(BUFFER_SIZE - 1)
    except ConnectionResetError:
        return ""
    return data.decode(ENCODING, errors="replace")


def create_listener_socket(port: int) -> socket.socket:
    """Create a TCP socket listening on all interfaces at ``port``."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(("", port))
        sock.listen(MAX_CONNECTIONS)
    except OSError:
        sock.close()
        raise
    return sock


def split_string(text: str, delim: str) -> list[str]:
    """Split ``text`` on any character of ``delim``, dropping empty tokens."""
    if not delim:
        return [text] if text else []
    pattern = "(?:" + "|".join(re.escape(ch) for ch in set(delim)) + ")+"
    return [token for token in re.split(pattern, text) if token]


def trim_newline(text: str) -> str:
    """Return ``text`` cut at its first carriage return or line feed."""
    match = _FIRST_LINE.match(text)
    return match.group() if match else text


def get_file_size(path) -> int:
    """Size of the file in bytes, or 0 if it cannot be examined."""
    try:
        return Path(path).stat().st_size
    except OSError:
        return 0


def get_file_content(path) -> str | None:
    """Whole content of the file as text, or ``None`` if it cannot be read."""
    try:
        data = Path(path).read_bytes()
    except OSError:
        return None
    return data.decode(ENCODING, errors="replace")


def get_word_count(path) -> int:
    """Count words separated by whitespace or sentence delimiters; 0 if unreadable."""
    try:
        data = Path(path).read_bytes()
    except OSError:
        return 0
    return sum(1 for word in _WORD_SPLIT.split(data) if word)


def get_char_count(path) -> int:
    """Number of characters in the file, counted as bytes."""
    return get_file_size(path)