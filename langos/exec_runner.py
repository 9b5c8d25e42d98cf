"""Fetching a stored script from a storage server and running it locally."""

from __future__ import annotations

import os
import shlex
import socket
import subprocess
import tempfile
from typing import Iterator

from .protocol import ENCODING, recv_message, send_message


def fetch_content(ip: str, port: int, filename: str) -> str:
    """Ask the storage server at ``ip:port`` for the content of ``filename``.

    Only the first chunk the server sends is returned; an empty string means
    the server sent nothing. Raises ``OSError`` if the server cannot be reached.
    """
    with socket.create_connection((ip, port)) as sock:
        send_message(sock, f"GET_CONTENT {filename}")
        return recv_message(sock)


def run_script(content: str) -> Iterator[str]:
    """Run ``content`` as an executable script and yield its output line by line.

    Standard error is merged into the output. The temporary script file is
    removed once the output is exhausted or the generator is closed. Raises
    ``OSError`` if the script cannot be written or started.
    """
    fd, path = tempfile.mkstemp(prefix="langos_exec_")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(content.encode(ENCODING))
        os.chmod(path, 0o700)
        with subprocess.Popen(
            f"{shlex.quote(path)} 2>&1", shell=True, stdout=subprocess.PIPE
        ) as proc:
            assert proc.stdout is not None
            for raw in proc.stdout:
                yield raw.decode(ENCODING, errors="replace")
    finally:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass