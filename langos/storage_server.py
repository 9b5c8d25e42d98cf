"""Storage server: keeps file contents on disk and serves clients and the name server."""

from __future__ import annotations

import re
import socket
import sys
import threading
import time
from pathlib import Path

from .locks import EditRegistry
from .parser import UpdateError, apply_single_update, is_delimiter, split_into_sentences
from .protocol import (
    BUFFER_SIZE,
    ENCODING,
    create_listener_socket,
    get_char_count,
    get_file_content,
    get_file_size,
    get_word_count,
    log_message,
    recv_message,
    send_message,
    split_string,
)
from .scan import scan_directory
from .undo import create_undo_backup, perform_undo

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")
_WHITESPACE = " \t\n\v\f\r"
_MAX_STREAM_WORD = 255


def _atoi(text: str) -> int:
    """Leading integer of ``text``, or 0 when there is none."""
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


class StorageServer:
    """Serves READ, STREAM, WRITE and UNDO requests for the files under one directory."""

    stream_delay = 0.1

    def __init__(self, path, client_port: int) -> None:
        self.storage_path = Path(path)
        self.storage_path.mkdir(parents=True, exist_ok=True)
        self.registry = EditRegistry()
        self.nm_sock: socket.socket | None = None
        try:
            self.listener = create_listener_socket(client_port)
        except OSError:
            log_message("SS", "Failed to create client listener socket.")
            raise
        self.client_port = self.listener.getsockname()[1]

    def __enter__(self) -> StorageServer:
        return self

    def __exit__(self, *exc_info) -> None:
        self.listener.close()
        if self.nm_sock is not None:
            self.nm_sock.close()
            self.nm_sock = None

    def _path(self, filename: str) -> Path:
        return self.storage_path / filename

    def _undo_path(self, filename: str) -> Path:
        return self.storage_path / f"{filename}.undo"

    def _send(self, sock: socket.socket | None, message: str) -> None:
        if sock is None:
            return
        try:
            send_message(sock, message)
        except OSError as exc:
            log_message("SS", f"Send failed: {exc}")

    def _report_stats(self, filename: str, size: int) -> None:
        path = self._path(filename)
        words = get_word_count(path)
        chars = get_char_count(path)
        self._send(self.nm_sock, f"INFO_UPDATE {filename} {size} {words} {chars}")

    # --- name server link ---

    def connect_to_nm(self, nm_ip: str, nm_port: int) -> None:
        """Connect to the name server and announce this server and its files."""
        sock = socket.create_connection((nm_ip, nm_port))
        self.nm_sock = sock
        send_message(sock, f"INIT_SS {self.client_port} {scan_directory(self.storage_path)}")
        log_message("SS", f"Connected to NM at {nm_ip}:{nm_port}")

    def run(self, nm_ip: str, nm_port: int) -> None:
        """Register with the name server, then serve clients until the listener closes."""
        try:
            self.connect_to_nm(nm_ip, nm_port)
        except OSError as exc:
            log_message("SS", f"Failed to connect to NM ({exc}). Exiting.")
            return
        threading.Thread(target=self.listen_to_nm, daemon=True).start()
        self.serve_clients()

    def listen_to_nm(self) -> None:
        """Process commands from the name server until it disconnects."""
        sock = self.nm_sock
        if sock is None:
            return
        while message := recv_message(sock):
            self.handle_nm_command(message)
        log_message("SS", "Connection to NM lost. Exiting NM listener thread.")
        self.nm_sock = None

    def handle_nm_command(self, line: str) -> None:
        """Carry out one CREATE, DELETE or GET_CONTENT command from the name server."""
        log_message("SS", f"Received command from NM: {line}")
        parts = split_string(line, " ")
        if len(parts) < 2:
            return
        cmd, filename = parts[0], parts[1]
        path = self._path(filename)
        if cmd == "CREATE":
            try:
                path.write_bytes(b"")
            except OSError:
                self._send(self.nm_sock, "ACK_CREATE FAIL")
            else:
                self._send(self.nm_sock, "ACK_CREATE OK")
        elif cmd == "DELETE":
            path.unlink(missing_ok=True)
            self._undo_path(filename).unlink(missing_ok=True)
            self._send(self.nm_sock, "ACK_DELETE OK")
        elif cmd == "GET_CONTENT" and self.nm_sock is not None:
            self.handle_read(self.nm_sock, filename)

    # --- client side ---

    def serve_clients(self) -> None:
        """Accept client connections, each handled on its own thread."""
        log_message("SS", f"Listening for clients on port {self.client_port}...")
        while True:
            try:
                sock, (ip, _port) = self.listener.accept()
            except OSError as exc:
                if self.listener.fileno() == -1:
                    break
                log_message("SS", f"accept client: {exc}")
                continue
            threading.Thread(
                target=self.handle_connection, args=(sock, ip), daemon=True
            ).start()

    def handle_connection(self, sock: socket.socket, client_ip: str) -> None:
        """Serve the single request a client connection carries, then close it."""
        with sock:
            request = recv_message(sock)
            if not request:
                log_message("SS", "Client sent no request or disconnected.")
                return
            log_message("SS", f"Received from {client_ip}: '{request}'")
            parts = split_string(request, " ")
            if len(parts) < 2:
                self._send(sock, "400 ERROR: Invalid command.")
                return
            cmd, filename = parts[0], parts[1]
            if cmd in ("READ", "GET_CONTENT"):
                self.handle_read(sock, filename)
            elif cmd == "STREAM":
                self.handle_stream(sock, filename)
            elif cmd == "WRITE":
                if len(parts) < 3:
                    self._send(sock, "400 ERROR: Usage: WRITE <file> <sent_num>")
                else:
                    self.handle_write(sock, filename, _atoi(parts[2]))
            elif cmd == "UNDO":
                self.handle_undo(sock, filename)
            else:
                self._send(sock, "400 ERROR: Unknown command for SS.")

    def handle_read(self, sock: socket.socket, filename: str) -> None:
        """Send the whole file in chunks."""
        try:
            handle = self._path(filename).open("rb")
        except OSError:
            self._send(sock, "404 ERROR: File not found on SS.")
            return
        with handle:
            while chunk := handle.read(BUFFER_SIZE - 1):
                try:
                    sock.sendall(chunk)
                except OSError:
                    break

    def handle_stream(self, sock: socket.socket, filename: str) -> None:
        """Send the file word by word, each separator on its own, with a pause between."""
        content = get_file_content(self._path(filename))
        if content is None:
            self._send(sock, "404 ERROR: File not found on SS.")
            return
        word: list[str] = []
        for ch in content:
            if ch in _WHITESPACE or is_delimiter(ch):
                if word:
                    self._send(sock, "".join(word))
                    time.sleep(self.stream_delay)
                    word.clear()
                self._send(sock, ch)
                time.sleep(self.stream_delay)
            elif len(word) < _MAX_STREAM_WORD:
                word.append(ch)
        if word:
            self._send(sock, "".join(word))

    def _max_valid_index(self, filename: str) -> int:
        sentences = split_into_sentences(get_file_content(self._path(filename)) or "")
        if not sentences:
            return 0
        tail = sentences[-1].rstrip(_WHITESPACE)
        if tail and is_delimiter(tail[-1]):
            return len(sentences)
        return len(sentences) - 1

    def _receive_updates(self, sock: socket.socket, filename: str) -> list[tuple[int, str]]:
        updates: list[tuple[int, str]] = []
        while message := recv_message(sock):
            if message == "ETIRW":
                log_message("SS", f"Received ETIRW for {filename}.")
                break
            parts = split_string(message, " ")
            if len(parts) < 2:
                continue
            updates.append((_atoi(parts[0]), message.split(" ", 1)[1]))
        return updates

    def handle_write(self, sock: socket.socket, filename: str, sent_num: int) -> None:
        """Run an interactive WRITE session on one sentence and commit it."""
        filepath = self._path(filename)
        start_log_id = self.registry.current_log_id()

        if not self.registry.try_lock_sentence(filename, sent_num):
            self._send(sock, "423 ERROR: This sentence is being edited by another user.")
            return
        log_message("SS", f"Locked sentence {sent_num} of {filename} for WRITE session.")
        try:
            if sent_num < 0 or sent_num > self._max_valid_index(filename):
                self._send(
                    sock,
                    "400 ERROR: Sentence index out of range "
                    "(Previous sentence might be incomplete).",
                )
                return
            self._send(sock, "202 ACK_WRITE: Ready for updates.")
            updates = self._receive_updates(sock, filename)
            with self.registry.commit_lock(filename):
                self._commit(sock, filename, filepath, sent_num, start_log_id, updates)
        finally:
            self.registry.unlock_sentence(filename, sent_num)
            log_message("SS", f"Unlocked sentence {sent_num} of {filename}.")

    def _commit(self, sock, filename, filepath, sent_num, start_log_id, updates) -> None:
        try:
            create_undo_backup(filepath, self._undo_path(filename))
        except OSError as exc:
            log_message("SS", f"Could not back up {filename}: {exc}")

        content = get_file_content(filepath) or ""
        count_before = len(split_into_sentences(content))
        shift = self.registry.sentence_shift(filename, sent_num, start_log_id)
        real_sent_num = sent_num + shift
        log_message(
            "SS",
            f"Applying updates. Requested: {sent_num}. Session Log ID: {start_log_id}. "
            f"Shift: {shift}. Real: {real_sent_num}",
        )
        try:
            for word_idx, text in updates:
                content = apply_single_update(content, real_sent_num, word_idx, text)
        except UpdateError:
            self._send(sock, "500 ERROR: Invalid update application during commit.")
            return

        encoded = content.encode(ENCODING)
        try:
            filepath.write_bytes(encoded)
        except OSError:
            self._send(sock, "500 ERROR: Failed to write file.")
            return

        delta = len(split_into_sentences(content)) - count_before
        if delta:
            self.registry.log_modification(filename, real_sent_num, delta)
            log_message("SS", f"Logged modification: index {real_sent_num}, delta {delta}")
        self._send(sock, "200 OK: Write Successful!")
        self._report_stats(filename, len(encoded))

    def handle_undo(self, sock: socket.socket, filename: str) -> None:
        """Restore the file from its undo backup."""
        filepath = self._path(filename)
        with self.registry.commit_lock(filename):
            if perform_undo(filepath, self._undo_path(filename)):
                self._send(sock, "200 OK: Undo Successful!")
                log_message("SS", "Undo successful.")
                self._report_stats(filename, get_file_size(filepath))
            else:
                self._send(sock, "404 ERROR: No undo history.")


def main(argv=None) -> int:
    """Command entry: ``<storage_path> <nm_ip> <nm_port> <client_port>``."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) != 4:
        print(
            "Usage: storage_server <storage_path> <nm_ip> <nm_port> <client_port>",
            file=sys.stderr,
        )
        return 1
    path, nm_ip, nm_port, client_port = args
    try:
        server = StorageServer(path, _atoi(client_port))
    except OSError:
        print("Failed to create Storage Server", file=sys.stderr)
        return 1
    with server:
        server.run(nm_ip, _atoi(nm_port))
    return 0


if __name__ == "__main__":
    sys.exit(main())