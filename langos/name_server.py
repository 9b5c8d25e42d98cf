"""Name server: accepts clients and storage servers and routes their requests."""

from __future__ import annotations

import socket
import sys
import threading
from pathlib import Path

from .exec_runner import fetch_content, run_script
from .nm_commands import NameService, check_access
from .nm_registry import parse_info_update, parse_ss_init
from .protocol import (
    BUFFER_SIZE,
    NM_PORT,
    create_listener_socket,
    log_message,
    recv_message,
    send_message,
    split_string,
    trim_newline,
)

_INIT_TIMEOUT = 5.0
_EXEC_DONE = "201 OK: Execution finished."


class NameServer:
    """Network front of a :class:`NameService`."""

    def __init__(self, service: NameService, port: int = NM_PORT) -> None:
        self.service = service
        self._closing = threading.Event()
        try:
            self.listener = create_listener_socket(port)
        except OSError:
            log_message("NM", "Failed to create listener socket.")
            raise
        self.port = self.listener.getsockname()[1]

    def __enter__(self) -> NameServer:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Stop accepting connections."""
        self._closing.set()
        try:
            self.listener.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.listener.close()

    @staticmethod
    def _send(sock: socket.socket, message: str) -> None:
        try:
            send_message(sock, message)
        except OSError as exc:
            log_message("NM", f"Send failed: {exc}")

    @staticmethod
    def _recv(sock: socket.socket) -> str:
        try:
            return recv_message(sock)
        except OSError:
            return ""

    def serve_forever(self) -> None:
        """Accept connections until closed, each handled on its own thread."""
        log_message("NM", f"Name Server listening on port {self.port}...")
        while not self._closing.is_set():
            try:
                sock, (ip, _port) = self.listener.accept()
            except OSError as exc:
                if self._closing.is_set():
                    break
                log_message("NM", f"accept: {exc}")
                continue
            threading.Thread(
                target=self.handle_connection, args=(sock, ip), daemon=True
            ).start()

    def handle_connection(self, sock: socket.socket, ip: str) -> None:
        """Look at the first message to tell a client from a storage server."""
        try:
            sock.settimeout(_INIT_TIMEOUT)
            head = sock.recv(BUFFER_SIZE - 1, socket.MSG_PEEK)
            sock.settimeout(None)
        except OSError:
            head = b""
        if not head:
            log_message("NM", "New connection failed to send INIT or timed out.")
            sock.close()
            return
        if head.startswith(b"INIT_CLIENT"):
            self.handle_client(sock)
        elif head.startswith(b"INIT_SS"):
            self.handle_ss(sock, ip)
        else:
            log_message("NM", "Invalid INIT message from new connection.")
            self._send(sock, "400 ERROR: Invalid INIT message.")
            sock.close()

    def handle_client(self, sock: socket.socket) -> None:
        """Register a client session and answer its commands until it leaves."""
        with sock:
            first = self._recv(sock)
            if not first:
                log_message("NM", "Client failed to send INIT or disconnected.")
                return
            parts = split_string(first, " ")
            if len(parts) < 2 or parts[0] != "INIT_CLIENT":
                log_message("NM", "Invalid INIT_CLIENT message.")
                self._send(sock, "400 ERROR: Invalid INIT_CLIENT")
                return
            username = parts[1]
            self.service.registry.add_client(sock, username)
            self.service.register_user(username)
            try:
                while message := self._recv(sock):
                    self._dispatch(sock, username, message)
            finally:
                self.service.registry.remove_client(sock)

    def _dispatch(self, sock: socket.socket, username: str, message: str) -> None:
        args = split_string(trim_newline(message), " ")
        if args and args[0] == "EXEC":
            log_message("NM", f"Received from {username}: '{trim_newline(message)}'")
            self.handle_exec(sock, username, args)
            return
        reply = self.service.handle(username, message)
        if reply is not None:
            self._send(sock, reply)

    def handle_ss(self, sock: socket.socket, ip: str) -> None:
        """Register a storage server and follow its status messages until it leaves."""
        with sock:
            first = self._recv(sock)
            if not first:
                log_message("NM", "SS failed to send INIT or disconnected.")
                return
            try:
                init = parse_ss_init(first)
            except ValueError:
                log_message("NM", "Invalid INIT_SS message.")
                self._send(sock, "400 ERROR: Invalid INIT_SS")
                return
            registry = self.service.registry
            registry.add_ss(sock, ip, init.client_port)
            self.service.apply_ss_init(ip, init.client_port, init.files)
            try:
                while message := self._recv(sock):
                    log_message("NM", f"Received from SS {ip}:{init.client_port}: {message}")
                    update = parse_info_update(message)
                    if update is not None:
                        self.service.apply_info_update(*update)
            finally:
                registry.remove_ss(sock)

    def handle_exec(self, sock: socket.socket, username: str, args: list[str]) -> None:
        """Fetch a script from its storage server, run it and stream the output."""
        if len(args) < 2:
            self._send(sock, "400 ERROR: Usage: EXEC <filename>")
            return
        filename = args[1]
        meta = self.service.table.get(filename)
        if meta is None:
            self._send(sock, "404 ERROR: File not found.")
            return
        if not check_access(meta, username, "R"):
            self._send(sock, "401 ERROR: Read access denied.")
            return
        if self.service.registry.find_ss(meta.ss_ip, meta.ss_client_port) is None:
            self._send(sock, "503 ERROR: Storage server for this file is offline.")
            return
        try:
            content = fetch_content(meta.ss_ip, meta.ss_client_port, filename)
        except OSError as exc:
            log_message("NM", f"connect to SS for EXEC: {exc}")
            self._send(sock, "503 ERROR: Could not connect to SS to fetch script.")
            return
        if not content:
            self._send(sock, "500 ERROR: Failed to read script content from SS.")
            return

        log_message("NM-EXEC", f"Executing file '{filename}' for user '{username}'")
        try:
            for line in run_script(content):
                self._send(sock, line)
        except OSError as exc:
            log_message("NM-EXEC", f"Execution failed: {exc}")
            self._send(sock, "500 ERROR: Failed to execute script.")
            return
        self._send(sock, _EXEC_DONE)


def main(argv=None) -> int:
    """Run the name server on its fixed port with state under ``data/name_server``."""
    Path("logs").mkdir(exist_ok=True)
    service = NameService(Path("data") / "name_server")
    try:
        server = NameServer(service, NM_PORT)
    except OSError:
        print("Failed to create Name Server", file=sys.stderr)
        return 1
    with server:
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            pass
        finally:
            service.save_files()
            service.save_users()
    return 0


if __name__ == "__main__":
    sys.exit(main())