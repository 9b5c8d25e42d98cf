"""Interactive client: talks to the name server and to storage servers."""

from __future__ import annotations

import re
import socket
import sys

from .protocol import (
    MAX_USERNAME_LEN,
    NM_PORT,
    recv_message,
    send_message,
    split_string,
    trim_newline,
)

_SS_COMMANDS = ("READ", "STREAM", "WRITE", "UNDO")
_EXEC_DONE = "201 OK: Execution finished."
_ERROR_CODES = frozenset({"400", "401", "404", "500", "503"})
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _atoi(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def _prompt(text: str) -> str | None:
    """Show ``text`` and read one line; None at end of input."""
    print(text, end="", flush=True)
    line = sys.stdin.readline()
    if not line:
        return None
    return trim_newline(line)


def connect_to_ss(ip: str, port: int) -> socket.socket:
    """Open a connection to a storage server; raises ``OSError`` on failure."""
    return socket.create_connection((ip, port))


class Client:
    """A user session against the name server."""

    def __init__(self, username: str, nm_ip: str, nm_port: int = NM_PORT) -> None:
        self.username = username[: MAX_USERNAME_LEN - 1]
        self.nm_ip = nm_ip
        self.nm_port = nm_port
        self.nm_sock: socket.socket | None = None

    def connect(self) -> None:
        """Connect to the name server and announce the user; raises ``OSError``."""
        sock = socket.create_connection((self.nm_ip, self.nm_port))
        self.nm_sock = sock
        send_message(sock, f"INIT_CLIENT {self.username}")
        print(f"Connected to Name Server as '{self.username}'.")

    def run(self) -> bool:
        """Connect and run the command loop; False if the connection failed.

        Raises ``ConnectionError`` if the name server goes away mid-session.
        """
        try:
            self.connect()
        except OSError:
            print(
                f"Failed to connect to Name Server at {self.nm_ip}:{self.nm_port}.",
                file=sys.stderr,
            )
            return False
        try:
            self.command_loop()
        finally:
            if self.nm_sock is not None:
                self.nm_sock.close()
                self.nm_sock = None
        return True

    def command_loop(self) -> None:
        """Read commands until end of input, ``exit`` or ``quit``."""
        while True:
            line = _prompt(f"LangOS ({self.username}) > ")
            if line is None:
                break
            if not line:
                continue
            if line in ("exit", "quit"):
                break
            self.execute(line)

    def _send_nm(self, message: str) -> None:
        if self.nm_sock is None:
            raise ConnectionError("Not connected to the Name Server.")
        send_message(self.nm_sock, message)

    def _recv_nm(self) -> str:
        if self.nm_sock is None:
            raise ConnectionError("Not connected to the Name Server.")
        response = recv_message(self.nm_sock)
        if not response:
            raise ConnectionError("Name Server disconnected.")
        return response

    def execute(self, line: str) -> None:
        """Carry out one command line, contacting a storage server where needed."""
        args = split_string(line, " ")
        if not args:
            return
        cmd = args[0]
        if cmd in _SS_COMMANDS:
            if len(args) < 2:
                print(f"Usage: {cmd} <filename> [args...]")
                return
            self._send_nm(line)
            response = self._recv_nm()
            if not response.startswith("202 OK"):
                print(response)
                return
            ss_addr = response[7:]
            filename = args[1]
            if cmd == "READ":
                self.read(ss_addr, filename)
            elif cmd == "STREAM":
                self.stream(ss_addr, filename)
            elif cmd == "WRITE":
                if len(args) < 3:
                    print("Usage: WRITE <filename> <sentence_number>")
                else:
                    self.write(ss_addr, filename, _atoi(args[2]))
            else:
                self.undo(ss_addr, filename)
        elif cmd == "EXEC":
            self._exec(line)
        else:
            self._send_nm(line)
            print(self._recv_nm())

    def _exec(self, line: str) -> None:
        self._send_nm(line)
        assert self.nm_sock is not None
        while chunk := recv_message(self.nm_sock):
            if chunk.startswith(_EXEC_DONE):
                break
            if chunk[:3] in _ERROR_CODES:
                print(chunk)
                break
            output, marker, _ = chunk.partition(_EXEC_DONE)
            print(output, end="", flush=True)
            if marker:
                break

    def _open_ss(self, ss_addr: str) -> socket.socket | None:
        parts = split_string(ss_addr, ":")
        if len(parts) != 2:
            print(f"Invalid SS address from NM: {ss_addr}", file=sys.stderr)
            return None
        try:
            return connect_to_ss(parts[0], _atoi(parts[1]))
        except OSError:
            print("Failed to connect to Storage Server.", file=sys.stderr)
            return None

    def read(self, ss_addr: str, filename: str) -> None:
        """Print the whole file as the storage server sends it."""
        sock = self._open_ss(ss_addr)
        if sock is None:
            return
        with sock:
            send_message(sock, f"READ {filename}")
            while chunk := recv_message(sock):
                print(chunk, end="")
            print()

    def stream(self, ss_addr: str, filename: str) -> None:
        """Print the file word by word as it arrives."""
        sock = self._open_ss(ss_addr)
        if sock is None:
            return
        with sock:
            send_message(sock, f"STREAM {filename}")
            while chunk := recv_message(sock):
                print(chunk, end="", flush=True)
            print()

    def write(self, ss_addr: str, filename: str, sent_num: int) -> None:
        """Run an interactive WRITE session on one sentence."""
        sock = self._open_ss(ss_addr)
        if sock is None:
            return
        with sock:
            send_message(sock, f"WRITE {filename} {sent_num}")
            ack = recv_message(sock)
            if not ack:
                print("SS disconnected or failed to send ACK.", file=sys.stderr)
                return
            if not ack.startswith("202 ACK_WRITE"):
                print(ack)
                return
            print(
                f"Entering WRITE mode for sentence {sent_num}. "
                "Type '<word_idx> <content>' or 'ETIRW' to finish."
            )
            while True:
                line = _prompt("WRITE > ")
                if line is None:
                    break
                if not line:
                    continue
                send_message(sock, line)
                if line == "ETIRW":
                    break
            final = recv_message(sock)
            if final:
                print(final)
            else:
                print("Failed to get final response from SS.", file=sys.stderr)

    def undo(self, ss_addr: str, filename: str) -> None:
        """Ask the storage server to revert the last write."""
        sock = self._open_ss(ss_addr)
        if sock is None:
            return
        with sock:
            send_message(sock, f"UNDO {filename}")
            reply = recv_message(sock)
            if reply:
                print(reply)


def main(argv=None) -> int:
    """Command entry: ``<name_server_ip>``; asks for the user name on start."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) != 1:
        print("Usage: client <name_server_ip>", file=sys.stderr)
        print("       (Use 127.0.0.1 if running locally)", file=sys.stderr)
        return 1
    line = _prompt("Enter your username: ")
    if line is None:
        return 1
    if not line:
        print("Username cannot be empty.", file=sys.stderr)
        return 1
    client = Client(line, args[0])
    try:
        client.run()
    except ConnectionError as exc:
        print(exc, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())