import socket
import threading

import pytest

from langos.protocol import recv_message
from langos.storage_server import StorageServer, main


@pytest.fixture
def server(tmp_path):
    with StorageServer(tmp_path / "store", 0) as ss:
        ss.stream_delay = 0
        yield ss


def _drain(sock):
    chunks = []
    while True:
        data = sock.recv(4096)
        if not data:
            break
        chunks.append(data)
    return b"".join(chunks).decode()


def _write_session(ss, filename, sent_num, line=None):
    server_end, client_end = socket.socketpair()

    def run():
        with server_end:
            ss.handle_write(server_end, filename, sent_num)

    worker = threading.Thread(target=run)
    worker.start()
    with client_end:
        ack = client_end.recv(4096).decode()
        final = ""
        if ack.startswith("202"):
            if line is not None:
                client_end.sendall(line.encode())
            client_end.shutdown(socket.SHUT_WR)
            final = _drain(client_end)
    worker.join(5)
    return ack, final


def _run_read(ss, method, filename):
    a, b = socket.socketpair()
    with b:
        with a:
            method(a, filename)
        return _drain(b)


def test_init_creates_storage_directory(tmp_path):
    with StorageServer(tmp_path / "new" / "dir", 0) as ss:
        assert ss.storage_path.is_dir()
        assert ss.client_port > 0


def test_read_returns_content(server):
    (server.storage_path / "f.txt").write_text("Hello world. Bye!")
    assert _run_read(server, server.handle_read, "f.txt") == "Hello world. Bye!"


def test_read_missing_file(server):
    assert _run_read(server, server.handle_read, "nope.txt") == "404 ERROR: File not found on SS."


def test_stream_round_trip(server):
    text = "Hi there. Ok\nnext line!"
    (server.storage_path / "s.txt").write_text(text)
    assert _run_read(server, server.handle_stream, "s.txt") == text


def test_stream_caps_long_words(server):
    (server.storage_path / "long.txt").write_text("a" * 300)
    assert _run_read(server, server.handle_stream, "long.txt") == "a" * 255


def test_stream_missing_file(server):
    assert _run_read(server, server.handle_stream, "x").startswith("404 ERROR")


def test_nm_create_and_delete(server):
    ours, nm_side = socket.socketpair()
    server.nm_sock = ours
    with nm_side:
        server.handle_nm_command("CREATE doc.txt")
        assert (server.storage_path / "doc.txt").read_bytes() == b""
        assert nm_side.recv(4096) == b"ACK_CREATE OK"
        (server.storage_path / "doc.txt.undo").write_text("old")
        server.handle_nm_command("DELETE doc.txt")
        assert nm_side.recv(4096) == b"ACK_DELETE OK"
    assert list(server.storage_path.iterdir()) == []


def test_nm_get_content(server):
    (server.storage_path / "g.txt").write_text("script body")
    ours, nm_side = socket.socketpair()
    server.nm_sock = ours
    with nm_side:
        server.handle_nm_command("GET_CONTENT g.txt")
        assert recv_message(nm_side) == "script body"


def test_listen_to_nm_until_disconnect(server):
    ours, nm_side = socket.socketpair()
    server.nm_sock = ours
    with nm_side, ours:
        nm_side.sendall(b"CREATE made.txt")
        nm_side.shutdown(socket.SHUT_WR)
        server.listen_to_nm()
        assert nm_side.recv(4096) == b"ACK_CREATE OK"
    assert server.nm_sock is None
    assert (server.storage_path / "made.txt").exists()


def test_write_new_sentence(server):
    (server.storage_path / "w.txt").write_text("")
    ours, nm_side = socket.socketpair()
    server.nm_sock = ours
    with nm_side:
        ack, final = _write_session(server, "w.txt", 0, "0 Hello world.")
        assert ack == "202 ACK_WRITE: Ready for updates."
        assert final == "200 OK: Write Successful!"
        content = (server.storage_path / "w.txt").read_text()
        assert content == "Hello world."
        info = nm_side.recv(4096).decode().split(" ")
    assert info[:2] == ["INFO_UPDATE", "w.txt"]
    assert int(info[2]) == len(content) == int(info[4])
    assert server.registry.current_log_id() == 1


def test_write_then_undo(server):
    path = server.storage_path / "u.txt"
    path.write_text("First.")
    _write_session(server, "u.txt", 1, "0 Second.")
    assert path.read_text() == "First. Second."
    out = _run_read(server, server.handle_undo, "u.txt")
    assert out == "200 OK: Undo Successful!"
    assert path.read_text() == "First."
    assert _run_read(server, server.handle_undo, "u.txt") == "404 ERROR: No undo history."


def test_write_incomplete_previous_sentence(server):
    (server.storage_path / "i.txt").write_text("Hello")
    ack, final = _write_session(server, "i.txt", 1, "0 more")
    assert ack.startswith("400 ERROR: Sentence index out of range")
    assert final == ""
    assert server.registry.try_lock_sentence("i.txt", 1)


def test_write_locked_sentence(server):
    (server.storage_path / "l.txt").write_text("")
    assert server.registry.try_lock_sentence("l.txt", 0)
    ack, _ = _write_session(server, "l.txt", 0, "0 x")
    assert ack == "423 ERROR: This sentence is being edited by another user."


def test_write_bad_word_index(server):
    path = server.storage_path / "b.txt"
    path.write_text("")
    _, final = _write_session(server, "b.txt", 0, "5 x")
    assert final == "500 ERROR: Invalid update application during commit."
    assert path.read_text() == ""


def test_write_etirw_without_updates(server):
    path = server.storage_path / "e.txt"
    path.write_text("Keep me.")
    ack, final = _write_session(server, "e.txt", 0, "ETIRW")
    assert ack.startswith("202")
    assert final == "200 OK: Write Successful!"
    assert path.read_text() == "Keep me."


@pytest.mark.parametrize(
    "request_text, expected",
    [
        ("READ", "400 ERROR: Invalid command."),
        ("BOGUS f.txt", "400 ERROR: Unknown command for SS."),
        ("WRITE f.txt", "400 ERROR: Usage: WRITE <file> <sent_num>"),
    ],
)
def test_connection_errors(server, request_text, expected):
    a, b = socket.socketpair()
    with b:
        b.settimeout(5)
        b.sendall(request_text.encode())
        server.handle_connection(a, "127.0.0.1")
        assert recv_message(b) == expected


def test_connection_dispatches_read(server):
    (server.storage_path / "f.txt").write_text("data here")
    a, b = socket.socketpair()
    with b:
        b.settimeout(5)
        b.sendall(b"READ f.txt")
        server.handle_connection(a, "127.0.0.1")
        assert recv_message(b) == "data here"


def test_connect_to_nm_announces_files(server):
    (server.storage_path / "a.txt").write_text("x")
    (server.storage_path / "a.txt.undo").write_text("y")
    with socket.socket() as nm:
        nm.bind(("127.0.0.1", 0))
        nm.listen(1)
        server.connect_to_nm("127.0.0.1", nm.getsockname()[1])
        conn, _ = nm.accept()
        with conn:
            message = conn.recv(4096).decode()
    assert message == f"INIT_SS {server.client_port} [a.txt]"


def test_main_wrong_arguments():
    assert main([]) == 1
    assert main(["only", "three", "args"]) == 1