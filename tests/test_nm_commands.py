import pytest

from langos.nm_commands import NameService, check_access
from langos.structures import FileMetadata


class FakeSock:
    def __init__(self):
        self.sent = []

    def sendall(self, data):
        self.sent.append(data.decode("utf-8"))


@pytest.fixture
def service(tmp_path):
    return NameService(tmp_path / "nm")


@pytest.fixture
def ss_sock(service):
    sock = FakeSock()
    service.registry.add_ss(sock, "127.0.0.1", 9001)
    return sock


def make_meta():
    meta = FileMetadata(filename="doc.txt", owner="alice")
    meta.access.add("alice", "W")
    return meta


def test_check_access_rules():
    meta = make_meta()
    meta.access.add("bob", "R")
    meta.access.add("carol", "W")
    assert check_access(meta, "alice", "W")
    assert check_access(meta, "bob", "R")
    assert not check_access(meta, "bob", "W")
    assert check_access(meta, "carol", "R")
    assert check_access(meta, "carol", "W")
    assert not check_access(meta, "dave", "R")


def test_register_user_persists(service, tmp_path):
    assert service.register_user("alice")
    assert not service.register_user("alice")
    assert "alice\n" in service.list_users()
    reloaded = NameService(tmp_path / "nm")
    assert reloaded.users == ["alice"]


def test_list_users_header(service):
    service.register_user("alice")
    service.register_user("bob")
    assert service.list_users() == "--- Registered Users ---\nbob\nalice\n"


def test_create_without_storage_server(service):
    assert service.handle("alice", "CREATE a.txt") == "503 ERROR: No storage servers available."


def test_create_sends_to_storage_server(service, ss_sock):
    assert service.handle("alice", "CREATE a.txt") == "201 OK: File created successfully!"
    assert ss_sock.sent == ["CREATE a.txt"]
    assert "a.txt" in service.trie
    assert service.handle("bob", "CREATE a.txt") == "409 ERROR: File already exists."


def test_create_is_persisted(service, ss_sock, tmp_path):
    service.handle("alice", "CREATE a.txt")
    reloaded = NameService(tmp_path / "nm")
    meta = reloaded.table.get("a.txt")
    assert meta.owner == "alice"
    assert meta.ss_client_port == 9001
    assert "a.txt" in reloaded.trie


def test_delete_rules(service, ss_sock):
    service.handle("alice", "CREATE a.txt")
    assert service.handle("alice", "DELETE missing.txt") == "404 ERROR: File not found."
    assert service.handle("bob", "DELETE a.txt") == "401 ERROR: Only the owner can delete a file."
    assert service.handle("alice", "DELETE a.txt") == "200 OK: File deleted successfully."
    assert ss_sock.sent[-1] == "DELETE a.txt"
    assert service.table.get("a.txt") is None
    assert "a.txt" not in service.trie


def test_read_write_permissions(service, ss_sock):
    service.handle("alice", "CREATE a.txt")
    assert service.handle("bob", "READ a.txt") == "401 ERROR: R access denied."
    service.handle("alice", "ADDACCESS -R a.txt bob")
    assert service.handle("bob", "READ a.txt") == "202 OK 127.0.0.1:9001"
    assert service.handle("bob", "WRITE a.txt 0") == "401 ERROR: W access denied."
    assert service.handle("alice", "UNDO a.txt") == "202 OK 127.0.0.1:9001"
    assert service.handle("alice", "READ") == "400 ERROR: Missing filename."


def test_read_when_storage_server_offline(service, ss_sock):
    service.handle("alice", "CREATE a.txt")
    service.registry.remove_ss(ss_sock)
    assert (
        service.handle("alice", "STREAM a.txt")
        == "503 ERROR: Storage server for this file is offline."
    )


def test_access_parsing(service, ss_sock):
    service.handle("alice", "CREATE a.txt")
    assert (
        service.handle("alice", "ADDACCESS -X a.txt bob")
        == "400 ERROR: Invalid permission flag. Use -R or -W."
    )
    assert service.handle("alice", "REMACCESS a.txt").startswith("400 ERROR: Usage:")
    assert (
        service.handle("bob", "ADDACCESS -W a.txt bob")
        == "401 ERROR: Only the owner can change permissions."
    )
    assert service.handle("alice", "ADDACCESS -W a.txt bob") == "200 OK: Access granted."
    assert service.table.get("a.txt").access.get("bob") == "W"
    assert service.handle("alice", "REMACCESS a.txt bob") == "200 OK: Access removed."
    assert service.table.get("a.txt").access.get("bob") is None


def test_view_filters(service, ss_sock):
    assert service.handle("bob", "VIEW") == "(No files to display)\n"
    service.handle("alice", "CREATE a.txt")
    assert service.handle("bob", "VIEW") == "(No files to display)\n"
    assert service.handle("bob", "VIEW -a") == "a.txt\n"
    assert service.handle("alice", "VIEW") == "a.txt\n"


def test_view_details(service, ss_sock):
    service.handle("alice", "CREATE a.txt")
    text = service.handle("alice", "VIEW -al")
    assert "| Filename             | Owner     |" in text
    assert "| a.txt" in text
    assert text.endswith("-" * 80 + "\n")


def test_info(service, ss_sock):
    service.handle("alice", "CREATE a.txt")
    text = service.handle("alice", "INFO a.txt")
    assert text.startswith("--- File Info: a.txt ---\n  Owner: alice")
    assert text.endswith("  Access: alice (W)")
    assert service.handle("bob", "INFO a.txt") == "401 ERROR: Read access denied."
    assert service.handle("alice", "INFO") == "400 ERROR: Usage: INFO <filename>"


def test_unknown_and_blank(service):
    assert service.handle("alice", "FROB x") == "400 ERROR: Unknown command."
    assert service.handle("alice", "   \n") is None


def test_apply_ss_init(service, ss_sock):
    service.handle("alice", "CREATE a.txt")
    online = service.apply_ss_init("10.0.0.5", 9100, ["a.txt", "orphan.txt"])
    assert online == ["a.txt"]
    meta = service.table.get("a.txt")
    assert (meta.ss_ip, meta.ss_client_port) == ("10.0.0.5", 9100)


def test_apply_info_update(service, ss_sock, tmp_path):
    service.handle("alice", "CREATE a.txt")
    assert service.apply_info_update("a.txt", 12, 3, 12)
    assert not service.apply_info_update("nope.txt", 1, 1, 1)
    meta = NameService(tmp_path / "nm").table.get("a.txt")
    assert (meta.size, meta.word_count, meta.char_count) == (12, 3, 12)