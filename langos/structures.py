"""In-memory structures kept by the name server: trie, access lists and file table."""

from __future__ import annotations

import itertools
import threading
import time
from dataclasses import dataclass, field
from typing import Iterator

HT_SIZE = 1024
_ULONG_MASK = (1 << 64) - 1


def hash_function(key: str) -> int:
    """djb2 hash of ``key`` reduced to a bucket index in ``range(HT_SIZE)``."""
    value = 5381
    for byte in key.encode("utf-8"):
        signed = byte - 256 if byte > 127 else byte
        value = (value * 33 + signed) & _ULONG_MASK
    return value % HT_SIZE


@dataclass
class _TrieNode:
    children: dict[str, _TrieNode] = field(default_factory=dict)
    is_end: bool = False


class Trie:
    """Thread-safe prefix tree of file names."""

    def __init__(self) -> None:
        self._root = _TrieNode()
        self._lock = threading.Lock()

    def insert(self, filename: str) -> None:
        with self._lock:
            node = self._root
            for ch in filename:
                node = node.children.setdefault(ch, _TrieNode())
            node.is_end = True

    def search(self, filename: str) -> bool:
        with self._lock:
            node = self._root
            for ch in filename:
                node = node.children.get(ch)
                if node is None:
                    return False
            return node.is_end

    def delete(self, filename: str) -> None:
        """Remove ``filename`` and prune nodes no other name needs."""
        with self._lock:
            path: list[tuple[_TrieNode, str]] = []
            node = self._root
            for ch in filename:
                child = node.children.get(ch)
                if child is None:
                    return
                path.append((node, ch))
                node = child
            if not node.is_end:
                return
            node.is_end = False
            for parent, ch in reversed(path):
                child = parent.children[ch]
                if child.is_end or child.children:
                    break
                del parent.children[ch]

    def __contains__(self, filename: object) -> bool:
        return isinstance(filename, str) and self.search(filename)

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            names: list[str] = []
            stack: list[tuple[_TrieNode, str]] = [(self._root, "")]
            while stack:
                node, prefix = stack.pop()
                if node.is_end:
                    names.append(prefix)
                for ch in sorted(node.children, reverse=True):
                    stack.append((node.children[ch], prefix + ch))
        return iter(names)


class AccessList:
    """Per-file permissions; newest users come first, updates keep their place."""

    def __init__(self) -> None:
        self._perms: dict[str, str] = {}

    def add(self, username: str, perm: str) -> None:
        self._perms[username] = perm

    def remove(self, username: str) -> None:
        self._perms.pop(username, None)

    def get(self, username: str) -> str | None:
        return self._perms.get(username)

    def format(self) -> str:
        return ", ".join(f"{user} ({perm})" for user, perm in self)

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(list(reversed(self._perms.items())))

    def __len__(self) -> int:
        return len(self._perms)

    def __contains__(self, username: object) -> bool:
        return username in self._perms


def _now() -> int:
    return int(time.time())


@dataclass(eq=False)
class FileMetadata:
    """Everything the name server knows about one file."""

    filename: str
    owner: str
    ss_ip: str = ""
    ss_client_port: int = 0
    access: AccessList = field(default_factory=AccessList)
    size: int = 0
    word_count: int = 0
    char_count: int = 0
    created_at: int = field(default_factory=_now)
    last_modified: int = field(default_factory=_now)
    last_accessed: int = field(default_factory=_now)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class FileTable:
    """Thread-safe map of file name to metadata.

    Iteration follows bucket order of :func:`hash_function`, newest entry first
    within a bucket.
    """

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self._entries: dict[str, tuple[int, FileMetadata]] = {}
        self._seq = itertools.count()

    def insert(self, metadata: FileMetadata) -> None:
        """Add ``metadata``; raises ``ValueError`` if the name is already present."""
        with self.lock:
            if metadata.filename in self._entries:
                raise ValueError(f"file already exists: {metadata.filename}")
            self._entries[metadata.filename] = (next(self._seq), metadata)

    def get(self, filename: str) -> FileMetadata | None:
        with self.lock:
            entry = self._entries.get(filename)
            return entry[1] if entry else None

    def delete(self, filename: str) -> None:
        with self.lock:
            self._entries.pop(filename, None)

    def files(self) -> list[FileMetadata]:
        with self.lock:
            ordered = sorted(
                self._entries.items(),
                key=lambda item: (hash_function(item[0]), -item[1][0]),
            )
        return [meta for _, (_, meta) in ordered]

    def __len__(self) -> int:
        with self.lock:
            return len(self._entries)

    def __contains__(self, filename: object) -> bool:
        with self.lock:
            return filename in self._entries

    def __iter__(self) -> Iterator[FileMetadata]:
        return iter(self.files())