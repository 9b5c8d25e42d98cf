"""Sentence locks, per-file commit locks and the modification log of a storage server."""

from __future__ import annotations

import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class _Modification:
    id: int
    filename: str
    original_sentence_index: int
    sentence_delta: int


class EditRegistry:
    """Bookkeeping shared by the concurrent WRITE sessions of one storage server."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._commit_locks: dict[str, threading.Lock] = {}
        self._sentence_locks: set[tuple[str, int]] = set()
        self._log: list[_Modification] = []
        self._next_log_id = 0

    def commit_lock(self, filename: str) -> threading.Lock:
        """The lock serialising commits to ``filename``, created on first use."""
        with self._lock:
            return self._commit_locks.setdefault(filename, threading.Lock())

    def try_lock_sentence(self, filename: str, sent_num: int) -> bool:
        """Claim sentence ``sent_num`` of ``filename``; False if already claimed."""
        key = (filename, sent_num)
        with self._lock:
            if key in self._sentence_locks:
                return False
            self._sentence_locks.add(key)
            return True

    def unlock_sentence(self, filename: str, sent_num: int) -> None:
        with self._lock:
            self._sentence_locks.discard((filename, sent_num))

    def log_modification(self, filename: str, index: int, delta: int) -> None:
        """Record that ``delta`` sentences appeared or vanished at ``index``."""
        if delta == 0:
            return
        with self._lock:
            self._log.append(_Modification(self._next_log_id, filename, index, delta))
            self._next_log_id += 1

    def current_log_id(self) -> int:
        """Id the next logged modification will get."""
        with self._lock:
            return self._next_log_id

    def sentence_shift(self, filename: str, original_index: int, start_log_id: int) -> int:
        """Net sentence shift before ``original_index`` since ``start_log_id``."""
        with self._lock:
            return sum(
                entry.sentence_delta
                for entry in self._log
                if entry.id >= start_log_id
                and entry.filename == filename
                and entry.original_sentence_index < original_index
            )