"""Sentence and word handling for the storage server's WRITE operation."""

from __future__ import annotations

from .protocol import split_string

_DELIMITERS = frozenset(".!?")
_WHITESPACE = frozenset(" \t\n\v\f\r")


class UpdateError(ValueError):
    """Raised when an update addresses a sentence or word that does not exist."""


def is_delimiter(c: str) -> bool:
    """True if ``c`` is one of the sentence delimiters ``.``, ``!`` or ``?``."""
    return c in _DELIMITERS


def split_into_sentences(content: str) -> list[str]:
    """Split ``content`` into sentences, each keeping its closing delimiter.

    Whitespace after a delimiter is dropped; text after the last delimiter
    becomes a final, unterminated sentence.
    """
    sentences: list[str] = []
    start = 0
    length = len(content)
    for pos, ch in enumerate(content):
        if ch in _DELIMITERS:
            sentences.append(content[start:pos + 1])
            start = pos + 1
            while start < length and content[start] in _WHITESPACE:
                start += 1
    if start < length:
        sentences.append(content[start:])
    return sentences


def split_into_words(sentence: str) -> list[str]:
    """Split ``sentence`` on whitespace, emitting each delimiter as its own word."""
    words: list[str] = []
    current: list[str] = []
    for ch in sentence:
        if ch in _WHITESPACE:
            if current:
                words.append("".join(current))
                current.clear()
        elif ch in _DELIMITERS:
            if current:
                words.append("".join(current))
                current.clear()
            words.append(ch)
        else:
            current.append(ch)
    if current:
        words.append("".join(current))
    return words


def join_words(words: list[str]) -> str:
    """Join words with single spaces, never putting a space before a delimiter."""
    parts: list[str] = []
    for word, following in zip(words, [*words[1:], None]):
        parts.append(word)
        if following is not None and following[:1] not in _DELIMITERS:
            parts.append(" ")
    return "".join(parts)


def join_sentences(sentences: list[str]) -> str:
    """Join sentences with a space unless the next one already starts with one."""
    parts: list[str] = []
    for sentence, following in zip(sentences, [*sentences[1:], None]):
        parts.append(sentence)
        if following is not None and not following.startswith(" "):
            parts.append(" ")
    return "".join(parts)


def apply_single_update(content: str, sent_num: int, word_idx: int, new_content: str) -> str:
    """Insert the words of ``new_content`` before word ``word_idx`` of sentence ``sent_num``.

    ``sent_num`` may equal the number of sentences to start a new one, and
    ``word_idx`` may equal the sentence's word count to append. The result is
    re-split so that delimiters in the inserted text form new sentences.
    Raises :class:`UpdateError` when either index is out of range.
    """
    sentences = split_into_sentences(content)
    if sent_num < 0 or sent_num > len(sentences):
        raise UpdateError(f"sentence index {sent_num} out of range")
    if sent_num == len(sentences):
        sentences.append("")

    words = split_into_words(sentences[sent_num])
    if word_idx < 0 or word_idx > len(words):
        raise UpdateError(f"word index {word_idx} out of range")

    inserted = split_string(new_content, " ")
    sentences[sent_num] = join_words(words[:word_idx] + inserted + words[word_idx:])

    merged = join_sentences(sentences)
    return join_sentences(split_into_sentences(merged))