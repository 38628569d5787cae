"""Bounded, stateless reads of newly appended log bytes.

This module reads "everything new since offset" from a log file in a single
bounded read, normalizes line endings, and splits the result into raw lines.
The caller supplies the offset every time; no seek state is kept.
"""

from __future__ import annotations

import codecs
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .errors import SourceUnavailable, TransientReadFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Chunk:
    """Result of one read.

    Attributes:
        lines: Raw lines in file order. A trailing partial line is kept.
        new_offset: Offset just past the bytes read.
        size: File size observed at read time.
    """

    lines: list[str] = field(default_factory=list)
    new_offset: int = 0
    size: int = 0


def normalize_line_endings(text: str) -> str:
    """Convert CRLF and lone CR line endings to LF."""
    return text.replace("\r\n", "\n").replace("\r", "\n")


def incomplete_utf8_tail(data: bytes) -> int:
    """Return how many trailing bytes form an unfinished UTF-8 sequence."""
    for back in range(1, min(4, len(data)) + 1):
        byte = data[-back]
        if 0x80 <= byte <= 0xBF:
            continue
        if byte >= 0xF8:
            return 0
        if byte >= 0xF0:
            needed = 4
        elif byte >= 0xE0:
            needed = 3
        elif byte >= 0xC0:
            needed = 2
        else:
            return 0
        return back if back < needed else 0
    return 0


def split_lines(text: str) -> list[str]:
    """Split normalized text into raw lines.

    A terminating newline does not produce an empty trailing line, but an
    unterminated final line is returned as-is.
    """
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


class ChunkReader:
    """Reads the bytes appended to a log file since a given offset.

    Attributes:
        encoding: Text encoding of the log file. Undecodable bytes are replaced.
    """

    def __init__(self, encoding: str = "utf-8"):
        """Initialize chunk reader.

        Args:
            encoding: Text encoding of the log file.
        """
        self.encoding = encoding
        self._utf8 = codecs.lookup(encoding).name == "utf-8"

    def size(self, path: str | Path) -> int:
        """Return the current size of the file.

        Raises:
            SourceUnavailable: If the file does not exist.
            TransientReadFailure: If the file cannot be inspected.
        """
        try:
            return os.stat(path).st_size
        except FileNotFoundError:
            raise SourceUnavailable(str(path)) from None
        except OSError as e:
            raise TransientReadFailure(f"Failed to stat {path}: {e}") from e

    def read(self, path: str | Path, offset: int) -> Chunk:
        """Read everything appended since ``offset``.

        Args:
            path: Log file to read.
            offset: Byte position already delivered.

        Returns:
            Chunk with the raw lines and the offset past the bytes read. When
            the file is not larger than ``offset`` the chunk is empty and the
            offset is unchanged. A UTF-8 character cut off by the end of the
            file is left for the next read; one cut by ``offset`` itself (the
            start of a backlog window) decodes as U+FFFD.

        Raises:
            SourceUnavailable: If the file does not exist.
            TransientReadFailure: On any other I/O error.
        """
        if offset < 0:
            raise ValueError(f"Offset must not be negative: {offset}")

        try:
            with open(path, "rb") as f:
                size = os.fstat(f.fileno()).st_size
                if size <= offset:
                    return Chunk(lines=[], new_offset=offset, size=size)

                f.seek(offset)
                data = f.read(size - offset)
        except FileNotFoundError:
            raise SourceUnavailable(str(path)) from None
        except OSError as e:
            raise TransientReadFailure(f"Failed to read {path}: {e}") from e

        if self._utf8:
            held = incomplete_utf8_tail(data)
            if held:
                data = data[:-held]

        new_offset = offset + len(data)
        text = normalize_line_endings(data.decode(self.encoding, errors="replace"))
        lines = split_lines(text)

        logger.debug(
            f"Read {len(data)} bytes ({len(lines)} lines) from {path} "
            f"(offset {offset} -> {new_offset})"
        )
        return Chunk(lines=lines, new_offset=new_offset, size=size)
