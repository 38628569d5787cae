"""Severity classification and level filtering of raw log lines.

Lines are classified by fixed substring markers written by the game server
(``[Server thread/WARN]: ...``). Filtering is marker-exact: a subscriber
asking for WARN receives lines that carry the WARN marker, not everything at
WARN or above.
"""

from __future__ import annotations

from collections.abc import Iterable

from .models import LevelFilter, LogRecord, Severity

# Ordered by precedence, highest first
SEVERITY_MARKERS: dict[Severity, str] = {
    Severity.ERROR: "/ERROR]",
    Severity.WARN: "/WARN]",
    Severity.INFO: "/INFO]",
}


def classify(raw_line: str) -> Severity:
    """Classify a raw line.

    ERROR beats WARN, WARN beats INFO, and INFO is the default for lines
    carrying no marker at all.
    """
    for severity, marker in SEVERITY_MARKERS.items():
        if marker in raw_line:
            return severity
    return Severity.INFO


def has_marker(raw_line: str) -> bool:
    return any(marker in raw_line for marker in SEVERITY_MARKERS.values())


def accept(raw_line: str, level_filter: LevelFilter) -> bool:
    """Decide whether a line is delivered under the given filter.

    Args:
        raw_line: Line as read from the file.
        level_filter: Filter fixed on the subscription.

    Returns:
        For ALL, True if the line carries any severity marker. Otherwise True
        only if the line carries the marker named by the filter.
    """
    if level_filter is LevelFilter.ALL:
        return has_marker(raw_line)
    return SEVERITY_MARKERS[Severity(level_filter.value)] in raw_line


def escape_newlines(text: str) -> str:
    return text.replace("\n", "\\n")


def to_record(raw_line: str, level_filter: LevelFilter) -> LogRecord | None:
    """Classify and filter one line, returning None when it is withheld."""
    if not accept(raw_line, level_filter):
        return None
    return LogRecord(severity=classify(raw_line), text=escape_newlines(raw_line))


class LineFilter:
    """Applies one subscription's filter to batches of raw lines."""

    def __init__(self, level_filter: LevelFilter):
        self.level_filter = level_filter

    def apply(self, raw_lines: Iterable[str]) -> list[LogRecord]:
        """Return the accepted lines as records, preserving file order."""
        records = []
        for raw_line in raw_lines:
            record = to_record(raw_line, self.level_filter)
            if record is not None:
                records.append(record)
        return records
