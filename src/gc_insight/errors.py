"""Error taxonomy for log analysis.

Lines that match no known format are not errors: parsers return ``None``
for them. A line that *is* recognized but cannot be turned into a valid
event raises :class:`MalformedEvent`; the pipeline counts it and moves on.
Only failures of the input source itself abort a run.
"""

from __future__ import annotations

from pathlib import Path


class MalformedEvent(ValueError):
    """A recognized GC line carried a missing, unparsable or inconsistent field."""

    def __init__(self, line: str, field: str, reason: str) -> None:
        super().__init__(line, field, reason)
        self.line = line
        self.field = field
        self.reason = reason

    def __str__(self) -> str:
        return f"{self.field}: {self.reason} in line {self.line.strip()!r}"


class InvariantViolation(MalformedEvent):
    """Heap figures contradict each other (e.g. heap grew across a collection)."""


class InputUnreadable(OSError):
    """The log source could not be opened or read."""

    def __init__(self, path: Path | str, reason: str) -> None:
        super().__init__(str(path), reason)
        self.path = str(path)
        self.reason = reason

    def __str__(self) -> str:
        return f"Cannot read {self.path}: {self.reason}"
