"""Error taxonomy for log parsing and georeferencing."""

from typing import Optional


class GeorefError(Exception):
    """Base class for all pipeline errors."""


class MalformedRecord(GeorefError):
    """A log line does not match its expected shape or width."""

    def __init__(
        self,
        message: str,
        line: str = "",
        line_number: Optional[int] = None,
        offset: Optional[int] = None,
    ):
        self.message = message
        self.line = line
        self.line_number = line_number
        self.offset = offset
        super().__init__(str(self))

    def __str__(self) -> str:
        where = []
        if self.line_number is not None:
            where.append(f"line {self.line_number}")
        if self.offset is not None:
            where.append(f"offset {self.offset}")
        prefix = f"{', '.join(where)}: " if where else ""
        return f"{prefix}{self.message}: {self.line.rstrip()!r}"


class BufferExhausted(GeorefError):
    """A read or write would go past the end of a pre-sized buffer."""


class NonFiniteMeasurement(GeorefError):
    """A distance or angle is NaN or infinite."""
