"""
LogBuffer for capturing child process output.

Ring buffer holding the most recent lines of a slot's output. Uses
collections.deque with maxlen so appending to a full buffer drops the
oldest line before the new one lands.

Lines are stored as given. Trimming happens in the supervisor, where
raw pipe bytes become text.
"""

from collections import deque
from collections.abc import Iterator


class LogBuffer:
    """
    Capacity-bounded, oldest-first sequence of log lines.

    Example:
        buffer = LogBuffer(capacity=3)
        for line in "abcd":
            buffer.append(line)
        buffer.get_lines()  # ["b", "c", "d"]
    """

    def __init__(self, capacity: int = 20) -> None:
        """
        Initialize buffer with maximum line count.

        Args:
            capacity: Maximum number of lines to keep (default 20)

        Raises:
            ValueError: If capacity is less than 1
        """
        if capacity < 1:
            raise ValueError(f"LogBuffer capacity must be >= 1, got {capacity}")
        self._buffer: deque[str] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        """Maximum number of lines kept."""
        return self._buffer.maxlen or 0

    def append(self, line: str) -> None:
        """Add a line, evicting the oldest one when full."""
        self._buffer.append(line)

    def extend(self, lines: list[str]) -> None:
        """Append several lines in order."""
        self._buffer.extend(lines)

    def get_lines(self, n: int | None = None) -> list[str]:
        """
        Get last n lines (or all if n is None).

        Args:
            n: Number of lines to return, or None for all lines

        Returns:
            List of lines, newest last
        """
        lines = list(self._buffer)
        if n is not None:
            return lines[-n:] if n > 0 else []
        return lines

    def get_text(self, n: int | None = None) -> str:
        """Get lines joined with newlines."""
        return "\n".join(self.get_lines(n))

    def __len__(self) -> int:
        """Return number of lines in buffer."""
        return len(self._buffer)

    def __iter__(self) -> Iterator[str]:
        """Iterate over lines in buffer."""
        return iter(self._buffer)

    def clear(self) -> None:
        """Clear all lines from buffer."""
        self._buffer.clear()
