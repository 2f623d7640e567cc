from __future__ import annotations

from typing import List, Optional, Tuple

# Type alias for RGB colors used in UI rendering
Color = Tuple[int, int, int]

# ---------------------------------------------------------------------------
# Severity → color helpers (used by the wizard to highlight problems)
# ---------------------------------------------------------------------------

_SEVERITY_COLORS: dict[str, Color] = {
    "info": (200, 200, 200),
    "success": (140, 210, 160),
    "warning": (255, 210, 120),
    "error": (240, 120, 120),
}


def get_severity_color(severity: str) -> Optional[Color]:
    """
    Map a message severity string to an RGB color.

    Returns None if the severity is unknown, so callers can fall back
    to default text colors.
    """
    if not severity:
        return None
    return _SEVERITY_COLORS.get(str(severity).lower())


class MessageLog:
    """
    Manages wizard message history and the current last message.

    Features:
    - Stores message history (entries)
    - Tracks the latest visible message (last_message)
    - Supports multi-line messages (each line becomes a log entry)
    - Automatically clamps log size to prevent memory bloat
    """

    def __init__(self, max_size: int = 60) -> None:
        """
        Initialize a new message log.

        Args:
            max_size: Maximum number of log entries to keep (default 60)
        """
        self.entries: List[str] = []
        # Parallel list storing an optional color for each log entry.
        # If an entry is None, the UI will use its default text color.
        self.entry_colors: List[Optional[Color]] = []

        self.max_size: int = max_size
        self._last_message: str = ""
        self._last_message_color: Optional[Color] = None

    # ------------------------------------------------------------------
    # Core API
    # ------------------------------------------------------------------

    def _append_lines(
        self,
        lines: List[str],
        color: Optional[Color] = None,
    ) -> None:
        """
        Append one or more log lines sharing one color.

        A validation refusal with several problems lands here as one batch.
        """
        self.entries.extend(lines)
        self.entry_colors.extend([color] * len(lines))

        # Clamp log size (keep most recent entries)
        max_len = max(1, int(self.max_size))
        if len(self.entries) > max_len:
            self.entries = self.entries[-max_len:]
            self.entry_colors = self.entry_colors[-max_len:]

        # Visible "last message" is the final line in this batch
        self._last_message = lines[-1]
        self._last_message_color = color

    def add_entry(self, value: str, color: Optional[Color] = None) -> None:
        """
        Add a new message, optionally with a specific text color.

        - Multi-line messages: each non-empty line becomes its own log entry
        - Empty/whitespace-only strings clear the last message
        """
        raw = "" if value is None else str(value)

        # Normalise newlines and split into visible lines
        raw = raw.replace("\r\n", "\n").replace("\r", "\n")
        lines = [ln.strip() for ln in raw.split("\n") if ln.strip()]

        if not lines:
            self._last_message = ""
            self._last_message_color = None
            return

        self._append_lines(lines, color=color)

    def add(self, value: str, severity: str = "info") -> None:
        """add_entry with the color picked from a severity name."""
        self.add_entry(value, color=get_severity_color(severity))

    def add_many(self, values: List[str], severity: str = "warning") -> None:
        lines = [str(v).strip() for v in values if str(v).strip()]
        if lines:
            self._append_lines(lines, color=get_severity_color(severity))

    @property
    def last_message(self) -> str:
        """Latest message; mirrors the final line added to the log."""
        return self._last_message

    @property
    def last_message_color(self) -> Optional[Color]:
        """Color associated with the latest message, if any."""
        return self._last_message_color

    def recent(self, count: int = 5) -> List[Tuple[str, Optional[Color]]]:
        pairs = list(zip(self.entries, self.entry_colors))
        return pairs[-count:] if count > 0 else []

    def clear(self) -> None:
        """Clear all messages and reset the log."""
        self.entries = []
        self.entry_colors = []
        self._last_message = ""
        self._last_message_color = None
