"""
Centralized error handling and logging system.

This module provides:
- Centralized error logging to files
- User-friendly error messages
- Custom exception types for the three error categories of the builder:
  validation failures, load failures and invariant violations
- Error recovery mechanisms
"""
import logging
import os
import traceback
from pathlib import Path
from typing import Callable, Iterable, List, Optional
from datetime import datetime

# Setup logging directory
LOG_DIR = Path(os.environ.get("CHARFORGE_LOG_DIR") or Path(__file__).resolve().parent.parent / "logs")
LOG_DIR.mkdir(parents=True, exist_ok=True)

# Configure logger
logger = logging.getLogger("charforge")
logger.setLevel(logging.DEBUG)

# Prevent duplicate handlers
if not logger.handlers:
    # File handler for detailed logs
    log_file = LOG_DIR / f"builder_{datetime.now().strftime('%Y%m%d')}.log"
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    )

    # Console handler for warnings/errors
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(
        logging.Formatter('%(levelname)s: %(message)s')
    )

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)


class CharacterBuilderError(Exception):
    """Base exception for character builder errors."""
    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or message


class ValidationError(CharacterBuilderError):
    """
    A user-correctable problem (missing choice, overspent points, ...).

    Carries every message found so the UI can show them all at once.
    """
    def __init__(self, messages: Iterable[str], user_message: Optional[str] = None):
        self.messages: List[str] = [str(m) for m in messages] or ["Validation failed"]
        super().__init__("; ".join(self.messages), user_message)


class LoadError(CharacterBuilderError):
    """A catalog or upload collaborator could not deliver data."""
    pass


class InvariantViolation(CharacterBuilderError):
    """Programmer error: the engine reached a state that must never happen."""
    def __init__(self, message: str):
        super().__init__(
            message,
            user_message="Something went wrong; your last change was undone.",
        )


# Global reference to the message sink (set by the front end)
_message_sink: Optional[object] = None


def set_message_sink(sink: object) -> None:
    """Set the global message sink reference (anything with add_entry)."""
    global _message_sink
    _message_sink = sink


def log_error(
    error: Exception,
    context: str = "",
    user_message: Optional[str] = None,
    show_to_user: bool = False
) -> None:
    """
    Log an error with context information.

    Args:
        error: The exception that occurred
        context: Where the error occurred (e.g., "ledger_apply", "select_race")
        user_message: User-friendly message to display
        show_to_user: Whether to push user_message to the message sink
    """
    error_type = type(error).__name__
    error_msg = str(error)
    trace = "".join(traceback.format_exception(type(error), error, error.__traceback__))

    logger.error(f"Error in {context}: {error_type}: {error_msg}\n{trace}")

    if show_to_user and user_message and _message_sink is not None and hasattr(_message_sink, "add_entry"):
        _message_sink.add_entry(user_message)


def handle_critical_error(
    error: Exception,
    context: str,
    sink: Optional[object] = None,
    recovery_action: Optional[Callable] = None
) -> bool:
    """
    Handle a critical error that must not take the whole session down.

    Args:
        error: The exception that occurred
        context: Where the error occurred
        sink: Optional message log to show a message on
        recovery_action: Optional function to try for recovery

    Returns:
        True if error was handled, False if caller should re-raise
    """
    user_message = getattr(error, "user_message", None)
    log_error(error, context, user_message=user_message, show_to_user=True)

    handled = False
    if recovery_action:
        try:
            recovery_action()
            logger.info(f"Recovery action executed for {context}")
            handled = True
        except Exception as recovery_error:
            log_error(recovery_error, f"{context}_recovery")

    if sink is not None and hasattr(sink, "add_entry"):
        sink.add_entry(user_message or f"An error occurred: {context}. Check logs for details.")
        handled = True

    return handled
