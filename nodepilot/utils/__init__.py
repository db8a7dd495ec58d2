"""Utility functions and helpers for the nodepilot application."""
import logging
import threading
from typing import Callable, Optional

from ..errors import OperationCancelled

ProgressSink = Callable[[str], None]

logger = logging.getLogger("nodepilot.utils")


def safe_progress(sink: Optional[ProgressSink]) -> ProgressSink:
    """Wrap a progress sink so that it can never break the caller.

    Messages are always logged at DEBUG. A sink that raises is reported
    once per message and otherwise ignored.

    Args:
        sink: Caller supplied callback, may be None

    Returns:
        A callable taking a single message string
    """
    def emit(message: str) -> None:
        logger.debug("progress: %s", message)
        if sink is None:
            return
        try:
            sink(message)
        except Exception as e:
            logger.warning(f"Progress sink failed on {message!r}: {e}")

    return emit


def check_cancelled(cancel: Optional[threading.Event], what: str) -> None:
    """Raise OperationCancelled if the cancellation token is set."""
    if cancel is not None and cancel.is_set():
        raise OperationCancelled(f"{what} cancelled")
