"""
Clipboard / export sinks that receive formatted citation references.
"""
import logging
import threading
from collections import deque
from typing import Callable, List, Optional, Protocol

logger = logging.getLogger(__name__)


class ClipboardSink(Protocol):
    def write(self, text: str) -> None:
        ...


class InMemoryClipboard:
    """Keeps the most recent copied strings; the HTTP layer hands ``latest`` back to the client."""

    def __init__(self, max_history: int = 20):
        self._history: deque = deque(maxlen=max(1, max_history))
        self._lock = threading.Lock()

    def write(self, text: str) -> None:
        with self._lock:
            self._history.append(text)

    @property
    def latest(self) -> Optional[str]:
        with self._lock:
            return self._history[-1] if self._history else None

    @property
    def history(self) -> List[str]:
        with self._lock:
            return list(self._history)


class CallbackClipboard:
    """Forwards copied text to a host-provided callable (e.g. a desktop clipboard bridge)."""

    def __init__(self, callback: Callable[[str], None]):
        self._callback = callback

    def write(self, text: str) -> None:
        logger.debug(f"[CLIPBOARD] Copying {len(text)} chars")
        self._callback(text)
