"""
Proof Session Controller - Layer 3: Which citation's proof is open.

A single-slot state machine owned by one content view. Any source tag or
reference row in that view asks it to open a proof; the proof viewer
subscribes to it.
Responsibilities:
- Hold at most one open source (open replaces the slot, no stacking)
- Keep the outgoing source readable for a short delay after close so the
  closing transition never flashes empty
- Notify subscribers after every transition

Rules:
- ✅ One instance per content view (no module-level state)
- ✅ open() during the clear window cancels the pending clear
- ❌ No document loading (that's proof_viewer's job)
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Protocol

from provenance.citation.source_model import CitationSource
from provenance.config import settings

logger = logging.getLogger(__name__)

STATE_CLOSED = 'closed'
STATE_OPEN = 'open'


class ScheduledCall(Protocol):
    def cancel(self) -> Any:
        ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        ...


class ThreadingScheduler:
    """Runs callbacks on ``threading.Timer`` daemon threads."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


@dataclass(frozen=True)
class ProofSnapshot:
    """What a subscriber sees after a transition."""
    state: str
    source: Optional[CitationSource]

    @property
    def is_open(self) -> bool:
        return self.state == STATE_OPEN


ProofListener = Callable[[ProofSnapshot], None]


class ProofSession:
    """Single-slot open-proof state for one content view."""

    def __init__(self, clear_delay: Optional[float] = None, scheduler: Optional[Scheduler] = None):
        self.clear_delay = settings.proof_clear_delay if clear_delay is None else clear_delay
        self._scheduler = scheduler or ThreadingScheduler()
        self._lock = threading.RLock()
        self._current: Optional[CitationSource] = None
        self._is_open = False
        self._pending_clear: Optional[ScheduledCall] = None
        # Bumped on every open so a late clear for an older close is ignored
        self._generation = 0
        self._listeners: List[ProofListener] = []

    @property
    def current(self) -> Optional[CitationSource]:
        with self._lock:
            return self._current

    @property
    def is_open(self) -> bool:
        with self._lock:
            return self._is_open

    @property
    def state(self) -> str:
        return STATE_OPEN if self.is_open else STATE_CLOSED

    @property
    def has_pending_clear(self) -> bool:
        with self._lock:
            return self._pending_clear is not None

    def snapshot(self) -> ProofSnapshot:
        with self._lock:
            return ProofSnapshot(STATE_OPEN if self._is_open else STATE_CLOSED, self._current)

    def is_current(self, source: CitationSource) -> bool:
        """True if ``source`` is the source currently held in the slot."""
        with self._lock:
            return self._current is not None and self._current.id == source.id

    def open(self, source: CitationSource) -> None:
        with self._lock:
            self._cancel_pending_clear()
            previous = self._current
            self._current = source
            self._is_open = True
            self._generation += 1
            snapshot = ProofSnapshot(STATE_OPEN, source)

        if previous is not None and previous.id != source.id:
            logger.info(f"[PROOF_SESSION] Switched proof [{previous.source_id}] → [{source.source_id}]")
        else:
            logger.info(f"[PROOF_SESSION] Opened proof [{source.source_id}]")
        self._notify(snapshot)

    def close(self) -> None:
        with self._lock:
            if not self._is_open:
                return
            self._is_open = False
            snapshot = ProofSnapshot(STATE_CLOSED, self._current)
            generation = self._generation
            if self.clear_delay > 0:
                self._pending_clear = self._scheduler.call_later(
                    self.clear_delay, lambda: self._clear(generation)
                )
            else:
                self._current = None
                snapshot = ProofSnapshot(STATE_CLOSED, None)

        self._notify(snapshot)

    def _clear(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._is_open:
                # An open() got in first; its source stays
                return
            self._pending_clear = None
            if self._current is None:
                return
            self._current = None
            snapshot = ProofSnapshot(STATE_CLOSED, None)

        logger.debug("[PROOF_SESSION] Deferred clear fired")
        self._notify(snapshot)

    def _cancel_pending_clear(self) -> None:
        if self._pending_clear is not None:
            self._pending_clear.cancel()
            self._pending_clear = None

    def subscribe(self, listener: ProofListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, snapshot: ProofSnapshot) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"[PROOF_SESSION] Listener {listener!r} failed: {e}", exc_info=True)

    def dispose(self) -> None:
        """Tear down when the owning content view unmounts."""
        with self._lock:
            self._cancel_pending_clear()
            self._listeners.clear()
            self._current = None
            self._is_open = False
            self._generation += 1
