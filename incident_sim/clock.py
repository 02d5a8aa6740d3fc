"""
Incident clock: a background thread that periodically rolls for a new
incident and schedules its expiry.

    tick loop (every 45s)
    ├── incident active?  → nothing
    └── roll < 0.25       → start random kind
                            └── expiry timer (15–90s) → resolve
"""

import logging
import random
import threading

from . import config
from .catalog import INCIDENT_KINDS
from .state import IncidentSnapshot, IncidentState

log = logging.getLogger(__name__)

STARTED = "started"
RESOLVED = "resolved"


class IncidentClock:
    """Owns the only write path into an ``IncidentState``.

    ``rng`` and ``timer_factory`` are injectable so the clock can be driven
    on virtual time in tests; ``timer_factory(interval, fn, args=...)`` must return an
    object with ``start()`` and ``cancel()`` (``threading.Timer`` does).
    """

    def __init__(self, state: IncidentState,
                 period: float = config.INCIDENT_TICK_SECONDS,
                 start_probability: float = config.INCIDENT_START_PROBABILITY,
                 min_duration: float = config.INCIDENT_MIN_SECONDS,
                 max_duration: float = config.INCIDENT_MAX_SECONDS,
                 rng: random.Random = None,
                 timer_factory=threading.Timer):
        if min_duration > max_duration:
            raise ValueError("min_duration must not exceed max_duration")
        self.state = state
        self.period = period
        self.start_probability = start_probability
        self.min_duration = min_duration
        self.max_duration = max_duration
        self._rng = rng or random.Random()
        self._rng_lock = threading.Lock()
        self._timer_factory = timer_factory
        self._listeners = []
        self._expiry = None
        self._expiry_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread = None

    # ── Listeners ───────────────────────────────────────────────────────

    def add_listener(self, fn):
        """Register ``fn(event, snapshot)`` for every start/resolve transition."""
        self._listeners.append(fn)

    def _notify(self, event: str, snapshot: IncidentSnapshot):
        for fn in self._listeners:
            try:
                fn(event, snapshot)
            except Exception:
                log.exception("Incident listener failed on %s", event)

    # ── Transitions ─────────────────────────────────────────────────────

    def tick(self) -> IncidentSnapshot | None:
        """Run one clock period. Returns the started snapshot, if any."""
        if self.state.active:
            return None

        with self._rng_lock:
            roll = self._rng.random()
            kind = self._rng.choice(INCIDENT_KINDS)
            duration = self.min_duration + self._rng.random() * (self.max_duration - self.min_duration)

        if roll >= self.start_probability:
            return None

        snapshot = self.state.start(kind)
        if snapshot is None:
            return None

        log.warning("DATABASE INCIDENT DETECTED: %s (episode=%d, duration=%.0fs)",
                    snapshot.kind.value, snapshot.episode, duration)
        self._schedule_expiry(snapshot, duration)
        self._notify(STARTED, snapshot)
        return snapshot

    def _schedule_expiry(self, snapshot: IncidentSnapshot, duration: float):
        timer = self._timer_factory(duration, self._expire, args=(snapshot,))
        if hasattr(timer, "daemon"):
            timer.daemon = True
        with self._expiry_lock:
            self._expiry = (snapshot.episode, timer)
        timer.start()

    def _expire(self, snapshot: IncidentSnapshot):
        with self._expiry_lock:
            if self._expiry is not None and self._expiry[0] == snapshot.episode:
                self._expiry = None
        resolved = self.state.resolve(snapshot.episode)
        if resolved is None:
            log.debug("Stale expiry for episode %d ignored", snapshot.episode)
            return
        log.info("DATABASE INCIDENT RESOLVED: %s (episode=%d)",
                 resolved.kind.value, resolved.episode)
        self._notify(RESOLVED, resolved)

    # ── Lifecycle ───────────────────────────────────────────────────────

    def _run(self):
        log.info("Incident clock starting (period=%.0fs, p=%.2f, duration=%.0f-%.0fs)",
                 self.period, self.start_probability, self.min_duration, self.max_duration)
        while not self._stop.wait(self.period):
            try:
                self.tick()
            except Exception:
                log.exception("Incident clock tick failed")
        log.info("Incident clock stopped")

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="incident-clock")
        self._thread.start()

    def stop(self, timeout: float = 5.0):
        """Stop the tick loop and cancel any pending expiry."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        # after the join no tick can schedule a new expiry
        with self._expiry_lock:
            pending, self._expiry = self._expiry, None
        if pending is not None:
            episode, timer = pending
            timer.cancel()
            log.info("Cancelled pending expiry for episode %d", episode)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def expiry_pending(self) -> bool:
        with self._expiry_lock:
            return self._expiry is not None
