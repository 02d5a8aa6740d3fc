"""
Process-wide incident state, shared by every request handler and written only
by the incident clock.
"""

import threading
from dataclasses import dataclass

from .catalog import IncidentKind


@dataclass(frozen=True)
class IncidentSnapshot:
    """Point-in-time view of the incident state.

    ``active`` is derived from ``kind``, so a snapshot can never claim an
    active incident of kind ``none``. ``episode`` increments with every
    incident started and lets an expiry tell whether its incident is still
    the current one.
    """

    kind: IncidentKind = IncidentKind.NONE
    episode: int = 0

    @property
    def active(self) -> bool:
        return self.kind != IncidentKind.NONE

    @classmethod
    def idle(cls, episode: int = 0) -> "IncidentSnapshot":
        return cls(IncidentKind.NONE, episode)


class IncidentState:
    """Thread-safe holder of the current ``IncidentSnapshot``.

    The snapshot is swapped as one reference under a single lock, so readers
    always see kind and active flag change together.
    """

    def __init__(self):
        self._current = IncidentSnapshot.idle()
        self._lock = threading.Lock()

    def snapshot(self) -> IncidentSnapshot:
        with self._lock:
            return self._current

    @property
    def active(self) -> bool:
        return self.snapshot().active

    @property
    def kind(self) -> IncidentKind:
        return self.snapshot().kind

    def start(self, kind: IncidentKind) -> IncidentSnapshot | None:
        """Start an incident if none is active. Returns the new snapshot, or
        None when an incident was already running."""
        kind = IncidentKind(kind)
        if kind == IncidentKind.NONE:
            raise ValueError("cannot start an incident of kind 'none'")
        with self._lock:
            if self._current.active:
                return None
            self._current = IncidentSnapshot(kind, self._current.episode + 1)
            return self._current

    def resolve(self, episode: int | None = None) -> IncidentSnapshot | None:
        """Return to idle. With ``episode``, only if that incident is still
        current. Returns the snapshot that was resolved, or None."""
        with self._lock:
            previous = self._current
            if not previous.active:
                return None
            if episode is not None and previous.episode != episode:
                return None
            self._current = IncidentSnapshot.idle(previous.episode)
            return previous
