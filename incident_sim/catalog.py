"""
Incident catalog: the closed set of incident kinds and the latency/error
profile each one imposes on simulated database calls.
"""

from dataclasses import dataclass
from enum import Enum


class IncidentKind(str, Enum):
    NONE = "none"
    CONNECTION_TIMEOUT = "connection_timeout"
    HIGH_LATENCY = "high_latency"
    CONNECTION_REFUSED = "connection_refused"
    DEADLOCK = "deadlock"
    DISK_FULL = "disk_full"


# Kinds the clock can start, in catalog order
INCIDENT_KINDS = (
    IncidentKind.CONNECTION_TIMEOUT,
    IncidentKind.HIGH_LATENCY,
    IncidentKind.CONNECTION_REFUSED,
    IncidentKind.DEADLOCK,
    IncidentKind.DISK_FULL,
)


@dataclass(frozen=True)
class IncidentProfile:
    error_rate: float
    base_latency_ms: float
    jitter_max_ms: float


class UnknownIncidentError(KeyError):
    """Raised when looking up a profile for a kind with no catalog entry."""


# ── Profiles ────────────────────────────────────────────────────────────

BASELINE_PROFILE = IncidentProfile(error_rate=0.02, base_latency_ms=50, jitter_max_ms=100)

PROFILES = {
    IncidentKind.CONNECTION_TIMEOUT: IncidentProfile(error_rate=0.85, base_latency_ms=5000, jitter_max_ms=3000),
    IncidentKind.HIGH_LATENCY:       IncidentProfile(error_rate=0.15, base_latency_ms=2000, jitter_max_ms=1000),
    IncidentKind.CONNECTION_REFUSED: IncidentProfile(error_rate=0.95, base_latency_ms=100,  jitter_max_ms=0),
    IncidentKind.DEADLOCK:           IncidentProfile(error_rate=0.40, base_latency_ms=1000, jitter_max_ms=2000),
    IncidentKind.DISK_FULL:          IncidentProfile(error_rate=0.70, base_latency_ms=3000, jitter_max_ms=0),
}

# ── Failure messages ────────────────────────────────────────────────────

DEFAULT_FAILURE_MESSAGE = "database connection error"

FAILURE_MESSAGES = {
    IncidentKind.CONNECTION_TIMEOUT: "connection timeout after 30 seconds",
    IncidentKind.CONNECTION_REFUSED: "connection refused by database server",
    IncidentKind.DEADLOCK:           "deadlock detected in database transaction",
    IncidentKind.DISK_FULL:          "insufficient disk space for database operation",
}


def profile_for(kind: IncidentKind) -> IncidentProfile:
    """Return the profile of an active incident kind.

    There is no entry for ``IncidentKind.NONE``; callers wanting the
    no-incident row use ``resolve_profile`` instead.
    """
    try:
        return PROFILES[IncidentKind(kind)]
    except (KeyError, ValueError):
        raise UnknownIncidentError(kind) from None


def resolve_profile(kind: IncidentKind) -> IncidentProfile:
    if kind == IncidentKind.NONE:
        return BASELINE_PROFILE
    return profile_for(kind)


def failure_message(kind: IncidentKind) -> str:
    return FAILURE_MESSAGES.get(kind, DEFAULT_FAILURE_MESSAGE)
