"""
Request outcome simulator: turns one database request plus an incident
snapshot into a simulated outcome: latency, success or failure, and a
synthetic payload.

Nothing in here knows about HTTP or OpenTelemetry. Callers hand the outcome
(``attributes()`` / ``to_response()``) to whatever transport and telemetry
layer they use.
"""

import random
import time
from dataclasses import dataclass, field

from .catalog import IncidentKind, failure_message, resolve_profile
from .state import IncidentSnapshot

# Chance that the health probe still answers healthy during an incident
HEALTHY_DURING_INCIDENT = 0.3


@dataclass(frozen=True)
class OperationRequest:
    user_id: str
    operation: str
    amount: float | None = None


@dataclass(frozen=True)
class SimulationOutcome:
    success: bool
    elapsed_ms: float
    snapshot: IncidentSnapshot = field(default_factory=IncidentSnapshot.idle)
    operation: str = ""
    error_message: str | None = None
    payload: dict | None = None
    timestamp: int = field(default_factory=lambda: int(time.time()))

    @property
    def status(self) -> str:
        return "success" if self.success else "error"

    def attributes(self) -> dict:
        """Flat attributes describing this outcome and the incident behind it."""
        attrs = {
            "operation": self.operation,
            "status": self.status,
            "incident.active": self.snapshot.active,
            "incident.type": self.snapshot.kind.value,
            "query_time_ms": round(self.elapsed_ms, 3),
        }
        if not self.success:
            attrs["error_type"] = self.snapshot.kind.value
        return attrs

    def to_response(self) -> dict:
        body = {
            "status": self.status,
            "query_time_ms": self.elapsed_ms,
            "timestamp": self.timestamp,
        }
        if self.success:
            body["data"] = self.payload
        else:
            body["error"] = self.error_message
        return body


@dataclass(frozen=True)
class HealthReport:
    healthy: bool
    snapshot: IncidentSnapshot
    connections: int = 0


def _payload_for(request: OperationRequest, rng: random.Random) -> dict:
    if request.operation == "get_balance":
        return {
            "user_id": request.user_id,
            "balance": rng.random() * 10000,
            "currency": "USD",
        }
    if request.operation == "balance_check":
        return {
            "user_id": request.user_id,
            "balance": rng.random() * 10000,
            "available_balance": rng.random() * 8000,
            "currency": "USD",
        }
    # Unknown operations still succeed with a generic write result
    return {
        "user_id": request.user_id,
        "result": "success",
        "affected_rows": rng.randint(1, 5),
    }


def simulate(request: OperationRequest, snapshot: IncidentSnapshot,
             rng: random.Random = None, sleep=time.sleep) -> SimulationOutcome:
    """Simulate one database call under the given incident snapshot.

    Blocks for the simulated latency before returning. Without an explicit
    ``rng`` every call draws from its own generator, so concurrent calls share
    no random state.
    """
    r = rng or random.Random()
    profile = resolve_profile(snapshot.kind)

    elapsed_ms = profile.base_latency_ms + r.uniform(0, profile.jitter_max_ms)
    sleep(elapsed_ms / 1000)

    if r.random() < profile.error_rate:
        return SimulationOutcome(
            success=False,
            elapsed_ms=elapsed_ms,
            snapshot=snapshot,
            operation=request.operation,
            error_message=failure_message(snapshot.kind),
        )

    return SimulationOutcome(
        success=True,
        elapsed_ms=elapsed_ms,
        snapshot=snapshot,
        operation=request.operation,
        payload=_payload_for(request, r),
    )


def check_health(snapshot: IncidentSnapshot, rng: random.Random = None) -> HealthReport:
    """Healthy with no incident; during an incident, healthy only 30% of the time."""
    r = rng or random.Random()
    if snapshot.kind == IncidentKind.NONE:
        healthy = True
    else:
        healthy = r.random() < HEALTHY_DURING_INCIDENT
    connections = r.randint(1, 10) if healthy else 0
    return HealthReport(healthy=healthy, snapshot=snapshot, connections=connections)
