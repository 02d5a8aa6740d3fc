"""Incident-correlated request simulation engine."""

from .catalog import IncidentKind, IncidentProfile, profile_for, resolve_profile
from .clock import IncidentClock
from .simulator import OperationRequest, SimulationOutcome, check_health, simulate
from .state import IncidentSnapshot, IncidentState

__all__ = [
    "IncidentClock",
    "IncidentKind",
    "IncidentProfile",
    "IncidentSnapshot",
    "IncidentState",
    "OperationRequest",
    "SimulationOutcome",
    "check_health",
    "profile_for",
    "resolve_profile",
    "simulate",
]
