from app.services.assignment import (
    DrawResult,
    DrawStatus,
    ManualEntryResult,
    Reason,
    ValidationResult,
    accept_manual,
    complete_draw,
    reveal,
    validate,
)
from app.services.roster import Participant, RosterConfig, RosterError
from app.services.state_store import StateStore, StoreUnavailableError

__all__ = [
    "DrawResult",
    "DrawStatus",
    "ManualEntryResult",
    "Reason",
    "ValidationResult",
    "accept_manual",
    "complete_draw",
    "reveal",
    "validate",
    "Participant",
    "RosterConfig",
    "RosterError",
    "StateStore",
    "StoreUnavailableError",
]
