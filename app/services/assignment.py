from __future__ import annotations

import enum
import random
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Set

from app.services.roster import Participant


class Reason(str, enum.Enum):
    NOT_IDENTIFIED = "not_identified"
    ALREADY_RECORDED = "already_recorded"
    NO_RECIPIENT = "no_recipient"
    UNKNOWN_PARTICIPANT = "unknown_participant"
    SELF_DRAW = "self_draw"
    EXCLUDED = "excluded"
    RECIPIENT_TAKEN = "recipient_taken"


class DrawStatus(str, enum.Enum):
    COMPLETED = "completed"
    ALREADY_COMPLETE = "already_complete"
    INFEASIBLE = "infeasible"
    INVALID = "invalid"


INFEASIBLE_MESSAGE = "Unable to find a valid combination. Adjust the manual entries and try again."


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    reason: Optional[Reason] = None
    message: Optional[str] = None
    participant_name: Optional[str] = None


@dataclass(frozen=True)
class ManualEntryResult:
    accepted: bool
    assignments: Dict[str, str]
    reason: Optional[Reason] = None
    message: str = ""


@dataclass(frozen=True)
class DrawResult:
    status: DrawStatus
    assignments: Dict[str, str]
    message: str
    reason: Optional[Reason] = None
    seed: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status in {DrawStatus.COMPLETED, DrawStatus.ALREADY_COMPLETE}


@dataclass(frozen=True)
class DrawingRule:
    participant_id: str
    name: str
    excluded_names: List[str] = field(default_factory=list)


VALID = ValidationResult(ok=True)


def _names(roster: Sequence[Participant]) -> Dict[str, str]:
    return {participant.id: participant.name for participant in roster}


def _violation(reason: Reason, message: str, participant_name: str) -> ValidationResult:
    return ValidationResult(ok=False, reason=reason, message=message, participant_name=participant_name)


def validate(roster: Sequence[Participant], mapping: Mapping[str, str]) -> ValidationResult:
    """Check a partial or complete mapping against the drawing rules.

    Participants are visited in roster order and the first violation is
    reported, so the same input always yields the same diagnostic.
    """
    names = _names(roster)
    recipient_owners: Dict[str, str] = {}

    for person in roster:
        recipient_id = mapping.get(person.id)
        if not recipient_id:
            continue
        if recipient_id == person.id:
            return _violation(Reason.SELF_DRAW, f"{person.name} cannot draw themselves.", person.name)
        if recipient_id in person.exclusions:
            return _violation(
                Reason.EXCLUDED,
                f"{person.name} cannot draw {names.get(recipient_id, recipient_id)}.",
                person.name,
            )
        if recipient_id not in names:
            return _violation(
                Reason.UNKNOWN_PARTICIPANT,
                f"{person.name} drew someone who is not on the roster.",
                person.name,
            )
        if recipient_id in recipient_owners:
            return _violation(
                Reason.RECIPIENT_TAKEN,
                f"{names[recipient_id]} is already assigned to {recipient_owners[recipient_id]}.",
                person.name,
            )
        recipient_owners[recipient_id] = person.name

    for giver_id in mapping:
        if giver_id not in names:
            return _violation(Reason.UNKNOWN_PARTICIPANT, f"{giver_id} is not on the roster.", giver_id)

    return VALID


def _reject(mapping: Mapping[str, str], reason: Reason, message: str) -> ManualEntryResult:
    return ManualEntryResult(accepted=False, assignments=dict(mapping), reason=reason, message=message)


def accept_manual(
    roster: Sequence[Participant],
    mapping: Mapping[str, str],
    giver_id: Optional[str],
    recipient_id: Optional[str],
) -> ManualEntryResult:
    """Record a single giver -> recipient entry.

    ``giver_id`` must already be the acting participant; confirming who is
    acting is left to the caller.
    """
    names = _names(roster)
    giver = next((person for person in roster if person.id == giver_id), None)

    if giver is None:
        return _reject(mapping, Reason.NOT_IDENTIFIED, "Pick your name before recording an entry.")

    if mapping.get(giver.id):
        recorded = names.get(mapping[giver.id], mapping[giver.id])
        return _reject(
            mapping,
            Reason.ALREADY_RECORDED,
            f"You already recorded {recorded}. Ask an organizer if you need to make a change.",
        )

    if not recipient_id:
        return _reject(mapping, Reason.NO_RECIPIENT, "Select the person you drew.")

    if recipient_id not in names:
        return _reject(mapping, Reason.UNKNOWN_PARTICIPANT, f"{recipient_id} is not on the roster.")

    if recipient_id == giver.id:
        return _reject(mapping, Reason.SELF_DRAW, f"{giver.name} cannot draw themselves.")

    if recipient_id in giver.exclusions:
        return _reject(mapping, Reason.EXCLUDED, f"{giver.name} cannot draw {names[recipient_id]}.")

    for other_giver_id, other_recipient_id in mapping.items():
        if other_giver_id != giver.id and other_recipient_id == recipient_id:
            return _reject(
                mapping,
                Reason.RECIPIENT_TAKEN,
                f"{names[recipient_id]} is already assigned to {names.get(other_giver_id, other_giver_id)}.",
            )

    next_mapping = dict(mapping)
    next_mapping[giver.id] = recipient_id
    validation = validate(roster, next_mapping)
    if not validation.ok:
        return _reject(mapping, validation.reason, validation.message)

    return ManualEntryResult(
        accepted=True,
        assignments=next_mapping,
        message="Assignment recorded for everyone.",
    )


def _search(
    givers: Sequence[Participant],
    recipient_ids: Sequence[str],
    working: Dict[str, str],
    used: Set[str],
    rng: random.Random,
    index: int = 0,
) -> Optional[Dict[str, str]]:
    if index == len(givers):
        return dict(working)

    giver = givers[index]
    candidates = [
        recipient_id
        for recipient_id in recipient_ids
        if not giver.blocks(recipient_id) and recipient_id not in used
    ]
    rng.shuffle(candidates)

    for candidate in candidates:
        working[giver.id] = candidate
        used.add(candidate)
        try:
            solved = _search(givers, recipient_ids, working, used, rng, index + 1)
        finally:
            used.discard(candidate)
            del working[giver.id]
        if solved is not None:
            return solved

    return None


def complete_draw(
    roster: Sequence[Participant],
    mapping: Mapping[str, str],
    seed: Optional[int] = None,
) -> DrawResult:
    """Assign every still-unassigned giver, keeping existing entries.

    The search is exhaustive depth-first backtracking over a shuffled giver
    order and shuffled candidates, so its worst case is exponential in the
    number of unassigned givers. Rosters of family size finish instantly and
    an unsatisfiable remainder is reported as ``INFEASIBLE``.
    """
    current = dict(mapping)

    partial = validate(roster, current)
    if not partial.ok:
        return DrawResult(DrawStatus.INVALID, current, partial.message, reason=partial.reason, seed=seed)

    unassigned = [person for person in roster if not current.get(person.id)]
    if not unassigned:
        return DrawResult(DrawStatus.ALREADY_COMPLETE, current, "Everyone already has an assignment.", seed=seed)

    rng = random.Random(seed)
    givers = list(unassigned)
    rng.shuffle(givers)
    used = set(current.values())
    recipient_ids = [person.id for person in roster]

    solved = _search(givers, recipient_ids, dict(current), used, rng)
    if solved is None:
        return DrawResult(DrawStatus.INFEASIBLE, current, INFEASIBLE_MESSAGE, seed=seed)

    final = validate(roster, solved)
    if not final.ok or len(solved) != len(roster):
        return DrawResult(
            DrawStatus.INVALID,
            current,
            final.message or "Draw produced an incomplete assignment.",
            reason=final.reason,
            seed=seed,
        )

    return DrawResult(DrawStatus.COMPLETED, solved, "Remaining names assigned successfully!", seed=seed)


def reveal(mapping: Mapping[str, str], participant_id: Optional[str]) -> Optional[str]:
    if not participant_id:
        return None
    return mapping.get(participant_id) or None


def unassigned_participants(roster: Sequence[Participant], mapping: Mapping[str, str]) -> List[Participant]:
    return [person for person in roster if not mapping.get(person.id)]


def recipient_options(
    roster: Sequence[Participant],
    mapping: Mapping[str, str],
    giver_id: Optional[str],
) -> List[Participant]:
    giver = next((person for person in roster if person.id == giver_id), None)
    if giver is None or mapping.get(giver.id):
        return []
    used = set(mapping.values())
    return [person for person in roster if not giver.blocks(person.id) and person.id not in used]


def drawing_rules(roster: Sequence[Participant]) -> List[DrawingRule]:
    return [
        DrawingRule(
            person.id,
            person.name,
            [other.name for other in roster if other.id in person.exclusions],
        )
        for person in roster
        if person.exclusions
    ]
