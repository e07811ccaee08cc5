from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from app.services.shared_state import normalize_event


class RosterError(ValueError):
    pass


class ExclusionPolicy(str, enum.Enum):
    MIRROR = "mirror"
    STRICT = "strict"
    DIRECTIONAL = "directional"


@dataclass(frozen=True)
class Participant:
    id: str
    name: str
    exclusions: frozenset = field(default_factory=frozenset)

    def blocks(self, recipient_id: str) -> bool:
        return recipient_id == self.id or recipient_id in self.exclusions


@dataclass(frozen=True)
class RosterConfig:
    participants: Tuple[Participant, ...]
    default_wishlists: Dict[str, dict]
    default_events: Tuple[dict, ...] = ()

    @property
    def ids(self) -> List[str]:
        return [participant.id for participant in self.participants]

    def get(self, participant_id: Optional[str]) -> Optional[Participant]:
        for participant in self.participants:
            if participant.id == participant_id:
                return participant
        return None

    def name_of(self, participant_id: Optional[str]) -> str:
        participant = self.get(participant_id)
        return participant.name if participant else "--"


def _check_unique_ids(participants: Sequence[Participant]) -> None:
    seen = set()
    for participant in participants:
        if participant.id in seen:
            raise RosterError(f"Duplicate participant id: {participant.id}")
        seen.add(participant.id)


def _asymmetric_pairs(participants: Sequence[Participant]) -> List[Tuple[str, str]]:
    by_id = {participant.id: participant for participant in participants}
    pairs = []
    for participant in participants:
        for excluded_id in sorted(participant.exclusions):
            if participant.id not in by_id[excluded_id].exclusions:
                pairs.append((participant.id, excluded_id))
    return pairs


def apply_exclusion_policy(
    participants: Sequence[Participant],
    policy: ExclusionPolicy,
) -> Tuple[Participant, ...]:
    """Reconcile one-sided exclusions according to ``policy``.

    ``mirror`` adds the missing reverse exclusion, ``strict`` refuses the
    roster, ``directional`` keeps exclusions exactly as listed.
    """
    pairs = _asymmetric_pairs(participants)
    if not pairs or policy == ExclusionPolicy.DIRECTIONAL:
        return tuple(participants)

    if policy == ExclusionPolicy.STRICT:
        listed = ", ".join(f"{giver}->{excluded}" for giver, excluded in pairs)
        raise RosterError(f"Exclusions must be mutual. One-sided entries: {listed}")

    mirrored: Dict[str, set] = {participant.id: set(participant.exclusions) for participant in participants}
    for giver_id, excluded_id in pairs:
        mirrored[excluded_id].add(giver_id)
        logger.bind(participant=excluded_id, excluded=giver_id).warning(
            "Mirrored one-sided exclusion"
        )
    return tuple(
        Participant(id=participant.id, name=participant.name, exclusions=frozenset(mirrored[participant.id]))
        for participant in participants
    )


def build_events(entries: Iterable[Mapping]) -> Tuple[dict, ...]:
    events = []
    seen = set()
    for entry in entries:
        event = normalize_event(entry)
        if event is None:
            raise RosterError(f"Events need an id, a title and an ISO date, got {entry!r}")
        if event["id"] in seen:
            raise RosterError(f"Duplicate event id: {event['id']}")
        seen.add(event["id"])
        events.append(event)
    return tuple(events)


def build_roster(
    entries: Iterable[Mapping],
    policy: ExclusionPolicy = ExclusionPolicy.MIRROR,
    events: Iterable[Mapping] = (),
) -> RosterConfig:
    participants: List[Participant] = []
    default_wishlists: Dict[str, dict] = {}

    for entry in entries:
        if not isinstance(entry, Mapping):
            raise RosterError(f"Roster entries must be objects, got {entry!r}")
        participant_id = str(entry.get("id") or "").strip()
        if not participant_id:
            raise RosterError("Every participant needs a non-empty id.")
        name = str(entry.get("name") or participant_id)
        exclusions = {str(item) for item in entry.get("exclusions") or []}
        if participant_id in exclusions:
            logger.bind(participant=participant_id).warning("Ignoring self-exclusion")
            exclusions.discard(participant_id)
        participants.append(Participant(id=participant_id, name=name, exclusions=frozenset(exclusions)))

        wishlist = entry.get("wishlist")
        if isinstance(wishlist, Mapping):
            default_wishlists[participant_id] = {
                "ideas": [str(item) for item in wishlist.get("ideas") or []],
                "links": [str(item) for item in wishlist.get("links") or []],
            }

    if len(participants) < 2:
        raise RosterError("At least 2 participants are required.")

    _check_unique_ids(participants)

    known_ids = {participant.id for participant in participants}
    for participant in participants:
        unknown = sorted(participant.exclusions - known_ids)
        if unknown:
            raise RosterError(
                f"{participant.name} excludes unknown participants: {', '.join(unknown)}"
            )

    return RosterConfig(
        participants=apply_exclusion_policy(participants, ExclusionPolicy(policy)),
        default_wishlists=default_wishlists,
        default_events=build_events(events),
    )


def load_roster(path: str, policy: ExclusionPolicy = ExclusionPolicy.MIRROR) -> RosterConfig:
    roster_path = Path(path)
    try:
        payload = json.loads(roster_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise RosterError(f"Cannot read roster file {roster_path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise RosterError(f"Roster file {roster_path} is not valid JSON: {exc}") from exc

    entries = payload.get("participants") if isinstance(payload, dict) else payload
    if not isinstance(entries, list):
        raise RosterError("Roster must be a list of participants or an object with a 'participants' list.")
    events = (payload.get("events") or []) if isinstance(payload, dict) else []
    if not isinstance(events, list):
        raise RosterError("Roster events must be a list.")

    roster = build_roster(entries, policy, events)
    logger.bind(
        path=str(roster_path),
        size=len(roster.participants),
        events=len(roster.default_events),
    ).info("Roster loaded")
    return roster
