from __future__ import annotations

import datetime
import random
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from loguru import logger

from app.services import assignment
from app.services.assignment import DrawingRule, DrawStatus
from app.services.roster import Participant, RosterConfig
from app.services.shared_state import (
    EVENT_TYPES,
    format_timestamp,
    merge_events,
    merge_wishlists,
    parse_event_date,
    prune_messages,
)
from app.services.state_store import StateStore, StoreUnavailableError

OFFLINE_MESSAGE = "Sync service is offline. Try again once the state store is reachable."
SAVE_FAILED_MESSAGE = "Saving changes failed. The change may not have persisted; try again once the state store is reachable."
WISHLIST_KINDS = {"idea": "ideas", "link": "links"}
MAX_MESSAGE_LENGTH = 500
UPCOMING_BIRTHDAYS = 3


@dataclass(frozen=True)
class StateView:
    state: Dict[str, Any]
    offline: bool

    @property
    def assignments(self) -> Dict[str, str]:
        return dict(self.state.get("assignments", {}))


@dataclass(frozen=True)
class FlowResult:
    ok: bool
    message: str
    assignments: Dict[str, str]
    persisted: bool = False
    offline: bool = False
    status: Optional[DrawStatus] = None
    reason: Optional[assignment.Reason] = None


@dataclass(frozen=True)
class RevealView:
    participant_id: str
    recipient_id: Optional[str]
    recipient_name: Optional[str]
    message: str
    ideas: List[str] = field(default_factory=list)
    links: List[str] = field(default_factory=list)
    offline: bool = False


@dataclass(frozen=True)
class StatusView:
    unassigned: List[Participant]
    rules: List[DrawingRule]
    offline: bool


class DrawFlow:
    def __init__(self, store: StateStore, roster: RosterConfig) -> None:
        self.store = store
        self.roster = roster

    @property
    def participants(self):
        return self.roster.participants

    def current_state(self) -> StateView:
        try:
            return StateView(self.store.load(), offline=False)
        except StoreUnavailableError:
            return StateView(self.store.last_known, offline=True)

    def _persist(self, sections: Dict[str, Any], message: str, **extra) -> FlowResult:
        assignments = sections.get("assignments")
        try:
            saved = self.store.save(sections)
        except StoreUnavailableError:
            return FlowResult(
                ok=True,
                message=f"{message} {SAVE_FAILED_MESSAGE}",
                assignments=dict(assignments if assignments is not None else self.store.last_known["assignments"]),
                persisted=False,
                offline=True,
                **extra,
            )
        return FlowResult(
            ok=True,
            message=message,
            assignments=dict(saved["assignments"]),
            persisted=True,
            **extra,
        )

    def _load_for_write(self) -> Optional[Dict[str, Any]]:
        try:
            return self.store.load()
        except StoreUnavailableError:
            return None

    def _offline_result(self) -> FlowResult:
        return FlowResult(
            ok=False,
            message=OFFLINE_MESSAGE,
            assignments=self.store.last_known["assignments"],
            offline=True,
        )

    def record_manual(self, giver_id: Optional[str], recipient_id: Optional[str]) -> FlowResult:
        state = self._load_for_write()
        if state is None:
            return self._offline_result()

        result = assignment.accept_manual(self.participants, state["assignments"], giver_id, recipient_id)
        if not result.accepted:
            logger.bind(giver=giver_id, reason=result.reason.value).info("Manual entry rejected")
            return FlowResult(
                ok=False,
                message=result.message,
                assignments=result.assignments,
                reason=result.reason,
            )

        logger.bind(giver=giver_id).info("Manual entry recorded")
        return self._persist({"assignments": result.assignments}, result.message)

    def draw_remaining(self, seed: Optional[int] = None) -> FlowResult:
        state = self._load_for_write()
        if state is None:
            return self._offline_result()

        if seed is None:
            seed = random.randint(1, 2**31 - 1)

        remaining = len(assignment.unassigned_participants(self.participants, state["assignments"]))
        result = assignment.complete_draw(self.participants, state["assignments"], seed=seed)
        log = logger.bind(seed=seed, remaining=remaining, status=result.status.value)

        if result.status == DrawStatus.COMPLETED:
            log.info("Remaining names drawn")
            return self._persist(
                {"assignments": result.assignments},
                result.message,
                status=result.status,
            )

        if result.status == DrawStatus.ALREADY_COMPLETE:
            log.info("Draw requested with everyone assigned")
        else:
            log.warning("Draw did not complete: {message}", message=result.message)
        return FlowResult(
            ok=result.ok,
            message=result.message,
            assignments=result.assignments,
            status=result.status,
            reason=result.reason,
        )

    def clear_assignments(self) -> FlowResult:
        logger.info("Clearing all assignments")
        return self._persist({"assignments": {}}, "All assignments cleared.")

    def recipient_options(self, giver_id: Optional[str]) -> List[Participant]:
        view = self.current_state()
        return assignment.recipient_options(self.participants, view.assignments, giver_id)

    def reveal_for(self, participant_id: Optional[str]) -> RevealView:
        view = self.current_state()
        recipient_id = assignment.reveal(view.assignments, participant_id)
        if recipient_id is None:
            message = (
                "Pick your name first."
                if not participant_id
                else "No assignment found yet. Try again after the draw is complete."
            )
            return RevealView(participant_id or "", None, None, message, offline=view.offline)

        recipient_name = self.roster.name_of(recipient_id)
        wishlist = self._wishlists(view.state).get(recipient_id, {"ideas": [], "links": []})
        return RevealView(
            participant_id=participant_id,
            recipient_id=recipient_id,
            recipient_name=recipient_name,
            message=f"You are shopping for {recipient_name}.",
            ideas=list(wishlist["ideas"]),
            links=list(wishlist["links"]),
            offline=view.offline,
        )

    def status(self) -> StatusView:
        view = self.current_state()
        return StatusView(
            unassigned=assignment.unassigned_participants(self.participants, view.assignments),
            rules=assignment.drawing_rules(self.participants),
            offline=view.offline,
        )

    def _wishlists(self, state: Dict[str, Any]) -> Dict[str, Dict[str, List[str]]]:
        return merge_wishlists(self.roster.default_wishlists, state.get("wishlists"), self.roster.ids)

    def wishlist_for(self, participant_id: str) -> Dict[str, List[str]]:
        view = self.current_state()
        return self._wishlists(view.state).get(participant_id, {"ideas": [], "links": []})

    def add_wishlist_entry(self, participant_id: Optional[str], kind: str, text: str) -> FlowResult:
        if self.roster.get(participant_id) is None:
            return FlowResult(False, "Pick your name before editing a wishlist.", {})
        section = WISHLIST_KINDS.get(kind)
        if section is None:
            return FlowResult(False, "Wishlist entries are either an idea or a link.", {})
        text = (text or "").strip()
        if not text:
            return FlowResult(False, "Wishlist item text cannot be empty.", {})

        state = self._load_for_write()
        if state is None:
            return self._offline_result()

        wishlists = self._wishlists(state)
        wishlists[participant_id][section].append(text)
        return self._persist({"wishlists": wishlists}, "Wishlist updated.")

    def remove_wishlist_entry(self, participant_id: Optional[str], kind: str, index: int) -> FlowResult:
        if self.roster.get(participant_id) is None:
            return FlowResult(False, "Pick your name before editing a wishlist.", {})
        section = WISHLIST_KINDS.get(kind)
        if section is None:
            return FlowResult(False, "Wishlist entries are either an idea or a link.", {})

        state = self._load_for_write()
        if state is None:
            return self._offline_result()

        wishlists = self._wishlists(state)
        items = wishlists[participant_id][section]
        if not 0 <= index < len(items):
            return FlowResult(False, f"There is no {kind} number {index + 1} on your wishlist.", {})
        del items[index]
        return self._persist({"wishlists": wishlists}, f"{kind.capitalize()} removed.")

    def clear_wishlist(self, participant_id: Optional[str]) -> FlowResult:
        if self.roster.get(participant_id) is None:
            return FlowResult(False, "Pick your name before editing a wishlist.", {})

        state = self._load_for_write()
        if state is None:
            return self._offline_result()

        wishlists = self._wishlists(state)
        wishlists[participant_id] = {"ideas": [], "links": []}
        return self._persist({"wishlists": wishlists}, "Wishlist cleared.")

    def list_messages(self, now: Optional[datetime.datetime] = None) -> List[Dict[str, Any]]:
        view = self.current_state()
        return prune_messages(view.state.get("messages"), now)

    def post_message(
        self,
        author_id: Optional[str],
        text: str,
        now: Optional[datetime.datetime] = None,
    ) -> FlowResult:
        author = self.roster.get(author_id)
        if author is None:
            return FlowResult(False, "Pick your name before posting.", {})
        text = (text or "").strip()
        if not text:
            return FlowResult(False, "Message text cannot be empty.", {})
        if len(text) > MAX_MESSAGE_LENGTH:
            return FlowResult(False, f"Messages are limited to {MAX_MESSAGE_LENGTH} characters.", {})

        state = self._load_for_write()
        if state is None:
            return self._offline_result()

        now = now or datetime.datetime.now(datetime.timezone.utc)
        entry = {
            "id": uuid.uuid4().hex,
            "author": author.name,
            "text": text,
            "createdAt": format_timestamp(now),
        }
        messages = prune_messages([entry] + list(state["messages"]), now)
        return self._persist({"messages": messages}, "Message posted.")

    def _events(self, state: Dict[str, Any]) -> List[Dict[str, Any]]:
        return merge_events(self.roster.default_events, state.get("events"))

    def list_events(
        self,
        event_type: Optional[str] = None,
        include_past: bool = False,
        today: Optional[datetime.date] = None,
    ) -> List[Dict[str, Any]]:
        """Calendar entries sorted by date.

        ``event_type`` of ``None`` or ``"all"`` keeps every type; past entries
        are hidden unless ``include_past`` is set.
        """
        today = today or datetime.date.today()
        view = self.current_state()
        return [
            event
            for event in self._events(view.state)
            if event_type in (None, "all", event["type"])
            and (include_past or parse_event_date(event["date"]) >= today)
        ]

    def upcoming_birthdays(self, today: Optional[datetime.date] = None) -> List[Dict[str, Any]]:
        return self.list_events("birthday", today=today)[:UPCOMING_BIRTHDAYS]

    def add_event(
        self,
        author_id: Optional[str],
        title: str,
        date: str,
        event_type: str = "other",
        location: str = "",
        note: str = "",
        now: Optional[datetime.datetime] = None,
    ) -> FlowResult:
        author = self.roster.get(author_id)
        if author is None:
            return FlowResult(False, "Pick your name before editing the calendar.", {})
        title = (title or "").strip()
        if not title:
            return FlowResult(False, "Give the event a title before saving.", {})
        if parse_event_date(date) is None:
            return FlowResult(False, "Pick a date for the event (YYYY-MM-DD).", {})

        state = self._load_for_write()
        if state is None:
            return self._offline_result()

        now = now or datetime.datetime.now(datetime.timezone.utc)
        entry = {
            "id": f"event-{uuid.uuid4().hex[:12]}",
            "title": title,
            "date": date[:10],
            "type": event_type if event_type in EVENT_TYPES else "other",
            "location": (location or "").strip(),
            "note": (note or "").strip(),
            "createdBy": author.id,
            "createdByName": author.name,
            "updatedBy": author.id,
            "updatedByName": author.name,
            "updatedAt": format_timestamp(now),
        }
        logger.bind(author=author.id, event=entry["id"], date=entry["date"]).info("Calendar event added")
        return self._persist(
            {"events": self._events(state) + [entry]},
            "Event added to the shared calendar.",
        )

    def add_event_note(
        self,
        author_id: Optional[str],
        event_id: str,
        note: str,
        now: Optional[datetime.datetime] = None,
    ) -> FlowResult:
        author = self.roster.get(author_id)
        if author is None:
            return FlowResult(False, "Pick your name before editing the calendar.", {})

        state = self._load_for_write()
        if state is None:
            return self._offline_result()

        events = self._events(state)
        event = next((entry for entry in events if entry["id"] == event_id), None)
        if event is None:
            return FlowResult(False, f"No calendar event with id {event_id}.", {})

        now = now or datetime.datetime.now(datetime.timezone.utc)
        event.update(
            note=(note or "").strip(),
            updatedBy=author.id,
            updatedByName=author.name,
            updatedAt=format_timestamp(now),
        )
        return self._persist({"events": events}, "Note updated.")
