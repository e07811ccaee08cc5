from __future__ import annotations

import copy
import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

MESSAGE_TTL = datetime.timedelta(days=30)
EVENT_TYPES = ("birthday", "party", "other")

STATE_KEYS: Dict[str, type] = {
    "assignments": dict,
    "wishlists": dict,
    "messages": list,
    "events": list,
}


def default_state() -> Dict[str, Any]:
    return {key: container() for key, container in STATE_KEYS.items()}


def normalize_state(blob: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    state = default_state()
    if not isinstance(blob, Mapping):
        return state
    for key, container in STATE_KEYS.items():
        value = blob.get(key)
        if isinstance(value, container):
            state[key] = copy.deepcopy(value)
    state["assignments"] = {
        str(giver): str(recipient)
        for giver, recipient in state["assignments"].items()
        if isinstance(recipient, str) and recipient
    }
    return state


def has_updates(partial: Any) -> bool:
    if not isinstance(partial, Mapping):
        return False
    return any(
        isinstance(partial.get(key), container) for key, container in STATE_KEYS.items()
    )


def merge_update(current: Mapping[str, Any], partial: Mapping[str, Any]) -> Dict[str, Any]:
    """Replace each top-level section named in ``partial``.

    Sections that are missing from ``partial`` or have the wrong type keep
    their current value; sections are replaced whole, never deep-merged.
    """
    merged = normalize_state(current)
    for key, container in STATE_KEYS.items():
        value = partial.get(key)
        if isinstance(value, container):
            merged[key] = copy.deepcopy(value)
    return normalize_state(merged)


def _string_items(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str) and item.strip()]


def merge_wishlists(
    defaults: Mapping[str, Mapping[str, Any]],
    remote: Optional[Mapping[str, Any]],
    participant_ids: Iterable[str],
) -> Dict[str, Dict[str, List[str]]]:
    merged = {
        person_id: {"ideas": list(entry.get("ideas", [])), "links": list(entry.get("links", []))}
        for person_id, entry in defaults.items()
    }
    for person_id, entry in (remote or {}).items():
        if not isinstance(entry, Mapping):
            entry = {}
        merged[person_id] = {
            "ideas": _string_items(entry.get("ideas")),
            "links": _string_items(entry.get("links")),
        }
    for person_id in participant_ids:
        merged.setdefault(person_id, {"ideas": [], "links": []})
    return merged


def parse_timestamp(value: Any) -> Optional[datetime.datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


def format_timestamp(moment: datetime.datetime) -> str:
    return moment.astimezone(datetime.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def prune_messages(messages: Any, now: Optional[datetime.datetime] = None) -> List[Dict[str, Any]]:
    if not isinstance(messages, list):
        return []
    now = now or datetime.datetime.now(datetime.timezone.utc)

    kept = []
    for entry in messages:
        if not isinstance(entry, Mapping):
            continue
        created = parse_timestamp(entry.get("createdAt"))
        if created is None or now - created > MESSAGE_TTL:
            continue
        kept.append((created, dict(entry)))

    kept.sort(key=lambda item: item[0], reverse=True)
    return [entry for _, entry in kept]


def parse_event_date(value: Any) -> Optional[datetime.date]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.date.fromisoformat(value[:10])
    except ValueError:
        return None


def normalize_event(entry: Any) -> Optional[Dict[str, Any]]:
    """Return a cleaned copy of a calendar entry, or ``None`` if it is unusable.

    An entry needs a string ``id``, a non-empty ``title`` and an ISO ``date``.
    Unknown types fall back to ``other``; extra keys such as ``createdBy`` or
    ``updatedAt`` are kept as they are.
    """
    if not isinstance(entry, Mapping):
        return None
    event_id = entry.get("id")
    title = entry.get("title")
    if not isinstance(event_id, str) or not event_id:
        return None
    if not isinstance(title, str) or not title.strip():
        return None
    if parse_event_date(entry.get("date")) is None:
        return None

    event = copy.deepcopy(dict(entry))
    event["title"] = title.strip()
    event["date"] = entry["date"][:10]
    if event.get("type") not in EVENT_TYPES:
        event["type"] = "other"
    for key in ("location", "note"):
        if not isinstance(event.get(key), str):
            event[key] = ""
    return event


def merge_events(defaults: Iterable[Mapping[str, Any]], remote: Any) -> List[Dict[str, Any]]:
    merged: Dict[str, Dict[str, Any]] = {}
    for entry in defaults:
        event = normalize_event(entry)
        if event is not None:
            merged[event["id"]] = event
    if isinstance(remote, list):
        for entry in remote:
            event = normalize_event(entry)
            if event is not None:
                merged[event["id"]] = event
    return sorted(merged.values(), key=lambda event: (event["date"], event["title"]))
