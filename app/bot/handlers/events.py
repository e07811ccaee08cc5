from __future__ import annotations

import html

from aiogram import Router, types
from aiogram.filters import Command, CommandObject
from aiogram.fsm.context import FSMContext

from app.bot.utils import (
    GENERIC_ERROR,
    PICK_NAME,
    SLOW_DOWN,
    acting_participant,
    check_rate_limit,
    flow_reply,
    log_handler_exception,
)
from app.services.draw_flow import DrawFlow
from app.services.shared_state import EVENT_TYPES, parse_event_date

router = Router()

USAGE = (
    "Usage: /events [birthday|party|other] [past] | "
    "/events add <YYYY-MM-DD> <birthday|party|other> <title> | "
    "/events note <event id> <text>"
)


def format_event(event: dict) -> str:
    day = parse_event_date(event["date"])
    lines = [f"<b>{html.escape(event['title'])}</b> ({day.strftime('%a %b %d, %Y')}, {event['type']})"]
    lines.append(html.escape(event["location"] or "Location TBA"))
    if event["note"]:
        lines.append(html.escape(event["note"]))
    lines.append(f"id: <code>{html.escape(event['id'])}</code>")
    return "\n".join(lines)


async def _list_events(message: types.Message, flow: DrawFlow, tokens: list) -> None:
    filters = {token.lower() for token in tokens}
    unknown = filters - set(EVENT_TYPES) - {"all", "past"}
    if unknown:
        await message.answer(USAGE)
        return

    event_type = next((token for token in EVENT_TYPES if token in filters), None)
    events = flow.list_events(event_type, include_past="past" in filters)

    blocks = []
    if event_type is None:
        birthdays = flow.upcoming_birthdays()
        if birthdays:
            names = ", ".join(
                f"{html.escape(event['title'])} ({parse_event_date(event['date']).strftime('%b %d')})"
                for event in birthdays
            )
            blocks.append(f"Upcoming birthdays: {names}")
    blocks.extend(format_event(event) for event in events)
    await message.answer("\n\n".join(blocks) if blocks else "No events match this view.")


@router.message(Command("events"))
async def events_command_handler(
    message: types.Message,
    command: CommandObject,
    state: FSMContext,
    flow: DrawFlow,
) -> None:
    if not check_rate_limit(message.from_user.id, "events"):
        await message.answer(SLOW_DOWN)
        return

    tokens = (command.args or "").split()
    action = tokens[0].lower() if tokens else ""

    try:
        if action not in {"add", "note"}:
            await _list_events(message, flow, tokens)
            return

        participant_id = await acting_participant(state)
        if not flow.roster.get(participant_id):
            await message.answer(PICK_NAME)
            return

        if action == "add":
            parts = command.args.split(maxsplit=3)
            if len(parts) < 4 or parts[2].lower() not in EVENT_TYPES:
                await message.answer(USAGE)
                return
            result = flow.add_event(participant_id, parts[3], parts[1], parts[2].lower())
        else:
            parts = command.args.split(maxsplit=2)
            if len(parts) < 2:
                await message.answer(USAGE)
                return
            result = flow.add_event_note(participant_id, parts[1], parts[2] if len(parts) > 2 else "")
        await message.answer(html.escape(flow_reply(result)))
    except Exception as exc:
        log_handler_exception("events", message.from_user.id, message.chat.id, exc)
        await message.answer(GENERIC_ERROR)
