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
from app.services.shared_state import parse_timestamp

router = Router()

BOARD_SIZE = 10


@router.message(Command("board"))
async def board_command_handler(message: types.Message, flow: DrawFlow) -> None:
    if not check_rate_limit(message.from_user.id, "board"):
        await message.answer(SLOW_DOWN)
        return

    try:
        messages = flow.list_messages()
        if not messages:
            await message.answer("No messages yet. Be the first to /post!")
            return

        lines = ["Latest messages:"]
        for entry in messages[:BOARD_SIZE]:
            created = parse_timestamp(entry.get("createdAt"))
            stamp = created.strftime("%b %d") if created else ""
            author = html.escape(str(entry.get("author") or "Someone"))
            lines.append(f"<b>{author}</b> ({stamp}): {html.escape(str(entry.get('text') or ''))}")
        await message.answer("\n".join(lines))
    except Exception as exc:
        log_handler_exception("board", message.from_user.id, message.chat.id, exc)
        await message.answer(GENERIC_ERROR)


@router.message(Command("post"))
async def post_command_handler(
    message: types.Message,
    command: CommandObject,
    state: FSMContext,
    flow: DrawFlow,
) -> None:
    if not check_rate_limit(message.from_user.id, "post"):
        await message.answer(SLOW_DOWN)
        return

    if not command.args:
        await message.answer("Usage: /post <message>")
        return

    try:
        participant_id = await acting_participant(state)
        if not flow.roster.get(participant_id):
            await message.answer(PICK_NAME)
            return

        result = flow.post_message(participant_id, command.args)
        await message.answer(html.escape(flow_reply(result)))
    except Exception as exc:
        log_handler_exception("post", message.from_user.id, message.chat.id, exc)
        await message.answer(GENERIC_ERROR)
