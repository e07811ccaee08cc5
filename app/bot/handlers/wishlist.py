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

router = Router()

USAGE = (
    "Usage: /wish add idea <text> | /wish add link <url> | "
    "/wish remove idea|link <n> | /wish list | /wish clear"
)
REMOVE_USAGE = "Usage: /wish remove idea <n> | /wish remove link <n>"


@router.message(Command("wish"))
async def wish_command_handler(
    message: types.Message,
    command: CommandObject,
    state: FSMContext,
    flow: DrawFlow,
) -> None:
    if not check_rate_limit(message.from_user.id, "wish"):
        await message.answer(SLOW_DOWN)
        return

    tokens = (command.args or "").split(maxsplit=2)
    if not tokens:
        await message.answer(USAGE)
        return

    action = tokens[0].lower()
    if action not in {"add", "remove", "list", "clear"}:
        await message.answer(USAGE)
        return
    if action == "add" and (len(tokens) < 3 or tokens[1].lower() not in {"idea", "link"}):
        await message.answer("Usage: /wish add idea <text> | /wish add link <url>")
        return
    if action == "remove" and (
        len(tokens) < 3 or tokens[1].lower() not in {"idea", "link"} or not tokens[2].strip().isdecimal()
    ):
        await message.answer(REMOVE_USAGE)
        return

    try:
        participant_id = await acting_participant(state)
        if not flow.roster.get(participant_id):
            await message.answer(PICK_NAME)
            return

        if action == "add":
            result = flow.add_wishlist_entry(participant_id, tokens[1].lower(), tokens[2])
            await message.answer(html.escape(flow_reply(result)))
            return

        if action == "remove":
            result = flow.remove_wishlist_entry(participant_id, tokens[1].lower(), int(tokens[2]) - 1)
            await message.answer(html.escape(flow_reply(result)))
            return

        if action == "list":
            wishlist = flow.wishlist_for(participant_id)
            if not wishlist["ideas"] and not wishlist["links"]:
                await message.answer("Your wishlist is empty.")
                return
            lines = ["Your wishlist:", "Ideas:"]
            ideas = [f"{number}. {html.escape(idea)}" for number, idea in enumerate(wishlist["ideas"], 1)]
            lines.extend(ideas or ["- none"])
            lines.append("Links:")
            links = [f"{number}. {html.escape(link)}" for number, link in enumerate(wishlist["links"], 1)]
            lines.extend(links or ["- none"])
            await message.answer("\n".join(lines))
            return

        result = flow.clear_wishlist(participant_id)
        await message.answer(html.escape(flow_reply(result)))
    except Exception as exc:
        log_handler_exception("wish", message.from_user.id, message.chat.id, exc)
        await message.answer(GENERIC_ERROR)
