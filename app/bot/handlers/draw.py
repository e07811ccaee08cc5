from __future__ import annotations

import html

from aiogram import Router, types
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext

from app.bot.keyboards import confirm_draw_keyboard, confirm_reset_keyboard, recipients_keyboard
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
from app.services.rate_limit import draw_rate_limiter

router = Router()


@router.message(Command("reveal"))
async def reveal_command_handler(message: types.Message, state: FSMContext, flow: DrawFlow) -> None:
    if not check_rate_limit(message.from_user.id, "reveal"):
        await message.answer(SLOW_DOWN)
        return

    if message.chat.type != "private":
        await message.answer("Assignments are only revealed in a private chat.")
        return

    try:
        participant_id = await acting_participant(state)
        if not flow.roster.get(participant_id):
            await message.answer(PICK_NAME)
            return

        view = flow.reveal_for(participant_id)
        if view.recipient_id is None:
            await message.answer(html.escape(view.message))
            return

        lines = [f"You are shopping for <b>{html.escape(view.recipient_name)}</b>."]
        lines.append("")
        lines.append("Ideas:")
        lines.extend([f"- {html.escape(idea)}" for idea in view.ideas] or ["- No ideas yet."])
        lines.append("Links:")
        lines.extend([f"- {html.escape(link)}" for link in view.links] or ["- No links yet."])
        if view.offline:
            lines.append("")
            lines.append("Sync is offline, this may be out of date.")
        await message.answer("\n".join(lines))
    except Exception as exc:
        log_handler_exception("reveal", message.from_user.id, message.chat.id, exc)
        await message.answer(GENERIC_ERROR)


@router.message(Command("record"))
async def record_command_handler(message: types.Message, state: FSMContext, flow: DrawFlow) -> None:
    if not check_rate_limit(message.from_user.id, "record"):
        await message.answer(SLOW_DOWN)
        return

    try:
        participant_id = await acting_participant(state)
        if not flow.roster.get(participant_id):
            await message.answer(PICK_NAME)
            return

        view = flow.reveal_for(participant_id)
        if view.recipient_id is not None:
            await message.answer(
                "Your pick is already recorded. Contact an organizer if something looks wrong."
            )
            return

        options = flow.recipient_options(participant_id)
        if not options:
            await message.answer("Nobody is left for you to record. Try /draw instead.")
            return

        await message.answer("Who did you draw?", reply_markup=recipients_keyboard(options))
    except Exception as exc:
        log_handler_exception("record", message.from_user.id, message.chat.id, exc)
        await message.answer(GENERIC_ERROR)


@router.callback_query(lambda c: bool(c.data) and c.data.startswith("record:"))
async def record_callback_handler(query: types.CallbackQuery, state: FSMContext, flow: DrawFlow) -> None:
    if not check_rate_limit(query.from_user.id, "record"):
        await query.answer(SLOW_DOWN, show_alert=True)
        return

    try:
        participant_id = await acting_participant(state)
        recipient_id = query.data.split(":", 1)[1]
        result = flow.record_manual(participant_id, recipient_id)
        await query.answer(result.message[:200], show_alert=True)
        if result.ok:
            await query.message.answer(html.escape(flow_reply(result)))
    except Exception as exc:
        log_handler_exception("record", query.from_user.id, query.message.chat.id, exc)
        await query.answer(GENERIC_ERROR, show_alert=True)


@router.message(Command("draw"))
async def draw_command_handler(message: types.Message, flow: DrawFlow) -> None:
    if not check_rate_limit(message.from_user.id, "draw"):
        await message.answer(SLOW_DOWN)
        return

    try:
        status = flow.status()
        if not status.unassigned:
            await message.answer("Everyone already has an assignment.")
            return

        names = ", ".join(html.escape(person.name) for person in status.unassigned)
        await message.answer(
            f"Still missing a match: {names}.\n\n"
            "Manual entries stay in place. Assign everyone else now?",
            reply_markup=confirm_draw_keyboard(),
        )
    except Exception as exc:
        log_handler_exception("draw", message.from_user.id, message.chat.id, exc)
        await message.answer(GENERIC_ERROR)


@router.callback_query(lambda c: c.data == "confirm_draw")
async def confirm_draw_callback_handler(query: types.CallbackQuery, flow: DrawFlow) -> None:
    if not check_rate_limit(query.from_user.id, "confirm_draw", draw_rate_limiter):
        await query.answer(SLOW_DOWN, show_alert=True)
        return

    try:
        result = flow.draw_remaining()
        await query.answer(result.message[:200], show_alert=True)
        await query.message.answer(html.escape(flow_reply(result)))
    except Exception as exc:
        log_handler_exception("confirm_draw", query.from_user.id, query.message.chat.id, exc)
        await query.answer(GENERIC_ERROR, show_alert=True)


@router.message(Command("reset"))
async def reset_command_handler(message: types.Message) -> None:
    if not check_rate_limit(message.from_user.id, "reset"):
        await message.answer(SLOW_DOWN)
        return

    await message.answer(
        "This clears every recorded assignment for the whole family. Are you sure?",
        reply_markup=confirm_reset_keyboard(),
    )


@router.callback_query(lambda c: c.data == "confirm_reset")
async def confirm_reset_callback_handler(query: types.CallbackQuery, flow: DrawFlow) -> None:
    if not check_rate_limit(query.from_user.id, "confirm_reset", draw_rate_limiter):
        await query.answer(SLOW_DOWN, show_alert=True)
        return

    try:
        result = flow.clear_assignments()
        await query.answer(result.message[:200], show_alert=True)
        await query.message.answer(html.escape(flow_reply(result)))
    except Exception as exc:
        log_handler_exception("confirm_reset", query.from_user.id, query.message.chat.id, exc)
        await query.answer(GENERIC_ERROR, show_alert=True)


@router.message(Command("status"))
async def status_command_handler(message: types.Message, flow: DrawFlow) -> None:
    if not check_rate_limit(message.from_user.id, "status"):
        await message.answer(SLOW_DOWN)
        return

    try:
        status = flow.status()
        lines = ["Who still needs a match?"]
        if status.unassigned:
            lines.extend([f"- {html.escape(person.name)}" for person in status.unassigned])
        else:
            lines.append("Everyone now has a recipient.")

        if status.rules:
            lines.append("")
            lines.append("Drawing rules:")
            for rule in status.rules:
                excluded = ", ".join(html.escape(name) for name in rule.excluded_names)
                lines.append(f"- <b>{html.escape(rule.name)}</b> can't draw {excluded}")

        if status.offline:
            lines.append("")
            lines.append("Sync is offline, this may be out of date.")
        await message.answer("\n".join(lines))
    except Exception as exc:
        log_handler_exception("status", message.from_user.id, message.chat.id, exc)
        await message.answer(GENERIC_ERROR)
