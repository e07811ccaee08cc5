import html

from aiogram import Router, types
from aiogram.filters import Command, CommandObject, CommandStart
from aiogram.fsm.context import FSMContext
from loguru import logger

from app.bot.keyboards import participants_keyboard
from app.bot.utils import GENERIC_ERROR, SLOW_DOWN, acting_participant, check_rate_limit, log_handler_exception
from app.services.draw_flow import DrawFlow

router = Router()


@router.message(CommandStart())
async def command_start_handler(message: types.Message, state: FSMContext, flow: DrawFlow) -> None:
    if not check_rate_limit(message.from_user.id, "start"):
        await message.answer(SLOW_DOWN)
        return

    try:
        participant_id = await acting_participant(state)
        greeting = (
            f"Welcome back, {html.escape(flow.roster.name_of(participant_id))}!"
            if flow.roster.get(participant_id)
            else "Hello! I keep track of the family gift exchange."
        )
        await message.answer(
            f"{greeting}\n\n"
            "Pick who you are below (or later with /iam), then:\n"
            "/reveal - see who you are shopping for\n"
            "/record - enter the name you already drew\n"
            "/draw - assign everyone who is still missing a match\n"
            "/status - who still needs a match and the drawing rules\n"
            "/wish - manage your wishlist\n"
            "/board - family messages, /post to add one\n"
            "/reset - clear all assignments",
            reply_markup=participants_keyboard(flow.participants),
        )
    except Exception as exc:
        log_handler_exception("start", message.from_user.id, message.chat.id, exc)
        await message.answer(GENERIC_ERROR)


@router.message(Command("iam"))
async def iam_command_handler(
    message: types.Message,
    command: CommandObject,
    state: FSMContext,
    flow: DrawFlow,
) -> None:
    if not check_rate_limit(message.from_user.id, "iam"):
        await message.answer(SLOW_DOWN)
        return

    try:
        requested = (command.args or "").strip().lower()
        if not requested:
            await message.answer("Who are you?", reply_markup=participants_keyboard(flow.participants))
            return

        participant = flow.roster.get(requested) or next(
            (p for p in flow.participants if p.name.lower() == requested), None
        )
        if participant is None:
            await message.answer("That name is not on the roster.", reply_markup=participants_keyboard(flow.participants))
            return

        await state.update_data(participant_id=participant.id)
        logger.bind(user_id=message.from_user.id, participant=participant.id).info("Participant selected")
        await message.answer(f"You are now {html.escape(participant.name)}.")
    except Exception as exc:
        log_handler_exception("iam", message.from_user.id, message.chat.id, exc)
        await message.answer(GENERIC_ERROR)


@router.callback_query(lambda c: bool(c.data) and c.data.startswith("iam:"))
async def iam_callback_handler(query: types.CallbackQuery, state: FSMContext, flow: DrawFlow) -> None:
    if not check_rate_limit(query.from_user.id, "iam"):
        await query.answer(SLOW_DOWN, show_alert=True)
        return

    try:
        participant = flow.roster.get(query.data.split(":", 1)[1])
        if participant is None:
            await query.answer("That name is not on the roster.", show_alert=True)
            return

        await state.update_data(participant_id=participant.id)
        logger.bind(user_id=query.from_user.id, participant=participant.id).info("Participant selected")
        await query.answer(f"You are now {participant.name}.")
        await query.message.answer(f"You are now {html.escape(participant.name)}. Use /reveal or /record.")
    except Exception as exc:
        log_handler_exception("iam", query.from_user.id, query.message.chat.id, exc)
        await query.answer(GENERIC_ERROR, show_alert=True)
