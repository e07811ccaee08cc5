from typing import Iterable

from aiogram.utils.keyboard import InlineKeyboardBuilder

from app.services.roster import Participant


def participants_keyboard(participants: Iterable[Participant]):
    keyboard = InlineKeyboardBuilder()
    for participant in participants:
        keyboard.button(text=participant.name, callback_data=f"iam:{participant.id}")
    keyboard.adjust(3)
    return keyboard.as_markup()


def recipients_keyboard(participants: Iterable[Participant]):
    keyboard = InlineKeyboardBuilder()
    for participant in participants:
        keyboard.button(text=participant.name, callback_data=f"record:{participant.id}")
    keyboard.adjust(3)
    return keyboard.as_markup()


def confirm_draw_keyboard():
    keyboard = InlineKeyboardBuilder()
    keyboard.button(text="Yes, assign everyone else!", callback_data="confirm_draw")
    return keyboard.as_markup()


def confirm_reset_keyboard():
    keyboard = InlineKeyboardBuilder()
    keyboard.button(text="Yes, clear all assignments", callback_data="confirm_reset")
    return keyboard.as_markup()
