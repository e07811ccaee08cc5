from __future__ import annotations

from typing import Optional

from aiogram.fsm.context import FSMContext
from loguru import logger

from app.services.draw_flow import FlowResult
from app.services.rate_limit import RateLimiter, rate_limiter

SLOW_DOWN = "You're doing that too often. Please slow down."
GENERIC_ERROR = "Something went wrong. Please try again later."
PICK_NAME = "Pick your name with /iam first."


def check_rate_limit(user_id: int, action: str, limiter: RateLimiter = rate_limiter) -> bool:
    key = f"{user_id}:{action}"
    result = limiter.allow(key)
    if not result.allowed:
        logger.bind(user_id=user_id, action=action, retry_after=result.retry_after).debug("Rate limited")
    return result.allowed


async def acting_participant(state: FSMContext) -> Optional[str]:
    data = await state.get_data()
    return data.get("participant_id")


def flow_reply(result: FlowResult) -> str:
    if result.offline and result.ok:
        return f"⚠️ {result.message}"
    return result.message


def log_handler_exception(action: str, user_id: int | None, chat_id: int | None, error: Exception) -> None:
    logger.bind(action=action, user_id=user_id, chat_id=chat_id).exception(
        "Handler error: {error}", error=str(error)
    )
