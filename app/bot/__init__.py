from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode

from app.bot.handlers import router as handlers_router
from app.services.draw_flow import DrawFlow


def create_bot(token: str) -> Bot:
    return Bot(token=token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))


def create_dispatcher(flow: DrawFlow) -> Dispatcher:
    dp = Dispatcher()
    dp["flow"] = flow
    dp.include_router(handlers_router)
    return dp
