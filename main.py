from __future__ import annotations

import asyncio
from typing import Optional

import uvloop
from aiogram import Bot, Dispatcher
from aiogram.types import BotCommand, BotCommandScopeDefault
from aiohttp import web
from loguru import logger

from app.api import create_app
from app.bot import create_bot, create_dispatcher
from app.core.config import Settings, load_settings
from app.core.logging import setup_logging
from app.db import dispose_engine, init_engine
from app.services.draw_flow import DrawFlow
from app.services.roster import load_roster
from app.services.state_store import StateStore, StoreUnavailableError


USERS_COMMANDS: dict[str, str] = {
    "start": "start",
    "iam": "pick who you are",
    "reveal": "see who you are shopping for",
    "record": "record the name you drew",
    "draw": "assign everyone else",
    "status": "who still needs a match",
    "wish": "wishlist commands",
    "board": "family messages",
    "post": "post a message",
    "events": "family calendar",
    "reset": "clear all assignments",
}


async def set_default_commands(bot: Bot) -> None:
    await bot.set_my_commands(
        [
            BotCommand(command=command, description=description)
            for command, description in USERS_COMMANDS.items()
        ],
        scope=BotCommandScopeDefault(),
    )


async def on_startup(bot: Bot) -> None:
    logger.info("bot starting...")

    await set_default_commands(bot)

    bot_info = await bot.get_me()

    logger.info("Name     - {name}", name=bot_info.full_name)
    logger.info("Username - @{username}", username=bot_info.username)
    logger.info("ID       - {id}", id=bot_info.id)

    logger.info("bot started")


async def on_shutdown(bot: Bot, dispatcher: Dispatcher) -> None:
    logger.info("bot stopping...")

    await dispatcher.storage.close()

    await bot.session.close()

    logger.info("bot stopped")


async def start_api(settings: Settings, flow: DrawFlow) -> Optional[web.AppRunner]:
    if settings.api_port is None:
        return None

    runner = web.AppRunner(create_app(flow))
    await runner.setup()
    site = web.TCPSite(runner, settings.api_host, settings.api_port)
    await site.start()
    logger.info("State API listening on {host}:{port}", host=settings.api_host, port=settings.api_port)
    return runner


async def main() -> None:
    settings = load_settings()
    setup_logging(settings.log_level, settings.log_path)
    init_engine(settings.database_url)

    roster = load_roster(settings.roster_path, settings.exclusion_policy)
    store = StateStore()
    try:
        store.ensure_table()
    except StoreUnavailableError:
        logger.warning("State store unavailable at startup, continuing in offline mode")
    flow = DrawFlow(store, roster)

    runner = await start_api(settings, flow)
    try:
        if settings.bot_token:
            bot = create_bot(settings.bot_token)
            dp = create_dispatcher(flow)
            dp.startup.register(on_startup)
            dp.shutdown.register(on_shutdown)
            await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
        else:
            await asyncio.Event().wait()
    finally:
        if runner is not None:
            await runner.cleanup()
        dispose_engine()


if __name__ == "__main__":
    if not getattr(asyncio, "debug", False):
        uvloop.install()

    asyncio.run(main())
