from aiogram import Router

from app.bot.handlers import board, draw, events, start, wishlist

router = Router()
router.include_router(start.router)
router.include_router(draw.router)
router.include_router(wishlist.router)
router.include_router(board.router)
router.include_router(events.router)
