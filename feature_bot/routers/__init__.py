from fastapi import APIRouter
from .bot_routers import router as feature_bot
from .telegram_webhook import router as telegram_webhook

router = APIRouter(prefix="/api")
router.include_router(feature_bot, prefix="/feature_bot", tags=["features"])
router.include_router(telegram_webhook, prefix="/feature_bot", tags=["webhook"])
