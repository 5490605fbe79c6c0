import hmac
import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from telegram import Update
from telegram.ext import Application

from feature_bot.models import WebhookResult
from feature_bot.routers.bot_routers import require_admin
from feature_bot.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter()

WEBHOOK_PATH = "/api/feature_bot/webhook"


def webhook_secret(state) -> str:
    """Секрет для X-Telegram-Bot-Api-Secret-Token (создаётся один раз)"""
    secret = getattr(state, "webhook_secret", None)
    if not secret:
        secret = settings.WEBHOOK_SECRET or secrets.token_urlsafe(32)
        state.webhook_secret = secret
    return secret


def get_application(request: Request) -> Application:
    """Запущенное приложение python-telegram-bot"""
    application = getattr(request.app.state, "application", None)
    if application is None:
        raise HTTPException(status_code=503, detail="Telegram bot is not running")
    return application


def verified_application(
        request: Request,
        x_telegram_bot_api_secret_token: Optional[str] = Header(default=None),
        application: Application = Depends(get_application)) -> Application:
    """Пропускает только обновления от Telegram в режиме webhook"""
    state = request.app.state
    if not getattr(state, "webhook_mode", False):
        raise HTTPException(status_code=404, detail="Webhook is not enabled")
    secret = getattr(state, "webhook_secret", None)
    token = x_telegram_bot_api_secret_token or ""
    if not secret or not hmac.compare_digest(token.encode(), secret.encode()):
        logger.warning("Webhook request with invalid secret token rejected")
        raise HTTPException(status_code=403, detail="Invalid secret token")
    return application


@router.post("/webhook")
async def webhook(request: Request, application: Application = Depends(verified_application)):
    """Webhook для получения обновлений от Telegram"""
    try:
        data = await request.json()
        update = Update.de_json(data, application.bot)
    except (ValueError, KeyError, TypeError) as e:
        logger.error(f"Некорректное обновление в webhook: {e}")
        raise HTTPException(status_code=400, detail="Invalid update")

    if update:
        await application.process_update(update)
    return {"status": "ok"}


@router.get(
    "/set-webhook",
    response_model=WebhookResult,
    dependencies=[Depends(require_admin)])
async def set_webhook(request: Request, application: Application = Depends(get_application)):
    """Установка webhook для Telegram бота"""
    if not settings.WEBHOOK_URL:
        raise HTTPException(status_code=500, detail="WEBHOOK_URL not set")

    webhook_url = f"{settings.WEBHOOK_URL}{WEBHOOK_PATH}"
    try:
        if application.updater and application.updater.running:
            # getUpdates и webhook одновременно не работают
            await application.updater.stop()
        result = await application.bot.set_webhook(
            url=webhook_url,
            secret_token=webhook_secret(request.app.state),
            allowed_updates=Update.ALL_TYPES,
        )
    except Exception as e:
        logger.error(f"Ошибка установки webhook: {e}")
        raise HTTPException(status_code=500, detail=f"Error setting webhook: {e}")
    if not result:
        raise HTTPException(status_code=500, detail="Failed to set webhook")
    request.app.state.webhook_mode = True
    return WebhookResult(
        status="success",
        message=f"Webhook установлен: {webhook_url}",
        webhook_url=webhook_url,
    )


@router.get(
    "/delete-webhook",
    response_model=WebhookResult,
    dependencies=[Depends(require_admin)])
async def delete_webhook(request: Request, application: Application = Depends(get_application)):
    """Удаление webhook для Telegram бота"""
    try:
        result = await application.bot.delete_webhook()
    except Exception as e:
        logger.error(f"Ошибка удаления webhook: {e}")
        raise HTTPException(status_code=500, detail=f"Error deleting webhook: {e}")
    if not result:
        raise HTTPException(status_code=500, detail="Failed to delete webhook")
    request.app.state.webhook_mode = False
    return WebhookResult(status="success", message="Webhook удален")


@router.get("/webhook-info", dependencies=[Depends(require_admin)])
async def get_webhook_info(application: Application = Depends(get_application)):
    """Получение информации о webhook"""
    try:
        webhook_info = await application.bot.get_webhook_info()
    except Exception as e:
        logger.error(f"Ошибка получения информации о webhook: {e}")
        raise HTTPException(status_code=500, detail=f"Error getting webhook info: {e}")

    return {
        "status": "success",
        "webhook_info": {
            "url": webhook_info.url,
            "has_custom_certificate": webhook_info.has_custom_certificate,
            "pending_update_count": webhook_info.pending_update_count,
            "last_error_date": webhook_info.last_error_date,
            "last_error_message": webhook_info.last_error_message,
            "max_connections": webhook_info.max_connections,
            "allowed_updates": webhook_info.allowed_updates,
        }
    }
