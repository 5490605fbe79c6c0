import logging

import uvicorn
from fastapi import FastAPI
from telegram import Update

from feature_bot.bot_app import build_application, configure_logging
from feature_bot.routers import router
from feature_bot.routers.telegram_webhook import WEBHOOK_PATH, webhook_secret
from feature_bot.services import build_services, start as start_services
from feature_bot.settings import settings

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Feature Bot Service",
    description="Telegram бот с динамическими функциями и админ-панелью",
    version=settings.BOT_VERSION,
    debug=settings.DEBUG_MODE,
)

app.include_router(router)

app.state.services = build_services()
app.state.application = None
# обновления через POST /webhook принимаются только в режиме webhook
app.state.webhook_mode = False
app.state.webhook_secret = None


@app.on_event("startup")
async def startup_event():
    """Инициализация при запуске"""
    services = app.state.services
    if not settings.TELEGRAM_TOKEN:
        logger.warning("TELEGRAM_TOKEN не задан: работает только HTTP API")
        await start_services(services)
        return

    application = build_application(services, with_post_init=False)
    await application.initialize()
    await start_services(services, application)
    await application.start()
    if settings.WEBHOOK_URL:
        webhook_url = f"{settings.WEBHOOK_URL}{WEBHOOK_PATH}"
        await application.bot.set_webhook(
            url=webhook_url,
            secret_token=webhook_secret(app.state),
            allowed_updates=Update.ALL_TYPES,
        )
        app.state.webhook_mode = True
        logger.info(f"Webhook установлен: {webhook_url}")
    else:
        # polling в том же event loop, что и FastAPI
        await application.updater.start_polling(allowed_updates=Update.ALL_TYPES)
        logger.info("Бот запущен (polling)")
    app.state.application = application

    logger.info("🚀 Feature Bot Service запущен")
    logger.info("📋 Доступные эндпоинты:")
    logger.info("  • GET /api/feature_bot/status - Статус бота")
    logger.info("  • GET/POST /api/feature_bot/features - Функции")
    logger.info("  • POST /api/feature_bot/webhook - Webhook для Telegram")


@app.on_event("shutdown")
async def shutdown_event():
    """Очистка при остановке"""
    application = app.state.application
    if application is not None:
        if application.updater and application.updater.running:
            await application.updater.stop()
        await application.stop()
        await application.shutdown()
        app.state.application = None
    logger.info("🛑 Feature Bot Service остановлен")


def run() -> None:
    uvicorn.run(
        "feature_bot.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
