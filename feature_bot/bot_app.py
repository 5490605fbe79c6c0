# -*- coding: utf-8 -*-
import logging
from typing import Optional

from telegram import Update
from telegram.error import TelegramError
from telegram.ext import (
    AIORateLimiter,
    Application,
    ApplicationHandlerStop,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    TypeHandler,
    filters,
)

from feature_bot import conversation
from feature_bot.chat_context import TelegramChatContext, md
from feature_bot.services import BotServices, build_services, start as start_services
from feature_bot.settings import settings

logger = logging.getLogger(__name__)

SERVICES_KEY = "services"

HELP_TEXT = (
    "📋 *Available commands:*\n"
    "/start - Start the bot\n"
    "/menu - Show the main menu\n"
    "/settings - Personal settings\n"
    "/help - Show this message\n"
    "/cancel - Cancel the current operation"
)
ADMIN_HELP_TEXT = (
    "\n\n🔧 *Admin:*\n"
    "/admin - Open the admin panel\n"
    "/reload - Reload feature handlers\n"
    "/broadcast <text> - Message all users"
)
BANNED = "⛔ You have been banned from using this bot."


def get_services(context: ContextTypes.DEFAULT_TYPE) -> BotServices:
    return context.application.bot_data[SERVICES_KEY]


def chat_context(update: Update, context: ContextTypes.DEFAULT_TYPE) -> TelegramChatContext:
    services = get_services(context)
    return TelegramChatContext(
        update, context,
        admin_ids=services.config.ADMIN_IDS,
        debug=services.user_settings.debug_mode())


async def _refuse(update: Update, text: str, notify_message: bool = True):
    try:
        if update.callback_query:
            await update.callback_query.answer(text, show_alert=True)
        elif notify_message and update.effective_message:
            await update.effective_message.reply_text(text)
    except TelegramError as e:
        logger.warning(f"Failed to notify user {update.effective_user.id}: {e}")
    raise ApplicationHandlerStop


async def admission_gate(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """
    Выполняется до всех остальных обработчиков: ограничение частоты,
    регистрация пользователя при первом обращении и проверка бана.
    """
    user = update.effective_user
    if user is None:
        return
    services = get_services(context)
    decision = await services.gate.admit(user.id)
    if not decision.allowed:
        await _refuse(
            update,
            f"⚠️ Too many requests. Please wait {decision.remaining_seconds} seconds.",
            notify_message=decision.newly_blocked)

    try:
        await services.users.register(user.id, user.first_name, user.username)
    except Exception as e:
        logger.error(f"Error registering user {user.id}: {e}")

    if user.id not in services.config.ADMIN_IDS and services.users.is_banned(user.id):
        logger.info(f"Ignoring update from banned user {user.id}")
        await _refuse(update, BANNED)


async def _track(update: Update, context: ContextTypes.DEFAULT_TYPE, command: str):
    user = update.effective_user
    await get_services(context).stats.track_command(command, user.id if user else None)


async def start(update: Update, context: ContextTypes.DEFAULT_TYPE):
    services = get_services(context)
    await _track(update, context, "start")
    ctx = chat_context(update, context)
    name = update.effective_user.first_name if update.effective_user else "there"
    await ctx.reply(
        f"👋 Hello, {md(name)}! Welcome to *{md(services.config.BOT_NAME)}*.\n\n"
        "Pick a feature from the menu below or send /help.")
    await services.screens.main_menu(ctx, edit=False)


async def menu(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _track(update, context, "menu")
    await get_services(context).screens.main_menu(chat_context(update, context), edit=False)


async def settings_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _track(update, context, "settings")
    await get_services(context).screens.settings(chat_context(update, context), edit=False)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _track(update, context, "help")
    ctx = chat_context(update, context)
    await ctx.reply(HELP_TEXT + (ADMIN_HELP_TEXT if ctx.is_admin else ""))


async def admin_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _track(update, context, "admin")
    await get_services(context).screens.admin(chat_context(update, context), edit=False)


async def cancel_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await conversation.cancel(chat_context(update, context))


async def broadcast_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    ctx = chat_context(update, context)
    if not ctx.is_admin:
        await ctx.reply("⛔ This command is only available to admins.", parse_mode=None)
        return
    text = " ".join(context.args or [])
    if not text:
        await ctx.reply("Usage: /broadcast Your message here", parse_mode=None)
        return
    await conversation.prepare_broadcast(ctx, text)


async def reload_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    services = get_services(context)
    ctx = chat_context(update, context)
    if not ctx.is_admin:
        await ctx.reply("⛔ This command is only available to admins.", parse_mode=None)
        return
    loaded = await services.loader.initialize(
        context.application, await services.registry.list())
    await ctx.reply(f"🔄 Reloaded {loaded} feature handlers.", parse_mode=None)


async def handle_callback(update: Update, context: ContextTypes.DEFAULT_TYPE):
    query = update.callback_query
    await get_services(context).router.dispatch(chat_context(update, context), query.data or "")


async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not update.message or not update.message.text:
        return
    services = get_services(context)
    ctx = chat_context(update, context)
    if not await conversation.handle_text(ctx, update.message.text, services):
        await ctx.reply("Use /menu to see the available features.", parse_mode=None)


async def handle_document(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """JSON-файл с описанием функции во время импорта"""
    ctx = chat_context(update, context)
    if not ctx.is_admin or ctx.user_data.get(conversation.STATE_KEY) != conversation.AWAITING_JSON_IMPORT:
        return
    document = update.message.document
    if not (document.file_name or "").endswith(".json"):
        await ctx.reply(
            "❌ Please upload a JSON file. The file should have a .json extension.",
            parse_mode=None)
        return
    try:
        file = await context.bot.get_file(document.file_id)
        content = await file.download_as_bytearray()
        text = bytes(content).decode("utf-8")
    except (TelegramError, UnicodeDecodeError) as e:
        logger.error(f"Error downloading uploaded file: {e}")
        await ctx.reply(f"❌ Error processing uploaded file: {e}", parse_mode=None)
        return
    await conversation.import_feature(ctx, text, get_services(context))


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE):
    logger.error(f"Update {update} caused error {context.error}", exc_info=context.error)
    if not isinstance(update, Update) or not update.effective_message:
        return
    user = update.effective_user
    services = get_services(context)
    text = "❌ Sorry, something went wrong. Please try again later."
    if services.user_settings.debug_mode() and user and user.id in services.config.ADMIN_IDS:
        text += f"\n\nError: {context.error}"
    try:
        await update.effective_message.reply_text(text)
    except TelegramError as e:
        logger.error(f"Failed to send error message: {e}")


def build_application(
        services: Optional[BotServices] = None,
        token: Optional[str] = None,
        with_post_init: bool = True) -> Application:
    services = services or build_services()
    token = token or services.config.TELEGRAM_TOKEN
    if not token:
        raise RuntimeError(
            "TELEGRAM_TOKEN (или TELEGRAM_BOT_TOKEN) не установлен(а)")

    builder = (
        Application.builder()
        .token(token)
        .rate_limiter(AIORateLimiter())
        .concurrent_updates(True)
    )
    if with_post_init:
        async def post_init(application: Application):
            await start_services(services, application)
        builder = builder.post_init(post_init)

    app = builder.build()
    app.bot_data[SERVICES_KEY] = services

    app.add_handler(TypeHandler(Update, admission_gate), group=-1)
    app.add_handler(CommandHandler("start", start))
    app.add_handler(CommandHandler("menu", menu))
    app.add_handler(CommandHandler("settings", settings_command))
    app.add_handler(CommandHandler("help", help_command))
    app.add_handler(CommandHandler("admin", admin_command))
    app.add_handler(CommandHandler("cancel", cancel_command))
    app.add_handler(CommandHandler("reload", reload_command))
    app.add_handler(CommandHandler("broadcast", broadcast_command))
    app.add_handler(CallbackQueryHandler(handle_callback))
    app.add_handler(
        MessageHandler(
            filters.TEXT & ~filters.COMMAND,
            handle_message))
    app.add_handler(MessageHandler(filters.Document.ALL, handle_document))
    app.add_error_handler(error_handler)
    return app


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=level or settings.LOG_LEVEL,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def main() -> None:
    configure_logging()
    app = build_application()
    logger.info("Бот запускается (polling)...")
    app.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == "__main__":
    main()
