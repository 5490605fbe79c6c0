"""
Многошаговый ввод текста: мастера создания функций для администратора
и эхо. Состояние хранится в ``user_data`` (best effort, без блокировок).
"""

import logging

from feature_bot.chat_context import ChatContext, md
from feature_bot.errors import FeatureBotError, GenerationTimeout
from feature_bot.feature_generator import parse_template_info
from feature_bot.features import echo
from feature_bot.keyboards import back_to, broadcast_confirm_keyboard

logger = logging.getLogger(__name__)

STATE_KEY = "generator_state"
AWAITING_TEMPLATE_INFO = "awaiting_template_info"
AWAITING_AI_DESCRIPTION = "awaiting_ai_description"
AWAITING_JSON_IMPORT = "awaiting_json_import"
AWAITING_BROADCAST = "awaiting_broadcast"
ADMIN_STATES = (
    AWAITING_TEMPLATE_INFO, AWAITING_AI_DESCRIPTION, AWAITING_JSON_IMPORT, AWAITING_BROADCAST)

# текст рассылки, ожидающий подтверждения
PENDING_BROADCAST = "pending_broadcast"

TEMPLATE_EXAMPLE = (
    "ID: weather\n"
    "Name: Weather Forecast\n"
    "Description: Get weather forecasts for any location\n"
    "Emoji: 🌤"
)


def _back():
    return back_to("admin", "🔙 Back to Admin")


def arm(ctx: ChatContext, state: str) -> None:
    ctx.user_data[STATE_KEY] = state


def clear(ctx: ChatContext) -> bool:
    """Сбрасывает все ожидания; True, если что-то было активно"""
    active = bool(ctx.user_data.pop(STATE_KEY, None))
    active = bool(ctx.user_data.pop(echo.PENDING_ECHO, None)) or active
    active = bool(ctx.user_data.pop(PENDING_BROADCAST, None)) or active
    return active


async def cancel(ctx: ChatContext) -> None:
    if clear(ctx):
        await ctx.reply("Operation cancelled.", reply_markup=_back() if ctx.is_admin else None)
    else:
        await ctx.reply("Nothing to cancel.")


async def handle_text(ctx: ChatContext, text: str, services) -> bool:
    """Возвращает True, если текст был поглощён одним из ожиданий"""
    state = ctx.user_data.get(STATE_KEY)
    if state in ADMIN_STATES and ctx.is_admin:
        if text.strip().lower() == "/cancel":
            await cancel(ctx)
            return True
        if state == AWAITING_TEMPLATE_INFO:
            await _template_info(ctx, text, services)
        elif state == AWAITING_AI_DESCRIPTION:
            await _ai_description(ctx, text, services)
        elif state == AWAITING_BROADCAST:
            await prepare_broadcast(ctx, text)
        else:
            await import_feature(ctx, text, services)
        return True

    return await echo.consume(ctx, text)


async def _report_created(ctx: ChatContext, feature, verb: str = "created") -> None:
    ctx.user_data.pop(STATE_KEY, None)
    await ctx.reply(
        f"✅ Feature \"{md(feature.name)}\" {verb} successfully!\n\n"
        f"ID: {md(feature.id)}\n"
        f"Emoji: {feature.emoji}\n\n"
        "The feature is now available in the main menu.",
        reply_markup=_back(),
    )


async def _template_info(ctx: ChatContext, text: str, services) -> None:
    info = parse_template_info(text)
    if info is None:
        await ctx.reply(
            "❌ Invalid format. Please provide all required information "
            f"in the correct format.\n\nExample:\n{TEMPLATE_EXAMPLE}",
            parse_mode=None,
        )
        return
    await ctx.reply("⏳ Creating feature from template...", parse_mode=None)
    try:
        feature = await services.generator.create_from_template(
            info["id"], info["name"], info["description"], info["emoji"])
    except FeatureBotError as e:
        logger.error(f"Error creating feature from template: {e}")
        await ctx.reply(f"❌ Error creating feature: {e}", reply_markup=_back(), parse_mode=None)
        return
    await _report_created(ctx, feature)


async def _ai_description(ctx: ChatContext, text: str, services) -> None:
    if len(text.strip()) < 10:
        await ctx.reply(
            "❌ Please provide a more detailed description of the feature you want to create.",
            parse_mode=None)
        return
    await ctx.reply("⏳ Generating feature with AI... This may take a moment.", parse_mode=None)
    try:
        feature = await services.generator.generate_with_ai(text)
    except GenerationTimeout as e:
        logger.warning(f"AI feature generation timed out: {e}")
        await ctx.reply(
            f"⌛ {e}. Please try again later or use a template instead.",
            reply_markup=_back(), parse_mode=None)
        return
    except FeatureBotError as e:
        logger.error(f"AI feature generation error: {e}")
        await ctx.reply(
            f"❌ Failed to generate feature with AI: {e}\n\n"
            "Please try again with a more specific description or use a template instead.",
            reply_markup=_back(), parse_mode=None)
        return
    await _report_created(ctx, feature)


async def import_feature(ctx: ChatContext, text: str, services) -> None:
    try:
        feature = await services.generator.import_json(text)
    except FeatureBotError as e:
        logger.error(f"Error importing feature: {e}")
        await ctx.reply(f"❌ {e}", reply_markup=_back(), parse_mode=None)
        return
    await _report_created(ctx, feature, verb="imported")


async def prepare_broadcast(ctx: ChatContext, text: str) -> None:
    text = (text or "").strip()
    if not text:
        await ctx.reply("❌ The broadcast message is empty.", parse_mode=None)
        return
    ctx.user_data.pop(STATE_KEY, None)
    ctx.user_data[PENDING_BROADCAST] = text
    await ctx.reply(
        f"📣 Broadcast preview:\n\n{text}\n\nSend this message to all users?",
        reply_markup=broadcast_confirm_keyboard(),
        parse_mode=None,
    )
