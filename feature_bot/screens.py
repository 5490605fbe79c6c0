import logging
from typing import Optional

from feature_bot import conversation
from feature_bot.broadcast import broadcast
from feature_bot.chat_context import ChatContext, md
from feature_bot.errors import NotFound, ValidationError
from feature_bot.keyboards import (
    admin_feature_detail_keyboard,
    admin_features_keyboard,
    admin_keyboard,
    admin_user_keyboard,
    admin_users_keyboard,
    back_to,
    bot_settings_keyboard,
    feature_generator_keyboard,
    main_menu_keyboard,
    option_selector,
    settings_keyboard,
)
from feature_bot.models.feature_models import Feature
from feature_bot.user_settings import FIELDS

logger = logging.getLogger(__name__)

NO_PERMISSION = "⛔ You don't have permission to access the admin panel."


class Screens:
    """Встроенные экраны: главное меню, настройки и админ-панель"""

    def __init__(
            self, registry, loader, user_settings, stats, config,
            generator=None, gate=None, users=None):
        self.registry = registry
        self.loader = loader
        self.user_settings = user_settings
        self.stats = stats
        self.config = config
        self.generator = generator
        self.gate = gate
        self.users = users

    async def keyboard_style(self, user_id: Optional[int]) -> str:
        return await self.user_settings.keyboard_style(user_id)

    # Главное меню

    async def main_menu(self, ctx: ChatContext, edit: bool = True) -> bool:
        features = await self.registry.list(enabled=True)
        style = await self.keyboard_style(ctx.user_id)
        text = f"🏠 *{md(self.config.BOT_NAME)}*\n\nChoose a feature:"
        keyboard = main_menu_keyboard(features, style, is_admin=ctx.is_admin)
        await ctx.answer()
        if edit:
            return await ctx.show(text, reply_markup=keyboard)
        return await ctx.reply(text, reply_markup=keyboard)

    # Настройки

    def _choices(self, option: str):
        if option == "keyboard_style":
            return {s: s.title() for s in self.config.KEYBOARD_STYLES}
        if option == "notification_style":
            return {s: s.replace("-", " ").title() for s in self.config.NOTIFICATION_STYLES}
        if option == "language":
            return dict(self.config.LANGUAGES)
        return None

    async def settings(
            self,
            ctx: ChatContext,
            option: Optional[str] = None,
            value: Optional[str] = None,
            edit: bool = True) -> bool:
        if option is None:
            await ctx.answer()
            text = "⚙️ *Settings*\n\nCustomize your bot experience:"
            if edit:
                return await ctx.show(text, reply_markup=settings_keyboard())
            return await ctx.reply(text, reply_markup=settings_keyboard())

        if option == "stats":
            return await self._personal_stats(ctx)

        choices = self._choices(option)
        if choices is None:
            await ctx.answer("Unknown setting")
            return False

        title = option.replace("_", " ").capitalize()
        if value is not None:
            try:
                await self.user_settings.update(ctx.user_id, **{option: value})
            except ValidationError as e:
                await ctx.answer(f"❌ {e}", show_alert=True)
                return False
            await ctx.answer(f"✅ {title} set to {choices[value]}")

        user = await self.user_settings.get(ctx.user_id)
        current = user.get(FIELDS[option])
        await ctx.answer()
        return await ctx.show(
            f"⚙️ *{title}*\n\nCurrent: {md(choices.get(current, current))}",
            reply_markup=option_selector(option, choices, current))

    async def _personal_stats(self, ctx: ChatContext) -> bool:
        activity = self.stats.user_activity(ctx.user_id) if ctx.user_id else {}
        await ctx.answer()
        return await ctx.show(
            "📊 *Your Statistics*\n\n"
            f"Commands used: {activity.get('commandsUsed', 0)}\n"
            f"Features used: {activity.get('featuresUsed', 0)}\n"
            f"Last activity: {md(activity.get('lastActivity', 'never'))}",
            reply_markup=back_to("settings", "🔙 Back to Settings"))

    # Админ-панель

    async def admin(
            self,
            ctx: ChatContext,
            option: Optional[str] = None,
            argument: Optional[str] = None,
            edit: bool = True) -> bool:
        if not ctx.is_admin:
            logger.warning(f"User {ctx.user_id} tried to open admin option {option!r}")
            if not await ctx.answer(NO_PERMISSION, show_alert=True):
                await ctx.reply(NO_PERMISSION, parse_mode=None)
            return True

        handler = getattr(self, f"_admin_{option}", None) if option else self._admin_root
        if handler is None:
            await ctx.answer("Unknown admin action")
            return False
        if option is None:
            return await handler(ctx, edit)
        return await handler(ctx, argument)

    async def _admin_root(self, ctx: ChatContext, edit: bool = True) -> bool:
        features = await self.registry.list()
        enabled = sum(1 for f in features if f.enabled)
        text = (
            "🔧 *Admin Panel*\n\n"
            f"Features: {len(features)} ({enabled} enabled)\n"
            f"Users: {len(self.users.all()) if self.users is not None else 0}\n"
            f"AI generation: {'on' if self._ai_enabled else 'off'}"
        )
        await ctx.answer()
        if edit:
            return await ctx.show(text, reply_markup=admin_keyboard())
        return await ctx.reply(text, reply_markup=admin_keyboard())

    @property
    def _ai_enabled(self) -> bool:
        return bool(self.generator is not None and self.generator.ai_enabled)

    async def _feature_arg(self, argument: Optional[str]) -> Feature:
        feature = await self.registry.get(argument) if argument else None
        if feature is None:
            raise NotFound(f"Feature {argument} not found")
        return feature

    async def _admin_features(self, ctx: ChatContext, argument=None) -> bool:
        features = await self.registry.list()
        await ctx.answer()
        text = "🧩 *Features*\n\n" + (
            "Tap a feature for details or toggle it on and off."
            if features else "No features yet.")
        return await ctx.show(text, reply_markup=admin_features_keyboard(features))

    async def _admin_feature(self, ctx: ChatContext, argument=None) -> bool:
        feature = await self._feature_arg(argument)
        actions = len(feature.actions) + sum(len(s.actions) for s in feature.submenus)
        await ctx.answer()
        return await ctx.show(
            f"{feature.emoji} *{md(feature.name)}*\n\n"
            f"{md(feature.description)}\n\n"
            f"ID: `{feature.id}`\n"
            f"Status: {'🟢 enabled' if feature.enabled else '🔴 disabled'}\n"
            f"Submenus: {len(feature.submenus)}\n"
            f"Actions: {actions}\n"
            f"Used: {self.stats.feature_counts().get(feature.id, 0)} times",
            reply_markup=admin_feature_detail_keyboard(feature))

    async def _admin_toggle(self, ctx: ChatContext, argument=None) -> bool:
        feature = await self._feature_arg(argument)
        feature = await self.registry.set_enabled(feature.id, not feature.enabled)
        logger.info(
            f"Feature {feature.id} {'enabled' if feature.enabled else 'disabled'} "
            f"by {ctx.user_id}")
        await ctx.answer(f"{feature.name} {'enabled' if feature.enabled else 'disabled'}")
        return await self._admin_features(ctx)

    async def _admin_delete(self, ctx: ChatContext, argument=None) -> bool:
        feature = await self._feature_arg(argument)
        await self.registry.remove(feature.id)
        await ctx.answer(f"🗑 {feature.name} deleted")
        return await self._admin_features(ctx)

    async def _admin_regenerate(self, ctx: ChatContext, argument=None) -> bool:
        feature = await self._feature_arg(argument)
        written = await self.loader.materialize(feature, regenerate=True)
        await self.loader.reload(feature.id)
        await ctx.answer(
            "♻️ Handler regenerated" if written else "Built-in handler reloaded")
        return await self._admin_feature(ctx, feature.id)

    async def _admin_add_feature(self, ctx: ChatContext, argument=None) -> bool:
        lines = ["✨ *Add New Feature*\n", "✨ *Template*: a basic feature with a start action"]
        if self._ai_enabled:
            lines.append("🤖 *AI-Assisted*: describe it and let AI design the structure")
        lines.append("📋 *Import*: paste or upload a feature JSON")
        await ctx.answer()
        return await ctx.show(
            "\n".join(lines), reply_markup=feature_generator_keyboard(self._ai_enabled))

    async def _admin_gen_template(self, ctx: ChatContext, argument=None) -> bool:
        conversation.arm(ctx, conversation.AWAITING_TEMPLATE_INFO)
        await ctx.answer()
        return await ctx.show(
            "✨ Create from Template\n\n"
            "Send the feature information in this format:\n\n"
            f"{conversation.TEMPLATE_EXAMPLE}\n\n"
            "Send /cancel to abort.",
            reply_markup=back_to("admin", "🔙 Back to Admin"),
            parse_mode=None)

    async def _admin_gen_ai(self, ctx: ChatContext, argument=None) -> bool:
        if not self._ai_enabled:
            await ctx.answer("🤖 AI generation is not configured", show_alert=True)
            return False
        conversation.arm(ctx, conversation.AWAITING_AI_DESCRIPTION)
        await ctx.answer()
        return await ctx.show(
            "🤖 AI-Assisted Creation\n\n"
            "Describe the feature you want in a few sentences.\n\n"
            "Send /cancel to abort.",
            reply_markup=back_to("admin", "🔙 Back to Admin"),
            parse_mode=None)

    async def _admin_gen_import(self, ctx: ChatContext, argument=None) -> bool:
        conversation.arm(ctx, conversation.AWAITING_JSON_IMPORT)
        await ctx.answer()
        return await ctx.show(
            "📋 Import from JSON\n\n"
            "Paste the feature JSON or upload a .json file. "
            "It must include id, name, description and emoji.\n\n"
            "Send /cancel to abort.",
            reply_markup=back_to("admin", "🔙 Back to Admin"),
            parse_mode=None)

    async def _admin_analytics(self, ctx: ChatContext, argument=None) -> bool:
        features = {f.id: f for f in await self.registry.list()}
        top = self.stats.top_features(5)
        lines = ["📊 *Analytics*\n", f"Users: {self.stats.total_users()}"]
        lines.append(f"Commands: {sum(self.stats.command_counts().values())}")
        if self.gate is not None:
            gate = self.gate.stats()
            lines.append(f"Rate-limited users: {gate['blocked_users']}")
        lines.append("\n*Top features:*")
        if not top:
            lines.append("No usage yet.")
        for i, (feature_id, count) in enumerate(top, 1):
            feature = features.get(feature_id)
            label = f"{feature.emoji} {feature.name}" if feature else feature_id
            lines.append(f"{i}. {md(label)}: {count}")
        await ctx.answer()
        return await ctx.show(
            "\n".join(lines), reply_markup=back_to("admin", "🔙 Back to Admin"))

    async def _admin_reload(self, ctx: ChatContext, argument=None) -> bool:
        loaded = await self.loader.initialize(ctx.application, await self.registry.list())
        logger.info(f"Handlers reloaded by {ctx.user_id}: {loaded}")
        await ctx.answer(f"🔄 Reloaded {loaded} handlers")
        return await self._admin_root(ctx)

    # Пользователи

    async def _user_arg(self, argument: Optional[str]) -> dict:
        try:
            user_id = int(argument)
        except (TypeError, ValueError):
            raise NotFound(f"User {argument} not found")
        return self.users.require(user_id)

    async def _admin_users(self, ctx: ChatContext, argument=None) -> bool:
        users = self.users.all()
        banned = sum(1 for u in users if u.get("banned"))
        lines = [
            "👥 *User Management*\n",
            f"Total users: {len(users)}",
            f"Active users (30d): {len(self.users.active())}",
            f"Banned: {banned}",
        ]
        recent = users[:10]
        if recent:
            lines.append("\nRecent users:")
        await ctx.answer()
        return await ctx.show("\n".join(lines), reply_markup=admin_users_keyboard(recent))

    async def _admin_user(self, ctx: ChatContext, argument=None) -> bool:
        user = await self._user_arg(argument)
        rate_limited = bool(self.gate is not None and self.gate.is_blocked(user["id"]))
        activity = self.stats.user_activity(user["id"])
        lines = [
            f"👤 *{md(user.get('first_name') or user['id'])}*\n",
            f"ID: `{user['id']}`",
            f"Username: {md('@' + user['username']) if user.get('username') else '-'}",
            f"Joined: {md(user.get('createdAt', '-'))}",
            f"Last activity: {md(user.get('lastActivity', '-'))}",
            f"Features used: {activity.get('featuresUsed', 0)}",
            f"Status: {'🚫 banned' if user.get('banned') else '🟢 active'}",
        ]
        if user.get("banned"):
            lines.append(f"Reason: {md(user.get('banReason') or '-')}")
        if rate_limited:
            lines.append("⏳ Rate limited right now")
        await ctx.answer()
        return await ctx.show(
            "\n".join(lines), reply_markup=admin_user_keyboard(user, rate_limited))

    async def _admin_ban(self, ctx: ChatContext, argument=None) -> bool:
        user = await self._user_arg(argument)
        if user["id"] in self.config.ADMIN_IDS:
            await ctx.answer("⛔ Admins cannot be banned", show_alert=True)
            return False
        await self.users.ban(user["id"], reason=f"Banned by admin {ctx.user_id}")
        await ctx.answer("🚫 User banned")
        return await self._admin_user(ctx, argument)

    async def _admin_unban(self, ctx: ChatContext, argument=None) -> bool:
        user = await self._user_arg(argument)
        await self.users.unban(user["id"])
        await ctx.answer("✅ User unbanned")
        return await self._admin_user(ctx, argument)

    async def _admin_unblock(self, ctx: ChatContext, argument=None) -> bool:
        user = await self._user_arg(argument)
        if self.gate is not None:
            self.gate.reset(user["id"])
        logger.info(f"Rate limit for {user['id']} reset by {ctx.user_id}")
        await ctx.answer("🔓 Rate limit reset")
        return await self._admin_user(ctx, argument)

    # Рассылка

    async def _admin_broadcast(self, ctx: ChatContext, argument=None) -> bool:
        conversation.arm(ctx, conversation.AWAITING_BROADCAST)
        await ctx.answer()
        return await ctx.show(
            "📣 Broadcast Message\n\n"
            "Send the message you want to deliver to all users. "
            "You will be asked to confirm before it is sent.\n\n"
            "Send /cancel to abort.",
            reply_markup=back_to("admin", "🔙 Back to Admin"),
            parse_mode=None)

    async def _admin_broadcast_confirm(self, ctx: ChatContext, argument=None) -> bool:
        text = ctx.user_data.pop(conversation.PENDING_BROADCAST, None)
        if not text:
            await ctx.answer("Nothing to broadcast", show_alert=True)
            return False
        await ctx.answer("📣 Sending...")
        result = await broadcast(ctx.send_to, self.users.recipients(), text)
        logger.info(f"Broadcast by {ctx.user_id}: {result.sent}/{result.total} sent")
        return await ctx.show(
            "📣 *Broadcast completed*\n\n"
            f"Total users: {result.total}\n"
            f"Sent: {result.sent}\n"
            f"Failed: {result.failed}\n"
            f"Blocked the bot: {result.blocked}\n"
            f"Success rate: {result.success_rate:.1f}%",
            reply_markup=back_to("admin", "🔙 Back to Admin"))

    async def _admin_broadcast_cancel(self, ctx: ChatContext, argument=None) -> bool:
        ctx.user_data.pop(conversation.PENDING_BROADCAST, None)
        await ctx.answer()
        return await ctx.show(
            "Broadcast cancelled.", reply_markup=back_to("admin", "🔙 Back to Admin"))

    # Настройки бота

    async def _admin_bot_settings(self, ctx: ChatContext, argument=None) -> bool:
        debug = self.user_settings.debug_mode()
        text = (
            "⚙️ *Bot Settings*\n\n"
            f"Default keyboard style: {md(self.user_settings.default('keyboard_style'))}\n"
            f"Default notification style: {md(self.user_settings.default('notification_style'))}\n"
            f"Default language: {md(self.user_settings.default('language'))}\n"
            f"Debug mode: {'Enabled ✅' if debug else 'Disabled ❌'}"
        )
        await ctx.answer()
        return await ctx.show(text, reply_markup=bot_settings_keyboard(debug))

    async def _default_setting(self, ctx: ChatContext, field: str, value: Optional[str]) -> bool:
        choices = self._choices(field)
        title = field.replace("_", " ")
        if value is not None:
            try:
                await self.user_settings.update_bot_settings(**{field: value})
            except ValidationError as e:
                await ctx.answer(f"❌ {e}", show_alert=True)
                return False
            logger.info(f"Default {title} set to {value} by {ctx.user_id}")
            await ctx.answer(f"✅ Default {title} set to {choices[value]}")
        current = self.user_settings.default(field)
        await ctx.answer()
        return await ctx.show(
            f"⚙️ *Default {title}*\n\nCurrent: {md(choices.get(current, current))}",
            reply_markup=option_selector(
                f"default_{field}", choices, current,
                prefix="admin", back="admin:bot_settings"))

    async def _admin_default_keyboard_style(self, ctx: ChatContext, argument=None) -> bool:
        return await self._default_setting(ctx, "keyboard_style", argument)

    async def _admin_default_notification_style(self, ctx: ChatContext, argument=None) -> bool:
        return await self._default_setting(ctx, "notification_style", argument)

    async def _admin_default_language(self, ctx: ChatContext, argument=None) -> bool:
        return await self._default_setting(ctx, "language", argument)

    async def _admin_toggle_debug(self, ctx: ChatContext, argument=None) -> bool:
        debug = not self.user_settings.debug_mode()
        await self.user_settings.update_bot_settings(debug_mode=debug)
        logger.info(f"Debug mode {'enabled' if debug else 'disabled'} by {ctx.user_id}")
        await ctx.answer(f"🐛 Debug mode {'enabled' if debug else 'disabled'}")
        return await self._admin_bot_settings(ctx)
