"""
Маршрутизация callback_data: встроенные экраны, функции из реестра и
динамический перебор обработчиков для токенов вида ``<id>:...``.
"""

import logging
from typing import Awaitable, Callable, Optional

from feature_bot.chat_context import ChatContext, md
from feature_bot.errors import FeatureDisabled, HandlerLoadError, NotFound, TokenParseError
from feature_bot.keyboards import back_to, feature_keyboard, submenu_keyboard
from feature_bot.models.feature_models import Feature
from feature_bot.routing import (
    ActionRoute,
    AdminRoute,
    DynamicRoute,
    FeatureRoute,
    MainMenu,
    SettingsRoute,
    SubmenuRoute,
    parse_token,
)

logger = logging.getLogger(__name__)

APOLOGY = "❌ Sorry, something went wrong while processing your request. Please try again later."
NOT_IMPLEMENTED = "This action is not implemented yet"

UsageHook = Callable[[str, Optional[int]], Awaitable[None]]


class CallbackRouter:
    def __init__(self, registry, loader, screens, on_feature_used: Optional[UsageHook] = None):
        self.registry = registry
        self.loader = loader
        self.screens = screens
        self.on_feature_used = on_feature_used

    async def dispatch(self, ctx: ChatContext, data: str) -> bool:
        """
        Обрабатывает одно нажатие кнопки. Никогда не бросает исключения:
        любая ошибка логируется и превращается в сообщение пользователю.
        На callback query отвечает ровно один раз.
        """
        logger.debug(f"Callback from {ctx.user_id}: {data}")
        try:
            return await self._route(ctx, parse_token(data))
        except TokenParseError as e:
            logger.warning(f"Malformed callback data from {ctx.user_id}: {e}")
            await ctx.answer("Unknown action")
            return False
        except FeatureDisabled as e:
            await ctx.answer()
            await ctx.show(
                f"⚠️ {md(e.feature.name)} is currently disabled.",
                reply_markup=back_to("main_menu", "🔙 Back to Main Menu"))
            return False
        except NotFound as e:
            await ctx.answer()
            await ctx.show(
                f"❌ {md(e)}",
                reply_markup=back_to("main_menu", "🔙 Back to Main Menu"))
            return False
        except Exception as e:
            logger.exception(f"Error handling callback {data!r} from {ctx.user_id}")
            await self._apologize(ctx, e)
            return False
        finally:
            await ctx.answer()

    async def _apologize(self, ctx: ChatContext, error: Exception) -> None:
        text = APOLOGY
        if ctx.is_admin and ctx.debug:
            text += f"\n\nError: {error}"
        await ctx.answer()
        await ctx.reply(text, parse_mode=None)

    async def _route(self, ctx: ChatContext, route) -> bool:
        if isinstance(route, MainMenu):
            return await self.screens.main_menu(ctx)
        if isinstance(route, SettingsRoute):
            return await self.screens.settings(ctx, route.option, route.value)
        if isinstance(route, AdminRoute):
            return await self.screens.admin(ctx, route.option, route.argument)
        if isinstance(route, FeatureRoute):
            handled = await self.open_feature(ctx, route.feature_id)
        elif isinstance(route, SubmenuRoute):
            handled = await self.open_submenu(ctx, route.feature_id, route.submenu_id)
        elif isinstance(route, ActionRoute):
            handled = await self.run_action(ctx, route.feature_id, route.action_id)
        elif isinstance(route, DynamicRoute):
            return await self.dynamic(ctx, route.token)
        else:
            raise TokenParseError(f"Unsupported route: {route!r}")

        if handled:
            await self._used(route.feature_id, ctx.user_id)
        return handled

    async def _enabled_feature(self, feature_id: str) -> Feature:
        feature = await self.registry.get(feature_id)
        if feature is None:
            raise NotFound(f"Feature {feature_id} not found")
        if not feature.enabled:
            raise FeatureDisabled(feature)
        return feature

    async def _handler(self, feature_id: str):
        try:
            return await self.loader.load(feature_id)
        except HandlerLoadError as e:
            logger.error(f"Handler for feature {feature_id} unavailable: {e}")
            return None

    async def open_feature(self, ctx: ChatContext, feature_id: str) -> bool:
        feature = await self._enabled_feature(feature_id)
        handler = await self._handler(feature_id)
        hook = getattr(handler, "open", None)
        if hook is not None and await hook(ctx, feature):
            return True

        style = await self.screens.keyboard_style(ctx.user_id)
        await ctx.answer()
        await ctx.show(
            f"{feature.emoji} *{md(feature.name)}*\n\n{md(feature.description)}\n\nSelect an option:",
            reply_markup=feature_keyboard(feature, style))
        return True

    async def open_submenu(self, ctx: ChatContext, feature_id: str, submenu_id: str) -> bool:
        feature = await self._enabled_feature(feature_id)
        submenu = feature.find_submenu(submenu_id)
        if submenu is None:
            raise NotFound(f"Submenu {submenu_id} not found")
        await ctx.answer()
        await ctx.show(
            f"{submenu.emoji} *{md(submenu.name)}*\n\n{md(submenu.description)}\n\nSelect an action:",
            reply_markup=submenu_keyboard(feature, submenu))
        return True

    async def run_action(self, ctx: ChatContext, feature_id: str, action_id: str) -> bool:
        feature = await self._enabled_feature(feature_id)
        action = feature.find_action(action_id)
        if action is None:
            raise NotFound(f"Action {action_id} not found")

        handler = await self._handler(feature_id)
        handled = False
        if handler is not None:
            handled = await handler.handle_action(ctx, action, feature)
        if not handled:
            logger.info(f"Action {feature_id}:{action_id} is not implemented")
            await ctx.answer(NOT_IMPLEMENTED)
        return bool(handled)

    async def dynamic(self, ctx: ChatContext, token: str) -> bool:
        for feature in await self.registry.list(enabled=True):
            try:
                handler = await self.loader.load(feature.id)
                if await handler.handle_callback(ctx, token):
                    await self._used(feature.id, ctx.user_id)
                    return True
            except Exception as e:
                logger.error(f"Error in {feature.id} callback handler for {token!r}: {e}")
        logger.warning(f"Unhandled callback: {token}")
        return False

    async def _used(self, feature_id: str, user_id: Optional[int]) -> None:
        if self.on_feature_used is None:
            return
        try:
            await self.on_feature_used(feature_id, user_id)
        except Exception as e:
            logger.error(f"Usage hook failed for {feature_id}: {e}")
