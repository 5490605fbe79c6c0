import logging
from typing import Any, Dict, Optional

from telegram import InlineKeyboardMarkup, Update
from telegram.constants import ParseMode
from telegram.error import BadRequest, TelegramError
from telegram.ext import ContextTypes
from telegram.helpers import escape_markdown

logger = logging.getLogger(__name__)


def md(text: Any) -> str:
    """Экранирование пользовательских строк для ParseMode.MARKDOWN"""
    return escape_markdown(str(text), version=1)


class ChatContext:
    """
    То, что видят маршрутизатор и обработчики функций: кто пишет и как
    ему ответить. Методы отправки никогда не бросают исключения наружу.
    """

    def __init__(
            self,
            user_id: Optional[int],
            chat_id: Optional[int],
            user_data: Optional[Dict[str, Any]] = None,
            is_admin: bool = False,
            debug: bool = False,
            application=None):
        self.user_id = user_id
        self.chat_id = chat_id
        self.user_data = user_data if user_data is not None else {}
        self.is_admin = is_admin
        self.debug = debug
        self.application = application

    async def reply(
            self,
            text: str,
            reply_markup: Optional[InlineKeyboardMarkup] = None,
            parse_mode: Optional[str] = ParseMode.MARKDOWN) -> bool:
        raise NotImplementedError

    async def edit(
            self,
            text: str,
            reply_markup: Optional[InlineKeyboardMarkup] = None,
            parse_mode: Optional[str] = ParseMode.MARKDOWN) -> bool:
        raise NotImplementedError

    async def answer(self, text: Optional[str] = None, show_alert: bool = False) -> bool:
        raise NotImplementedError

    async def send_to(
            self,
            chat_id: int,
            text: str,
            parse_mode: Optional[str] = None) -> None:
        """Сообщение в другой чат; ошибки Telegram пробрасываются вызывающему"""
        raise NotImplementedError

    async def show(
            self,
            text: str,
            reply_markup: Optional[InlineKeyboardMarkup] = None,
            parse_mode: Optional[str] = ParseMode.MARKDOWN) -> bool:
        """Редактирует текущее сообщение, а если не вышло - шлёт новое"""
        if await self.edit(text, reply_markup=reply_markup, parse_mode=parse_mode):
            return True
        return await self.reply(text, reply_markup=reply_markup, parse_mode=parse_mode)


class TelegramChatContext(ChatContext):
    def __init__(
            self,
            update: Update,
            context: ContextTypes.DEFAULT_TYPE,
            admin_ids=(),
            debug: bool = False):
        user = update.effective_user
        chat = update.effective_chat
        super().__init__(
            user_id=user.id if user else None,
            chat_id=chat.id if chat else None,
            user_data=context.user_data,
            is_admin=bool(user and user.id in admin_ids),
            debug=debug,
            application=context.application,
        )
        self.update = update
        self.bot = context.bot
        self._answered = False

    async def reply(self, text, reply_markup=None, parse_mode=ParseMode.MARKDOWN):
        if self.chat_id is None:
            return False
        try:
            await self.bot.send_message(
                chat_id=self.chat_id,
                text=text,
                reply_markup=reply_markup,
                parse_mode=parse_mode,
            )
            return True
        except TelegramError as e:
            logger.error(f"Failed to send message to {self.chat_id}: {e}")
            return False

    async def send_to(self, chat_id, text, parse_mode=None):
        await self.bot.send_message(chat_id=chat_id, text=text, parse_mode=parse_mode)

    async def edit(self, text, reply_markup=None, parse_mode=ParseMode.MARKDOWN):
        query = self.update.callback_query
        if query is None or query.message is None:
            return False
        try:
            await query.edit_message_text(
                text=text,
                reply_markup=reply_markup,
                parse_mode=parse_mode,
            )
            return True
        except BadRequest as e:
            if "message is not modified" in str(e).lower():
                return True
            logger.debug(f"Edit failed, falling back to reply: {e}")
            return False
        except TelegramError as e:
            logger.error(f"Failed to edit message in {self.chat_id}: {e}")
            return False

    async def answer(self, text=None, show_alert=False):
        query = self.update.callback_query
        if query is None or self._answered:
            return False
        self._answered = True
        try:
            await query.answer(text=text, show_alert=show_alert)
            return True
        except TelegramError as e:
            logger.warning(f"Failed to answer callback query: {e}")
            return False
