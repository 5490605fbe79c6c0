"""Shared fixtures: temporary data directories, a recording chat context and fake handlers."""

from types import SimpleNamespace

import pytest
import pytest_asyncio

from feature_bot.chat_context import ChatContext
from feature_bot.services import build_services, start
from feature_bot.settings import Settings

ADMIN_ID = 1
USER_ID = 42


class FakeChatContext(ChatContext):
    """Records everything the bot would send instead of calling Telegram."""

    def __init__(self, user_id=USER_ID, is_admin=False, debug=False, can_edit=True, user_data=None):
        super().__init__(user_id, user_id, user_data=user_data, is_admin=is_admin, debug=debug)
        self.can_edit = can_edit
        self.replies = []
        self.edits = []
        self.answers = []
        self.sent_messages = []
        self.failures = {}

    async def reply(self, text, reply_markup=None, parse_mode="Markdown"):
        self.replies.append((text, reply_markup))
        return True

    async def edit(self, text, reply_markup=None, parse_mode="Markdown"):
        if not self.can_edit:
            return False
        self.edits.append((text, reply_markup))
        return True

    async def answer(self, text=None, show_alert=False):
        if self.answers:
            return False
        self.answers.append((text, show_alert))
        return True

    async def send_to(self, chat_id, text, parse_mode=None):
        if chat_id in self.failures:
            raise self.failures[chat_id]
        self.sent_messages.append((chat_id, text))

    @property
    def texts(self):
        return [text for text, _ in self.replies + self.edits]

    def sent(self, fragment):
        return any(fragment in text for text in self.texts)

    @property
    def answer_text(self):
        return self.answers[0][0] if self.answers else None


class RecordingHandler:
    def __init__(self, action_result=True, callback_result=False):
        self.action_result = action_result
        self.callback_result = callback_result
        self.actions = []
        self.callbacks = []

    async def handle_action(self, ctx, action, feature):
        self.actions.append(action.id)
        return self.action_result

    async def handle_callback(self, ctx, token):
        self.callbacks.append(token)
        return self.callback_result


class ExplodingHandler:
    async def handle_action(self, ctx, action, feature):
        raise RuntimeError("handler exploded")

    async def handle_callback(self, ctx, token):
        raise RuntimeError("handler exploded")


def make_feature(feature_id, **overrides):
    data = {
        "id": feature_id,
        "name": feature_id.replace("_", " ").title(),
        "description": f"{feature_id} feature",
        "emoji": "🧪",
        "actions": [{"id": "run", "name": "Run", "description": "Run it"}],
    }
    data.update(overrides)
    return data


@pytest.fixture
def config(tmp_path):
    values = {name: getattr(Settings, name) for name in dir(Settings) if name.isupper()}
    values.update(
        DB_PATH=str(tmp_path / "data"),
        HANDLERS_PATH=str(tmp_path / "data" / "handlers"),
        ADMIN_IDS=[ADMIN_ID],
        DEBUG_MODE=False,
        AI_ENABLED=False,
        AI_TIMEOUT=5.0,
        SECRET_KEY="",
        RATE_LIMIT={"window": 1000, "limit": 5, "user_block_timeout": 60000},
    )
    return SimpleNamespace(**values)


@pytest.fixture
def services(config):
    return build_services(config)


@pytest_asyncio.fixture
async def ready_services(services):
    await start(services)
    return services


@pytest.fixture
def user_ctx():
    return FakeChatContext()


@pytest.fixture
def admin_ctx():
    return FakeChatContext(user_id=ADMIN_ID, is_admin=True)
