"""
Декларативный обработчик функции.

Вместо генерации исполняемого кода для новой функции сохраняется
JSON-описание ответов (``<HANDLERS_PATH>/<id>.json``), а ``TemplateHandler``
интерпретирует его: на каждое действие - заготовленный ответ, на каждое
подменю - экран с кнопками ``<id>:<submenu>:<action>``.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from feature_bot.chat_context import ChatContext, md
from feature_bot.keyboards import markup
from feature_bot.models.feature_models import Action, Feature
from feature_bot.routing import feature_token

logger = logging.getLogger(__name__)

TIP = "_Tip: this action was generated automatically. If you are the admin you can customize its behavior._"


def _stub(title: str, description: str) -> Dict[str, str]:
    return {"title": title, "text": description or "No description provided."}


def build_handler_spec(feature: Feature) -> Dict[str, Any]:
    """Строит описание обработчика по структуре actions/submenus функции"""
    submenus = {}
    submenu_actions = {}
    for submenu in feature.submenus:
        buttons: List[List[str]] = [
            [f"{a.emoji or '⚙️'} {a.name}", f"{feature.id}:{submenu.id}:{a.id}"]
            for a in submenu.actions
        ]
        buttons.append(["🔙 Back", feature_token(feature.id)])
        submenus[submenu.id] = {
            **_stub(submenu.name, submenu.description),
            "buttons": buttons,
        }
        for action in submenu.actions:
            submenu_actions[f"{submenu.id}:{action.id}"] = {
                **_stub(action.name, action.description),
                "submenu": submenu.name,
            }

    return {
        "feature_id": feature.id,
        "name": feature.name,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "actions": {a.id: _stub(a.name, a.description) for a in feature.actions},
        "submenus": submenus,
        "submenu_actions": submenu_actions,
    }


class TemplateHandler:
    def __init__(self, spec: Dict[str, Any]):
        self.spec = spec
        self.feature_id = spec["feature_id"]

    def __repr__(self):
        return f"TemplateHandler({self.feature_id!r})"

    async def init(self, application, feature: Feature) -> None:
        logger.info(f"{feature.name} feature initialized")

    async def handle_action(self, ctx: ChatContext, action: Action, feature: Feature) -> bool:
        logger.debug(f"{self.feature_id}: handle_action called for action: {action.id}")
        stub = self.spec.get("actions", {}).get(action.id)
        if stub is None:
            # действие из подменю: ключ "<submenu>:<action>"
            stub = next(
                (s for key, s in self.spec.get("submenu_actions", {}).items()
                 if key.split(":", 1)[1] == action.id),
                None)
        if stub is None:
            return False
        await ctx.answer()
        await ctx.reply(f"🎯 *{md(stub['title'])}*\n\n{md(stub['text'])}\n\n{TIP}")
        return True

    async def handle_callback(self, ctx: ChatContext, token: str) -> bool:
        if not token.startswith(f"{self.feature_id}:"):
            return False
        logger.debug(f"{self.feature_id}: handle_callback called with data: {token}")

        # неизвестный токен не подтверждаем: его может забрать другой обработчик
        parts = token.split(":")
        if len(parts) == 2:
            submenu = self.spec.get("submenus", {}).get(parts[1])
            if submenu is None:
                return False
            await ctx.answer()
            await ctx.show(
                f"🎯 *{md(submenu['title'])}*\n\n{md(submenu['text'])}\n\nSelect an option:",
                reply_markup=markup([[tuple(b)] for b in submenu.get("buttons", [])]),
            )
            return True

        if len(parts) == 3:
            stub = self.spec.get("submenu_actions", {}).get(f"{parts[1]}:{parts[2]}")
            if stub is None:
                return False
            await ctx.answer()
            await ctx.reply(
                f"📋 *{md(stub.get('submenu', ''))}* > *{md(stub['title'])}*\n\n{md(stub['text'])}")
            return True

        return False
