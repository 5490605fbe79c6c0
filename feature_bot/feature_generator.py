"""
Создание новых функций: по шаблону, по описанию через ИИ и импортом JSON.
"""

import asyncio
import json
import logging
import re
from typing import Any, Callable, Dict, Optional

from feature_bot.errors import GenerationError, GenerationTimeout, ValidationError
from feature_bot.models.feature_models import Feature
from feature_bot.registry import FeatureRegistry

logger = logging.getLogger(__name__)

IMPORT_FIELDS = ("id", "name", "description", "emoji")

SYSTEM_PROMPT = (
    "You are a helpful assistant that designs Telegram bot features. "
    "Always return valid JSON."
)

FEATURE_PROMPT = """Generate a Telegram bot feature based on this description: "{description}"

Return a JSON object with the following structure (MUST be valid JSON):
{{
  "id": "unique_feature_id_lowercase_with_underscores",
  "name": "Feature Name",
  "description": "Detailed description of the feature",
  "emoji": "🔍",
  "submenus": [
    {{
      "id": "submenu_id",
      "name": "Submenu Name",
      "description": "Submenu description",
      "emoji": "📋",
      "actions": [
        {{"id": "action_id", "name": "Action Name", "description": "Action description", "emoji": "⚙️"}}
      ]
    }}
  ],
  "actions": [
    {{"id": "action_id", "name": "Action Name", "description": "Action description", "emoji": "⚙️"}}
  ]
}}

Rules:
1. "id" must be lowercase, alphanumeric with underscores only, and unique
2. Choose appropriate emojis for each element
3. Design a logical structure with appropriate submenus and actions
4. Make feature description detailed and helpful
5. Return ONLY the JSON object with NO additional text or markdown"""

TEMPLATE_RE = {
    "id": re.compile(r"ID:\s*([a-z0-9_]+)", re.IGNORECASE),
    "name": re.compile(r"Name:\s*(.+)", re.IGNORECASE),
    "description": re.compile(r"Description:\s*(.+)", re.IGNORECASE),
    "emoji": re.compile(r"Emoji:\s*(\S+)", re.IGNORECASE),
}
FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


def parse_template_info(text: str) -> Optional[Dict[str, str]]:
    """
    Разбирает сообщение администратора вида::

        ID: weather
        Name: Weather Forecast
        Description: Get weather forecasts for any location
        Emoji: 🌤

    Возвращает None, если хотя бы одного поля нет.
    """
    info = {}
    for field, pattern in TEMPLATE_RE.items():
        match = pattern.search(text or "")
        if not match:
            return None
        info[field] = match.group(1).strip()
    info["id"] = info["id"].lower()
    return info


def extract_json(content: str) -> Dict[str, Any]:
    content = content.strip()
    match = FENCE_RE.search(content)
    if match:
        content = match.group(1).strip()
    start, end = content.find("{"), content.rfind("}")
    if start != -1 and end != -1:
        content = content[start:end + 1]
    try:
        data = json.loads(content)
    except ValueError as e:
        raise GenerationError(
            "Failed to parse the AI-generated feature. "
            "Please try again with a clearer description.") from e
    if not isinstance(data, dict):
        raise GenerationError("AI response is not a JSON object")
    return data


def sanitize_id(value: str) -> str:
    return re.sub(r"[^a-z0-9_]", "_", str(value).lower())


class FeatureGenerator:
    def __init__(
            self,
            registry: FeatureRegistry,
            generate_text: Optional[Callable[..., str]] = None,
            timeout: float = 30.0):
        self.registry = registry
        self.generate_text = generate_text
        self.timeout = timeout

    @property
    def ai_enabled(self) -> bool:
        return self.generate_text is not None

    async def create_from_template(
            self,
            feature_id: str,
            name: str,
            description: str,
            emoji: Optional[str] = None) -> Feature:
        logger.info(f"Creating feature from template: {feature_id}")
        return await self.registry.add({
            "id": feature_id,
            "name": name,
            "description": description,
            "emoji": emoji or "🎯",
            "enabled": True,
            "submenus": [],
            "actions": [{
                "id": "get_started",
                "name": "Get Started",
                "description": "Start using this feature",
                "emoji": "▶️",
            }],
        })

    async def generate_with_ai(self, description: str) -> Feature:
        if not self.ai_enabled:
            raise GenerationError(
                "AI generation is disabled. Configure Yandex Cloud credentials first.")
        logger.info(f"Generating feature with AI from description: {description[:100]}...")

        prompt = FEATURE_PROMPT.format(description=description)
        try:
            content = await asyncio.wait_for(
                asyncio.to_thread(self.generate_text, prompt, SYSTEM_PROMPT),
                timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise GenerationTimeout(
                f"AI did not respond within {self.timeout:g} seconds") from e

        data = extract_json(content or "")
        if any(not data.get(field) for field in IMPORT_FIELDS):
            raise GenerationError("AI generated incomplete feature data. Please try again.")
        data["id"] = sanitize_id(data["id"])

        feature = await self.registry.add(data)
        logger.info(f"Feature generated successfully: {feature.id}")
        return feature

    async def import_json(self, text: str) -> Feature:
        try:
            data = json.loads(text)
        except ValueError as e:
            raise ValidationError(
                "Invalid JSON format. Please check your JSON and try again.") from e
        if not isinstance(data, dict) or any(not data.get(f) for f in IMPORT_FIELDS):
            raise ValidationError(
                "Invalid feature data. The JSON must include id, name, "
                "description, and emoji fields.")
        for key in ("createdAt", "updatedAt", "created_at", "updated_at"):
            data.pop(key, None)
        data.setdefault("enabled", True)
        return await self.registry.add(data)
