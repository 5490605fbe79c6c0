"""
Клиент YandexGPT для генерации функций бота.

IAM токен получается по JWT сервисного аккаунта (PS256) и кэшируется
примерно на час. Все методы синхронные: из асинхронного кода их
вызывают через asyncio.to_thread.
"""

import logging
import time
from typing import Any, Dict, List, Optional

import jwt
import requests

from feature_bot.errors import GenerationError
from feature_bot.settings import settings

logger = logging.getLogger(__name__)

IAM_URL = 'https://iam.api.cloud.yandex.net/iam/v1/tokens'


class YandexGPTClient:
    def __init__(
            self,
            folder_id: str = settings.FOLDER_ID,
            service_account_id: str = settings.SERVICE_ACCOUNT_ID,
            key_id: str = settings.KEY_ID,
            private_key: str = settings.PRIVATE_KEY,
            llm_url: str = settings.LLM_URL,
            model_name: Optional[str] = None,
            timeout: float = settings.AI_TIMEOUT) -> None:
        self.folder_id = folder_id
        self.service_account_id = service_account_id
        self.key_id = key_id
        self.private_key = private_key
        self.llm_url = llm_url
        self.model_name = model_name or (
            f"gpt://{folder_id}/yandexgpt-lite" if folder_id else "")
        self.timeout = timeout
        self.iam_token: Optional[str] = None
        self.token_expires: int = 0

    @property
    def enabled(self) -> bool:
        return all([
            self.folder_id, self.service_account_id,
            self.key_id, self.private_key])

    def get_iam_token(self) -> str:
        if self.iam_token and time.time() < self.token_expires:
            return self.iam_token
        now = int(time.time())
        payload = {
            'aud': IAM_URL,
            'iss': self.service_account_id,
            'iat': now,
            'exp': now + 3600
        }
        encoded_token = jwt.encode(
            payload,
            self.private_key,
            algorithm='PS256',
            headers={'kid': self.key_id})
        response = requests.post(
            IAM_URL,
            json={'jwt': encoded_token},
            timeout=10,
        )
        if response.status_code != 200:
            raise GenerationError(f"Error generating IAM token: {response.text}")
        self.iam_token = response.json()['iamToken']
        self.token_expires = now + 3500
        logger.info("IAM token generated successfully")
        return self.iam_token

    def ask_gpt(self, messages: List[Dict[str, Any]], temperature: float = 0.6) -> str:
        if not self.enabled:
            raise GenerationError(
                "AI is not configured. Set FOLDER_ID, SERVICE_ACCOUNT_ID, "
                "KEY_ID and PRIVATE_KEY to enable it.")
        try:
            headers = {
                'Content-Type': 'application/json',
                'Authorization': f'Bearer {self.get_iam_token()}',
                'x-folder-id': self.folder_id
            }
            data = {
                "modelUri": self.model_name,
                "completionOptions": {
                    "stream": False,
                    "temperature": temperature,
                    "maxTokens": 2000},
                "messages": messages}
            response = requests.post(
                self.llm_url, headers=headers, json=data, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise GenerationError(f"Connection error: {e}") from e
        if response.status_code != 200:
            logger.error(f"Yandex GPT API error: {response.text}")
            raise GenerationError(f"API error: {response.status_code}")
        return (
            response.json()
            .get('result', {})
            .get('alternatives', [{}])[0]
            .get('message', {})
            .get('text', '')
        )

    def generate_text(self, prompt: str, system: Optional[str] = None) -> str:
        messages = []
        if system:
            messages.append({"role": "system", "text": system})
        messages.append({"role": "user", "text": prompt})
        return self.ask_gpt(messages, temperature=0.7)
