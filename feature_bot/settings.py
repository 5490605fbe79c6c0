from dotenv import load_dotenv, find_dotenv
import os
from typing import Dict, List

load_dotenv(find_dotenv())


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_ids(name: str) -> List[int]:
    """Список Telegram ID из строки вида "123, 456" (мусор пропускается)."""
    ids = []
    for chunk in os.getenv(name, "").split(","):
        chunk = chunk.strip()
        if chunk.lstrip("-").isdigit():
            ids.append(int(chunk))
    return ids


class Settings:
    TELEGRAM_TOKEN: str = (
        os.getenv('TELEGRAM_TOKEN')
        or os.getenv('TELEGRAM_BOT_TOKEN')
        or os.getenv('BOT_TOKEN', '')
    )
    ADMIN_IDS: List[int] = _env_ids('ADMIN_IDS')
    DEBUG_MODE: bool = _env_flag('DEBUG_MODE')
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'DEBUG' if DEBUG_MODE else 'INFO')

    # Хранилище
    DB_PATH: str = os.getenv('DB_PATH', './data')
    HANDLERS_PATH: str = os.getenv(
        'HANDLERS_PATH', os.path.join(DB_PATH, 'handlers'))

    # Rate limiting (миллисекунды)
    RATE_LIMIT: Dict[str, int] = {
        'window': int(os.getenv('RATE_LIMIT_WINDOW_MS', '1000')),
        'limit': int(os.getenv('RATE_LIMIT_LIMIT', '5')),
        'user_block_timeout': int(os.getenv('RATE_LIMIT_BLOCK_MS', '60000')),
    }

    # Оформление
    KEYBOARD_STYLES: List[str] = [
        'classic', 'compact', 'modern', 'elegant', 'minimalist']
    DEFAULT_KEYBOARD_STYLE: str = 'modern'
    NOTIFICATION_STYLES: List[str] = [
        'standard', 'detailed', 'minimal', 'emoji-rich']
    DEFAULT_NOTIFICATION_STYLE: str = 'standard'
    LANGUAGES: Dict[str, str] = {'en': 'English 🇬🇧', 'id': 'Indonesia 🇮🇩'}
    DEFAULT_LANGUAGE: str = 'en'

    # Yandex Cloud
    FOLDER_ID: str = os.getenv('FOLDER_ID', '')
    SERVICE_ACCOUNT_ID: str = os.getenv('SERVICE_ACCOUNT_ID', '')
    KEY_ID: str = os.getenv('KEY_ID', '')
    PRIVATE_KEY: str = os.getenv('PRIVATE_KEY', '')
    LLM_URL: str = os.getenv(
        'LLM_URL',
        'https://llm.api.cloud.yandex.net/foundationModels/v1/completion')
    MODEL_NAME: str = (
        f"gpt://{FOLDER_ID}/yandexgpt-lite" if FOLDER_ID else "")
    AI_TIMEOUT: float = float(os.getenv('AI_TIMEOUT', '30'))
    AI_ENABLED: bool = all(
        [FOLDER_ID, SERVICE_ACCOUNT_ID, KEY_ID, PRIVATE_KEY]
    ) and not _env_flag('AI_DISABLED')

    # HTTP сервис
    WEBHOOK_URL: str = os.getenv('WEBHOOK_URL', '')
    # X-Telegram-Bot-Api-Secret-Token; если пусто - генерируется при запуске
    WEBHOOK_SECRET: str = os.getenv('WEBHOOK_SECRET', '')
    SECRET_KEY: str = os.getenv('SECRET_KEY', '')
    HOST: str = os.getenv('HOST', 'localhost')
    PORT: int = int(os.getenv('PORT', '9999'))

    BOT_NAME: str = 'FeatureBot'
    BOT_VERSION: str = '1.0.0'


settings = Settings()
