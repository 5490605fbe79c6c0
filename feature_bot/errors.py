"""
Исключения ядра бота: реестр функций, загрузчик обработчиков, маршрутизатор
и генерация функций через ИИ.
"""


class FeatureBotError(Exception):
    """Базовое исключение проекта"""


class ValidationError(FeatureBotError):
    """Некорректные данные функции (id, обязательные поля, структура)"""


class NotFound(FeatureBotError):
    """Функция, подменю, действие или пользователь не найдены"""


class DuplicateId(FeatureBotError):
    """Функция с таким id уже есть в реестре"""


class FeatureDisabled(FeatureBotError):
    """Функция существует, но выключена"""

    def __init__(self, feature):
        super().__init__(f"Feature {feature.id} is disabled")
        self.feature = feature


class HandlerLoadError(FeatureBotError):
    """Не удалось создать или загрузить обработчик функции"""


class TokenParseError(FeatureBotError):
    """Строка callback_data не соответствует грамматике токенов"""


class GenerationError(FeatureBotError):
    """ИИ недоступен или вернул непригодный ответ"""


class GenerationTimeout(GenerationError):
    """Запрос к ИИ не уложился в AI_TIMEOUT"""
