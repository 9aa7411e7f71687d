"""
Конфигурация проекта
"""
import os
from dataclasses import dataclass
from typing import Tuple
from datetime import time


@dataclass
class Settings:
    """Настройки приложения"""
    # Telegram
    BOT_TOKEN: str = os.getenv('BOT_TOKEN', '')

    # REST API ресторана
    API_URL: str = os.getenv('API_URL', 'http://localhost:5000/api')
    API_TIMEOUT_SECONDS: float = float(os.getenv('API_TIMEOUT_SECONDS', '10'))
    # Токен фоновых задач; если пуст, берётся токен последнего вошедшего сотрудника
    API_TOKEN: str = os.getenv('API_TOKEN', '')

    # Фоновые задачи
    RESERVATION_CHECK_SECONDS: int = int(os.getenv('RESERVATION_CHECK_SECONDS', '30'))
    RELOAD_DELAY_SECONDS: int = 2

    # Бизнес-правила
    RESERVED_SOON_MINUTES: int = 30
    TABLE_CAPACITIES: Tuple[int, ...] = (2, 4, 6, 8, 10)
    MAX_RESERVATION_HOURS: int = 4
    MAX_BOOKING_DAYS: int = 7
    RESERVATION_STEP_MINUTES: int = 30
    MIN_PASSWORD_LENGTH: int = 6

    # Режим работы зала
    OPEN_TIME: time = time(10, 0)
    CLOSE_TIME: time = time(23, 0)

    # Часовой пояс только для отображения
    DISPLAY_TIMEZONE: str = os.getenv('DISPLAY_TIMEZONE', 'Europe/Moscow')

    def __post_init__(self):
        """Проверка настроек после создания объекта"""
        if not self.BOT_TOKEN:
            raise ValueError("BOT_TOKEN не установлен")

        # Базовый URL без завершающего слэша
        self.API_URL = self.API_URL.rstrip('/')

        if self.API_TIMEOUT_SECONDS <= 0:
            raise ValueError("API_TIMEOUT_SECONDS должен быть больше нуля")

        if self.RESERVATION_CHECK_SECONDS <= 0:
            raise ValueError("RESERVATION_CHECK_SECONDS должен быть больше нуля")


# Глобальный экземпляр настроек
settings = Settings()
