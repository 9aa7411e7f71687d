"""
Главный файл Telegram-бота управления рестораном
"""
import asyncio
import logging
from datetime import timedelta

from aiogram import Bot, Dispatcher
from aiogram.fsm.storage.memory import MemoryStorage

from config import settings
from api.client import ApiClient
from handlers import (
    auth_handlers, table_handlers, reservation_handlers, admin_handlers,
    kitchen_handlers, menu_handlers, stats_handlers
)
from middlewares.session import SessionMiddleware
from utils.floor import FloorSnapshot
from utils.scheduler import ReservationReconciler, start_scheduler, stop_scheduler
from utils.session import SessionStore

# Настройка логирования
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def main():
    """Основная функция запуска бота"""
    logger.info("Запуск бота...")

    # Клиент REST API
    api_client = ApiClient(settings.API_URL, timeout=settings.API_TIMEOUT_SECONDS)
    floor = FloorSnapshot(
        api_client.with_token(settings.API_TOKEN or None),
        lookahead=timedelta(minutes=settings.RESERVED_SOON_MINUTES)
    )
    # Без служебного токена фоновые задачи берут токен вошедшего администратора или официанта
    sessions = SessionStore(api_client, floor=floor, service_token=settings.API_TOKEN)
    logger.info(f"API: {settings.API_URL}")

    # Создание бота и диспетчера
    bot = Bot(token=settings.BOT_TOKEN)
    storage = MemoryStorage()
    dp = Dispatcher(storage=storage, floor=floor)

    # Сессия сотрудника для каждого обработчика
    dp.message.middleware(SessionMiddleware(sessions))
    dp.callback_query.middleware(SessionMiddleware(sessions))

    # Регистрация роутеров
    dp.include_router(auth_handlers.router)
    dp.include_router(table_handlers.router)
    dp.include_router(reservation_handlers.router)
    dp.include_router(admin_handlers.router)
    dp.include_router(kitchen_handlers.router)
    dp.include_router(menu_handlers.router)
    dp.include_router(stats_handlers.router)

    # Запуск проверки истёкших бронирований
    reconciler = ReservationReconciler(floor, reload_delay=settings.RELOAD_DELAY_SECONDS)
    scheduler = await start_scheduler(reconciler)

    try:
        logger.info("Бот успешно запущен")
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        stop_scheduler(scheduler, floor)
        await api_client.close()
        await bot.session.close()
        logger.info("Бот остановлен")


if __name__ == '__main__':
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Бот остановлен пользователем")
    except Exception as e:
        logger.error(f"Критическая ошибка: {e}", exc_info=True)
