"""
Обработчики статистики: зал на текущий момент и продажи за период
"""
import logging
from datetime import timedelta
from typing import List, Optional

from aiogram import Router, F
from aiogram.types import Message, CallbackQuery

from api.client import ApiError
from api.models import SalesSummary, PopularDish, ROLE_ADMIN
from api.repository import StatisticsRepository
from handlers.auth_handlers import access_error
from handlers.table_handlers import refresh_floor, edit_or_answer
from keyboards.keyboards import get_stats_keyboard, ORDER_STATUS_TEXT, BTN_STATS
from utils.floor import FloorSnapshot
from utils.session import Session
from utils.table_status import FloorStatistics
from utils.time_utils import utc_now, to_local

logger = logging.getLogger(__name__)
router = Router()

POPULAR_LIMIT = 10


def render_floor_stats(stats: FloorStatistics) -> str:
    return (
        f"📊 Статистика зала\n\n"
        f"🍽 Всего столов: {stats.total_tables}\n"
        f"🟢 Свободно: {stats.free_tables}\n"
        f"🔵 Скоро бронь: {stats.reserved_soon_tables}\n"
        f"🟡 Забронировано: {stats.reserved_tables}\n"
        f"🔴 Занято: {stats.occupied_tables}\n\n"
        f"🧾 Активных заказов: {stats.active_orders}\n"
        f"💳 Ожидают оплаты: {stats.payment_orders}"
    )


def render_summary(title: str, summary: SalesSummary) -> str:
    """Сводка продаж: заказы, выручка, брони, разбивка по дням"""
    text = title
    if summary.period:
        text += f" ({summary.period})"

    text += (
        f"\n\n🧾 Заказов: {summary.orders_count}\n"
        f"💰 Выручка: {summary.revenue:.2f} ₽\n"
        f"📈 Средний чек: {summary.average_order_value:.2f} ₽"
    )
    if summary.max_order_value:
        text += f"\n🔝 Максимальный чек: {summary.max_order_value:.2f} ₽"
    if summary.reservations_count:
        text += f"\n📅 Бронирований: {summary.reservations_count} (гостей: {summary.total_guests})"

    if summary.order_statuses:
        text += "\n\nЗаказы по статусам:"
        for status, count in summary.order_statuses.items():
            text += f"\n   {ORDER_STATUS_TEXT.get(status, status)}: {count}"

    if summary.days:
        text += "\n\nПо дням:"
        for day in summary.days:
            text += f"\n   {day.date}: {day.orders_count} зак., {day.revenue:.2f} ₽"

    return text


def render_popular(dishes: List[PopularDish]) -> str:
    if not dishes:
        return "🏆 Популярные блюда\n\nЗа месяц продаж нет"

    lines = ["🏆 Популярные блюда за месяц\n"]
    for position, dish in enumerate(dishes, 1):
        lines.append(
            f"{position}. {dish.dish_name}: {dish.total_quantity} шт., {dish.total_revenue:.2f} ₽"
        )
    return "\n".join(lines)


async def load_report(session: Session, report: str) -> str:
    """Текст отчёта по его коду; ошибки API превращаются в сообщение"""
    today = to_local(utc_now()).date()
    try:
        if report == 'daily':
            return render_summary("📅 Сегодня", await StatisticsRepository.daily(session.client, today))
        if report == 'weekly':
            start = today - timedelta(days=today.weekday())
            return render_summary("🗓 Неделя", await StatisticsRepository.weekly(session.client, start))
        if report == 'monthly':
            summary = await StatisticsRepository.monthly(session.client, today.year, today.month)
            return render_summary("📆 Месяц", summary)
        if report == 'popular':
            dishes = await StatisticsRepository.popular_dishes(session.client, 'month', POPULAR_LIMIT)
            return render_popular(dishes)
        return render_summary("📊 Сводка", await StatisticsRepository.dashboard(session.client))
    except ApiError as e:
        logger.error(f"Ошибка загрузки статистики {report}: {e}")
        return f"⚠️ Не удалось загрузить статистику: {e.message}"


@router.message(F.text == BTN_STATS)
async def show_stats(message: Message, session: Optional[Session], floor: FloorSnapshot):
    """Сводка по залу на текущий момент и разделы продаж"""
    error = access_error(session, ROLE_ADMIN)
    if error:
        await message.answer(error)
        return

    await refresh_floor(floor, session)
    if floor.load_failed:
        text = "⚠️ Не удалось загрузить данные зала. Проверьте подключение к серверу."
    else:
        text = render_floor_stats(floor.statistics())

    dashboard = await load_report(session, 'dashboard')
    await message.answer(f"{text}\n\n{dashboard}", reply_markup=get_stats_keyboard())


@router.callback_query(F.data.startswith("stats:"))
async def show_report(callback: CallbackQuery, session: Optional[Session], floor: FloorSnapshot):
    error = access_error(session, ROLE_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    report = callback.data.split(":")[1]
    if report == 'floor':
        await refresh_floor(floor, session)
        text = render_floor_stats(floor.statistics())
    else:
        text = await load_report(session, report)

    await edit_or_answer(callback, text, get_stats_keyboard())
    await callback.answer()
