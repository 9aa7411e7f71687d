"""
Обработчики зала: сетка столов, карточка стола, заказы, подача блюд
"""
import logging
from typing import Optional

from aiogram import Router, F
from aiogram.exceptions import TelegramBadRequest
from aiogram.types import Message, CallbackQuery, InlineKeyboardMarkup

from api.client import ApiError
from api.models import ORDER_FLOW, ROLE_ADMIN, ROLE_WAITER, ROLE_TRAINEE
from api.repository import OrderRepository, OrderItemRepository
from handlers.auth_handlers import access_error
from keyboards.keyboards import (
    get_tables_keyboard, get_status_filter_keyboard, get_table_actions_keyboard,
    get_force_close_keyboard,
    STATUS_TEXT, ORDER_STATUS_TEXT, ITEM_STATUS_TEXT, RESERVATION_STATUS_TEXT, BTN_TABLES
)
from utils.floor import FloorSnapshot
from utils.kitchen import servable_items
from utils.session import Session
from utils.table_status import (
    active_orders_for, current_reservation, upcoming_reservation, filter_tables, TABLE_STATUSES
)
from utils.time_utils import utc_now, format_window

logger = logging.getLogger(__name__)
router = Router()

FLOOR_ROLES = (ROLE_ADMIN, ROLE_WAITER, ROLE_TRAINEE)
SERVICE_ROLES = (ROLE_ADMIN, ROLE_WAITER)


def render_tables(floor: FloorSnapshot, session: Session,
                  status: Optional[str] = None) -> tuple:
    """Текст и клавиатура сетки столов"""
    now = utc_now()

    if floor.load_failed:
        return "⚠️ Не удалось загрузить данные. Проверьте подключение к серверу.", \
            get_tables_keyboard([], {})

    stats = floor.statistics(now)
    tables = filter_tables(floor.tables, floor.orders, floor.reservations, now,
                           status=status, lookahead=floor.lookahead)

    text = (
        f"🍽 Столы\n\n"
        f"Всего: {stats.total_tables} | Свободно: {stats.free_tables}\n"
        f"Занято: {stats.occupied_tables} | Забронировано: {stats.reserved_tables} | "
        f"Скоро бронь: {stats.reserved_soon_tables}\n"
        f"Активных заказов: {stats.active_orders} | Ожидают оплаты: {stats.payment_orders}"
    )
    if status:
        text += f"\n\nФильтр: {STATUS_TEXT[status]}"
    if not tables:
        text += "\n\nСтолов не найдено"

    markup = get_tables_keyboard(tables, floor.statuses(now), manage=session.has_role(ROLE_ADMIN))
    return text, markup


def render_table(floor: FloorSnapshot, session: Session, table_id: int) -> Optional[tuple]:
    """Карточка стола. None, если стола нет в снимке"""
    table = floor.get_table(table_id)
    if table is None:
        return None

    now = utc_now()
    status = floor.status_of(table, now)
    orders = active_orders_for(table, floor.orders)
    order = orders[0] if orders else None
    reservation = current_reservation(table, floor.reservations, now)
    upcoming = upcoming_reservation(table, floor.reservations, now, floor.lookahead)

    text = (
        f"🍽 {table.name}\n\n"
        f"Статус: {STATUS_TEXT[status]}\n"
        f"👥 Мест: {table.capacity}"
    )

    if order is not None:
        text += (
            f"\n\n🧾 Заказ #{order.id}: {ORDER_STATUS_TEXT.get(order.status, order.status)}\n"
            f"   Сумма: {order.total:.2f}"
        )
        for item in order.items:
            text += (
                f"\n   • {item.dish_name} ×{item.quantity}: "
                f"{ITEM_STATUS_TEXT.get(item.status, item.status)}"
            )

    shown = reservation or upcoming
    if shown is not None:
        title = "Текущая бронь" if reservation is not None else "Ближайшая бронь"
        text += (
            f"\n\n📅 {title}: {RESERVATION_STATUS_TEXT.get(shown.status, shown.status)}\n"
            f"   🕐 {format_window(shown.reserved_from, shown.reserved_to)}\n"
            f"   👤 {shown.customer_name}, 📱 {shown.customer_phone}\n"
            f"   👥 Гостей: {shown.guest_count}"
        )

    markup = get_table_actions_keyboard(
        table, status, order, reservation,
        can_manage=session.has_role(ROLE_ADMIN),
        can_serve=session.has_role(*SERVICE_ROLES),
        servable=servable_items(order) if order is not None else []
    )
    return text, markup


async def refresh_floor(floor: FloorSnapshot, session: Session):
    """Перезагрузка снимка с токеном смотрящего: токен фоновых задач не меняется"""
    await floor.load(session.client)


@router.message(F.text == BTN_TABLES)
async def show_tables(message: Message, session: Optional[Session], floor: FloorSnapshot):
    """Сетка столов"""
    error = access_error(session, *FLOOR_ROLES)
    if error:
        await message.answer(error)
        return

    await refresh_floor(floor, session)
    text, markup = render_tables(floor, session)
    await message.answer(text, reply_markup=markup)


@router.callback_query(F.data.in_({"tables_reload", "tables_back"}))
async def reload_tables(callback: CallbackQuery, session: Optional[Session], floor: FloorSnapshot):
    """Ручное обновление сетки"""
    error = access_error(session, *FLOOR_ROLES)
    if error:
        await callback.answer(error, show_alert=True)
        return

    await refresh_floor(floor, session)
    text, markup = render_tables(floor, session)
    await edit_or_answer(callback, text, markup)
    await callback.answer("Обновлено" if callback.data == "tables_reload" else None)


@router.callback_query(F.data == "tables_filter")
async def choose_filter(callback: CallbackQuery, session: Optional[Session]):
    error = access_error(session, *FLOOR_ROLES)
    if error:
        await callback.answer(error, show_alert=True)
        return

    await callback.message.edit_text("🔎 Показать столы со статусом:", reply_markup=get_status_filter_keyboard())
    await callback.answer()


@router.callback_query(F.data.startswith("tables_status:"))
async def apply_filter(callback: CallbackQuery, session: Optional[Session], floor: FloorSnapshot):
    """Фильтрация сетки по статусу"""
    error = access_error(session, *FLOOR_ROLES)
    if error:
        await callback.answer(error, show_alert=True)
        return

    status = callback.data.split(":")[1]
    if status not in TABLE_STATUSES:
        status = None

    text, markup = render_tables(floor, session, status)
    await edit_or_answer(callback, text, markup)
    await callback.answer()


@router.callback_query(F.data.startswith("table:"))
async def show_table(callback: CallbackQuery, session: Optional[Session], floor: FloorSnapshot):
    """Карточка стола"""
    error = access_error(session, *FLOOR_ROLES)
    if error:
        await callback.answer(error, show_alert=True)
        return

    table_id = int(callback.data.split(":")[1])
    rendered = render_table(floor, session, table_id)
    if rendered is None:
        await callback.answer("Стол не найден", show_alert=True)
        return

    await edit_or_answer(callback, *rendered)
    await callback.answer()


@router.callback_query(F.data.startswith("order_next:"))
async def advance_order(callback: CallbackQuery, session: Optional[Session], floor: FloorSnapshot):
    """Перевод заказа в следующий статус"""
    error = access_error(session, *SERVICE_ROLES)
    if error:
        await callback.answer(error, show_alert=True)
        return

    order_id = int(callback.data.split(":")[1])
    order = floor.get_order(order_id)
    if order is None or order.status not in ORDER_FLOW[:-1]:
        await callback.answer("Заказ не найден или уже ожидает оплаты", show_alert=True)
        return

    next_status = ORDER_FLOW[ORDER_FLOW.index(order.status) + 1]

    try:
        await OrderRepository.update_status(session.client, order_id, next_status)
    except ApiError as e:
        logger.error(f"Ошибка изменения статуса заказа {order_id}: {e}")
        await callback.answer(f"⚠️ Не удалось изменить статус заказа: {e.message}", show_alert=True)
        return

    logger.info(f"Заказ {order_id}: {order.status} -> {next_status} ({session.user.email})")
    await refresh_floor(floor, session)

    rendered = render_table(floor, session, order.table_id)
    if rendered is not None:
        await edit_or_answer(callback, *rendered)
    await callback.answer(f"Статус: {ORDER_STATUS_TEXT.get(next_status, next_status)}")


@router.callback_query(F.data.startswith("order_close:"))
async def close_order(callback: CallbackQuery, session: Optional[Session], floor: FloorSnapshot):
    """Закрытие заказа с проверкой, что все блюда поданы"""
    error = access_error(session, *SERVICE_ROLES)
    if error:
        await callback.answer(error, show_alert=True)
        return

    order_id = int(callback.data.split(":")[1])

    try:
        check = await OrderRepository.can_close(session.client, order_id)
        if check.get('canClose') is False:
            markup = get_force_close_keyboard(order_id) if session.has_role(ROLE_ADMIN) else None
            await callback.message.answer(
                f"⚠️ {check.get('message') or 'Не все блюда поданы. Невозможно закрыть заказ.'}",
                reply_markup=markup
            )
            await callback.answer()
            return

        await OrderRepository.close_order(session.client, order_id)
    except ApiError as e:
        logger.error(f"Ошибка закрытия заказа {order_id}: {e}")
        await callback.answer(f"⚠️ Не удалось закрыть заказ: {e.message}", show_alert=True)
        return

    logger.info(f"Заказ {order_id} закрыт ({session.user.email})")
    await refresh_floor(floor, session)
    text, markup = render_tables(floor, session)
    await edit_or_answer(callback, f"✅ Заказ #{order_id} закрыт\n\n{text}", markup)
    await callback.answer()


@router.callback_query(F.data.startswith("order_force_close:"))
async def force_close_order(callback: CallbackQuery, session: Optional[Session], floor: FloorSnapshot):
    """Принудительное закрытие: неподанные блюда отмечаются поданными"""
    error = access_error(session, ROLE_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    order_id = int(callback.data.split(":")[1])
    try:
        await OrderRepository.close_order(session.client, order_id, force=True)
    except ApiError as e:
        logger.error(f"Ошибка принудительного закрытия заказа {order_id}: {e}")
        await callback.answer(f"⚠️ Не удалось закрыть заказ: {e.message}", show_alert=True)
        return

    logger.info(f"Заказ {order_id} закрыт принудительно ({session.user.email})")
    await refresh_floor(floor, session)
    text, markup = render_tables(floor, session)
    await edit_or_answer(callback, f"✅ Заказ #{order_id} закрыт принудительно\n\n{text}", markup)
    await callback.answer()


@router.callback_query(F.data.startswith("item_served:"))
async def serve_item(callback: CallbackQuery, session: Optional[Session], floor: FloorSnapshot):
    """Официант отмечает готовое блюдо поданным"""
    error = access_error(session, *SERVICE_ROLES)
    if error:
        await callback.answer(error, show_alert=True)
        return

    _, order_id, item_id = callback.data.split(":")
    order = floor.get_order(int(order_id))

    try:
        await OrderItemRepository.mark_served(session.client, int(item_id))
    except ApiError as e:
        logger.error(f"Ошибка подачи блюда {item_id}: {e}")
        await callback.answer(f"⚠️ Не удалось отметить блюдо: {e.message}", show_alert=True)
        return

    logger.info(f"Блюдо {item_id} заказа {order_id} подано ({session.user.email})")
    await refresh_floor(floor, session)

    rendered = render_table(floor, session, order.table_id) if order else None
    if rendered is not None:
        await edit_or_answer(callback, *rendered)
    await callback.answer("🛎 Подано")



async def edit_or_answer(callback: CallbackQuery, text: str,
                         markup: Optional[InlineKeyboardMarkup] = None):
    """Редактирование сообщения; если текст не изменился, Telegram вернёт ошибку"""
    try:
        await callback.message.edit_text(text, reply_markup=markup)
    except TelegramBadRequest as e:
        if "message is not modified" not in str(e):
            await callback.message.answer(text, reply_markup=markup)
