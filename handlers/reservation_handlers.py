"""
Обработчики бронирований: список, действия, создание, перенос и удаление брони
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from aiogram import Router, F
from aiogram.types import Message, CallbackQuery
from aiogram.fsm.context import FSMContext

from api.client import ApiError
from api.models import ROLE_ADMIN, ROLE_WAITER, LIVE_RESERVATION_STATUSES
from api.repository import ReservationRepository
from handlers.auth_handlers import access_error
from handlers.table_handlers import refresh_floor, edit_or_answer, render_table
from keyboards.keyboards import (
    get_main_menu_keyboard, get_reservation_tables_keyboard, get_dates_keyboard,
    get_times_keyboard, get_duration_keyboard, get_confirmation_keyboard,
    get_reservations_keyboard, get_reservation_actions_keyboard, get_cancel_keyboard,
    RESERVATION_STATUS_TEXT, BTN_RESERVATIONS
)
from states.staff_states import ReservationStates
from utils.floor import FloorSnapshot
from utils.session import Session
from utils.time_utils import (
    get_available_dates, get_available_times, display_zone, utc_now,
    format_datetime, format_window
)
from utils.validation import (
    ValidationError, validate_person_name, validate_phone, validate_window, validate_guest_count
)

logger = logging.getLogger(__name__)
router = Router()

SERVICE_ROLES = (ROLE_ADMIN, ROLE_WAITER)


def upcoming_reservations(floor: FloorSnapshot):
    """Живые брони, которые ещё не закончились, по времени начала"""
    now = utc_now()
    reservations = [
        reservation for reservation in floor.reservations
        if reservation.status in LIVE_RESERVATION_STATUSES
        and reservation.reserved_to is not None
        and reservation.reserved_to >= now
    ]
    return sorted(reservations, key=lambda reservation: reservation.reserved_from or reservation.reserved_to)


def render_reservations(floor: FloorSnapshot) -> tuple:
    reservations = upcoming_reservations(floor)
    tables = {table.id: table for table in floor.tables}

    if floor.load_failed:
        text = "⚠️ Не удалось загрузить данные. Проверьте подключение к серверу."
    elif not reservations:
        text = "📅 Активных бронирований нет"
    else:
        text = f"📅 Активные бронирования: {len(reservations)}"

    return text, get_reservations_keyboard(reservations, tables)


@router.message(F.text == BTN_RESERVATIONS)
async def show_reservations(message: Message, session: Optional[Session], floor: FloorSnapshot):
    """Список активных броней"""
    error = access_error(session, *SERVICE_ROLES)
    if error:
        await message.answer(error)
        return

    await refresh_floor(floor, session)
    text, markup = render_reservations(floor)
    await message.answer(text, reply_markup=markup)


@router.callback_query(F.data == "res_list")
async def callback_reservations(callback: CallbackQuery, session: Optional[Session], floor: FloorSnapshot):
    error = access_error(session, *SERVICE_ROLES)
    if error:
        await callback.answer(error, show_alert=True)
        return

    await refresh_floor(floor, session)
    text, markup = render_reservations(floor)
    await edit_or_answer(callback, text, markup)
    await callback.answer()


@router.callback_query(F.data.startswith("res_show:"))
async def show_reservation(callback: CallbackQuery, session: Optional[Session], floor: FloorSnapshot):
    """Детали брони"""
    error = access_error(session, *SERVICE_ROLES)
    if error:
        await callback.answer(error, show_alert=True)
        return

    reservation = floor.get_reservation(int(callback.data.split(":")[1]))
    if reservation is None:
        await callback.answer("Бронирование не найдено", show_alert=True)
        return

    table = floor.get_table(reservation.table_id)
    table_name = table.name if table else f"Стол #{reservation.table_id}"

    text = (
        f"📋 Бронирование #{reservation.id}\n\n"
        f"🍽 Стол: {table_name}\n"
        f"🕐 {format_window(reservation.reserved_from, reservation.reserved_to)}\n"
        f"👤 {reservation.customer_name}\n"
        f"📱 {reservation.customer_phone}\n"
        f"👥 Гостей: {reservation.guest_count}\n"
        f"Статус: {RESERVATION_STATUS_TEXT.get(reservation.status, reservation.status)}"
    )
    markup = get_reservation_actions_keyboard(reservation, can_delete=session.has_role(ROLE_ADMIN))
    await edit_or_answer(callback, text, markup)
    await callback.answer()


async def change_reservation_status(callback: CallbackQuery, session: Optional[Session],
                                    floor: FloorSnapshot, action: str):
    """Общая смена статуса брони: seat / complete / cancel"""
    error = access_error(session, *SERVICE_ROLES)
    if error:
        await callback.answer(error, show_alert=True)
        return

    reservation_id = int(callback.data.split(":")[1])
    reservation = floor.get_reservation(reservation_id)

    try:
        if action == 'seat':
            await ReservationRepository.seat(session.client, reservation_id)
            done = "🪑 Гости посажены"
        elif action == 'complete':
            await ReservationRepository.complete(session.client, reservation_id)
            done = "✅ Бронирование завершено, стол освобождён"
        else:
            await ReservationRepository.cancel(session.client, reservation_id)
            done = "🗑 Бронирование отменено"
    except ApiError as e:
        logger.error(f"Ошибка изменения бронирования {reservation_id} ({action}): {e}")
        await callback.answer(f"⚠️ Не удалось изменить бронирование: {e.message}", show_alert=True)
        return

    logger.info(f"Бронирование {reservation_id}: {action} ({session.user.email})")
    await refresh_floor(floor, session)

    rendered = render_table(floor, session, reservation.table_id) if reservation else None
    if rendered is not None:
        await edit_or_answer(callback, *rendered)
    else:
        await edit_or_answer(callback, *render_reservations(floor))
    await callback.answer(done)


@router.callback_query(F.data.startswith("res_seat:"))
async def seat_reservation(callback: CallbackQuery, session: Optional[Session], floor: FloorSnapshot):
    await change_reservation_status(callback, session, floor, 'seat')


@router.callback_query(F.data.startswith("res_complete:"))
async def complete_reservation(callback: CallbackQuery, session: Optional[Session], floor: FloorSnapshot):
    """Ручное завершение брони"""
    await change_reservation_status(callback, session, floor, 'complete')


@router.callback_query(F.data.startswith("res_cancel:"))
async def cancel_reservation(callback: CallbackQuery, session: Optional[Session], floor: FloorSnapshot):
    await change_reservation_status(callback, session, floor, 'cancel')


@router.callback_query(F.data.startswith("res_delete:"))
async def ask_delete_reservation(callback: CallbackQuery, session: Optional[Session], floor: FloorSnapshot):
    """Удаление брони: только администратор"""
    error = access_error(session, ROLE_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    reservation = floor.get_reservation(int(callback.data.split(":")[1]))
    if reservation is None:
        await callback.answer("Бронирование не найдено", show_alert=True)
        return

    await callback.message.edit_text(
        f"Удалить бронирование #{reservation.id} ({reservation.customer_name})? "
        f"Запись пропадёт из истории.",
        reply_markup=get_confirmation_keyboard(f"res_delete_ok:{reservation.id}")
    )
    await callback.answer()


@router.callback_query(F.data.startswith("res_delete_ok:"))
async def delete_reservation(callback: CallbackQuery, session: Optional[Session], floor: FloorSnapshot):
    error = access_error(session, ROLE_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    reservation_id = int(callback.data.split(":")[1])
    try:
        await ReservationRepository.delete_reservation(session.client, reservation_id)
    except ApiError as e:
        logger.error(f"Ошибка удаления бронирования {reservation_id}: {e}")
        await callback.answer(f"⚠️ Не удалось удалить бронирование: {e.message}", show_alert=True)
        return

    logger.info(f"Бронирование {reservation_id} удалено ({session.user.email})")
    await refresh_floor(floor, session)
    text, markup = render_reservations(floor)
    await edit_or_answer(callback, f"🗑 Бронирование удалено\n\n{text}", markup)
    await callback.answer()


# Перенос брони: те же шаги даты, времени и длительности
@router.callback_query(F.data.startswith("res_edit:"))
async def start_reschedule(callback: CallbackQuery, state: FSMContext,
                           session: Optional[Session], floor: FloorSnapshot):
    error = access_error(session, *SERVICE_ROLES)
    if error:
        await callback.answer(error, show_alert=True)
        return

    reservation = floor.get_reservation(int(callback.data.split(":")[1]))
    if reservation is None or reservation.status not in LIVE_RESERVATION_STATUSES:
        await callback.answer("Бронирование не найдено или уже закрыто", show_alert=True)
        return

    table = floor.get_table(reservation.table_id)
    await state.clear()
    await state.update_data(
        edit_reservation_id=reservation.id,
        table_id=reservation.table_id,
        table_name=table.name if table else f"Стол #{reservation.table_id}",
        capacity=table.capacity if table else 0
    )
    await callback.message.edit_text(
        f"🕐 Перенос брони #{reservation.id}\n"
        f"Сейчас: {format_window(reservation.reserved_from, reservation.reserved_to)}\n\n"
        f"📅 Выберите новую дату:",
        reply_markup=get_dates_keyboard(get_available_dates())
    )
    await state.set_state(ReservationStates.choosing_date)
    await callback.answer()


async def finish_reschedule(callback: CallbackQuery, state: FSMContext, session: Session,
                            floor: FloorSnapshot, reserved_from: datetime, reserved_to: datetime):
    """Проверка доступности без учёта самой брони и сохранение нового времени"""
    data = await state.get_data()
    reservation = floor.get_reservation(data['edit_reservation_id'])
    if reservation is None:
        await state.clear()
        await callback.message.edit_text("⚠️ Бронирование больше не существует")
        await callback.answer()
        return

    try:
        moved = await ReservationRepository.reschedule(session.client, reservation, reserved_from, reserved_to)
    except ApiError as e:
        logger.error(f"Ошибка переноса бронирования {reservation.id}: {e}")
        await state.clear()
        await callback.message.edit_text(f"⚠️ Не удалось перенести бронирование: {e.message}")
        await callback.answer()
        return

    if not moved:
        await callback.answer(
            "⚠️ Стол уже занят на выбранное время или сервер недоступен. Выберите другое время.",
            show_alert=True
        )
        return

    await state.clear()
    logger.info(
        f"Бронирование #{reservation.id} перенесено на "
        f"{format_datetime(reserved_from)} ({session.user.email})"
    )
    await refresh_floor(floor, session)

    await callback.message.edit_text(
        f"✅ Бронирование #{reservation.id} перенесено\n\n"
        f"🍽 Стол: {data['table_name']}\n"
        f"🕐 {format_window(reserved_from, reserved_to)}\n"
        f"👤 {reservation.customer_name}"
    )
    await callback.message.answer(
        "Выберите действие:",
        reply_markup=get_main_menu_keyboard(session.user)
    )
    await callback.answer()


# Создание брони
@router.callback_query(F.data.startswith("res_new:"))
async def start_reservation(callback: CallbackQuery, state: FSMContext,
                            session: Optional[Session], floor: FloorSnapshot):
    """Начало бронирования: со стола или из списка броней"""
    error = access_error(session, *SERVICE_ROLES)
    if error:
        await callback.answer(error, show_alert=True)
        return

    await state.clear()
    table_str = callback.data.split(":")[1]

    if table_str == 'any':
        if not floor.tables:
            await callback.answer("Нет столов для бронирования", show_alert=True)
            return
        now = utc_now()
        free_ids = {table.id for table in floor.tables if floor.is_free(table, now)}
        await callback.message.edit_text(
            "🍽 Выберите стол (🟢 свободен сейчас):",
            reply_markup=get_reservation_tables_keyboard(floor.tables, free_ids)
        )
        await state.set_state(ReservationStates.choosing_table)
        await callback.answer()
        return

    await choose_table(callback, state, floor, int(table_str))


@router.callback_query(F.data.startswith("res_table:"), ReservationStates.choosing_table)
async def process_table(callback: CallbackQuery, state: FSMContext, floor: FloorSnapshot):
    await choose_table(callback, state, floor, int(callback.data.split(":")[1]))


async def choose_table(callback: CallbackQuery, state: FSMContext, floor: FloorSnapshot, table_id: int):
    table = floor.get_table(table_id)
    if table is None:
        await callback.answer("Стол не найден", show_alert=True)
        return

    await state.update_data(table_id=table.id, table_name=table.name, capacity=table.capacity)
    await callback.message.edit_text(
        f"🍽 {table.name}\n\n📅 Выберите дату:",
        reply_markup=get_dates_keyboard(get_available_dates())
    )
    await state.set_state(ReservationStates.choosing_date)
    await callback.answer()


@router.callback_query(F.data.startswith("date:"), ReservationStates.choosing_date)
async def process_date(callback: CallbackQuery, state: FSMContext):
    """Обработка выбора даты"""
    date_str = callback.data.split(":")[1]
    selected_date = datetime.strptime(date_str, "%Y-%m-%d").replace(tzinfo=display_zone())

    times = get_available_times(selected_date)
    if not times:
        await callback.answer("На эту дату нет доступных слотов", show_alert=True)
        return

    await state.update_data(selected_date=date_str)
    await callback.message.edit_text(
        "🕐 Выберите время начала:",
        reply_markup=get_times_keyboard(times)
    )
    await state.set_state(ReservationStates.choosing_time)
    await callback.answer()


@router.callback_query(F.data.startswith("time:"), ReservationStates.choosing_time)
async def process_time(callback: CallbackQuery, state: FSMContext):
    """Обработка выбора времени"""
    data = await state.get_data()
    time_str = callback.data.split(":", 1)[1]
    reserved_from = datetime.strptime(
        f"{data['selected_date']} {time_str}", "%Y-%m-%d %H-%M"
    ).replace(tzinfo=display_zone())

    await state.update_data(reserved_from=reserved_from)
    await callback.message.edit_text(
        "⏱ Выберите длительность:",
        reply_markup=get_duration_keyboard()
    )
    await state.set_state(ReservationStates.choosing_duration)
    await callback.answer()


@router.callback_query(F.data.startswith("duration:"), ReservationStates.choosing_duration)
async def process_duration(callback: CallbackQuery, state: FSMContext,
                           session: Optional[Session], floor: FloorSnapshot):
    """Длительность и предварительная проверка доступности"""
    error = access_error(session, *SERVICE_ROLES)
    if error:
        await callback.answer(error, show_alert=True)
        return

    duration = int(callback.data.split(":")[1])
    data = await state.get_data()
    reserved_from = data['reserved_from']
    reserved_to = reserved_from + timedelta(hours=duration)

    try:
        validate_window(reserved_from, reserved_to)
    except ValidationError as e:
        await callback.answer(f"⚠️ {e.message}", show_alert=True)
        return

    if data.get('edit_reservation_id'):
        await finish_reschedule(callback, state, session, floor, reserved_from, reserved_to)
        return

    is_available = await ReservationRepository.check_availability(
        session.client, data['table_id'], reserved_from, reserved_to
    )
    if not is_available:
        await callback.answer(
            "⚠️ Стол уже занят на выбранное время или сервер недоступен. Выберите другое время.",
            show_alert=True
        )
        return

    await state.update_data(reserved_to=reserved_to, duration=duration)
    await callback.message.edit_text("👤 Введите имя гостя:", reply_markup=get_cancel_keyboard())
    await state.set_state(ReservationStates.entering_name)
    await callback.answer()


@router.message(ReservationStates.entering_name, F.text)
async def process_name(message: Message, state: FSMContext):
    try:
        name = validate_person_name(message.text)
    except ValidationError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    await state.update_data(customer_name=name)
    await message.answer("📱 Введите телефон гостя:")
    await state.set_state(ReservationStates.entering_phone)


@router.message(ReservationStates.entering_phone, F.text)
async def process_phone(message: Message, state: FSMContext):
    try:
        phone = validate_phone(message.text)
    except ValidationError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    data = await state.get_data()
    await state.update_data(customer_phone=phone)
    await message.answer(f"👥 Сколько будет гостей? (до {data['capacity']})")
    await state.set_state(ReservationStates.entering_guests)


@router.message(ReservationStates.entering_guests, F.text)
async def process_guests(message: Message, state: FSMContext):
    data = await state.get_data()
    try:
        guest_count = validate_guest_count(int(message.text.strip()), data['capacity'])
    except ValueError:
        await message.answer("⚠️ Введите число")
        return
    except ValidationError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    await state.update_data(guest_count=guest_count)

    confirmation_text = (
        f"✅ Подтверждение бронирования:\n\n"
        f"🍽 Стол: {data['table_name']}\n"
        f"🕐 {format_window(data['reserved_from'], data['reserved_to'])}\n"
        f"👤 {data['customer_name']}\n"
        f"📱 {data['customer_phone']}\n"
        f"👥 Гостей: {guest_count}\n\n"
        f"Подтвердите бронирование:"
    )
    await message.answer(confirmation_text, reply_markup=get_confirmation_keyboard("res_confirm"))
    await state.set_state(ReservationStates.confirming)


@router.callback_query(F.data == "res_confirm", ReservationStates.confirming)
async def confirm_reservation(callback: CallbackQuery, state: FSMContext,
                              session: Optional[Session], floor: FloorSnapshot):
    """Финальная проверка доступности и создание брони"""
    error = access_error(session, *SERVICE_ROLES)
    if error:
        await callback.answer(error, show_alert=True)
        return

    data = await state.get_data()

    is_available = await ReservationRepository.check_availability(
        session.client, data['table_id'], data['reserved_from'], data['reserved_to']
    )
    if not is_available:
        await callback.message.edit_text(
            "⚠️ Столик уже занят на выбранное время. Попробуйте другое время."
        )
        await callback.answer()
        await state.clear()
        return

    try:
        reservation = await ReservationRepository.create_reservation(
            session.client,
            table_id=data['table_id'],
            customer_name=data['customer_name'],
            customer_phone=data['customer_phone'],
            guest_count=data['guest_count'],
            reserved_from=data['reserved_from'],
            reserved_to=data['reserved_to']
        )
    except ApiError as e:
        logger.error(f"Ошибка сохранения бронирования: {e}")
        await callback.message.edit_text(f"⚠️ Не удалось сохранить бронирование: {e.message}")
        await callback.answer()
        await state.clear()
        return

    await state.clear()
    logger.info(
        f"Бронирование #{reservation.id} создано: стол {data['table_id']}, "
        f"{format_datetime(data['reserved_from'])} ({session.user.email})"
    )
    await refresh_floor(floor, session)

    await callback.message.edit_text(
        f"✅ Бронирование успешно создано!\n\n"
        f"📋 Номер брони: #{reservation.id}\n"
        f"🍽 Стол: {data['table_name']}\n"
        f"🕐 {format_window(data['reserved_from'], data['reserved_to'])}\n"
        f"👤 {data['customer_name']}"
    )
    await callback.message.answer(
        "Выберите действие:",
        reply_markup=get_main_menu_keyboard(session.user)
    )
    await callback.answer()


# Навигация назад
@router.callback_query(F.data == "back_to_date")
async def back_to_date(callback: CallbackQuery, state: FSMContext):
    """Возврат к выбору даты"""
    await callback.message.edit_text(
        "📅 Выберите дату:",
        reply_markup=get_dates_keyboard(get_available_dates())
    )
    await state.set_state(ReservationStates.choosing_date)
    await callback.answer()


@router.callback_query(F.data == "back_to_time")
async def back_to_time(callback: CallbackQuery, state: FSMContext):
    """Возврат к выбору времени"""
    data = await state.get_data()
    selected_date = datetime.strptime(data['selected_date'], "%Y-%m-%d").replace(tzinfo=display_zone())

    await callback.message.edit_text(
        "🕐 Выберите время начала:",
        reply_markup=get_times_keyboard(get_available_times(selected_date))
    )
    await state.set_state(ReservationStates.choosing_time)
    await callback.answer()
