"""
Клавиатуры для Telegram бота
"""
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from aiogram.types import InlineKeyboardMarkup, ReplyKeyboardMarkup, KeyboardButton
from aiogram.utils.keyboard import InlineKeyboardBuilder

from api.models import (
    Table, Order, OrderItem, Reservation, User, Category, Dish, ROLES, ORDER_FLOW,
    ROLE_ADMIN, ROLE_WAITER, ROLE_CHEF, ROLE_SUPER_ADMIN,
    RESERVATION_CONFIRMED, RESERVATION_SEATED, ITEM_PREPARING
)
from utils.table_status import (
    STATUS_FREE, STATUS_RESERVED_SOON, STATUS_RESERVED, STATUS_OCCUPIED, TABLE_STATUSES
)
from utils.time_utils import format_date, format_time
from config import settings


BTN_LOGIN = "🔐 Войти"
BTN_REGISTER = "📝 Регистрация"
BTN_TABLES = "🍽 Столы"
BTN_RESERVATIONS = "📅 Бронирования"
BTN_KITCHEN = "👨‍🍳 Заказы кухни"
BTN_MENU = "📖 Меню"
BTN_USERS = "👥 Сотрудники"
BTN_STATS = "📊 Статистика"
BTN_LOGOUT = "🚪 Выйти"

STATUS_TEXT = {
    STATUS_OCCUPIED: "🔴 Занят",
    STATUS_RESERVED: "🟡 Забронирован",
    STATUS_RESERVED_SOON: "🔵 Скоро бронь",
    STATUS_FREE: "🟢 Свободен",
}

ORDER_STATUS_TEXT = {
    'open': "Открыт",
    'in_progress': "В работе",
    'ready': "Готов",
    'payment': "Ожидание оплаты",
    'closed': "Закрыт",
    'cancelled': "Отменён",
}

ITEM_STATUS_TEXT = {
    'ordered': "Заказано",
    'preparing': "Готовится",
    'ready': "Готово",
    'served': "Подано",
}

RESERVATION_STATUS_TEXT = {
    'confirmed': "Подтверждено",
    'seated': "Гости за столом",
    'cancelled': "Отменено",
    'completed': "Завершено",
}

ROLE_TEXT = {
    'super_admin': "Супер-админ",
    'admin': "Администратор",
    'waiter': "Официант",
    'chef': "Повар",
    'trainee': "Стажёр",
}


def get_guest_keyboard() -> ReplyKeyboardMarkup:
    """Меню до входа"""
    return ReplyKeyboardMarkup(
        keyboard=[[KeyboardButton(text=BTN_LOGIN), KeyboardButton(text=BTN_REGISTER)]],
        resize_keyboard=True
    )


def get_main_menu_keyboard(user: Optional[User]) -> ReplyKeyboardMarkup:
    """Главное меню по роли сотрудника"""
    if user is None:
        return get_guest_keyboard()

    role = user.role
    buttons = []

    if role in (ROLE_SUPER_ADMIN, ROLE_ADMIN):
        buttons.append([KeyboardButton(text=BTN_TABLES), KeyboardButton(text=BTN_RESERVATIONS)])
        buttons.append([KeyboardButton(text=BTN_MENU), KeyboardButton(text=BTN_USERS),
                        KeyboardButton(text=BTN_STATS)])
    elif role == ROLE_WAITER:
        buttons.append([KeyboardButton(text=BTN_TABLES), KeyboardButton(text=BTN_RESERVATIONS)])
        buttons.append([KeyboardButton(text=BTN_MENU)])
    elif role == ROLE_CHEF:
        buttons.append([KeyboardButton(text=BTN_KITCHEN), KeyboardButton(text=BTN_MENU)])
    else:
        buttons.append([KeyboardButton(text=BTN_TABLES), KeyboardButton(text=BTN_MENU)])

    buttons.append([KeyboardButton(text=BTN_LOGOUT)])
    return ReplyKeyboardMarkup(keyboard=buttons, resize_keyboard=True)


def get_tables_keyboard(tables: List[Table], statuses: Dict[int, str],
                        manage: bool = False) -> InlineKeyboardMarkup:
    """Сетка столов со статусами"""
    builder = InlineKeyboardBuilder()

    for table in tables:
        icon = STATUS_TEXT.get(statuses.get(table.id), "⚪️").split()[0]
        builder.button(
            text=f"{icon} {table.name} ({table.capacity})",
            callback_data=f"table:{table.id}"
        )

    builder.button(text="🔎 Фильтр", callback_data="tables_filter")
    builder.button(text="🔄 Обновить", callback_data="tables_reload")
    if manage:
        builder.button(text="➕ Добавить стол", callback_data="table_add")
    builder.adjust(2)

    return builder.as_markup()


def get_status_filter_keyboard() -> InlineKeyboardMarkup:
    """Фильтр сетки по статусу"""
    builder = InlineKeyboardBuilder()

    builder.button(text="Все", callback_data="tables_status:all")
    for status in TABLE_STATUSES:
        builder.button(text=STATUS_TEXT[status], callback_data=f"tables_status:{status}")
    builder.adjust(1)

    return builder.as_markup()


def get_table_actions_keyboard(table: Table, status: str, order: Optional[Order],
                               reservation: Optional[Reservation],
                               can_manage: bool = False,
                               can_serve: bool = True,
                               servable: Iterable[OrderItem] = ()) -> InlineKeyboardMarkup:
    """Действия со столом"""
    builder = InlineKeyboardBuilder()

    if can_serve:
        if order is not None:
            for item in servable:
                builder.button(
                    text=f"🛎 Подано: {item.dish_name} ×{item.quantity}",
                    callback_data=f"item_served:{order.id}:{item.id}"
                )
            if order.status in ORDER_FLOW[:-1]:
                builder.button(text="➡️ Следующий статус заказа", callback_data=f"order_next:{order.id}")
            builder.button(text="💳 Закрыть заказ", callback_data=f"order_close:{order.id}")

        if reservation is not None:
            if reservation.status == RESERVATION_CONFIRMED:
                builder.button(text="🪑 Гости пришли", callback_data=f"res_seat:{reservation.id}")
            builder.button(text="✅ Завершить бронь", callback_data=f"res_complete:{reservation.id}")

        if status != STATUS_OCCUPIED:
            builder.button(text="📅 Забронировать", callback_data=f"res_new:{table.id}")

    if can_manage:
        builder.button(text="✏️ Изменить", callback_data=f"table_edit:{table.id}")
        builder.button(text="🗑 Удалить", callback_data=f"table_delete:{table.id}")

    builder.button(text="◀️ К столам", callback_data="tables_back")
    builder.adjust(1)

    return builder.as_markup()


def get_reservation_tables_keyboard(tables: List[Table],
                                    free_ids: Optional[Set[int]] = None) -> InlineKeyboardMarkup:
    """Клавиатура выбора стола для брони; свободные сейчас столы отмечены"""
    builder = InlineKeyboardBuilder()

    for table in tables:
        mark = "🟢 " if free_ids and table.id in free_ids else ""
        builder.button(
            text=f"{mark}{table.name} ({table.capacity})",
            callback_data=f"res_table:{table.id}"
        )

    builder.button(text="❌ Отмена", callback_data="cancel")
    builder.adjust(2)

    return builder.as_markup()


def get_dates_keyboard(dates: List[datetime]) -> InlineKeyboardMarkup:
    """Клавиатура выбора даты"""
    builder = InlineKeyboardBuilder()

    for date in dates:
        builder.button(
            text=format_date(date),
            callback_data=f"date:{date.strftime('%Y-%m-%d')}"
        )

    builder.button(text="❌ Отмена", callback_data="cancel")
    builder.adjust(1)

    return builder.as_markup()


def get_times_keyboard(times: List[datetime]) -> InlineKeyboardMarkup:
    """Клавиатура выбора времени начала"""
    builder = InlineKeyboardBuilder()

    for time in times:
        builder.button(
            text=format_time(time),
            callback_data=f"time:{time.strftime('%H-%M')}"
        )

    builder.button(text="◀️ Назад", callback_data="back_to_date")
    builder.button(text="❌ Отмена", callback_data="cancel")
    builder.adjust(4)

    return builder.as_markup()


def get_duration_keyboard() -> InlineKeyboardMarkup:
    """Клавиатура выбора длительности"""
    builder = InlineKeyboardBuilder()

    for hours in range(1, settings.MAX_RESERVATION_HOURS + 1):
        text = f"{hours} час" if hours == 1 else f"{hours} часа"
        builder.button(text=text, callback_data=f"duration:{hours}")

    builder.button(text="◀️ Назад", callback_data="back_to_time")
    builder.button(text="❌ Отмена", callback_data="cancel")
    builder.adjust(2)

    return builder.as_markup()


def get_capacity_keyboard() -> InlineKeyboardMarkup:
    """Клавиатура выбора вместимости стола"""
    builder = InlineKeyboardBuilder()

    for capacity in settings.TABLE_CAPACITIES:
        builder.button(text=f"👥 {capacity}", callback_data=f"capacity:{capacity}")

    builder.button(text="❌ Отмена", callback_data="cancel")
    builder.adjust(5, 1)

    return builder.as_markup()


def get_confirmation_keyboard(confirm_data: str) -> InlineKeyboardMarkup:
    """Клавиатура подтверждения"""
    builder = InlineKeyboardBuilder()

    builder.button(text="✅ Подтвердить", callback_data=confirm_data)
    builder.button(text="❌ Отмена", callback_data="cancel")
    builder.adjust(1)

    return builder.as_markup()


def get_reservations_keyboard(reservations: List[Reservation],
                              tables: Dict[int, Table]) -> InlineKeyboardMarkup:
    """Список броней"""
    builder = InlineKeyboardBuilder()

    for reservation in reservations:
        table = tables.get(reservation.table_id)
        table_name = table.name if table else f"Стол #{reservation.table_id}"
        text = f"{format_time(reservation.reserved_from)} {table_name} — {reservation.customer_name}"
        builder.button(text=text, callback_data=f"res_show:{reservation.id}")

    builder.button(text="➕ Новая бронь", callback_data="res_new:any")
    builder.adjust(1)

    return builder.as_markup()


def get_reservation_actions_keyboard(reservation: Reservation,
                                     can_delete: bool = False) -> InlineKeyboardMarkup:
    """Действия с бронью"""
    builder = InlineKeyboardBuilder()

    if reservation.status == RESERVATION_CONFIRMED:
        builder.button(text="🪑 Гости пришли", callback_data=f"res_seat:{reservation.id}")
    if reservation.status in (RESERVATION_CONFIRMED, RESERVATION_SEATED):
        builder.button(text="🕐 Перенести", callback_data=f"res_edit:{reservation.id}")
        builder.button(text="✅ Завершить", callback_data=f"res_complete:{reservation.id}")
        builder.button(text="🗑 Отменить бронь", callback_data=f"res_cancel:{reservation.id}")
    if can_delete:
        builder.button(text="❌ Удалить", callback_data=f"res_delete:{reservation.id}")

    builder.button(text="◀️ Назад", callback_data="res_list")
    builder.adjust(1)

    return builder.as_markup()


def get_force_close_keyboard(order_id: int) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.button(text="⚠️ Закрыть принудительно", callback_data=f"order_force_close:{order_id}")
    builder.button(text="◀️ К столам", callback_data="tables_back")
    builder.adjust(1)
    return builder.as_markup()


def get_kitchen_keyboard(items: List[OrderItem], actions: Dict[int, str]) -> InlineKeyboardMarkup:
    """
    Блюда кухни. actions: id блюда -> следующий статус,
    кнопки только для блюд, с которыми повар может что-то сделать.
    """
    builder = InlineKeyboardBuilder()

    for item in items:
        next_status = actions.get(item.id)
        if next_status is None:
            continue
        verb = "🔥 Взять" if next_status == ITEM_PREPARING else "✅ Готово"
        builder.button(
            text=f"{verb}: #{item.order_id} {item.dish_name} ×{item.quantity}",
            callback_data=f"item_next:{item.id}:{next_status}"
        )

    builder.button(text="🔄 Обновить", callback_data="kitchen_reload")
    builder.adjust(1)

    return builder.as_markup()


def get_users_keyboard(users: List[User]) -> InlineKeyboardMarkup:
    """Список сотрудников"""
    builder = InlineKeyboardBuilder()

    for user in users:
        mark = "✅" if user.is_active else "⛔️"
        builder.button(
            text=f"{mark} {user.full_name} — {ROLE_TEXT.get(user.role, user.role)}",
            callback_data=f"user:{user.id}"
        )

    builder.button(text="➕ Сотрудник", callback_data="user_add")
    builder.adjust(1)
    return builder.as_markup()


def get_user_actions_keyboard(user: User, can_change_role: bool) -> InlineKeyboardMarkup:
    """Действия с сотрудником"""
    builder = InlineKeyboardBuilder()

    toggle_text = "⛔️ Заблокировать" if user.is_active else "✅ Активировать"
    builder.button(text=toggle_text, callback_data=f"user_toggle:{user.id}")
    builder.button(text="✏️ Изменить имя", callback_data=f"user_rename:{user.id}")

    if can_change_role:
        for role in ROLES:
            if role != user.role and role != ROLE_SUPER_ADMIN:
                builder.button(text=f"➡️ {ROLE_TEXT[role]}", callback_data=f"user_role:{user.id}:{role}")
        builder.button(text="🗑 Удалить", callback_data=f"user_delete:{user.id}")

    builder.button(text="◀️ К списку", callback_data="users_back")
    builder.adjust(1)

    return builder.as_markup()


def get_cancel_keyboard() -> InlineKeyboardMarkup:
    """Простая клавиатура отмены"""
    builder = InlineKeyboardBuilder()
    builder.button(text="❌ Отмена", callback_data="cancel")
    return builder.as_markup()


def get_roles_keyboard(prefix: str) -> InlineKeyboardMarkup:
    """Выбор роли нового сотрудника; супер-админа назначить нельзя"""
    builder = InlineKeyboardBuilder()

    for role in ROLES:
        if role != ROLE_SUPER_ADMIN:
            builder.button(text=ROLE_TEXT[role], callback_data=f"{prefix}:{role}")

    builder.button(text="❌ Отмена", callback_data="cancel")
    builder.adjust(2)

    return builder.as_markup()


def get_categories_keyboard(categories: List[Category], counts: Dict[int, int],
                            manage: bool = False) -> InlineKeyboardMarkup:
    """Категории меню с количеством блюд"""
    builder = InlineKeyboardBuilder()

    for category in categories:
        builder.button(
            text=f"{category.name} ({counts.get(category.id, 0)})",
            callback_data=f"menu_cat:{category.id}"
        )

    builder.button(text="📋 Все блюда", callback_data="menu_cat:all")
    builder.button(text="🔍 Поиск", callback_data="menu_search")
    if manage:
        builder.button(text="➕ Категория", callback_data="cat_add")
    builder.adjust(2)

    return builder.as_markup()


def get_dishes_keyboard(dishes: List[Dish], category: Optional[Category] = None,
                        manage: bool = False) -> InlineKeyboardMarkup:
    """Блюда категории; блюда в стоп-листе отмечены"""
    builder = InlineKeyboardBuilder()

    for dish in dishes:
        mark = "⛔️ " if dish.is_stopped else ""
        builder.button(
            text=f"{mark}{dish.name} — {dish.price:.2f} ₽",
            callback_data=f"dish:{dish.id}"
        )

    if manage and category is not None:
        builder.button(text="➕ Блюдо", callback_data=f"dish_add:{category.id}")
        builder.button(text="✏️ Переименовать категорию", callback_data=f"cat_edit:{category.id}")
        builder.button(text="🗑 Удалить категорию", callback_data=f"cat_delete:{category.id}")

    builder.button(text="◀️ К категориям", callback_data="menu_back")
    builder.adjust(1)

    return builder.as_markup()


def get_dish_actions_keyboard(dish: Dish, can_stop: bool = False,
                              can_manage: bool = False) -> InlineKeyboardMarkup:
    """Действия с блюдом"""
    builder = InlineKeyboardBuilder()

    if can_stop:
        stop_text = "▶️ Снять со стопа" if dish.is_stopped else "⛔️ В стоп-лист"
        builder.button(text=stop_text, callback_data=f"dish_stop:{dish.id}")

    if can_manage:
        builder.button(text="✏️ Название", callback_data=f"dish_edit:{dish.id}")
        builder.button(text="💰 Цена", callback_data=f"dish_price:{dish.id}")
        builder.button(text="🗑 Удалить", callback_data=f"dish_delete:{dish.id}")

    back = f"menu_cat:{dish.category_id}" if dish.category_id else "menu_back"
    builder.button(text="◀️ Назад", callback_data=back)
    builder.adjust(1)

    return builder.as_markup()


def get_stats_keyboard() -> InlineKeyboardMarkup:
    """Разделы статистики"""
    builder = InlineKeyboardBuilder()

    builder.button(text="🍽 Зал сейчас", callback_data="stats:floor")
    builder.button(text="📅 Сегодня", callback_data="stats:daily")
    builder.button(text="🗓 Неделя", callback_data="stats:weekly")
    builder.button(text="📆 Месяц", callback_data="stats:monthly")
    builder.button(text="🏆 Популярные блюда", callback_data="stats:popular")
    builder.adjust(2)

    return builder.as_markup()
