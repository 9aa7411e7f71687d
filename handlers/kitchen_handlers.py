"""
Обработчики кухни: очередь блюд повара
"""
import logging
from typing import List, Optional

from aiogram import Router, F
from aiogram.types import Message, CallbackQuery

from api.client import ApiError
from api.models import OrderItem, ROLE_CHEF
from api.repository import OrderItemRepository
from handlers.auth_handlers import access_error
from handlers.table_handlers import edit_or_answer
from keyboards.keyboards import get_kitchen_keyboard, ITEM_STATUS_TEXT, BTN_KITCHEN
from utils.kitchen import kitchen_queue, next_item_status
from utils.session import Session

logger = logging.getLogger(__name__)
router = Router()


async def load_kitchen_items(session: Session) -> Optional[List[OrderItem]]:
    try:
        return kitchen_queue(await OrderItemRepository.get_kitchen_items(session.client))
    except ApiError as e:
        logger.error(f"Ошибка загрузки блюд кухни: {e}")
        return None


def render_kitchen(items: Optional[List[OrderItem]], chef_id: Optional[int]) -> tuple:
    """Текст и клавиатура очереди кухни"""
    if items is None:
        return "⚠️ Не удалось загрузить заказы кухни", get_kitchen_keyboard([], {})
    if not items:
        return "👨‍🍳 Новых блюд нет", get_kitchen_keyboard([], {})

    lines = ["👨‍🍳 Блюда кухни\n"]
    for item in items:
        line = (
            f"#{item.order_id} {item.dish_name} ×{item.quantity}: "
            f"{ITEM_STATUS_TEXT.get(item.status, item.status)}"
        )
        if item.notes:
            line += f"\n   📝 {item.notes}"
        lines.append(line)

    actions = {}
    for item in items:
        next_status = next_item_status(item, chef_id)
        if next_status is not None:
            actions[item.id] = next_status

    return "\n".join(lines), get_kitchen_keyboard(items, actions)


@router.message(F.text == BTN_KITCHEN)
async def kitchen_orders(message: Message, session: Optional[Session]):
    """Очередь блюд: новые, в работе, готовые к подаче"""
    error = access_error(session, ROLE_CHEF)
    if error:
        await message.answer(error)
        return

    items = await load_kitchen_items(session)
    text, markup = render_kitchen(items, session.user.id)
    await message.answer(text, reply_markup=markup)


@router.callback_query(F.data == "kitchen_reload")
async def kitchen_reload(callback: CallbackQuery, session: Optional[Session]):
    error = access_error(session, ROLE_CHEF)
    if error:
        await callback.answer(error, show_alert=True)
        return

    items = await load_kitchen_items(session)
    await edit_or_answer(callback, *render_kitchen(items, session.user.id))
    await callback.answer()


@router.callback_query(F.data.startswith("item_next:"))
async def advance_item(callback: CallbackQuery, session: Optional[Session]):
    """Повар берёт блюдо в работу или отмечает готовым"""
    error = access_error(session, ROLE_CHEF)
    if error:
        await callback.answer(error, show_alert=True)
        return

    _, item_id, requested = callback.data.split(":")
    item_id = int(item_id)

    # Кнопка могла устареть: переход проверяется по свежим данным
    items = await load_kitchen_items(session) or []
    item = next((i for i in items if i.id == item_id), None)
    next_status = next_item_status(item, session.user.id) if item is not None else None

    if next_status is None or next_status != requested:
        await callback.answer("Блюдо уже взял другой повар или статус изменился", show_alert=True)
        await edit_or_answer(callback, *render_kitchen(items, session.user.id))
        return

    try:
        await OrderItemRepository.update_status(session.client, item_id, next_status, session.user.id)
    except ApiError as e:
        logger.error(f"Ошибка изменения статуса блюда {item_id}: {e}")
        await callback.answer(f"⚠️ Не удалось изменить статус блюда: {e.message}", show_alert=True)
        return

    logger.info(f"Блюдо {item_id}: {item.status} -> {next_status} ({session.user.email})")
    items = await load_kitchen_items(session)
    await edit_or_answer(callback, *render_kitchen(items, session.user.id))
    await callback.answer(ITEM_STATUS_TEXT.get(next_status, next_status))
