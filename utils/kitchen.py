"""
Очередь кухни: порядок блюд и допустимые переходы статусов

Блюдо проходит ordered -> preparing -> ready -> served. Повар берёт блюдо
в работу и отмечает готовым, подаёт официант.
"""
from typing import Iterable, List, Optional

from api.models import (
    Order, OrderItem, ITEM_ORDERED, ITEM_PREPARING, ITEM_READY, KITCHEN_ITEM_STATUSES
)


def kitchen_queue(items: Iterable[OrderItem]) -> List[OrderItem]:
    """
    Блюда для экрана кухни: сначала новые, затем в работе, затем готовые.
    Внутри статуса по номеру заказа, чтобы заказы не перемешивались.
    """
    queue = [item for item in items if item.status in KITCHEN_ITEM_STATUSES]
    return sorted(queue, key=lambda item: (
        KITCHEN_ITEM_STATUSES.index(item.status), item.order_id or 0, item.id or 0
    ))


def next_item_status(item: OrderItem, chef_id: Optional[int]) -> Optional[str]:
    """
    Следующий статус блюда для повара или None, если действия нет.
    Готовым блюдо может отметить только повар, который взял его в работу.
    """
    if item.status == ITEM_ORDERED:
        return ITEM_PREPARING
    if item.status == ITEM_PREPARING and item.chef_id in (None, chef_id):
        return ITEM_READY
    return None


def servable_items(order: Order) -> List[OrderItem]:
    """Готовые блюда, которые официант может подать"""
    return [item for item in order.items if item.status == ITEM_READY]
