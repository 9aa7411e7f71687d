"""
Модели данных, получаемых из REST API
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from utils.time_utils import parse_instant


# Статусы заказов
ORDER_OPEN = 'open'
ORDER_IN_PROGRESS = 'in_progress'
ORDER_READY = 'ready'
ORDER_PAYMENT = 'payment'
ORDER_CLOSED = 'closed'
ORDER_CANCELLED = 'cancelled'

# Заказ с таким статусом занимает стол
ACTIVE_ORDER_STATUSES = frozenset({ORDER_OPEN, ORDER_IN_PROGRESS, ORDER_READY, ORDER_PAYMENT})

# Порядок продвижения заказа официантом
ORDER_FLOW = (ORDER_OPEN, ORDER_IN_PROGRESS, ORDER_READY, ORDER_PAYMENT)

# Статусы блюд в заказе
ITEM_ORDERED = 'ordered'
ITEM_PREPARING = 'preparing'
ITEM_READY = 'ready'
ITEM_SERVED = 'served'

KITCHEN_ITEM_STATUSES = (ITEM_ORDERED, ITEM_PREPARING, ITEM_READY)

# Статусы бронирований
RESERVATION_CONFIRMED = 'confirmed'
RESERVATION_SEATED = 'seated'
RESERVATION_CANCELLED = 'cancelled'
RESERVATION_COMPLETED = 'completed'

LIVE_RESERVATION_STATUSES = frozenset({RESERVATION_CONFIRMED, RESERVATION_SEATED})

# Роли пользователей
ROLE_SUPER_ADMIN = 'super_admin'
ROLE_ADMIN = 'admin'
ROLE_WAITER = 'waiter'
ROLE_CHEF = 'chef'
ROLE_TRAINEE = 'trainee'

ROLES = (ROLE_SUPER_ADMIN, ROLE_ADMIN, ROLE_WAITER, ROLE_CHEF, ROLE_TRAINEE)


def _to_int(value: Any) -> Optional[int]:
    """Мягкое приведение идентификаторов к int"""
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


@dataclass
class Table:
    """Модель стола"""
    id: int
    name: str
    capacity: int = 2

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'Table':
        return cls(
            id=_to_int(data.get('id')),
            name=str(data.get('name') or ''),
            capacity=_to_int(data.get('capacity')) or 0
        )


@dataclass
class OrderItem:
    """Блюдо в заказе"""
    id: int
    order_id: Optional[int]
    dish_id: Optional[int]
    dish_name: str
    quantity: int = 1
    price: float = 0.0
    status: str = ITEM_ORDERED
    notes: str = ''
    chef_id: Optional[int] = None

    @property
    def total(self) -> float:
        return self.price * self.quantity

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'OrderItem':
        dish = _dict(data.get('dish'))
        return cls(
            id=_to_int(data.get('id')),
            order_id=_to_int(data.get('orderId')),
            dish_id=_to_int(data.get('dishId') or dish.get('id')),
            dish_name=str(dish.get('name') or data.get('name') or "Неизвестное блюдо"),
            quantity=_to_int(data.get('quantity')) or 0,
            price=_to_float(data.get('price') or data.get('itemPrice') or dish.get('price')),
            status=str(data.get('status') or ITEM_ORDERED),
            notes=str(data.get('notes') or ''),
            chef_id=_to_int(data.get('chefId'))
        )


@dataclass
class Order:
    """Модель заказа"""
    id: int
    table_id: Optional[int]
    status: str
    created_at: Optional[datetime] = None
    waiter_id: Optional[int] = None
    items: List[OrderItem] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        """Заказ ещё не закрыт и не отменён"""
        return self.status in ACTIVE_ORDER_STATUSES

    @property
    def total(self) -> float:
        """Сумма заказа по позициям"""
        return sum(item.total for item in self.items)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'Order':
        items = data.get('items')
        return cls(
            id=_to_int(data.get('id')),
            table_id=_to_int(data.get('tableId')),
            status=str(data.get('status') or ''),
            created_at=parse_instant(data.get('createdAt')),
            waiter_id=_to_int(data.get('waiterId')),
            items=[OrderItem.from_api(item) for item in items if isinstance(item, dict)]
            if isinstance(items, list) else []
        )


@dataclass
class Reservation:
    """Модель бронирования"""
    id: int
    table_id: Optional[int]
    customer_name: str
    customer_phone: str
    guest_count: int
    reserved_from: Optional[datetime]
    reserved_to: Optional[datetime]
    status: str = RESERVATION_CONFIRMED

    def covers(self, moment: datetime) -> bool:
        """Момент попадает в окно брони (границы включительно)"""
        if self.reserved_from is None or self.reserved_to is None:
            return False
        return self.reserved_from <= moment <= self.reserved_to

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'Reservation':
        return cls(
            id=_to_int(data.get('id')),
            table_id=_to_int(data.get('tableId')),
            customer_name=str(data.get('customerName') or ''),
            customer_phone=str(data.get('customerPhone') or ''),
            guest_count=_to_int(data.get('guestCount')) or 0,
            reserved_from=parse_instant(data.get('reservedFrom')),
            reserved_to=parse_instant(data.get('reservedTo')),
            status=str(data.get('status') or RESERVATION_CONFIRMED)
        )


@dataclass
class User:
    """Модель сотрудника"""
    id: int
    email: str
    first_name: str
    last_name: str
    role: str
    is_active: bool = True

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.email

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'User':
        return cls(
            id=_to_int(data.get('id')),
            email=str(data.get('email') or ''),
            first_name=str(data.get('firstName') or ''),
            last_name=str(data.get('lastName') or ''),
            role=str(data.get('role') or ROLE_TRAINEE),
            is_active=bool(data.get('isActive', True))
        )


@dataclass
class Category:
    """Категория меню"""
    id: int
    name: str
    description: str = ''

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'Category':
        return cls(
            id=_to_int(data.get('id')),
            name=str(data.get('name') or ''),
            description=str(data.get('description') or '')
        )


@dataclass
class Dish:
    """Блюдо меню"""
    id: int
    name: str
    price: float
    category_id: Optional[int]
    description: str = ''
    cooking_time_min: Optional[int] = None
    is_active: bool = True
    is_stopped: bool = False

    @property
    def is_available(self) -> bool:
        """Блюдо можно заказать: активно и не в стоп-листе"""
        return self.is_active and not self.is_stopped

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'Dish':
        category = _dict(data.get('category'))
        return cls(
            id=_to_int(data.get('id')),
            name=str(data.get('name') or ''),
            price=_to_float(data.get('price')),
            category_id=_to_int(data.get('categoryId') or category.get('id')),
            description=str(data.get('description') or ''),
            cooking_time_min=_to_int(data.get('cookingTimeMin')),
            is_active=bool(data.get('isActive', True)),
            is_stopped=bool(data.get('isStopped', False))
        )


@dataclass
class DailySales:
    """Продажи за один день периода"""
    date: str
    orders_count: int = 0
    revenue: float = 0.0


@dataclass
class SalesSummary:
    """Сводка продаж за день, неделю, месяц или на текущий момент"""
    period: str = ''
    orders_count: int = 0
    revenue: float = 0.0
    average_order_value: float = 0.0
    max_order_value: float = 0.0
    reservations_count: int = 0
    total_guests: int = 0
    order_statuses: Dict[str, int] = field(default_factory=dict)
    days: List[DailySales] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Any) -> 'SalesSummary':
        """
        Ответы /stats/* отличаются формой: дневной отдаёт orders и
        reservations сверху, недельный и месячный кладут их в totals.
        """
        data = _dict(data)
        source = _dict(data.get('totals')) or data
        orders = _dict(source.get('orders'))
        reservations = _dict(source.get('reservations') or data.get('reservations'))

        orders_count = _to_int(orders.get('total')) or 0
        revenue = _to_float(orders.get('revenue'))
        average = _to_float(orders.get('averageOrderValue'))
        if not average and orders_count:
            average = revenue / orders_count

        statuses = data.get('orderStatuses')
        if isinstance(statuses, list):
            order_statuses = {
                str(row.get('status')): _to_int(row.get('count')) or 0
                for row in statuses if isinstance(row, dict)
            }
        else:
            order_statuses = {
                str(status): _to_int(count) or 0
                for status, count in _dict(statuses).items()
            }

        days = [
            DailySales(
                date=str(row.get('date') or ''),
                orders_count=_to_int(row.get('ordersCount')) or 0,
                revenue=_to_float(row.get('dailyRevenue'))
            )
            for row in data.get('dailyStats') or [] if isinstance(row, dict)
        ]

        return cls(
            period=_period_label(data),
            orders_count=orders_count,
            revenue=revenue,
            average_order_value=average,
            max_order_value=_to_float(orders.get('maxOrderValue')),
            reservations_count=_to_int(reservations.get('total')) or 0,
            total_guests=_to_int(reservations.get('totalGuests')) or 0,
            order_statuses=order_statuses,
            days=days
        )


def _period_label(data: Dict[str, Any]) -> str:
    period = data.get('period')
    if isinstance(period, dict):
        if period.get('monthName'):
            return f"{period['monthName']} {period.get('year') or ''}".strip()
        if period.get('start') or period.get('end'):
            return f"{period.get('start') or ''} - {period.get('end') or ''}"
    if isinstance(period, str):
        return period
    return str(data.get('date') or '')


@dataclass
class PopularDish:
    """Строка рейтинга популярных блюд"""
    dish_id: Optional[int]
    dish_name: str
    total_quantity: int = 0
    total_revenue: float = 0.0

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'PopularDish':
        return cls(
            dish_id=_to_int(data.get('dishId')),
            dish_name=str(data.get('dishName') or data.get('name') or ''),
            total_quantity=_to_int(data.get('totalQuantity')) or 0,
            total_revenue=_to_float(data.get('totalRevenue'))
        )
