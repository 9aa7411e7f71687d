"""
Репозитории для работы с данными через REST API
"""
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from api.client import ApiClient, ApiError, extract_items
from api.models import (
    Table, Order, OrderItem, Reservation, User, Category, Dish, SalesSummary, PopularDish,
    RESERVATION_COMPLETED, RESERVATION_SEATED, RESERVATION_CANCELLED
)
from utils.time_utils import to_api_instant

logger = logging.getLogger(__name__)


def _items(payload: Any) -> List[Dict[str, Any]]:
    return [item for item in extract_items(payload) if isinstance(item, dict)]


def _entity(payload: Any) -> Dict[str, Any]:
    """Некоторые ответы завёрнуты в {"data": {...}}"""
    if isinstance(payload, dict) and isinstance(payload.get('data'), dict):
        return payload['data']
    return payload if isinstance(payload, dict) else {}


class AuthRepository:
    """Авторизация и регистрация"""

    @staticmethod
    async def login(client: ApiClient, email: str, password: str) -> Tuple[str, User]:
        """Вход. Возвращает (токен, пользователь)"""
        data = await client.post('/auth/login', {'email': email, 'password': password})
        return AuthRepository._token_and_user(data)

    @staticmethod
    async def register(client: ApiClient, email: str, password: str,
                       first_name: str, last_name: str) -> Tuple[str, User]:
        """Регистрация нового сотрудника"""
        data = await client.post('/auth/register', {
            'email': email,
            'password': password,
            'firstName': first_name,
            'lastName': last_name
        })
        return AuthRepository._token_and_user(data)

    @staticmethod
    async def me(client: ApiClient) -> User:
        """Проверка токена и получение актуального профиля"""
        data = await client.get('/auth/me')
        user = data.get('user') if isinstance(data, dict) else None
        return User.from_api(user if isinstance(user, dict) else _entity(data))

    @staticmethod
    def _token_and_user(data: Any) -> Tuple[str, User]:
        if not isinstance(data, dict) or not data.get('token'):
            raise ApiError(None, "Сервер не вернул токен", data)
        user = data.get('user') if isinstance(data.get('user'), dict) else {}
        return data['token'], User.from_api(user)


class TableRepository:
    """Репозиторий для работы со столами"""

    @staticmethod
    async def get_all_tables(client: ApiClient) -> List[Table]:
        """Получение всех столов"""
        data = await client.get('/tables')
        return [Table.from_api(row) for row in _items(data)]

    @staticmethod
    async def create_table(client: ApiClient, name: str, capacity: int) -> Table:
        data = await client.post('/tables', {'name': name, 'capacity': capacity})
        return Table.from_api(_entity(data))

    @staticmethod
    async def update_table(client: ApiClient, table_id: int, name: str, capacity: int) -> Table:
        data = await client.put(f'/tables/{table_id}', {'name': name, 'capacity': capacity})
        return Table.from_api(_entity(data) or {'id': table_id, 'name': name, 'capacity': capacity})

    @staticmethod
    async def delete_table(client: ApiClient, table_id: int):
        await client.delete(f'/tables/{table_id}')


class OrderRepository:
    """Репозиторий для работы с заказами"""

    @staticmethod
    async def get_orders(client: ApiClient, statuses: Optional[List[str]] = None) -> List[Order]:
        """Получение заказов, опционально с фильтром по статусам"""
        params = None
        if statuses:
            params = [('status', status) for status in statuses]
        data = await client.get('/orders', params=params)
        return [Order.from_api(row) for row in _items(data)]

    @staticmethod
    async def update_status(client: ApiClient, order_id: int, status: str) -> Dict[str, Any]:
        return _entity(await client.put(f'/orders/{order_id}/status', {'status': status}))

    @staticmethod
    async def can_close(client: ApiClient, order_id: int) -> Dict[str, Any]:
        """Проверка, можно ли закрыть заказ (все блюда поданы)"""
        data = await client.get(f'/orders/{order_id}/can-close')
        return data if isinstance(data, dict) else {}

    @staticmethod
    async def close_order(client: ApiClient, order_id: int, force: bool = False) -> Dict[str, Any]:
        body = {'force': True} if force else None
        return _entity(await client.put(f'/orders/{order_id}/close', body))


class ReservationRepository:
    """Репозиторий для работы с бронированиями"""

    @staticmethod
    async def get_reservations(client: ApiClient) -> List[Reservation]:
        data = await client.get('/reservations')
        return [Reservation.from_api(row) for row in _items(data)]

    @staticmethod
    async def create_reservation(client: ApiClient, table_id: int, customer_name: str,
                                 customer_phone: str, guest_count: int,
                                 reserved_from: datetime, reserved_to: datetime) -> Reservation:
        """Создание бронирования"""
        data = await client.post('/reservations', {
            'tableId': table_id,
            'customerName': customer_name,
            'customerPhone': customer_phone,
            'guestCount': guest_count,
            'reservedFrom': to_api_instant(reserved_from),
            'reservedTo': to_api_instant(reserved_to),
            'status': 'confirmed'
        })
        return Reservation.from_api(_entity(data))

    @staticmethod
    async def update_reservation(client: ApiClient, reservation_id: int,
                                 fields: Dict[str, Any]) -> Dict[str, Any]:
        return _entity(await client.put(f'/reservations/{reservation_id}', fields))

    @staticmethod
    async def set_status(client: ApiClient, reservation_id: int, status: str) -> Dict[str, Any]:
        return await ReservationRepository.update_reservation(
            client, reservation_id, {'status': status}
        )

    @staticmethod
    async def complete(client: ApiClient, reservation_id: int) -> Dict[str, Any]:
        return await ReservationRepository.set_status(client, reservation_id, RESERVATION_COMPLETED)

    @staticmethod
    async def seat(client: ApiClient, reservation_id: int) -> Dict[str, Any]:
        return await ReservationRepository.set_status(client, reservation_id, RESERVATION_SEATED)

    @staticmethod
    async def cancel(client: ApiClient, reservation_id: int) -> Dict[str, Any]:
        return await ReservationRepository.set_status(client, reservation_id, RESERVATION_CANCELLED)

    @staticmethod
    async def delete_reservation(client: ApiClient, reservation_id: int):
        await client.delete(f'/reservations/{reservation_id}')

    @staticmethod
    async def check_availability(client: ApiClient, table_id: int,
                                 reserved_from: datetime, reserved_to: datetime,
                                 exclude_reservation_id: Optional[int] = None) -> bool:
        """
        Проверка, свободен ли стол в интервале. Решает сервер.
        Любая ошибка означает "занят", чтобы не допустить двойной брони.
        """
        params = {
            'tableId': str(table_id),
            'reservedFrom': to_api_instant(reserved_from),
            'reservedTo': to_api_instant(reserved_to)
        }
        if exclude_reservation_id:
            params['excludeReservationId'] = str(exclude_reservation_id)

        try:
            data = await client.get('/reservations/available', params=params)
        except ApiError as e:
            logger.error(f"Ошибка проверки доступности стола {table_id}: {e}")
            return False

        return isinstance(data, dict) and data.get('available') is True

    @staticmethod
    async def reschedule(client: ApiClient, reservation: Reservation,
                         reserved_from: datetime, reserved_to: datetime) -> bool:
        """
        Перенос брони на новое время. Сама бронь не считается конфликтом.
        Возвращает False, если стол занят или сервер не подтвердил доступность.
        """
        is_available = await ReservationRepository.check_availability(
            client, reservation.table_id, reserved_from, reserved_to,
            exclude_reservation_id=reservation.id
        )
        if not is_available:
            return False

        await ReservationRepository.update_reservation(client, reservation.id, {
            'tableId': reservation.table_id,
            'reservedFrom': to_api_instant(reserved_from),
            'reservedTo': to_api_instant(reserved_to)
        })
        return True


class UserRepository:
    """Репозиторий для работы с сотрудниками"""

    @staticmethod
    async def get_all_users(client: ApiClient) -> List[User]:
        data = await client.get('/users')
        return [User.from_api(row) for row in _items(data)]

    @staticmethod
    async def create_user(client: ApiClient, email: str, password: str, first_name: str,
                          last_name: str, role: str) -> User:
        data = await client.post('/users', {
            'email': email,
            'password': password,
            'firstName': first_name,
            'lastName': last_name,
            'role': role
        })
        return User.from_api(_entity(data))

    @staticmethod
    async def update_user(client: ApiClient, user_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        return _entity(await client.put(f'/users/{user_id}', fields))

    @staticmethod
    async def change_role(client: ApiClient, user_id: int, role: str) -> Dict[str, Any]:
        return _entity(await client.put(f'/users/{user_id}/role', {'role': role}))

    @staticmethod
    async def change_status(client: ApiClient, user_id: int, is_active: bool) -> Dict[str, Any]:
        return _entity(await client.put(f'/users/{user_id}/status', {'isActive': is_active}))

    @staticmethod
    async def delete_user(client: ApiClient, user_id: int):
        await client.delete(f'/users/{user_id}')


class OrderItemRepository:
    """Блюда заказов: очередь кухни и подача"""

    @staticmethod
    async def get_kitchen_items(client: ApiClient) -> List[OrderItem]:
        data = await client.get('/order-items/kitchen')
        return [OrderItem.from_api(row) for row in _items(data)]

    @staticmethod
    async def update_status(client: ApiClient, item_id: int, status: str,
                            chef_id: Optional[int] = None) -> Dict[str, Any]:
        body = {'status': status}
        if chef_id:
            body['chefId'] = chef_id
        return _entity(await client.put(f'/order-items/{item_id}/status', body))

    @staticmethod
    async def mark_served(client: ApiClient, item_id: int) -> Dict[str, Any]:
        return _entity(await client.put(f'/order-items/{item_id}/served'))


class CategoryRepository:
    """Репозиторий категорий меню"""

    @staticmethod
    async def get_all_categories(client: ApiClient) -> List[Category]:
        data = await client.get('/categories')
        return [Category.from_api(row) for row in _items(data)]

    @staticmethod
    async def create_category(client: ApiClient, name: str, description: str = '') -> Category:
        data = await client.post('/categories', {'name': name, 'description': description})
        return Category.from_api(_entity(data))

    @staticmethod
    async def update_category(client: ApiClient, category_id: int, name: str) -> Category:
        data = await client.put(f'/categories/{category_id}', {'name': name})
        return Category.from_api(_entity(data))

    @staticmethod
    async def delete_category(client: ApiClient, category_id: int):
        await client.delete(f'/categories/{category_id}')


class DishRepository:
    """Репозиторий блюд и стоп-листа"""

    @staticmethod
    async def get_dishes(client: ApiClient, category_id: Optional[int] = None,
                         search: str = '') -> List[Dish]:
        """Блюда, опционально с фильтром по категории и названию"""
        params = {}
        if category_id:
            params['categoryId'] = str(category_id)
        if search:
            params['search'] = search
        data = await client.get('/dishes', params=params or None)
        return [Dish.from_api(row) for row in _items(data)]

    @staticmethod
    async def create_dish(client: ApiClient, name: str, price: float, category_id: int) -> Dish:
        data = await client.post('/dishes', {
            'name': name,
            'price': price,
            'categoryId': category_id,
            'isActive': True
        })
        return Dish.from_api(_entity(data))

    @staticmethod
    async def update_dish(client: ApiClient, dish_id: int, fields: Dict[str, Any]) -> Dish:
        return Dish.from_api(_entity(await client.put(f'/dishes/{dish_id}', fields)))

    @staticmethod
    async def toggle_stop(client: ApiClient, dish_id: int) -> Dict[str, Any]:
        """Поставить блюдо на стоп или снять со стопа"""
        return _entity(await client.put(f'/dishes/{dish_id}/stop'))

    @staticmethod
    async def delete_dish(client: ApiClient, dish_id: int):
        await client.delete(f'/dishes/{dish_id}')


class StatisticsRepository:
    """Статистика продаж"""

    @staticmethod
    async def dashboard(client: ApiClient) -> SalesSummary:
        return SalesSummary.from_api(await client.get('/stats/dashboard'))

    @staticmethod
    async def daily(client: ApiClient, day: date) -> SalesSummary:
        data = await client.get('/stats/daily', params={'date': day.isoformat()})
        return SalesSummary.from_api(data)

    @staticmethod
    async def weekly(client: ApiClient, start_date: date) -> SalesSummary:
        data = await client.get('/stats/weekly', params={'startDate': start_date.isoformat()})
        return SalesSummary.from_api(data)

    @staticmethod
    async def monthly(client: ApiClient, year: int, month: int) -> SalesSummary:
        data = await client.get('/stats/monthly', params={'year': str(year), 'month': str(month)})
        return SalesSummary.from_api(data)

    @staticmethod
    async def popular_dishes(client: ApiClient, period: str = 'month',
                             limit: int = 10) -> List[PopularDish]:
        data = await client.get('/stats/popular-dishes', params={'period': period, 'limit': str(limit)})
        rows = data.get('popularDishes') if isinstance(data, dict) else None
        if not isinstance(rows, list):
            rows = extract_items(data)
        return [PopularDish.from_api(row) for row in rows if isinstance(row, dict)]
