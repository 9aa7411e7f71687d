"""
Снимок состояния зала: столы, активные заказы, бронирования
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from api.client import ApiClient, ApiError
from api.models import Table, Order, Reservation
from api.repository import TableRepository, OrderRepository, ReservationRepository
from utils.table_status import (
    derive_status, floor_statistics, is_table_free, FloorStatistics, DEFAULT_LOOKAHEAD
)
from utils.time_utils import utc_now

logger = logging.getLogger(__name__)


class FloorSnapshot:
    """
    Локальная копия данных зала для отображения.

    Данные принадлежат API, здесь только копия для чтения. Списки заменяются
    целиком при загрузке, поэтому один проход расчёта статусов видит
    согласованные данные.
    """

    def __init__(self, client: ApiClient, lookahead: timedelta = DEFAULT_LOOKAHEAD):
        self.client = client
        self.lookahead = lookahead
        self.tables: List[Table] = []
        self.orders: List[Order] = []
        self.reservations: List[Reservation] = []
        self.loaded_at: Optional[datetime] = None
        self.load_failed = False
        self.closed = False
        self._lock = asyncio.Lock()

    async def load(self, client: Optional[ApiClient] = None) -> bool:
        """
        Загрузка всех трёх коллекций. Ошибка любой из них даёт пустой список.
        Возвращает False, только если не загрузилось ничего.

        client: клиент смотрящего сотрудника. Без него используется
        токен фоновых задач.
        """
        client = client or self.client
        async with self._lock:
            failures = 0

            try:
                tables = await TableRepository.get_all_tables(client)
            except ApiError as e:
                logger.error(f"Ошибка загрузки столов: {e}")
                tables = []
                failures += 1

            try:
                orders = await OrderRepository.get_orders(client)
                orders = [order for order in orders if order.is_active]
            except ApiError as e:
                logger.error(f"Ошибка загрузки заказов: {e}")
                orders = []
                failures += 1

            try:
                reservations = await ReservationRepository.get_reservations(client)
            except ApiError as e:
                logger.error(f"Ошибка загрузки бронирований: {e}")
                reservations = []
                failures += 1

            # Вид уже закрыт: результат никому не нужен
            if self.closed:
                return False

            self.tables = tables
            self.orders = orders
            self.reservations = reservations
            self.loaded_at = utc_now()
            self.load_failed = failures == 3

            logger.info(
                f"Снимок зала загружен: столов {len(tables)}, "
                f"заказов {len(orders)}, броней {len(reservations)}"
            )
            return not self.load_failed

    def use_token(self, token: Optional[str]):
        """Смена токена фоновых задач. None снимает токен"""
        if token != self.client.token:
            self.client = self.client.with_token(token)

    def close(self):
        """Закрытие вида: дальнейшие загрузки не меняют данные"""
        self.closed = True

    def get_table(self, table_id: int) -> Optional[Table]:
        for table in self.tables:
            if table.id == table_id:
                return table
        return None

    def get_reservation(self, reservation_id: int) -> Optional[Reservation]:
        for reservation in self.reservations:
            if reservation.id == reservation_id:
                return reservation
        return None

    def get_order(self, order_id: int) -> Optional[Order]:
        for order in self.orders:
            if order.id == order_id:
                return order
        return None

    def status_of(self, table: Table, now: Optional[datetime] = None) -> str:
        return derive_status(table, self.orders, self.reservations,
                             now or utc_now(), self.lookahead)

    def is_free(self, table: Table, now: Optional[datetime] = None) -> bool:
        return is_table_free(table, self.orders, self.reservations,
                             now or utc_now(), self.lookahead)

    def statuses(self, now: Optional[datetime] = None) -> Dict[int, str]:
        """Статусы всех столов на один момент времени"""
        now = now or utc_now()
        return {table.id: self.status_of(table, now) for table in self.tables}

    def statistics(self, now: Optional[datetime] = None) -> FloorStatistics:
        return floor_statistics(self.tables, self.orders, self.reservations,
                                now or utc_now(), self.lookahead)
