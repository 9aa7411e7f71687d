"""
Вычисление статуса столов по заказам и бронированиям

Функции чистые: только читают переданные списки и ничего не меняют.
Статус не хранится и пересчитывается при каждой отрисовке.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from api.models import (
    Table, Order, Reservation,
    ACTIVE_ORDER_STATUSES, LIVE_RESERVATION_STATUSES,
    RESERVATION_CONFIRMED, RESERVATION_SEATED, ORDER_PAYMENT
)


STATUS_FREE = 'free'
STATUS_RESERVED_SOON = 'reserved_soon'
STATUS_RESERVED = 'reserved'
STATUS_OCCUPIED = 'occupied'

TABLE_STATUSES = (STATUS_FREE, STATUS_RESERVED_SOON, STATUS_RESERVED, STATUS_OCCUPIED)

DEFAULT_LOOKAHEAD = timedelta(minutes=30)


@dataclass
class FloorStatistics:
    """Сводка по залу"""
    total_tables: int = 0
    occupied_tables: int = 0
    reserved_tables: int = 0
    reserved_soon_tables: int = 0
    free_tables: int = 0
    active_orders: int = 0
    payment_orders: int = 0


def active_orders_for(table: Table, orders: Iterable[Order]) -> List[Order]:
    """Активные заказы стола"""
    return [
        order for order in orders
        if order.table_id == table.id and order.status in ACTIVE_ORDER_STATUSES
    ]


def current_reservation(table: Table, reservations: Iterable[Reservation],
                        now: datetime) -> Optional[Reservation]:
    """Бронь, окно которой содержит now. Посаженные гости важнее подтверждённой брони"""
    found = None
    for reservation in reservations:
        if reservation.table_id != table.id:
            continue
        if reservation.status not in LIVE_RESERVATION_STATUSES:
            continue
        if not reservation.covers(now):
            continue
        if reservation.status == RESERVATION_SEATED:
            return reservation
        if found is None:
            found = reservation
    return found


def upcoming_reservation(table: Table, reservations: Iterable[Reservation], now: datetime,
                         lookahead: timedelta = DEFAULT_LOOKAHEAD) -> Optional[Reservation]:
    """Живая бронь, которая начнётся в пределах lookahead и ещё не закончилась"""
    soon = now + lookahead
    for reservation in reservations:
        if reservation.table_id != table.id:
            continue
        if reservation.status not in LIVE_RESERVATION_STATUSES:
            continue
        if reservation.reserved_from is None or reservation.reserved_to is None:
            continue
        if reservation.reserved_from <= soon and reservation.reserved_to > now:
            return reservation
    return None


def derive_status(table: Table, orders: Sequence[Order], reservations: Sequence[Reservation],
                  now: datetime, lookahead: timedelta = DEFAULT_LOOKAHEAD) -> str:
    """
    Статус стола. Правила проверяются по порядку, срабатывает первое:

    1. есть активный заказ -> occupied
    2. гости по брони сидят (seated) и окно содержит now -> occupied
    3. подтверждённая бронь, окно содержит now -> reserved
    4. живая бронь начнётся в течение lookahead -> reserved_soon
    5. иначе -> free
    """
    if active_orders_for(table, orders):
        return STATUS_OCCUPIED

    reservation = current_reservation(table, reservations, now)
    if reservation is not None:
        if reservation.status == RESERVATION_SEATED:
            return STATUS_OCCUPIED
        if reservation.status == RESERVATION_CONFIRMED:
            return STATUS_RESERVED

    if upcoming_reservation(table, reservations, now, lookahead) is not None:
        return STATUS_RESERVED_SOON

    return STATUS_FREE


def is_table_free(table: Table, orders: Sequence[Order], reservations: Sequence[Reservation],
                  now: datetime, lookahead: timedelta = DEFAULT_LOOKAHEAD) -> bool:
    """
    Стол свободен прямо сейчас: нет активного заказа и текущей брони.
    Скорая бронь (reserved_soon) стол не занимает.
    """
    status = derive_status(table, orders, reservations, now, lookahead)
    return status in (STATUS_FREE, STATUS_RESERVED_SOON)


def select_expired_reservations(reservations: Iterable[Reservation], now: datetime,
                                skip_ids: Iterable[int] = ()) -> List[int]:
    """ID посаженных броней, окно которых уже закончилось"""
    skip = set(skip_ids)
    return [
        reservation.id for reservation in reservations
        if reservation.status == RESERVATION_SEATED
        and reservation.reserved_to is not None
        and reservation.reserved_to < now
        and reservation.id not in skip
    ]


def floor_statistics(tables: Sequence[Table], orders: Sequence[Order],
                     reservations: Sequence[Reservation], now: datetime,
                     lookahead: timedelta = DEFAULT_LOOKAHEAD) -> FloorStatistics:
    """Сводка по залу. Все счётчики столов берутся из derive_status"""
    stats = FloorStatistics(total_tables=len(tables))

    for table in tables:
        status = derive_status(table, orders, reservations, now, lookahead)
        if status == STATUS_OCCUPIED:
            stats.occupied_tables += 1
        elif status == STATUS_RESERVED:
            stats.reserved_tables += 1
        elif status == STATUS_RESERVED_SOON:
            stats.reserved_soon_tables += 1
        else:
            stats.free_tables += 1

    active = [order for order in orders if order.status in ACTIVE_ORDER_STATUSES]
    stats.active_orders = len(active)
    stats.payment_orders = sum(1 for order in active if order.status == ORDER_PAYMENT)
    return stats


def filter_tables(tables: Sequence[Table], orders: Sequence[Order],
                  reservations: Sequence[Reservation], now: datetime,
                  status: Optional[str] = None, min_capacity: Optional[int] = None,
                  search: str = '', lookahead: timedelta = DEFAULT_LOOKAHEAD) -> List[Table]:
    """Фильтры сетки столов: статус, минимальная вместимость, подстрока названия"""
    needle = search.strip().lower()
    result = []
    for table in tables:
        if status and derive_status(table, orders, reservations, now, lookahead) != status:
            continue
        if min_capacity and table.capacity < min_capacity:
            continue
        if needle and needle not in table.name.lower():
            continue
        result.append(table)
    return result
