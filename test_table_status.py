"""
Тесты расчёта статусов столов и выбора истёкших броней
"""
from datetime import datetime, timedelta, timezone

from api.models import Table, Order, Reservation
from keyboards.keyboards import get_reservation_tables_keyboard
from utils.floor import FloorSnapshot
from utils.table_status import (
    derive_status, is_table_free, select_expired_reservations, floor_statistics,
    filter_tables, current_reservation,
    STATUS_FREE, STATUS_RESERVED_SOON, STATUS_RESERVED, STATUS_OCCUPIED, TABLE_STATUSES
)

NOW = datetime(2025, 5, 18, 19, 30, tzinfo=timezone.utc)


def make_order(order_id, table_id, status):
    return Order(id=order_id, table_id=table_id, status=status)


def make_reservation(reservation_id, table_id, status, start, end):
    return Reservation(
        id=reservation_id, table_id=table_id, customer_name="Иван",
        customer_phone="+79990001122", guest_count=2,
        reserved_from=start, reserved_to=end, status=status
    )


def at(hour, minute=0):
    return datetime(2025, 5, 18, hour, minute, tzinfo=timezone.utc)


def test_empty_table_is_free():
    table = Table(id=1, name="Окно", capacity=4)
    assert derive_status(table, [], [], NOW) == STATUS_FREE
    assert is_table_free(table, [], [], NOW)


def test_active_order_beats_confirmed_reservation():
    table = Table(id=5, name="Стол 5", capacity=4)
    orders = [make_order(1, 5, 'in_progress')]
    reservations = [make_reservation(1, 5, 'confirmed', NOW - timedelta(minutes=10), NOW + timedelta(hours=1))]

    assert derive_status(table, orders, reservations, NOW) == STATUS_OCCUPIED
    assert not is_table_free(table, orders, reservations, NOW)


def test_every_active_order_status_occupies_table():
    table = Table(id=1, name="A", capacity=2)
    for status in ('open', 'in_progress', 'ready', 'payment'):
        assert derive_status(table, [make_order(1, 1, status)], [], NOW) == STATUS_OCCUPIED


def test_closed_and_cancelled_orders_do_not_occupy():
    table = Table(id=1, name="A", capacity=2)
    orders = [make_order(1, 1, 'closed'), make_order(2, 1, 'cancelled')]
    assert derive_status(table, orders, [], NOW) == STATUS_FREE


def test_order_on_other_table_is_ignored():
    table = Table(id=1, name="A", capacity=2)
    assert derive_status(table, [make_order(1, 2, 'open')], [], NOW) == STATUS_FREE


def test_seated_reservation_in_window_is_occupied():
    table = Table(id=3, name="B", capacity=4)
    reservations = [make_reservation(7, 3, 'seated', at(18), at(20))]

    assert derive_status(table, [], reservations, at(19, 30)) == STATUS_OCCUPIED


def test_seated_reservation_past_window_is_selected_for_completion():
    table = Table(id=3, name="B", capacity=4)
    reservations = [make_reservation(7, 3, 'seated', at(18), at(20))]

    later = at(20, 5)
    assert derive_status(table, [], reservations, later) == STATUS_FREE
    assert select_expired_reservations(reservations, later) == [7]


def test_confirmed_reservation_in_window_is_reserved():
    table = Table(id=2, name="C", capacity=2)
    reservations = [make_reservation(1, 2, 'confirmed', NOW - timedelta(minutes=5), NOW + timedelta(hours=2))]
    assert derive_status(table, [], reservations, NOW) == STATUS_RESERVED
    assert not is_table_free(table, [], reservations, NOW)


def test_seated_wins_over_confirmed_in_same_window():
    table = Table(id=2, name="C", capacity=2)
    reservations = [
        make_reservation(1, 2, 'confirmed', NOW - timedelta(hours=1), NOW + timedelta(hours=1)),
        make_reservation(2, 2, 'seated', NOW - timedelta(hours=1), NOW + timedelta(hours=1)),
    ]
    assert derive_status(table, [], reservations, NOW) == STATUS_OCCUPIED
    assert current_reservation(table, reservations, NOW).id == 2


def test_window_bounds_are_inclusive():
    table = Table(id=2, name="C", capacity=2)
    reservations = [make_reservation(1, 2, 'confirmed', at(18), at(20))]
    assert derive_status(table, [], reservations, at(18)) == STATUS_RESERVED
    assert derive_status(table, [], reservations, at(20)) == STATUS_RESERVED


def test_reservation_within_lookahead_is_reserved_soon():
    table = Table(id=4, name="D", capacity=6)
    reservations = [make_reservation(1, 4, 'confirmed', NOW + timedelta(minutes=20), NOW + timedelta(hours=2))]

    assert derive_status(table, [], reservations, NOW) == STATUS_RESERVED_SOON
    # Скорая бронь стол не занимает
    assert is_table_free(table, [], reservations, NOW)


def test_reservation_beyond_lookahead_is_free():
    table = Table(id=4, name="D", capacity=6)
    reservations = [make_reservation(1, 4, 'confirmed', NOW + timedelta(minutes=40), NOW + timedelta(hours=2))]
    assert derive_status(table, [], reservations, NOW) == STATUS_FREE


def test_cancelled_and_completed_reservations_are_ignored():
    table = Table(id=1, name="A", capacity=2)
    reservations = [
        make_reservation(1, 1, 'cancelled', NOW - timedelta(hours=1), NOW + timedelta(hours=1)),
        make_reservation(2, 1, 'completed', NOW - timedelta(hours=1), NOW + timedelta(hours=1)),
        make_reservation(3, 1, 'cancelled', NOW + timedelta(minutes=10), NOW + timedelta(hours=1)),
    ]
    assert derive_status(table, [], reservations, NOW) == STATUS_FREE


def test_reservation_without_times_is_ignored():
    table = Table(id=1, name="A", capacity=2)
    reservations = [make_reservation(1, 1, 'confirmed', None, None)]
    assert derive_status(table, [], reservations, NOW) == STATUS_FREE


def test_status_is_always_one_of_four_and_free_predicate_agrees():
    tables = [Table(id=i, name=f"T{i}", capacity=4) for i in range(1, 6)]
    orders = [make_order(1, 1, 'ready')]
    reservations = [
        make_reservation(1, 2, 'seated', NOW - timedelta(hours=1), NOW + timedelta(hours=1)),
        make_reservation(2, 3, 'confirmed', NOW - timedelta(hours=1), NOW + timedelta(hours=1)),
        make_reservation(3, 4, 'confirmed', NOW + timedelta(minutes=15), NOW + timedelta(hours=1)),
    ]

    for table in tables:
        status = derive_status(table, orders, reservations, NOW)
        assert status in TABLE_STATUSES
        assert is_table_free(table, orders, reservations, NOW) == (status in (STATUS_FREE, STATUS_RESERVED_SOON))


def test_select_expired_only_seated_and_ended():
    reservations = [
        make_reservation(1, 1, 'seated', NOW - timedelta(hours=3), NOW - timedelta(minutes=1)),
        make_reservation(2, 1, 'confirmed', NOW - timedelta(hours=3), NOW - timedelta(minutes=1)),
        make_reservation(3, 2, 'seated', NOW - timedelta(hours=1), NOW + timedelta(minutes=1)),
        make_reservation(4, 3, 'completed', NOW - timedelta(hours=3), NOW - timedelta(hours=1)),
        make_reservation(5, 3, 'seated', NOW - timedelta(hours=2), NOW),
    ]
    assert select_expired_reservations(reservations, NOW) == [1]
    assert select_expired_reservations(reservations, NOW, skip_ids=[1]) == []


def test_floor_statistics_counts_follow_statuses():
    tables = [Table(id=i, name=f"T{i}", capacity=4) for i in range(1, 5)]
    orders = [make_order(1, 1, 'payment'), make_order(2, 9, 'open'), make_order(3, 2, 'closed')]
    reservations = [
        make_reservation(1, 2, 'confirmed', NOW - timedelta(minutes=30), NOW + timedelta(hours=1)),
        make_reservation(2, 3, 'confirmed', NOW + timedelta(minutes=10), NOW + timedelta(hours=1)),
    ]

    stats = floor_statistics(tables, orders, reservations, NOW)

    assert stats.total_tables == 4
    assert stats.occupied_tables == 1
    assert stats.reserved_tables == 1
    assert stats.reserved_soon_tables == 1
    assert stats.free_tables == 1
    assert stats.active_orders == 2
    assert stats.payment_orders == 1


def test_filter_tables_by_status_capacity_and_name():
    tables = [
        Table(id=1, name="Окно", capacity=2),
        Table(id=2, name="Веранда", capacity=6),
        Table(id=3, name="Окно большое", capacity=8),
    ]
    orders = [make_order(1, 3, 'open')]

    assert [t.id for t in filter_tables(tables, orders, [], NOW, status=STATUS_FREE)] == [1, 2]
    assert [t.id for t in filter_tables(tables, orders, [], NOW, min_capacity=6)] == [2, 3]
    assert [t.id for t in filter_tables(tables, orders, [], NOW, search="окно")] == [1, 3]


def test_reservation_starting_exactly_at_lookahead_edge_is_reserved_soon():
    table = Table(id=4, name="D", capacity=6)
    reservations = [make_reservation(1, 4, 'confirmed', NOW + timedelta(minutes=30), NOW + timedelta(hours=2))]

    assert derive_status(table, [], reservations, NOW) == STATUS_RESERVED_SOON
    # Минутой позже граница уже не достигнута
    later = [make_reservation(2, 4, 'confirmed', NOW + timedelta(minutes=31), NOW + timedelta(hours=2))]
    assert derive_status(table, [], later, NOW) == STATUS_FREE


def test_seated_reservation_ending_exactly_now_is_not_expired():
    reservations = [make_reservation(1, 1, 'seated', NOW - timedelta(hours=2), NOW)]

    assert select_expired_reservations(reservations, NOW) == []
    assert select_expired_reservations(reservations, NOW + timedelta(seconds=1)) == [1]


def test_reservation_picker_marks_tables_free_now():
    floor = FloorSnapshot(client=None)
    floor.tables = [Table(id=1, name="A", capacity=2), Table(id=2, name="B", capacity=4),
                    Table(id=3, name="C", capacity=4)]
    floor.orders = [make_order(10, 2, 'in_progress')]
    floor.reservations = [make_reservation(1, 3, 'confirmed', NOW + timedelta(minutes=10), at(22))]

    free_ids = {table.id for table in floor.tables if floor.is_free(table, NOW)}
    # Стол со скорой бронью пока может принять гостей
    assert free_ids == {1, 3}

    markup = get_reservation_tables_keyboard(floor.tables, free_ids)
    texts = [button.text for row in markup.inline_keyboard for button in row]
    assert texts[:3] == ["🟢 A (2)", "B (4)", "🟢 C (4)"]
