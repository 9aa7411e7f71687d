"""
Тесты клиента API и загрузки снимка зала на тестовом aiohttp-сервере
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from aiohttp import web
from aiohttp import test_utils

from api.client import ApiClient, ApiError, UnauthorizedError, extract_items
from api.repository import (
    AuthRepository, OrderRepository, ReservationRepository, TableRepository
)
from utils.floor import FloorSnapshot

START = datetime(2025, 5, 18, 18, 0, tzinfo=timezone.utc)
END = START + timedelta(hours=2)


def run_with_server(app, scenario, timeout=2):
    """Запуск сценария против приложения aiohttp на случайном порту"""

    async def runner():
        server = test_utils.TestServer(app)
        await server.start_server()
        client = ApiClient(str(server.make_url('/')), timeout=timeout)
        try:
            return await scenario(client)
        finally:
            await client.close()
            await server.close()

    return asyncio.run(runner())


def test_extract_items_accepts_all_envelopes():
    rows = [{'id': 1}]
    assert extract_items(rows) == rows
    assert extract_items({'rows': rows, 'count': 1}) == rows
    assert extract_items({'data': rows}) == rows
    assert extract_items({'data': {'id': 1}}) == []
    assert extract_items(None) == []


def test_tables_are_read_from_any_envelope():
    async def bare(request):
        return web.json_response([{'id': 1, 'name': 'Окно', 'capacity': 4}])

    async def wrapped(request):
        return web.json_response({'rows': [{'id': '2', 'name': 'Веранда', 'capacity': '6'}]})

    for handler, expected in ((bare, (1, 'Окно', 4)), (wrapped, (2, 'Веранда', 6))):
        app = web.Application()
        app.router.add_get('/tables', handler)

        tables = run_with_server(app, TableRepository.get_all_tables)

        assert [(t.id, t.name, t.capacity) for t in tables] == [expected]


def test_bearer_token_is_sent():
    seen = {}

    async def me(request):
        seen['auth'] = request.headers.get('Authorization')
        return web.json_response({'user': {'id': 3, 'email': 'w@r.ru', 'role': 'waiter'}})

    app = web.Application()
    app.router.add_get('/auth/me', me)

    async def scenario(client):
        return await AuthRepository.me(client.with_token('secret'))

    user = run_with_server(app, scenario)

    assert seen['auth'] == 'Bearer secret'
    assert user.role == 'waiter'


def test_unauthorized_and_error_message():
    async def me(request):
        return web.json_response({'message': 'Токен истёк'}, status=401)

    async def tables(request):
        return web.json_response({'message': 'Стол с таким названием уже существует'}, status=400)

    app = web.Application()
    app.router.add_get('/auth/me', me)
    app.router.add_post('/tables', tables)

    async def scenario(client):
        with pytest.raises(UnauthorizedError):
            await AuthRepository.me(client)
        with pytest.raises(ApiError) as exc_info:
            await TableRepository.create_table(client, 'Окно', 4)
        return exc_info.value

    error = run_with_server(app, scenario)

    assert error.status == 400
    assert error.is_client_error
    assert str(error) == 'Стол с таким названием уже существует'


def test_orders_filter_sends_repeated_status_params():
    seen = {}

    async def orders(request):
        seen['status'] = request.query.getall('status')
        return web.json_response({'data': [{'id': 1, 'tableId': 2, 'status': 'open'}]})

    app = web.Application()
    app.router.add_get('/orders', orders)

    async def scenario(client):
        return await OrderRepository.get_orders(client, ['open', 'payment'])

    result = run_with_server(app, scenario)

    assert seen['status'] == ['open', 'payment']
    assert result[0].table_id == 2


def test_availability_true_only_when_server_says_so():
    seen = {}

    async def available(request):
        seen.update(request.query)
        return web.json_response({'available': request.query['tableId'] == '3'})

    app = web.Application()
    app.router.add_get('/reservations/available', available)

    async def scenario(client):
        free = await ReservationRepository.check_availability(client, 3, START, END)
        busy = await ReservationRepository.check_availability(client, 4, START, END)
        return free, busy

    free, busy = run_with_server(app, scenario)

    assert free is True
    assert busy is False
    assert seen['reservedFrom'] == '2025-05-18T18:00:00Z'
    assert seen['reservedTo'] == '2025-05-18T20:00:00Z'


def test_availability_fails_closed_on_server_error():
    async def available(request):
        return web.json_response({'message': 'db down'}, status=500)

    app = web.Application()
    app.router.add_get('/reservations/available', available)

    async def scenario(client):
        return await ReservationRepository.check_availability(client, 3, START, END)

    assert run_with_server(app, scenario) is False


def test_availability_fails_closed_on_timeout():
    async def available(request):
        await asyncio.sleep(1)
        return web.json_response({'available': True})

    app = web.Application()
    app.router.add_get('/reservations/available', available)

    async def scenario(client):
        return await ReservationRepository.check_availability(client, 3, START, END)

    assert run_with_server(app, scenario, timeout=0.2) is False


def test_availability_fails_closed_on_malformed_answer():
    async def available(request):
        return web.Response(text='ok')

    app = web.Application()
    app.router.add_get('/reservations/available', available)

    async def scenario(client):
        return await ReservationRepository.check_availability(client, 3, START, END)

    assert run_with_server(app, scenario) is False


def test_snapshot_degrades_per_collection():
    async def tables(request):
        return web.json_response({'rows': [{'id': 1, 'name': 'Окно', 'capacity': 2}]})

    async def orders(request):
        return web.json_response([
            {'id': 1, 'tableId': 1, 'status': 'in_progress'},
            {'id': 2, 'tableId': 1, 'status': 'closed'},
        ])

    async def reservations(request):
        return web.json_response({'message': 'boom'}, status=500)

    app = web.Application()
    app.router.add_get('/tables', tables)
    app.router.add_get('/orders', orders)
    app.router.add_get('/reservations', reservations)

    async def scenario(client):
        floor = FloorSnapshot(client)
        ok = await floor.load()
        return ok, floor

    ok, floor = run_with_server(app, scenario)

    assert ok is True
    assert not floor.load_failed
    assert [t.id for t in floor.tables] == [1]
    assert [o.id for o in floor.orders] == [1]
    assert floor.reservations == []
    assert floor.status_of(floor.tables[0]) == 'occupied'


def test_snapshot_reports_total_failure():
    app = web.Application()

    async def scenario(client):
        floor = FloorSnapshot(client)
        ok = await floor.load()
        return ok, floor

    ok, floor = run_with_server(app, scenario)

    assert ok is False
    assert floor.load_failed
    assert floor.tables == [] and floor.orders == [] and floor.reservations == []


def test_closed_snapshot_discards_late_results():
    async def tables(request):
        return web.json_response([{'id': 1, 'name': 'Окно', 'capacity': 2}])

    app = web.Application()
    app.router.add_get('/tables', tables)

    async def scenario(client):
        floor = FloorSnapshot(client)
        floor.close()
        await floor.load()
        return floor

    floor = run_with_server(app, scenario)

    assert floor.tables == []
    assert floor.loaded_at is None
