"""
Тесты репозиториев меню, кухни, статистики, переноса брони и сотрудников
"""
import asyncio
from datetime import date, datetime, timedelta, timezone

from aiohttp import web
from aiohttp import test_utils

from api.client import ApiClient
from api.models import Reservation
from api.repository import (
    CategoryRepository, DishRepository, OrderItemRepository, ReservationRepository,
    StatisticsRepository, UserRepository
)

START = datetime(2025, 5, 18, 18, 0, tzinfo=timezone.utc)
END = START + timedelta(hours=2)


def run_with_server(app, scenario):
    async def runner():
        server = test_utils.TestServer(app)
        await server.start_server()
        client = ApiClient(str(server.make_url('/')), timeout=2)
        try:
            return await scenario(client)
        finally:
            await client.close()
            await server.close()

    return asyncio.run(runner())


def make_reservation():
    return Reservation(
        id=7, table_id=3, customer_name="Иван", customer_phone="+79990001122",
        guest_count=2, reserved_from=START, reserved_to=END
    )


def test_reschedule_excludes_itself_and_saves_new_window():
    seen = {}

    async def available(request):
        seen['query'] = dict(request.query)
        return web.json_response({'available': True})

    async def update(request):
        seen['path'] = request.path
        seen['body'] = await request.json()
        return web.json_response({'id': 7})

    app = web.Application()
    app.router.add_get('/reservations/available', available)
    app.router.add_put('/reservations/{id}', update)

    async def scenario(client):
        return await ReservationRepository.reschedule(
            client, make_reservation(), START + timedelta(hours=1), END + timedelta(hours=1)
        )

    assert run_with_server(app, scenario) is True
    assert seen['query'] == {
        'tableId': '3',
        'reservedFrom': '2025-05-18T19:00:00Z',
        'reservedTo': '2025-05-18T21:00:00Z',
        'excludeReservationId': '7',
    }
    assert seen['path'] == '/reservations/7'
    assert seen['body'] == {
        'tableId': 3,
        'reservedFrom': '2025-05-18T19:00:00Z',
        'reservedTo': '2025-05-18T21:00:00Z',
    }


def test_reschedule_to_busy_slot_sends_no_update():
    updates = []

    async def available(request):
        return web.json_response({'available': False})

    async def update(request):
        updates.append(request.path)
        return web.json_response({})

    app = web.Application()
    app.router.add_get('/reservations/available', available)
    app.router.add_put('/reservations/{id}', update)

    async def scenario(client):
        return await ReservationRepository.reschedule(client, make_reservation(), START, END)

    assert run_with_server(app, scenario) is False
    assert updates == []


def test_delete_reservation_calls_delete():
    deleted = []

    async def delete(request):
        deleted.append(request.match_info['id'])
        return web.json_response({'message': 'ok'})

    app = web.Application()
    app.router.add_delete('/reservations/{id}', delete)

    async def scenario(client):
        await ReservationRepository.delete_reservation(client, 7)

    run_with_server(app, scenario)
    assert deleted == ['7']


def test_create_and_rename_user():
    seen = {}

    async def create(request):
        seen['create'] = await request.json()
        return web.json_response({'id': 12, **seen['create']})

    async def update(request):
        seen['update'] = (request.match_info['id'], await request.json())
        return web.json_response({'data': {'id': 12}})

    app = web.Application()
    app.router.add_post('/users', create)
    app.router.add_put('/users/{id}', update)

    async def scenario(client):
        user = await UserRepository.create_user(client, 'new@r.ru', 'secret1', 'Анна', 'Петрова', 'waiter')
        await UserRepository.update_user(client, user.id, {'firstName': 'Анна', 'lastName': 'Иванова'})
        return user

    user = run_with_server(app, scenario)

    assert seen['create'] == {
        'email': 'new@r.ru', 'password': 'secret1',
        'firstName': 'Анна', 'lastName': 'Петрова', 'role': 'waiter'
    }
    assert user.id == 12 and user.role == 'waiter'
    assert seen['update'] == ('12', {'firstName': 'Анна', 'lastName': 'Иванова'})


def test_categories_crud():
    calls = []

    async def listing(request):
        return web.json_response([{'id': 1, 'name': 'Супы', 'description': 'Горячее'}])

    async def create(request):
        body = await request.json()
        calls.append(('POST', body))
        return web.json_response({'id': 2, **body})

    async def update(request):
        calls.append(('PUT', request.match_info['id'], await request.json()))
        return web.json_response({'id': 1, 'name': 'Первое'})

    async def delete(request):
        calls.append(('DELETE', request.match_info['id']))
        return web.json_response({})

    app = web.Application()
    app.router.add_get('/categories', listing)
    app.router.add_post('/categories', create)
    app.router.add_put('/categories/{id}', update)
    app.router.add_delete('/categories/{id}', delete)

    async def scenario(client):
        categories = await CategoryRepository.get_all_categories(client)
        created = await CategoryRepository.create_category(client, 'Десерты')
        await CategoryRepository.update_category(client, 1, 'Первое')
        await CategoryRepository.delete_category(client, 2)
        return categories, created

    categories, created = run_with_server(app, scenario)

    assert [(c.id, c.name, c.description) for c in categories] == [(1, 'Супы', 'Горячее')]
    assert created.id == 2 and created.name == 'Десерты'
    assert calls == [
        ('POST', {'name': 'Десерты', 'description': ''}),
        ('PUT', '1', {'name': 'Первое'}),
        ('DELETE', '2'),
    ]


def test_dishes_filter_create_and_stop_toggle():
    seen = {}

    async def listing(request):
        seen['query'] = dict(request.query)
        return web.json_response({'rows': [
            {'id': 5, 'name': 'Борщ', 'price': '350.00', 'category': {'id': 1}, 'isStopped': True},
        ]})

    async def create(request):
        seen['create'] = await request.json()
        return web.json_response({'id': 6, **seen['create']})

    async def stop(request):
        seen['stop'] = request.match_info['id']
        return web.json_response({'id': 5, 'isStopped': False})

    app = web.Application()
    app.router.add_get('/dishes', listing)
    app.router.add_post('/dishes', create)
    app.router.add_put('/dishes/{id}/stop', stop)

    async def scenario(client):
        dishes = await DishRepository.get_dishes(client, category_id=1, search='борщ')
        created = await DishRepository.create_dish(client, 'Солянка', 420.0, 1)
        await DishRepository.toggle_stop(client, 5)
        return dishes, created

    dishes, created = run_with_server(app, scenario)

    assert seen['query'] == {'categoryId': '1', 'search': 'борщ'}
    assert dishes[0].price == 350.0
    assert dishes[0].category_id == 1
    assert not dishes[0].is_available
    assert seen['create'] == {'name': 'Солянка', 'price': 420.0, 'categoryId': 1, 'isActive': True}
    assert created.id == 6
    assert seen['stop'] == '5'


def test_order_items_kitchen_status_and_serving():
    seen = []

    async def kitchen(request):
        return web.json_response([
            {'id': 1, 'orderId': 4, 'quantity': 2, 'status': 'preparing', 'chefId': 9,
             'dish': {'id': 5, 'name': 'Борщ', 'price': 350}},
        ])

    async def status(request):
        seen.append(('status', request.match_info['id'], await request.json()))
        return web.json_response({'id': 1})

    async def served(request):
        seen.append(('served', request.match_info['id']))
        return web.json_response({'id': 1})

    app = web.Application()
    app.router.add_get('/order-items/kitchen', kitchen)
    app.router.add_put('/order-items/{id}/status', status)
    app.router.add_put('/order-items/{id}/served', served)

    async def scenario(client):
        items = await OrderItemRepository.get_kitchen_items(client)
        await OrderItemRepository.update_status(client, 1, 'ready', chef_id=9)
        await OrderItemRepository.update_status(client, 2, 'preparing')
        await OrderItemRepository.mark_served(client, 1)
        return items

    items = run_with_server(app, scenario)

    assert (items[0].dish_name, items[0].order_id, items[0].chef_id, items[0].total) == ('Борщ', 4, 9, 700.0)
    assert seen == [
        ('status', '1', {'status': 'ready', 'chefId': 9}),
        ('status', '2', {'status': 'preparing'}),
        ('served', '1'),
    ]


def test_statistics_requests_and_shapes():
    seen = {}

    async def daily(request):
        seen['daily'] = dict(request.query)
        return web.json_response({
            'date': '2025-05-18',
            'orders': {'total': 4, 'revenue': '2000', 'maxOrderValue': 900},
            'reservations': {'total': 3, 'totalGuests': 8},
            'orderStatuses': [{'status': 'closed', 'count': '3'}, {'status': 'open', 'count': 1}],
        })

    async def weekly(request):
        seen['weekly'] = dict(request.query)
        return web.json_response({
            'totals': {'orders': {'total': 10, 'revenue': 5000, 'averageOrderValue': 500}},
            'dailyStats': [{'date': '2025-05-12', 'ordersCount': 2, 'dailyRevenue': '800'}],
            'period': {'start': '2025-05-12', 'end': '2025-05-18'},
        })

    async def monthly(request):
        seen['monthly'] = dict(request.query)
        return web.json_response({
            'totals': {'orders': {'total': 0, 'revenue': 0}},
            'period': {'monthName': 'Май', 'year': 2025},
        })

    async def popular(request):
        seen['popular'] = dict(request.query)
        return web.json_response({'popularDishes': [
            {'dishId': 5, 'dishName': 'Борщ', 'totalQuantity': '12', 'totalRevenue': 4200},
        ]})

    app = web.Application()
    app.router.add_get('/stats/daily', daily)
    app.router.add_get('/stats/weekly', weekly)
    app.router.add_get('/stats/monthly', monthly)
    app.router.add_get('/stats/popular-dishes', popular)

    async def scenario(client):
        return (
            await StatisticsRepository.daily(client, date(2025, 5, 18)),
            await StatisticsRepository.weekly(client, date(2025, 5, 12)),
            await StatisticsRepository.monthly(client, 2025, 5),
            await StatisticsRepository.popular_dishes(client, 'week', 5),
        )

    day, week, month, popular_dishes = run_with_server(app, scenario)

    assert seen['daily'] == {'date': '2025-05-18'}
    assert seen['weekly'] == {'startDate': '2025-05-12'}
    assert seen['monthly'] == {'year': '2025', 'month': '5'}
    assert seen['popular'] == {'period': 'week', 'limit': '5'}

    assert (day.orders_count, day.revenue, day.average_order_value) == (4, 2000.0, 500.0)
    assert (day.reservations_count, day.total_guests) == (3, 8)
    assert day.order_statuses == {'closed': 3, 'open': 1}
    assert day.period == '2025-05-18'

    assert week.orders_count == 10 and week.average_order_value == 500.0
    assert [(d.date, d.orders_count, d.revenue) for d in week.days] == [('2025-05-12', 2, 800.0)]
    assert week.period == '2025-05-12 - 2025-05-18'

    assert month.period == 'Май 2025'
    assert month.average_order_value == 0.0

    assert [(d.dish_name, d.total_quantity, d.total_revenue) for d in popular_dishes] == [('Борщ', 12, 4200.0)]
