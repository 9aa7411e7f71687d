"""
Тесты сессий и токена фоновых задач
"""
import asyncio

from aiohttp import web
from aiohttp import test_utils

from api.client import ApiClient
from api.models import User
from api.repository import AuthRepository
from handlers.table_handlers import refresh_floor, choose_filter
from utils.floor import FloorSnapshot
from utils.session import Session, SessionStore

STAFF = {
    'admin@r.ru': ('ADMIN', 'admin'),
    'waiter@r.ru': ('WAITER', 'waiter'),
    'trainee@r.ru': ('TRAINEE', 'trainee'),
    'chef@r.ru': ('CHEF', 'chef'),
}


def install_login(monkeypatch):
    async def login(client, email, password):
        token, role = STAFF[email]
        user = User(id=len(token), email=email, first_name=role, last_name='', role=role)
        return token, user

    monkeypatch.setattr(AuthRepository, 'login', staticmethod(login))


def with_store(scenario, service_token=''):
    async def runner():
        client = ApiClient('http://api.test')
        floor = FloorSnapshot(client.with_token(service_token or None))
        sessions = SessionStore(client, floor=floor, service_token=service_token)
        try:
            return await scenario(floor, sessions)
        finally:
            await client.close()

    return asyncio.run(runner())


def test_trainee_view_and_logout_keep_admin_token(monkeypatch):
    install_login(monkeypatch)
    loaded_with = []

    async def scenario(floor, sessions):
        async def load(client=None):
            loaded_with.append(client.token if client else floor.client.token)
            return True

        floor.load = load

        admin = await sessions.login(1, 'admin@r.ru', 'secret')
        await refresh_floor(floor, admin)
        trainee = await sessions.login(2, 'trainee@r.ru', 'secret')
        await refresh_floor(floor, trainee)
        sessions.logout(2)
        return floor.client.token

    assert with_store(scenario) == 'ADMIN'
    # Просмотр идёт с токеном смотрящего, общий токен не меняется
    assert loaded_with == ['ADMIN', 'TRAINEE']


def test_trainee_and_chef_tokens_are_never_adopted(monkeypatch):
    install_login(monkeypatch)

    async def scenario(floor, sessions):
        await sessions.login(1, 'trainee@r.ru', 'secret')
        await sessions.login(2, 'chef@r.ru', 'secret')
        return floor.client.token

    assert with_store(scenario) is None


def test_logout_hands_token_to_remaining_staff(monkeypatch):
    install_login(monkeypatch)

    async def scenario(floor, sessions):
        await sessions.login(1, 'waiter@r.ru', 'secret')
        await sessions.login(2, 'admin@r.ru', 'secret')
        assert floor.client.token == 'ADMIN'

        sessions.logout(2)
        after_admin = floor.client.token
        sessions.logout(1)
        return after_admin, floor.client.token

    assert with_store(scenario) == ('WAITER', None)


def test_logout_of_other_session_keeps_token(monkeypatch):
    install_login(monkeypatch)

    async def scenario(floor, sessions):
        await sessions.login(1, 'admin@r.ru', 'secret')
        await sessions.login(2, 'waiter@r.ru', 'secret')
        sessions.logout(1)
        return floor.client.token

    assert with_store(scenario) == 'WAITER'


def test_service_token_is_never_replaced(monkeypatch):
    install_login(monkeypatch)

    async def scenario(floor, sessions):
        await sessions.login(1, 'admin@r.ru', 'secret')
        sessions.logout(1)
        return floor.client.token

    assert with_store(scenario, service_token='SERVICE') == 'SERVICE'


def test_floor_load_uses_viewer_token():
    seen = []

    async def tables(request):
        seen.append(request.headers.get('Authorization'))
        return web.json_response([])

    async def empty(request):
        return web.json_response([])

    app = web.Application()
    app.router.add_get('/tables', tables)
    app.router.add_get('/orders', empty)
    app.router.add_get('/reservations', empty)

    async def runner():
        server = test_utils.TestServer(app)
        await server.start_server()
        client = ApiClient(str(server.make_url('/')))
        try:
            floor = FloorSnapshot(client.with_token('SERVICE'))
            await floor.load(client.with_token('VIEWER'))
            await floor.load()
            return floor.client.token
        finally:
            await client.close()
            await server.close()

    token = asyncio.run(runner())

    assert seen == ['Bearer VIEWER', 'Bearer SERVICE']
    assert token == 'SERVICE'


class FakeCallback:
    data = 'tables_filter'

    def __init__(self):
        self.answers = []
        self.message = self

    async def answer(self, text=None, show_alert=False):
        self.answers.append((text, show_alert))

    async def edit_text(self, text, reply_markup=None):
        self.answers.append((text, 'edited'))


def test_status_filter_requires_floor_role():
    chef = Session('CHEF', User(id=4, email='chef@r.ru', first_name='chef', last_name='', role='chef'), None)
    blocked = Session('W', User(id=5, email='w@r.ru', first_name='w', last_name='', role='waiter',
                                is_active=False), None)

    for session in (None, chef, blocked):
        callback = FakeCallback()
        asyncio.run(choose_filter(callback, session))
        assert len(callback.answers) == 1
        _, alert = callback.answers[0]
        assert alert is True

    callback = FakeCallback()
    waiter = Session('W', User(id=6, email='w@r.ru', first_name='w', last_name='', role='waiter'), None)
    asyncio.run(choose_filter(callback, waiter))
    assert callback.answers[0] == ("🔎 Показать столы со статусом:", 'edited')
