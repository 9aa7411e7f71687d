"""
Сессии сотрудников

Каждый чат получает явный объект сессии: создаётся при входе или
регистрации, удаляется при выходе или ответе 401.

Если служебный токен API не задан, фоновые задачи зала ходят в API с
токеном вошедшего администратора или официанта. При выходе этого
сотрудника токен переходит к другой подходящей сессии или снимается.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from api.client import ApiClient, ApiError, UnauthorizedError
from api.models import User, ROLE_SUPER_ADMIN, ROLE_ADMIN, ROLE_WAITER
from api.repository import AuthRepository
from utils.floor import FloorSnapshot

logger = logging.getLogger(__name__)

# Роли, чей токен могут использовать фоновые задачи (super_admin входит через has_role)
FLOOR_TOKEN_ROLES = (ROLE_ADMIN, ROLE_WAITER)


@dataclass
class Session:
    """Сессия сотрудника"""
    token: str
    user: User
    client: ApiClient

    @property
    def role(self) -> str:
        return self.user.role

    def has_role(self, *roles: str) -> bool:
        """super_admin имеет доступ ко всему"""
        return self.user.role == ROLE_SUPER_ADMIN or self.user.role in roles

    @property
    def can_lend_token(self) -> bool:
        return self.user.is_active and self.has_role(*FLOOR_TOKEN_ROLES)


class SessionStore:
    """Хранилище сессий в памяти процесса"""

    def __init__(self, client: ApiClient, floor: Optional[FloorSnapshot] = None,
                 service_token: str = ''):
        self.client = client
        self.floor = floor
        self.service_token = service_token
        self._sessions: Dict[int, Session] = {}

    def get(self, chat_id: int) -> Optional[Session]:
        return self._sessions.get(chat_id)

    def _open(self, chat_id: int, token: str, user: User) -> Session:
        session = Session(token=token, user=user, client=self.client.with_token(token))
        # Повторный вход переносит сессию в конец: она становится самой свежей
        self._sessions.pop(chat_id, None)
        self._sessions[chat_id] = session
        logger.info(f"Сессия открыта: чат {chat_id}, {user.email} ({user.role})")

        if self._lends_token() and session.can_lend_token:
            self.floor.use_token(token)
            logger.info(f"Фоновые задачи используют токен {user.email}")
        return session

    def _lends_token(self) -> bool:
        return self.floor is not None and not self.service_token

    async def login(self, chat_id: int, email: str, password: str) -> Session:
        token, user = await AuthRepository.login(self.client, email, password)
        return self._open(chat_id, token, user)

    async def register(self, chat_id: int, email: str, password: str,
                       first_name: str, last_name: str) -> Session:
        token, user = await AuthRepository.register(
            self.client, email, password, first_name, last_name
        )
        return self._open(chat_id, token, user)

    async def check(self, chat_id: int) -> Optional[Session]:
        """
        Обновление профиля по токену. При временной ошибке остаются
        сохранённые данные, при 401 сессия закрывается.
        """
        session = self._sessions.get(chat_id)
        if session is None:
            return None

        try:
            session.user = await AuthRepository.me(session.client)
        except UnauthorizedError:
            logger.info(f"Токен чата {chat_id} недействителен, сессия закрыта")
            self.logout(chat_id)
            return None
        except ApiError as e:
            logger.warning(f"Не удалось проверить токен чата {chat_id}, используем сохранённые данные: {e}")

        return session

    def logout(self, chat_id: int):
        session = self._sessions.pop(chat_id, None)
        if session is None:
            return

        logger.info(f"Сессия закрыта: чат {chat_id}, {session.user.email}")

        if self._lends_token() and self.floor.client.token == session.token:
            successor = next(
                (other for other in reversed(list(self._sessions.values()))
                 if other.can_lend_token and other.token != session.token),
                None
            )
            self.floor.use_token(successor.token if successor else None)
            if successor is not None:
                logger.info(f"Фоновые задачи перешли на токен {successor.user.email}")
            else:
                logger.warning("Токен фоновых задач снят: нет вошедших администраторов и официантов")
