"""
Middleware для передачи сессии сотрудника в обработчики
"""
from typing import Callable, Dict, Any, Awaitable
from aiogram import BaseMiddleware
from aiogram.types import TelegramObject, Message, CallbackQuery

from utils.session import SessionStore


class SessionMiddleware(BaseMiddleware):
    """Кладёт в data["session"] сессию чата или None"""

    def __init__(self, sessions: SessionStore):
        self.sessions = sessions

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any]
    ) -> Any:
        chat_id = None
        if isinstance(event, Message):
            chat_id = event.chat.id
        elif isinstance(event, CallbackQuery) and event.message is not None:
            chat_id = event.message.chat.id

        data['sessions'] = self.sessions
        data['session'] = self.sessions.get(chat_id) if chat_id is not None else None

        return await handler(event, data)
