"""
HTTP-клиент для работы с REST API ресторана
"""
import asyncio
import logging
from typing import Any, List, Optional

import aiohttp

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Ошибка обращения к API (сетевая или ответ не 2xx)"""

    def __init__(self, status: Optional[int], message: str, payload: Any = None):
        super().__init__(message)
        self.status = status
        self.message = message
        self.payload = payload

    @property
    def is_client_error(self) -> bool:
        return self.status is not None and 400 <= self.status < 500


class UnauthorizedError(ApiError):
    """Токен отсутствует или недействителен (401)"""


def extract_items(payload: Any) -> List[Any]:
    """
    Приведение ответа к списку.
    API отдаёт то голый массив, то {"rows": [...]}, то {"data": [...]}.
    """
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ('rows', 'data'):
            if isinstance(payload.get(key), list):
                return payload[key]
    return []


class ApiClient:
    """Обёртка над aiohttp.ClientSession с базовым URL и Bearer-токеном"""

    def __init__(self, base_url: str, timeout: float = 10,
                 token: Optional[str] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._own_session = session is None

    def with_token(self, token: Optional[str]) -> 'ApiClient':
        """Клиент с тем же соединением, но другим токеном"""
        return ApiClient(
            self.base_url,
            timeout=self._timeout.total,
            token=token,
            session=self._get_session()
        )

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._own_session = True
        return self._session

    async def close(self):
        """Закрытие сессии, если она создана этим клиентом"""
        if self._own_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def request(self, method: str, path: str,
                      params: Any = None,
                      json: Any = None) -> Any:
        """Выполнение запроса. Возвращает разобранный JSON или None"""
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = {}
        if self.token:
            headers['Authorization'] = f"Bearer {self.token}"

        try:
            async with self._get_session().request(
                method, url, params=params, json=json,
                headers=headers, timeout=self._timeout
            ) as response:
                payload = await self._read_payload(response)

                if response.status == 401:
                    raise UnauthorizedError(401, "Не авторизован", payload)

                if response.status >= 400:
                    message = payload.get('message') if isinstance(payload, dict) else None
                    raise ApiError(
                        response.status,
                        message or f"Ошибка API {response.status}",
                        payload
                    )

                return payload
        except ApiError:
            raise
        except asyncio.TimeoutError:
            logger.warning(f"Превышено время ожидания: {method} {url}")
            raise ApiError(None, "Сервер не ответил вовремя")
        except aiohttp.ClientError as e:
            logger.warning(f"Ошибка соединения: {method} {url}: {e}")
            raise ApiError(None, f"Ошибка соединения с сервером: {e}")

    @staticmethod
    async def _read_payload(response: aiohttp.ClientResponse) -> Any:
        if response.content_type == 'application/json':
            try:
                return await response.json()
            except ValueError:
                return None
        text = await response.text()
        return {'message': text} if text else None

    async def get(self, path: str, params: Any = None) -> Any:
        return await self.request('GET', path, params=params)

    async def post(self, path: str, json: Any = None) -> Any:
        return await self.request('POST', path, json=json)

    async def put(self, path: str, json: Any = None) -> Any:
        return await self.request('PUT', path, json=json)

    async def delete(self, path: str) -> Any:
        return await self.request('DELETE', path)
