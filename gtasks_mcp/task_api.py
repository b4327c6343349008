import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from json import JSONDecodeError
from typing import Any
from urllib.parse import quote

import httpx

from .errors import TasksApiError

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Awaitable[str]]


@dataclass
class ApiResponse:
    data: Any | None = None
    status_code: int | None = None


class TasksAPI:
    """Async client for the Google Tasks v1 REST API.

    Exposes the ``tasklists`` and ``tasks`` resource groups. Every method
    takes ``(params, body=None)``: path parameters (``tasklist``, ``task``)
    are read from ``params`` and everything else is sent as the query string.
    Error responses raise ``TasksApiError``.
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        base_url: str = "https://tasks.googleapis.com/tasks/v1",
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._token_provider = token_provider
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)
        self.tasklists = TaskListsResource(self)
        self.tasks = TasksResource(self)

    async def aclose(self) -> None:
        await self._http_client.aclose()

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> ApiResponse:
        url = f"{self.base_url}{endpoint}"
        token = await self._token_provider()
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        query = {k: _query_value(v) for k, v in (params or {}).items() if v is not None}

        response = await self._http_client.request(
            method, url, params=query, json=data, headers=headers
        )
        logger.debug(f"{method} {endpoint} -> {response.status_code}")

        if response.status_code >= 400:
            raise _error_from_response(response)

        if not response.content:
            return ApiResponse(data=None, status_code=response.status_code)

        try:
            json_data = response.json()
        except JSONDecodeError:
            json_data = response.text

        return ApiResponse(data=json_data, status_code=response.status_code)


class TaskListsResource:
    def __init__(self, api: TasksAPI):
        self._api = api

    async def list(self, params: dict[str, Any], body: Any = None) -> ApiResponse:
        return await self._api._make_request("GET", "/users/@me/lists", _rest(params))

    async def get(self, params: dict[str, Any], body: Any = None) -> ApiResponse:
        return await self._api._make_request("GET", _list_path(params), _rest(params))

    async def insert(self, params: dict[str, Any], body: Any = None) -> ApiResponse:
        return await self._api._make_request("POST", "/users/@me/lists", _rest(params), body)

    async def update(self, params: dict[str, Any], body: Any = None) -> ApiResponse:
        return await self._api._make_request("PUT", _list_path(params), _rest(params), body)

    async def patch(self, params: dict[str, Any], body: Any = None) -> ApiResponse:
        return await self._api._make_request("PATCH", _list_path(params), _rest(params), body)

    async def delete(self, params: dict[str, Any], body: Any = None) -> ApiResponse:
        return await self._api._make_request("DELETE", _list_path(params), _rest(params))


class TasksResource:
    def __init__(self, api: TasksAPI):
        self._api = api

    async def list(self, params: dict[str, Any], body: Any = None) -> ApiResponse:
        return await self._api._make_request(
            "GET", f"/lists/{_path_param(params, 'tasklist')}/tasks", _rest(params)
        )

    async def get(self, params: dict[str, Any], body: Any = None) -> ApiResponse:
        return await self._api._make_request("GET", _task_path(params), _rest(params))

    async def insert(self, params: dict[str, Any], body: Any = None) -> ApiResponse:
        return await self._api._make_request(
            "POST", f"/lists/{_path_param(params, 'tasklist')}/tasks", _rest(params), body
        )

    async def update(self, params: dict[str, Any], body: Any = None) -> ApiResponse:
        return await self._api._make_request("PUT", _task_path(params), _rest(params), body)

    async def patch(self, params: dict[str, Any], body: Any = None) -> ApiResponse:
        return await self._api._make_request("PATCH", _task_path(params), _rest(params), body)

    async def delete(self, params: dict[str, Any], body: Any = None) -> ApiResponse:
        return await self._api._make_request("DELETE", _task_path(params), _rest(params))

    async def clear(self, params: dict[str, Any], body: Any = None) -> ApiResponse:
        return await self._api._make_request(
            "POST", f"/lists/{_path_param(params, 'tasklist')}/clear", _rest(params)
        )

    async def move(self, params: dict[str, Any], body: Any = None) -> ApiResponse:
        return await self._api._make_request("POST", f"{_task_path(params)}/move", _rest(params))


_PATH_PARAMS = ("tasklist", "task")


def _path_param(params: dict[str, Any], name: str) -> str:
    value = params.get(name)
    if value is None or value == "":
        raise ValueError(f"Missing path parameter: {name}")
    return quote(str(value), safe="@")


def _list_path(params: dict[str, Any]) -> str:
    return f"/users/@me/lists/{_path_param(params, 'tasklist')}"


def _task_path(params: dict[str, Any]) -> str:
    return f"/lists/{_path_param(params, 'tasklist')}/tasks/{_path_param(params, 'task')}"


def _rest(params: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in params.items() if k not in _PATH_PARAMS}


def _query_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def _error_from_response(response: httpx.Response) -> TasksApiError:
    """Map a Google API error body onto ``TasksApiError``.

    Google errors look like
    ``{"error": {"code": 401, "message": "...", "status": "UNAUTHENTICATED"}}``.
    """
    code = None
    details = None
    try:
        body = response.json()
    except JSONDecodeError:
        body = None

    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        message = error.get("message") or f"HTTP {response.status_code}"
        code = error.get("status")
        details = error.get("errors")
    elif isinstance(error, str):
        # OAuth-style errors: {"error": "invalid_grant", "error_description": "..."}
        message = body.get("error_description") or error
        code = error
    else:
        message = response.text or f"HTTP {response.status_code}"

    logger.debug(f"Tasks API error {response.status_code}: {message}")
    return TasksApiError(
        message, http_status=response.status_code, code=code, details=details
    )
