"""Remote gateway: typed CRUD against the meal-planning REST service over HTTPS/JSON.

The outcome of every call is one of three things:
  * success: the decoded JSON body is returned,
  * the server refused: ServerRejected(status_code, message) is raised
    (RemoteNotFound for 404),
  * the server could not be reached in time: NetworkUnavailable is raised.

Authentication is someone else's job; a token_provider callable (sync or
async) supplies the bearer credential for each request.
"""
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import httpx

from mealsync.utilities.config import API_BASE_URL, API_TIMEOUT_SECONDS, API_TOKEN
from mealsync.utilities.errors import NetworkUnavailable, ServerRejected, RemoteNotFound

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Union[Optional[str], Awaitable[Optional[str]]]]


def _resource(collection: str) -> str:
    return "/" + collection.replace("_", "-")


class RemoteGateway:
    def __init__(self, base_url: str = API_BASE_URL, token_provider: Optional[TokenProvider] = None,
                 timeout: float = API_TIMEOUT_SECONDS, transport: Optional[httpx.AsyncBaseTransport] = None):
        if token_provider is None and API_TOKEN:
            token_provider = lambda: API_TOKEN  # noqa: E731
        self._token_provider = token_provider
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout),
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def _auth_headers(self) -> Dict[str, str]:
        if self._token_provider is None:
            return {}
        token = self._token_provider()
        if inspect.isawaitable(token):
            token = await token
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _request(self, method: str, path: str, json: Any = None,
                       params: Optional[Dict[str, Any]] = None,
                       headers: Optional[Dict[str, str]] = None) -> Any:
        all_headers = await self._auth_headers()
        if headers:
            all_headers.update(headers)
        try:
            response = await self._client.request(method, path, json=json, params=params, headers=all_headers)
        except httpx.TransportError as e:
            # Connect errors, read errors and timeouts all mean "offline" to callers.
            logger.info(f"{method} {path} unreachable: {e.__class__.__name__}: {e}")
            raise NetworkUnavailable(f"{method} {path}: {e}") from e

        if response.status_code >= 400:
            message = self._error_message(response)
            logger.warning(f"{method} {path} rejected with {response.status_code}: {message}")
            if response.status_code == 404:
                raise RemoteNotFound(message)
            raise ServerRejected(response.status_code, message)

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ServerRejected(response.status_code, f"invalid JSON body: {e}") from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text
        if isinstance(body, dict):
            return str(body.get("error") or body.get("detail") or body.get("message") or body)
        return str(body)

    # ---------------- typed operations ----------------
    async def create(self, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", _resource(collection), json=data)

    async def read(self, collection: str, record_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"{_resource(collection)}/{record_id}")

    async def update(self, collection: str, record_id: str, data: Dict[str, Any],
                     version: Optional[str] = None) -> Dict[str, Any]:
        headers = {"If-Match": version} if version else None
        return await self._request("PUT", f"{_resource(collection)}/{record_id}", json=data, headers=headers)

    async def delete(self, collection: str, record_id: str) -> None:
        await self._request("DELETE", f"{_resource(collection)}/{record_id}")

    async def list(self, collection: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        body = await self._request("GET", _resource(collection), params=params)
        if body is None:
            return []
        if isinstance(body, dict):
            body = body.get("items", [])
        return list(body)


__all__ = ['RemoteGateway', 'TokenProvider']
