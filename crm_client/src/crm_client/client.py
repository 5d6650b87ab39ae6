# src/crm_client/client.py

from typing import Any, Dict, Iterable, Optional

import httpx
import structlog

from .exceptions import RetryExhaustedError
from .refresh import RefreshCoordinator
from .token_store import TokenStore

logger = structlog.get_logger(__name__)

AUTH_FAILURE_STATUS = 401


def _normalize_path(path: str) -> str:
    return "/" + path.strip("/")


class AuthenticatedClient:
    """
    Issues requests against one backend service on behalf of the current session.

    The access token is attached as a bearer credential at send time. A 401 is
    handed to the shared RefreshCoordinator and the request is replayed once
    with the new token. 401s from exempt paths (login, register, refresh) are
    credential failures and are raised unchanged.
    """

    def __init__(self, base_url: str, token_store: TokenStore, coordinator: RefreshCoordinator, *,
                 exempt_paths: Iterable[str] = (), timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None, name: Optional[str] = None):
        self.name = name or base_url
        self.token_store = token_store
        self.coordinator = coordinator
        self.exempt_paths = frozenset(_normalize_path(p) for p in exempt_paths)
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    @property
    def base_url(self) -> httpx.URL:
        return self._client.base_url

    def is_exempt(self, url: httpx.URL) -> bool:
        # Suffix match on whole segments so a base URL with a path prefix still matches,
        # while /api/v1/login-history does not.
        path = _normalize_path(url.path)
        return any(path == p or path.endswith(p) for p in self.exempt_paths)

    async def request(self, method: str, path: str, *, json: Any = None,
                      params: Optional[Dict[str, Any]] = None,
                      headers: Optional[Dict[str, str]] = None) -> Any:
        return await self._send(
            method, path, json=json, params=params, headers=headers,
            access_token=self.token_store.get_access_token(), attempt=0,
        )

    async def _send(self, method: str, path: str, *, json: Any, params: Optional[Dict[str, Any]],
                    headers: Optional[Dict[str, str]], access_token: Optional[str], attempt: int) -> Any:
        request_headers = dict(headers or {})
        if access_token:
            request_headers["Authorization"] = f"Bearer {access_token}"

        response = await self._client.request(method, path, json=json, params=params, headers=request_headers)

        if response.status_code == AUTH_FAILURE_STATUS:
            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as failure:
                if self.is_exempt(response.request.url):
                    raise
                if attempt > 0:
                    logger.warning("client.retry_exhausted", service=self.name, method=method, path=path)
                    raise RetryExhaustedError.from_response(response) from failure
                current_token = self.token_store.get_access_token()
                if current_token and current_token != access_token:
                    # A refresh already finished while this request was in flight.
                    logger.debug("client.stale_token_replayed", service=self.name, method=method, path=path)
                    new_token = current_token
                else:
                    logger.info("client.session_expired", service=self.name, method=method, path=path)
                    new_token = await self.coordinator.recover(failure)
            return await self._send(
                method, path, json=json, params=params, headers=headers,
                access_token=new_token, attempt=attempt + 1,
            )

        response.raise_for_status()
        return _decode(response)

    async def get(self, path: str, *, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        return await self.request("GET", path, params=params, **kwargs)

    async def post(self, path: str, json: Any = None, **kwargs) -> Any:
        return await self.request("POST", path, json=json, **kwargs)

    async def put(self, path: str, json: Any = None, **kwargs) -> Any:
        return await self.request("PUT", path, json=json, **kwargs)

    async def patch(self, path: str, json: Any = None, **kwargs) -> Any:
        return await self.request("PATCH", path, json=json, **kwargs)

    async def delete(self, path: str, **kwargs) -> Any:
        return await self.request("DELETE", path, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "AuthenticatedClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return None
    if "json" in response.headers.get("content-type", ""):
        return response.json()
    return response.text
