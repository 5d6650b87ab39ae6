# src/crm_client/refresh.py

import asyncio
import contextlib
from typing import Awaitable, Callable, List, Optional

import httpx
import structlog
from pydantic import ValidationError

from .exceptions import RefreshFailedError, SessionLostError
from .models import TokenPair
from .session import SessionFailureHandler
from .token_store import TokenStore

logger = structlog.get_logger(__name__)

Refresher = Callable[[str], Awaitable[TokenPair]]


class TokenRefresher:
    """
    Exchanges a refresh token for a new token pair.

    Uses its own plain httpx client against the auth service so the refresh
    call never goes through bearer injection or 401 interception.
    """

    def __init__(self, base_url: str, refresh_path: str = "/api/v1/refresh", *,
                 timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.refresh_path = refresh_path
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def __call__(self, refresh_token: str) -> TokenPair:
        try:
            response = await self._client.post(self.refresh_path, json={"refresh_token": refresh_token})
            response.raise_for_status()
            return TokenPair.model_validate(response.json())
        except httpx.HTTPStatusError as e:
            raise RefreshFailedError(
                f"Refresh endpoint returned {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise RefreshFailedError(f"Could not connect to refresh endpoint: {e}") from e
        except (ValidationError, ValueError) as e:
            raise RefreshFailedError("Refresh endpoint returned an unusable body") from e

    async def aclose(self) -> None:
        await self._client.aclose()


class RefreshCoordinator:
    """
    Single-flight token refresh shared by every service client.

    States are Idle (refreshing False) and Refreshing (refreshing True). The
    first 401 seen while Idle starts exactly one refresh call; every 401 seen
    while Refreshing only joins the queue. When the call settles the queue is
    drained once, in arrival order: all waiters get the new access token, or
    all of them fail and the session failure handler runs a single time.

    The check-and-set of ``refreshing`` happens without an await in between,
    which is what makes it atomic on one event loop. Instances are not
    thread-safe.
    """

    def __init__(self, token_store: TokenStore, refresher: Refresher,
                 failure_handler: SessionFailureHandler):
        self.token_store = token_store
        self.refresher = refresher
        self.failure_handler = failure_handler
        self._refreshing = False
        self._queue: List[asyncio.Future] = []
        self._task: Optional[asyncio.Task] = None

    @property
    def refreshing(self) -> bool:
        return self._refreshing

    @property
    def pending(self) -> int:
        return len(self._queue)

    async def recover(self, failure: httpx.HTTPStatusError) -> str:
        """
        Waits for a usable access token after ``failure`` (a 401).

        Returns the new access token, or raises SessionLostError carrying the
        original request/response when the session cannot be recovered.
        """
        loop = asyncio.get_running_loop()
        if not self._refreshing:
            refresh_token = self.token_store.get_refresh_token()
            if not refresh_token:
                logger.warning("refresh.skipped", reason="no_refresh_token", url=str(failure.request.url))
                self.failure_handler.on_session_lost()
                raise SessionLostError.from_failure(failure)
            self._refreshing = True
            # Own task: a cancelled caller must not cancel the refresh for everyone else.
            self._task = loop.create_task(self._refresh(refresh_token))
        else:
            logger.debug("refresh.queued", url=str(failure.request.url), pending=len(self._queue) + 1)

        waiter = loop.create_future()
        self._queue.append(waiter)
        try:
            return await waiter
        except RefreshFailedError as e:
            raise SessionLostError.from_failure(failure) from e

    async def _refresh(self, refresh_token: str) -> None:
        logger.info("refresh.started")
        try:
            tokens = await self.refresher(refresh_token)
        except asyncio.CancelledError:
            self._settle(error=RefreshFailedError("Token refresh was cancelled"))
            raise
        except RefreshFailedError as e:
            logger.warning("refresh.failed", error=str(e), status_code=e.status_code)
            self._fail(e)
        except Exception as e:
            logger.exception("refresh.failed", error=str(e))
            error = RefreshFailedError(f"Unexpected error during token refresh: {e}")
            error.__cause__ = e
            self._fail(error)
        else:
            try:
                self.token_store.set_tokens(tokens.access_token, tokens.refresh_token)
            finally:
                # Waiters are resumed even if the store raises.
                logger.info("refresh.succeeded", resumed=len(self._queue))
                self._settle(access_token=tokens.access_token)

    def _fail(self, error: RefreshFailedError) -> None:
        try:
            self.token_store.clear()
        finally:
            self._settle(error=error)
        self.failure_handler.on_session_lost()

    def _settle(self, access_token: Optional[str] = None,
                error: Optional[RefreshFailedError] = None) -> None:
        queue, self._queue = self._queue, []
        self._refreshing = False
        self._task = None
        for waiter in queue:
            # A caller that stopped waiting has nothing left to resume.
            if waiter.done():
                continue
            if error is not None:
                waiter.set_exception(error)
            else:
                waiter.set_result(access_token)

    async def aclose(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._settle(error=RefreshFailedError("Token refresh was cancelled"))
        aclose = getattr(self.refresher, "aclose", None)
        if aclose is not None:
            await aclose()
