# src/crm_client/services.py

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import httpx
import structlog

from .auth_api import AuthApi
from .client import AuthenticatedClient
from .config import Settings, settings as default_settings
from .navigation import Location, NavigationPort
from .refresh import RefreshCoordinator, TokenRefresher
from .session import SessionFailureHandler
from .token_store import CookieJarPersistence, TokenPersistence, TokenStore

logger = structlog.get_logger(__name__)


@dataclass
class ServiceClients:
    """One AuthenticatedClient per backend, all sharing a TokenStore and a RefreshCoordinator."""

    auth: AuthenticatedClient
    wallet: AuthenticatedClient
    transaction: AuthenticatedClient
    ledger: AuthenticatedClient
    analytics: AuthenticatedClient
    token_store: TokenStore
    coordinator: RefreshCoordinator
    navigator: NavigationPort
    auth_api: AuthApi

    def all(self):
        return [self.auth, self.wallet, self.transaction, self.ledger, self.analytics]

    async def aclose(self) -> None:
        for client in self.all():
            await client.aclose()
        await self.coordinator.aclose()

    async def __aenter__(self) -> "ServiceClients":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


def build_service_clients(settings: Optional[Settings] = None, *,
                          persistence: Optional[TokenPersistence] = None,
                          navigator: Optional[NavigationPort] = None,
                          transport: Optional[httpx.AsyncBaseTransport] = None) -> ServiceClients:
    """
    Wires the five service clients around a single session.

    Without an explicit persistence the refresh token goes to COOKIE_JAR_PATH
    when configured, otherwise it is kept in memory only.
    """
    settings = settings or default_settings

    if persistence is None and settings.COOKIE_JAR_PATH is not None:
        persistence = CookieJarPersistence(
            settings.COOKIE_JAR_PATH,
            domain=urlparse(str(settings.APP_ORIGIN)).hostname or "localhost",
        )
    token_store = TokenStore(
        persistence,
        max_age=settings.REFRESH_TOKEN_MAX_AGE,
        secure=settings.SECURE_ORIGIN,
    )
    navigator = navigator or Location(login_path=settings.LOGIN_SURFACE_PATH)
    failure_handler = SessionFailureHandler(token_store, navigator)

    urls = settings.SERVICE_URLS
    refresher = TokenRefresher(
        urls["auth"], settings.REFRESH_PATH,
        timeout=settings.REQUEST_TIMEOUT, transport=transport,
    )
    coordinator = RefreshCoordinator(token_store, refresher, failure_handler)

    clients = {
        name: AuthenticatedClient(
            url, token_store, coordinator,
            exempt_paths=settings.EXEMPT_PATHS,
            timeout=settings.REQUEST_TIMEOUT,
            transport=transport,
            name=name,
        )
        for name, url in urls.items()
    }
    logger.debug("services.built", services=sorted(clients), secure_cookie=settings.SECURE_ORIGIN)

    return ServiceClients(
        token_store=token_store,
        coordinator=coordinator,
        navigator=navigator,
        auth_api=AuthApi(clients["auth"], token_store, settings),
        **clients,
    )
