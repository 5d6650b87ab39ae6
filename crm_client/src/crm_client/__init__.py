# src/crm_client/__init__.py

from .auth_api import AuthApi
from .client import AuthenticatedClient
from .exceptions import CRMClientError, RefreshFailedError, RetryExhaustedError, SessionLostError
from .logging_config import configure_logging
from .navigation import Location, NavigationPort
from .refresh import RefreshCoordinator, TokenRefresher
from .services import ServiceClients, build_service_clients
from .session import SessionFailureHandler
from .token_store import CookieJarPersistence, MemoryPersistence, TokenPersistence, TokenStore

__all__ = [
    "AuthApi",
    "AuthenticatedClient",
    "CRMClientError",
    "CookieJarPersistence",
    "Location",
    "MemoryPersistence",
    "NavigationPort",
    "RefreshCoordinator",
    "RefreshFailedError",
    "RetryExhaustedError",
    "ServiceClients",
    "SessionFailureHandler",
    "SessionLostError",
    "TokenPersistence",
    "TokenRefresher",
    "TokenStore",
    "build_service_clients",
    "configure_logging",
]
