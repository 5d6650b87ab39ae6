# src/crm_client/auth_api.py

from typing import Optional

import httpx
import structlog

from .client import AuthenticatedClient
from .config import Settings
from .models import LoginRequest, RegisterRequest, TokenPair, User
from .token_store import TokenStore

logger = structlog.get_logger(__name__)


def error_message(exc: httpx.HTTPStatusError, default: str) -> str:
    """
    Pulls a displayable message out of a failed auth response.
    The auth service reports errors as {"error": ...}; FastAPI-style {"detail": ...} is accepted too.
    """
    try:
        body = exc.response.json()
    except ValueError:
        return default
    if isinstance(body, dict):
        message = body.get("error") or body.get("detail")
        if isinstance(message, str) and message:
            return message
    return default


class AuthApi:
    """Login, registration and session bootstrap against the auth service."""

    def __init__(self, client: AuthenticatedClient, token_store: TokenStore, settings: Settings):
        self.client = client
        self.token_store = token_store
        self.settings = settings

    async def login(self, email: str, password: str) -> User:
        """
        Exchanges credentials for a token pair and loads the user.
        A 401 here means bad credentials and is raised as-is (httpx.HTTPStatusError).
        """
        payload = LoginRequest(email=email, password=password)
        data = await self.client.post(self.settings.LOGIN_PATH, json=payload.model_dump())
        self._store(TokenPair.model_validate(data))
        user = await self.me()
        logger.info("auth.login", user_id=user.id)
        return user

    async def register(self, email: str, password: str, full_name: Optional[str] = None) -> User:
        payload = RegisterRequest(email=email, password=password, full_name=full_name)
        data = await self.client.post(self.settings.REGISTER_PATH, json=payload.model_dump(exclude_none=True))
        self._store(TokenPair.model_validate(data))
        user = await self.me()
        logger.info("auth.register", user_id=user.id)
        return user

    async def refresh(self, refresh_token: str) -> TokenPair:
        data = await self.client.post(self.settings.REFRESH_PATH, json={"refresh_token": refresh_token})
        return TokenPair.model_validate(data)

    async def me(self) -> User:
        data = await self.client.get(self.settings.ME_PATH)
        return User.model_validate(data)

    def logout(self) -> None:
        self.token_store.clear()
        logger.info("auth.logout")

    async def restore_session(self) -> Optional[User]:
        """
        Rebuilds the session after a restart from the persisted refresh token.
        Returns None (with tokens cleared) when there is nothing to restore or it fails.
        """
        refresh_token = self.token_store.get_refresh_token()
        if not refresh_token:
            return None
        try:
            self._store(await self.refresh(refresh_token))
            return await self.me()
        except (httpx.HTTPError, ValueError) as e:
            logger.info("auth.restore_failed", error=str(e))
            self.token_store.clear()
            return None

    def _store(self, tokens: TokenPair) -> None:
        self.token_store.set_tokens(tokens.access_token, tokens.refresh_token)
