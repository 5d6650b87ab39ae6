# src/crm_client/token_store.py

import time
from http.cookiejar import Cookie, MozillaCookieJar
from pathlib import Path
from typing import Optional, Protocol, Tuple, Union

import structlog

logger = structlog.get_logger(__name__)

REFRESH_TOKEN_COOKIE_NAME = "mercuria_rt"
REFRESH_TOKEN_MAX_AGE = 60 * 60 * 24 * 7  # 7 days


class TokenPersistence(Protocol):
    """Storage that survives restarts. Only the refresh token ever goes here."""

    def save(self, token: str, *, max_age: int, secure: bool) -> None: ...

    def load(self) -> Optional[str]: ...

    def clear(self) -> None: ...


class MemoryPersistence:
    """Process-local persistence. Honours expiry but does not survive a restart."""

    def __init__(self) -> None:
        self._entry: Optional[Tuple[str, float]] = None
        self.secure: Optional[bool] = None

    def save(self, token: str, *, max_age: int, secure: bool) -> None:
        self._entry = (token, time.time() + max_age)
        self.secure = secure

    def load(self) -> Optional[str]:
        if self._entry is None:
            return None
        token, expires_at = self._entry
        if time.time() >= expires_at:
            self._entry = None
            return None
        return token

    def clear(self) -> None:
        self._entry = None
        self.secure = None


class CookieJarPersistence:
    """
    Keeps the refresh token as a cookie in a Mozilla-format cookie jar file.

    The cookie is path-scoped to "/", bound to the app's host, expires after
    max_age seconds and carries the Secure flag when the app origin is https.
    SameSite=Strict is set on the written cookie only; the Mozilla file format
    has no column for it.
    """

    def __init__(self, path: Union[str, Path], domain: str = "localhost",
                 cookie_name: str = REFRESH_TOKEN_COOKIE_NAME):
        self.path = Path(path)
        self.domain = domain
        self.cookie_name = cookie_name

    def _jar(self) -> MozillaCookieJar:
        jar = MozillaCookieJar(str(self.path))
        if self.path.exists():
            jar.load(ignore_discard=False, ignore_expires=False)
        return jar

    def _build_cookie(self, token: str, max_age: int, secure: bool) -> Cookie:
        return Cookie(
            version=0,
            name=self.cookie_name,
            value=token,
            port=None,
            port_specified=False,
            domain=self.domain,
            domain_specified=True,
            domain_initial_dot=False,
            path="/",
            path_specified=True,
            secure=secure,
            expires=int(time.time()) + max_age,
            discard=False,
            comment=None,
            comment_url=None,
            rest={"SameSite": "Strict"},
            rfc2109=False,
        )

    def save(self, token: str, *, max_age: int, secure: bool) -> None:
        jar = self._jar()
        jar.set_cookie(self._build_cookie(token, max_age, secure))
        self.path.parent.mkdir(parents=True, exist_ok=True)
        jar.save(ignore_discard=False, ignore_expires=False)

    def load(self) -> Optional[str]:
        for cookie in self._jar():
            if cookie.name == self.cookie_name and cookie.domain == self.domain:
                if cookie.is_expired():
                    return None
                return cookie.value
        return None

    def clear(self) -> None:
        jar = self._jar()
        try:
            jar.clear(self.domain, "/", self.cookie_name)
        except KeyError:
            return
        jar.save(ignore_discard=False, ignore_expires=False)


class TokenStore:
    """
    Holds the two-token session.

    The access token lives only in this object's memory and is gone after a
    restart. The refresh token is written through a TokenPersistence with a
    fixed expiry. Any persistence error is logged and read back as "no token";
    nothing here raises.
    """

    def __init__(self, persistence: Optional[TokenPersistence] = None, *,
                 max_age: int = REFRESH_TOKEN_MAX_AGE, secure: bool = False):
        self.persistence = persistence if persistence is not None else MemoryPersistence()
        self.max_age = max_age
        self.secure = secure
        self._access_token: Optional[str] = None

    def set_access_token(self, token: Optional[str]) -> None:
        self._access_token = token

    def get_access_token(self) -> Optional[str]:
        return self._access_token

    def set_refresh_token(self, token: str) -> None:
        try:
            self.persistence.save(token, max_age=self.max_age, secure=self.secure)
        except Exception as e:
            logger.warning("token_store.persist_failed", error=str(e))

    def get_refresh_token(self) -> Optional[str]:
        try:
            return self.persistence.load()
        except Exception as e:
            logger.warning("token_store.load_failed", error=str(e))
            return None

    def has_refresh_token(self) -> bool:
        return bool(self.get_refresh_token())

    def set_tokens(self, access_token: str, refresh_token: str) -> None:
        self.set_access_token(access_token)
        self.set_refresh_token(refresh_token)

    def clear(self) -> None:
        self._access_token = None
        try:
            self.persistence.clear()
        except Exception as e:
            logger.warning("token_store.clear_failed", error=str(e))
