# src/crm_client/navigation.py

from typing import Callable, Optional, Protocol

import structlog

logger = structlog.get_logger(__name__)


class NavigationPort(Protocol):
    def redirect_to_login(self) -> None: ...

    def current_path_is_login(self) -> bool: ...


class Location:
    """
    In-process stand-in for the browser location.

    Tracks the current path and moves it to the login surface on redirect.
    Hosts that own real navigation (a UI shell, a BFF issuing redirects) pass
    an on_navigate callback that receives the target path.
    """

    def __init__(self, current_path: str = "/", login_path: str = "/login",
                 on_navigate: Optional[Callable[[str], None]] = None):
        self.current_path = current_path
        self.login_path = login_path
        self.on_navigate = on_navigate
        self.navigations = 0

    def current_path_is_login(self) -> bool:
        return self.current_path.rstrip("/") == self.login_path.rstrip("/")

    def redirect_to_login(self) -> None:
        self.navigations += 1
        self.current_path = self.login_path
        logger.info("navigation.redirect", target=self.login_path)
        if self.on_navigate is not None:
            self.on_navigate(self.login_path)
