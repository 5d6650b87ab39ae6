# src/crm_client/session.py

import structlog

from .navigation import NavigationPort
from .token_store import TokenStore

logger = structlog.get_logger(__name__)


class SessionFailureHandler:
    """Ends a session that cannot be recovered: drop every token, send the user to login once."""

    def __init__(self, token_store: TokenStore, navigator: NavigationPort):
        self.token_store = token_store
        self.navigator = navigator

    def on_session_lost(self) -> None:
        self.token_store.clear()
        # A background request failing on the login page must not reload it.
        if self.navigator.current_path_is_login():
            logger.info("session.lost", redirect="suppressed")
            return
        logger.warning("session.lost", redirect="login")
        self.navigator.redirect_to_login()
