# src/crm_client/exceptions.py

from typing import Optional

import httpx


class CRMClientError(Exception):
    """Base class for errors raised by the client itself (not by the server)."""


class RefreshFailedError(CRMClientError):
    """The call to the refresh endpoint failed or returned an unusable body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class SessionLostError(httpx.HTTPStatusError):
    """
    A request failed with 401 and the session could not be recovered,
    either because no refresh token was stored or because the refresh call failed.

    Carries the request/response of the original 401 so callers that already
    handle httpx.HTTPStatusError keep working.
    """

    @classmethod
    def from_failure(cls, failure: httpx.HTTPStatusError) -> "SessionLostError":
        return cls(
            f"Session lost: {failure.request.method} {failure.request.url} returned "
            f"{failure.response.status_code} and the session could not be refreshed.",
            request=failure.request,
            response=failure.response,
        )


class RetryExhaustedError(httpx.HTTPStatusError):
    """A request replayed with a freshly refreshed token was rejected again."""

    @classmethod
    def from_response(cls, response: httpx.Response) -> "RetryExhaustedError":
        return cls(
            f"{response.request.method} {response.request.url} was rejected with "
            f"{response.status_code} after the session was refreshed.",
            request=response.request,
            response=response,
        )
