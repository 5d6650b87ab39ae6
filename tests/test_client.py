import httpx
import pytest

from crm_client.client import AuthenticatedClient
from crm_client.exceptions import RetryExhaustedError, SessionLostError


@pytest.mark.asyncio
async def test_bearer_token_is_attached(clients, backend):
    backend.valid_access_tokens.add("T1")
    clients.token_store.set_access_token("T1")

    data = await clients.wallet.get("/api/v1/wallets/my-wallets")

    assert data["total"] == 1
    assert backend.headers_for("/api/v1/wallets/my-wallets") == ["Bearer T1"]


@pytest.mark.asyncio
async def test_request_without_token_is_unauthenticated(clients, backend):
    backend.users["new@example.com"] = "pw"

    await clients.auth.post("/api/v1/login", json={"email": "new@example.com", "password": "pw"})

    assert backend.headers_for("/api/v1/login") == [None]


@pytest.mark.asyncio
async def test_expired_token_is_refreshed_and_request_replayed(expired_session, backend, location):
    clients = expired_session

    data = await clients.ledger.get("/api/v1/ledger/entries")

    assert data == {"entries": [], "total": 0}
    assert backend.refresh_calls == ["R1"]
    assert backend.headers_for("/api/v1/ledger/entries") == ["Bearer T1", "Bearer T2"]
    assert clients.token_store.get_access_token() == "T2"
    assert clients.token_store.get_refresh_token() == "R2"
    assert location.navigations == 0


@pytest.mark.asyncio
async def test_refresh_call_carries_no_bearer_and_goes_to_auth_service(expired_session, backend):
    await expired_session.analytics.get("/api/v1/analytics/summary")

    refresh_requests = [(host, auth) for host, path, auth in backend.requests if path == "/api/v1/refresh"]
    assert refresh_requests == [("auth.test", None)]


@pytest.mark.asyncio
async def test_login_failure_is_returned_unchanged(clients, backend, location):
    clients.token_store.set_tokens("T1", "R1")

    with pytest.raises(httpx.HTTPStatusError) as exc_info:
        await clients.auth.post("/api/v1/login", json={"email": "agent@example.com", "password": "wrong"})

    assert type(exc_info.value) is httpx.HTTPStatusError
    assert exc_info.value.response.status_code == 401
    assert exc_info.value.response.json() == {"error": "invalid credentials"}
    assert backend.refresh_calls == []
    assert location.navigations == 0
    assert clients.token_store.get_refresh_token() == "R1"


@pytest.mark.asyncio
async def test_register_and_refresh_paths_are_exempt(clients):
    url = clients.auth.base_url
    assert clients.auth.is_exempt(url.join("/api/v1/register"))
    assert clients.auth.is_exempt(url.join("/api/v1/refresh/"))
    assert not clients.auth.is_exempt(url.join("/api/v1/login-history"))
    assert not clients.auth.is_exempt(url.join("/api/v1/me"))


@pytest.mark.asyncio
async def test_exempt_paths_match_under_a_base_path(expired_session):
    client = AuthenticatedClient(
        "http://gateway.test/auth", expired_session.token_store, expired_session.coordinator,
        exempt_paths=["/api/v1/login"],
    )
    try:
        assert client.is_exempt(httpx.URL("http://gateway.test/auth/api/v1/login"))
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_similar_path_still_triggers_refresh(expired_session, backend):
    data = await expired_session.auth.get("/api/v1/login-history")

    assert data == {"entries": []}
    assert backend.refresh_calls == ["R1"]


@pytest.mark.asyncio
async def test_retry_is_attempted_once(expired_session, backend, location):
    with pytest.raises(RetryExhaustedError) as exc_info:
        await expired_session.wallet.get("/api/v1/admin/audit")

    assert isinstance(exc_info.value, httpx.HTTPStatusError)
    assert exc_info.value.response.status_code == 401
    assert backend.refresh_calls == ["R1"]
    assert backend.headers_for("/api/v1/admin/audit") == ["Bearer T1", "Bearer T2"]
    # Refresh itself worked, so the session stays.
    assert location.navigations == 0
    assert expired_session.token_store.get_access_token() == "T2"


@pytest.mark.asyncio
async def test_no_refresh_token_rejects_and_redirects(clients, backend, location):
    clients.token_store.set_access_token("T1")

    with pytest.raises(SessionLostError):
        await clients.transaction.get("/api/v1/transactions")

    assert backend.refresh_calls == []
    assert clients.token_store.get_access_token() is None
    assert location.navigations == 1
    assert location.current_path == "/login"


@pytest.mark.asyncio
async def test_server_errors_pass_through(clients, backend):
    backend.valid_access_tokens.add("T1")
    clients.token_store.set_tokens("T1", "R1")

    with pytest.raises(httpx.HTTPStatusError) as exc_info:
        await clients.wallet.get("/api/v1/broken")

    assert exc_info.value.response.status_code == 500
    assert backend.refresh_calls == []


@pytest.mark.asyncio
async def test_transport_errors_pass_through(clients):
    def unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = AuthenticatedClient(
        "http://wallet.test", clients.token_store, clients.coordinator,
        transport=httpx.MockTransport(unreachable),
    )
    try:
        with pytest.raises(httpx.ConnectError):
            await client.get("/api/v1/wallets/my-wallets")
    finally:
        await client.aclose()
    assert clients.coordinator.refreshing is False


@pytest.mark.asyncio
async def test_body_and_query_are_forwarded(clients, backend):
    backend.valid_access_tokens.add("T1")
    clients.token_store.set_access_token("T1")

    created = await clients.wallet.post("/api/v1/wallets", json={"currency": "IDR"})
    listed = await clients.transaction.get("/api/v1/transactions", params={"limit": 5})
    deleted = await clients.wallet.delete("/api/v1/wallets/w-2")

    assert created == {"wallet": {"id": "w-2", "currency": "IDR"}}
    assert listed["limit"] == 5
    assert deleted is None


@pytest.mark.asyncio
async def test_late_401_for_a_replaced_token_replays_without_refreshing(clients, backend):
    clients.token_store.set_tokens("T1", "R1")
    seen = []

    def late_unauthorized(request):
        seen.append(request.headers.get("authorization"))
        if request.headers["authorization"] == "Bearer T1":
            # Another service finished a refresh while this request was in flight.
            clients.token_store.set_tokens("T2", "R2")
            return httpx.Response(401, json={"detail": "Token expired"})
        return httpx.Response(200, json={"total": 0})

    client = AuthenticatedClient(
        "http://ledger.test", clients.token_store, clients.coordinator,
        transport=httpx.MockTransport(late_unauthorized),
    )
    try:
        result = await client.get("/api/v1/ledger/entries")
    finally:
        await client.aclose()

    assert result == {"total": 0}
    assert seen == ["Bearer T1", "Bearer T2"]
    assert backend.refresh_calls == []
    assert clients.token_store.get_refresh_token() == "R2"
