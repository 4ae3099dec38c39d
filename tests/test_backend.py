from __future__ import annotations

import contextlib
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime
from typing import Any

import aiohttp
import pytest
from aiohttp import test_utils, web

from autochecks.backend import SupabaseBackend, is_session_expired_message
from autochecks.config import SyncConfig
from autochecks.exceptions import (
    AuthError,
    ConfigError,
    MalformedDataError,
    NetworkError,
    RemoteError,
    SessionExpiredError,
)
from autochecks.session import AuthSession

AppFactory = Callable[..., tuple[web.Application, dict[str, Any]]]


def _session(token: str = "tok-1") -> AuthSession:
    return AuthSession(access_token=token, user_id="acct-1", email="driver@example.com")


@contextlib.asynccontextmanager
async def _backend(
    app: web.Application, *, session: AuthSession | None = None
) -> AsyncIterator[SupabaseBackend]:
    async with test_utils.TestServer(app) as server, aiohttp.ClientSession() as http:
        config = SyncConfig(
            supabase_url=str(server.make_url("")).rstrip("/"),
            supabase_anon_key="anon-key",
            request_timeout=5.0,
        )
        yield SupabaseBackend(config, http, session=session)


def test_backend_requires_remote_configuration() -> None:
    with pytest.raises(ConfigError):
        SupabaseBackend(SyncConfig(), None)  # type: ignore[arg-type]


def test_session_expired_markers() -> None:
    assert is_session_expired_message("invalid claim: missing sub claim in JWT")
    assert is_session_expired_message("JWT expired")
    assert not is_session_expired_message("duplicate key value")


@pytest.mark.asyncio
async def test_sign_in_and_current_account(supabase_app: AppFactory) -> None:
    app, _state = supabase_app()
    async with _backend(app) as backend:
        session = await backend.sign_in_with_password("driver@example.com", "secret")

        assert session.user_id == "acct-1"
        assert session.email == "driver@example.com"
        assert backend.session == session
        assert await backend.current_account_id() == "acct-1"


@pytest.mark.asyncio
async def test_sign_in_with_bad_password_is_auth_error(supabase_app: AppFactory) -> None:
    app, _state = supabase_app()
    async with _backend(app) as backend:
        with pytest.raises(AuthError, match="Invalid login credentials"):
            await backend.sign_in_with_password("driver@example.com", "wrong")
        assert backend.session is None


@pytest.mark.asyncio
async def test_current_account_without_session_is_auth_error(supabase_app: AppFactory) -> None:
    app, _state = supabase_app()
    async with _backend(app) as backend:
        with pytest.raises(AuthError):
            await backend.current_account_id()


@pytest.mark.asyncio
async def test_stale_identity_claim_signs_out(supabase_app: AppFactory) -> None:
    app, _state = supabase_app()
    async with _backend(app, session=_session("stale-token")) as backend:
        with pytest.raises(SessionExpiredError):
            await backend.current_account_id()
        assert backend.session is None


@pytest.mark.asyncio
async def test_expired_jwt_on_table_read_signs_out(supabase_app: AppFactory) -> None:
    app, _state = supabase_app()
    async with _backend(app, session=_session("expired-token")) as backend:
        with pytest.raises(SessionExpiredError):
            await backend.fetch_snapshot("acct-1")
        assert backend.session is None


@pytest.mark.asyncio
async def test_fetch_missing_row_returns_none(supabase_app: AppFactory) -> None:
    app, state = supabase_app()
    async with _backend(app, session=_session()) as backend:
        assert await backend.fetch_snapshot("acct-1") is None

    (_kind, query) = state["requests"][0]
    assert query == {"user_id": "eq.acct-1", "select": "user_id,payload,updated_at"}


@pytest.mark.asyncio
async def test_upsert_then_fetch_round_trip(supabase_app: AppFactory) -> None:
    app, state = supabase_app()
    payload = {
        "schemaVersion": 1,
        "vehicles": [{"id": 1, "plate": "B-01-ABC", "createdAt": 1704067200000}],
        "checks": [],
        "settings": {"username": "ana"},
    }
    async with _backend(app, session=_session()) as backend:
        updated_at = await backend.upsert_snapshot("acct-1", payload)
        row = await backend.fetch_snapshot("acct-1")

    assert updated_at == datetime(2026, 1, 2, 3, 4, 5, 678000, tzinfo=UTC)
    assert row is not None
    assert row.account_id == "acct-1"
    assert [v.plate for v in row.payload.vehicles] == ["B-01-ABC"]
    assert row.payload.settings.username == "ana"

    upsert = next(r for r in state["requests"] if r[0] == "upsert")
    assert upsert[1] == {"on_conflict": "user_id"}
    assert "resolution=merge-duplicates" in upsert[2]


@pytest.mark.asyncio
async def test_backend_rejection_is_remote_error(supabase_app: AppFactory) -> None:
    app, _state = supabase_app(table_status=500, table_error={"code": "XX000", "message": "disk full"})
    async with _backend(app, session=_session()) as backend:
        with pytest.raises(RemoteError) as exc_info:
            await backend.upsert_snapshot("acct-1", {"vehicles": []})

    exc = exc_info.value
    assert exc.status_code == 500
    assert exc.code == "XX000"
    assert exc.endpoint == "/rest/v1/user_snapshots"
    assert "disk full" in str(exc)


@pytest.mark.asyncio
async def test_forbidden_without_expiry_marker_is_auth_error(supabase_app: AppFactory) -> None:
    app, _state = supabase_app(table_status=403, table_error={"message": "permission denied for table"})
    async with _backend(app, session=_session()) as backend:
        with pytest.raises(AuthError) as exc_info:
            await backend.fetch_snapshot("acct-1")
        assert not isinstance(exc_info.value, SessionExpiredError)
        assert backend.session is not None


@pytest.mark.asyncio
async def test_unexpected_response_shape_is_malformed(supabase_app: AppFactory) -> None:
    app, _state = supabase_app(table_body={"not": "a list"})
    async with _backend(app, session=_session()) as backend:
        with pytest.raises(MalformedDataError):
            await backend.fetch_snapshot("acct-1")


@pytest.mark.asyncio
async def test_unreachable_server_is_network_error(supabase_app: AppFactory) -> None:
    app, _state = supabase_app()
    server = test_utils.TestServer(app)
    await server.start_server()
    url = str(server.make_url("")).rstrip("/")
    await server.close()

    async with aiohttp.ClientSession() as http:
        config = SyncConfig(supabase_url=url, supabase_anon_key="anon-key", request_timeout=5.0)
        backend = SupabaseBackend(config, http, session=_session())
        with pytest.raises(NetworkError) as exc_info:
            await backend.fetch_snapshot("acct-1")

    assert exc_info.value.endpoint == "/rest/v1/user_snapshots"


@pytest.mark.asyncio
async def test_sign_out_revokes_once_and_clears_session(supabase_app: AppFactory) -> None:
    app, state = supabase_app()
    async with _backend(app, session=_session()) as backend:
        await backend.sign_out()
        assert backend.session is None
        await backend.sign_out()

    assert state["requests"] == [("logout", "tok-1")]
