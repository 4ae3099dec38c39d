from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

import pytest
from aiohttp import web

from autochecks.connectivity import ConnectivityMonitor
from autochecks.models._base import to_epoch_millis, utcnow
from autochecks.models.snapshot import CloudSnapshotRow
from autochecks.store.memory import MemoryStore
from autochecks.sync.codec import decode_row
from autochecks.sync.status import SyncStatusPublisher


class FakeBackend:
    """In-memory snapshot table shared by any number of simulated devices.

    ``fail_on`` maps a method name to an exception raised on its next call.
    """

    def __init__(self, account_id: str = "acct-1", *, delay: float = 0.0) -> None:
        self.account_id = account_id
        self.delay = delay
        self.rows: dict[str, CloudSnapshotRow] = {}
        self.upserts: list[tuple[str, dict[str, Any]]] = []
        self.fetch_calls = 0
        self.fail_on: dict[str, Exception] = {}
        self.in_flight = 0
        self.max_in_flight = 0

    def _maybe_fail(self, name: str) -> None:
        exc = self.fail_on.pop(name, None)
        if exc is not None:
            raise exc

    async def _round_trip(self) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

    async def current_account_id(self) -> str:
        self._maybe_fail("current_account_id")
        return self.account_id

    async def fetch_snapshot(self, account_id: str) -> CloudSnapshotRow | None:
        self.fetch_calls += 1
        await self._round_trip()
        self._maybe_fail("fetch_snapshot")
        return self.rows.get(account_id)

    async def upsert_snapshot(self, account_id: str, payload: Mapping[str, Any]) -> datetime:
        await self._round_trip()
        self._maybe_fail("upsert_snapshot")
        stored_at = utcnow()
        self.rows[account_id] = decode_row(
            {"user_id": account_id, "payload": dict(payload), "updated_at": to_epoch_millis(stored_at)}
        )
        self.upserts.append((account_id, dict(payload)))
        return stored_at


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def publisher() -> SyncStatusPublisher:
    return SyncStatusPublisher()


@pytest.fixture
def connectivity() -> ConnectivityMonitor:
    return ConnectivityMonitor()


@pytest.fixture
def supabase_app() -> Callable[..., tuple[web.Application, dict[str, Any]]]:
    """Factory for a minimal Supabase look-alike (GoTrue token/user + one PostgREST table)."""

    def _build(
        *,
        password: str = "secret",
        rows: dict[str, dict[str, Any]] | None = None,
        table_status: int = 200,
        table_error: dict[str, Any] | None = None,
        table_body: Any = None,
    ) -> tuple[web.Application, dict[str, Any]]:
        state: dict[str, Any] = {"rows": rows if rows is not None else {}, "requests": []}

        def _token_of(request: web.Request) -> str:
            return request.headers.get("authorization", "").removeprefix("Bearer ")

        async def token(request: web.Request) -> web.Response:
            body = await request.json()
            if request.query.get("grant_type") != "password" or body.get("password") != password:
                return web.json_response(
                    {"error": "invalid_grant", "error_description": "Invalid login credentials"}, status=400
                )
            return web.json_response(
                {
                    "access_token": "tok-1",
                    "refresh_token": "refresh-1",
                    "expires_in": 3600,
                    "user": {"id": "acct-1", "email": body.get("email")},
                }
            )

        async def user(request: web.Request) -> web.Response:
            if _token_of(request) == "stale-token":
                return web.json_response({"message": "invalid claim: missing sub claim in JWT"}, status=403)
            if _token_of(request) != "tok-1":
                return web.json_response({"message": "invalid token"}, status=401)
            return web.json_response({"id": "acct-1", "email": "driver@example.com"})

        async def logout(request: web.Request) -> web.Response:
            state["requests"].append(("logout", _token_of(request)))
            return web.Response(status=204)

        async def select(request: web.Request) -> web.Response:
            state["requests"].append(("select", dict(request.query)))
            if _token_of(request) == "expired-token":
                return web.json_response({"code": "PGRST301", "message": "JWT expired"}, status=401)
            if table_status >= 400:
                return web.json_response(table_error or {}, status=table_status)
            if table_body is not None:
                return web.json_response(table_body)
            account = request.query.get("user_id", "").removeprefix("eq.")
            row = state["rows"].get(account)
            return web.json_response([row] if row is not None else [])

        async def upsert(request: web.Request) -> web.Response:
            state["requests"].append(("upsert", dict(request.query), request.headers.get("Prefer")))
            if table_status >= 400:
                return web.json_response(table_error or {}, status=table_status)
            incoming = (await request.json())[0]
            stored = {**incoming, "updated_at": "2026-01-02T03:04:05.678+00:00"}
            state["rows"][incoming["user_id"]] = stored
            return web.json_response([stored], status=201)

        app = web.Application()
        app.router.add_post("/auth/v1/token", token)
        app.router.add_get("/auth/v1/user", user)
        app.router.add_post("/auth/v1/logout", logout)
        app.router.add_get("/rest/v1/user_snapshots", select)
        app.router.add_post("/rest/v1/user_snapshots", upsert)
        return app, state

    return _build

