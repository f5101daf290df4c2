"""Tests for RFC 7807 problem responses."""

from __future__ import annotations

from typing import AsyncIterator

import pytest
from fastapi import FastAPI, HTTPException
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel

from shared.http.errors import (
    ChatLogUpsertError,
    NameMapLoadError,
    ResidentNotFoundError,
    WebhookUnauthorizedError,
    register_exception_handlers,
)


@pytest.fixture
def anyio_backend() -> str:
    """Limit ``pytest-anyio`` to the asyncio backend for these tests."""

    return "asyncio"


class _Payload(BaseModel):
    count: int


def _build_app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/unauthorized")
    async def unauthorized() -> None:
        raise WebhookUnauthorizedError("Unauthorized")

    @app.get("/resident")
    async def resident() -> None:
        raise ResidentNotFoundError("u9")

    @app.get("/conflict")
    async def conflict() -> None:
        raise HTTPException(status_code=409, detail="already exists")

    @app.post("/payload")
    async def payload(body: _Payload) -> dict[str, int]:
        return {"count": body.count}

    return app


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=_build_app()), base_url="http://test") as client:
        yield client


def test_name_map_error_detail() -> None:
    error = NameMapLoadError("timeout")

    assert error.status_code == 500
    assert error.reason == "timeout"
    assert error.detail == "名寄せマップの読み込みに失敗: timeout"


def test_upsert_error_carries_record_count() -> None:
    problem = ChatLogUpsertError("deadlock", record_count=3).to_problem_details(instance="/x")

    dumped = problem.model_dump(exclude_none=True)
    assert dumped["detail"] == "Upsert failed: deadlock"
    assert dumped["recordCount"] == 3
    assert dumped["instance"] == "/x"


@pytest.mark.anyio
async def test_problem_exception_response(client: AsyncClient) -> None:
    response = await client.get("/unauthorized")

    assert response.status_code == 401
    assert response.headers["content-type"].startswith("application/problem+json")
    body = response.json()
    assert body["title"] == "Unauthorized"
    assert body["type"].endswith("/webhook-unauthorized")
    assert body["instance"] == "http://test/unauthorized"


@pytest.mark.anyio
async def test_extensions_are_included(client: AsyncClient) -> None:
    response = await client.get("/resident")

    assert response.status_code == 404
    assert response.json()["residentId"] == "u9"


@pytest.mark.anyio
async def test_http_exception_is_wrapped(client: AsyncClient) -> None:
    response = await client.get("/conflict")

    assert response.status_code == 409
    assert response.json()["title"] == "Conflict"
    assert response.json()["detail"] == "already exists"


@pytest.mark.anyio
async def test_validation_errors_are_listed(client: AsyncClient) -> None:
    response = await client.post("/payload", json={"count": "many"})

    assert response.status_code == 422
    body = response.json()
    assert body["title"] == "Request Validation Failed"
    assert body["errors"][0]["loc"] == ["body", "count"]
