"""Endpoint tests for the chat sync webhook."""

from __future__ import annotations

import json
from typing import AsyncIterator, Sequence

import pytest
from httpx import ASGITransport, AsyncClient

from repositories import InMemoryCareStore, StorageError
from services.chat_sync.app import create_app
from shared.config.settings import Settings, WebhookSettings
from shared.models import CategoryTag, ChatLogRecord

SECRET = "s3cret-token"
HEADERS = {"X-Webhook-Secret": SECRET}


@pytest.fixture
def anyio_backend() -> str:
    """Limit ``pytest-anyio`` to the asyncio backend for these tests."""

    return "asyncio"


class _FlakyStore(InMemoryCareStore):
    def __init__(self) -> None:
        super().__init__(
            residents=[
                {"id": "u1", "name": "山田 太郎", "building_room": "A-101"},
                {"id": "u2", "name": "佐藤 花子", "building_room": "B-201"},
            ]
        )
        self.fail_roster = False
        self.fail_upsert = False
        self.roster_reads = 0
        self.upsert_calls = 0

    async def fetch_roster(self):
        self.roster_reads += 1
        if self.fail_roster:
            raise StorageError("relation \"users\" does not exist")
        return await super().fetch_roster()

    async def upsert_chat_logs(self, records: Sequence[ChatLogRecord]) -> None:
        self.upsert_calls += 1
        if self.fail_upsert:
            raise StorageError("could not serialize access")
        await super().upsert_chat_logs(records)


def _settings(secret: str | None = SECRET) -> Settings:
    return Settings(webhook=WebhookSettings(CHATWORK_WEBHOOK_SECRET=secret))


@pytest.fixture
def store() -> _FlakyStore:
    return _FlakyStore()


@pytest.fixture
async def client(store: _FlakyStore) -> AsyncIterator[AsyncClient]:
    app = create_app(_settings(), store=store)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


def _entry(message_id: str = "m-1", **overrides: str) -> dict[str, str]:
    payload = {
        "datetime": "2024-01-05 09:30",
        "resident_name": "山田　太郎",
        "message": "体温38.5度、排尿あり",
        "staff_name": "鈴木",
        "message_id": message_id,
    }
    payload.update(overrides)
    return payload


@pytest.mark.anyio
async def test_health(client: AsyncClient) -> None:
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "chat_sync"}


@pytest.mark.anyio
async def test_missing_secret_header_is_rejected(client: AsyncClient, store: _FlakyStore) -> None:
    response = await client.post("/api/chatwork-sync", json=[_entry()])

    assert response.status_code == 401
    assert response.headers["content-type"].startswith("application/problem+json")
    assert store.roster_reads == 0


@pytest.mark.anyio
async def test_wrong_secret_is_rejected(client: AsyncClient) -> None:
    response = await client.post(
        "/api/chatwork-sync",
        json=[_entry()],
        headers={"X-Webhook-Secret": "guess"},
    )

    assert response.status_code == 401


@pytest.mark.anyio
async def test_unconfigured_secret_rejects_every_call(
    monkeypatch: pytest.MonkeyPatch, store: _FlakyStore
) -> None:
    monkeypatch.delenv("CHATWORK_WEBHOOK_SECRET", raising=False)
    monkeypatch.delenv("WEBHOOK_SECRET", raising=False)
    app = create_app(_settings(secret=None), store=store)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            "/api/chatwork-sync", json=[_entry()], headers={"X-Webhook-Secret": ""}
        )

    assert response.status_code == 401


@pytest.mark.anyio
async def test_invalid_json_is_rejected(client: AsyncClient) -> None:
    response = await client.post(
        "/api/chatwork-sync",
        content=b"{not json",
        headers={**HEADERS, "Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["title"] == "Invalid JSON body"


@pytest.mark.anyio
async def test_non_object_envelope_is_rejected(client: AsyncClient, store: _FlakyStore) -> None:
    response = await client.post("/api/chatwork-sync", json="hello", headers=HEADERS)

    assert response.status_code == 400
    assert store.roster_reads == 0


@pytest.mark.anyio
async def test_partial_success_reports_skipped_names(
    client: AsyncClient, store: _FlakyStore
) -> None:
    response = await client.post(
        "/api/chatwork-sync",
        json=[_entry("m-1"), _entry("m-2", resident_name="存在 しない")],
        headers=HEADERS,
    )

    assert response.status_code == 200
    assert response.json() == {
        "message": "Sync complete",
        "inserted": 1,
        "skipped": 1,
        "skippedNames": ["存在 しない"],
    }
    stored = store.chat_logs["m-1"]
    assert stored.user_id == "u1"
    assert stored.category_tag is CategoryTag.EXCRETION
    assert stored.send_time.isoformat() == "2024-01-05T09:30:00+09:00"


@pytest.mark.anyio
async def test_single_object_body_is_accepted(client: AsyncClient) -> None:
    response = await client.post("/api/chatwork-sync", json=_entry(), headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["inserted"] == 1


@pytest.mark.anyio
async def test_resending_same_message_is_idempotent(
    client: AsyncClient, store: _FlakyStore
) -> None:
    first = await client.post("/api/chatwork-sync", json=[_entry()], headers=HEADERS)
    second = await client.post(
        "/api/chatwork-sync",
        json=[_entry(message="よく眠れています", resident_name="佐藤花子")],
        headers=HEADERS,
    )

    assert first.json()["inserted"] == 1
    assert second.json()["inserted"] == 1
    assert list(store.chat_logs) == ["m-1"]
    stored = store.chat_logs["m-1"]
    assert stored.user_id == "u2"
    assert stored.message == "よく眠れています"
    assert stored.category_tag is CategoryTag.SLEEP


@pytest.mark.anyio
async def test_empty_batch_succeeds_without_roster_read(
    client: AsyncClient, store: _FlakyStore
) -> None:
    response = await client.post("/api/chatwork-sync", json=[], headers=HEADERS)

    assert response.status_code == 200
    assert response.json() == {
        "message": "No entries to process",
        "inserted": 0,
        "skipped": 0,
        "skippedNames": [],
    }
    assert store.roster_reads == 0


@pytest.mark.anyio
async def test_roster_failure_returns_500_without_upsert(
    client: AsyncClient, store: _FlakyStore
) -> None:
    store.fail_roster = True

    response = await client.post("/api/chatwork-sync", json=[_entry()], headers=HEADERS)

    assert response.status_code == 500
    assert response.json()["detail"].startswith("名寄せマップの読み込みに失敗: ")
    assert store.upsert_calls == 0
    assert store.chat_logs == {}


@pytest.mark.anyio
async def test_upsert_failure_returns_500(client: AsyncClient, store: _FlakyStore) -> None:
    store.fail_upsert = True

    response = await client.post("/api/chatwork-sync", json=[_entry()], headers=HEADERS)

    body = response.json()
    assert response.status_code == 500
    assert body["detail"] == "Upsert failed: could not serialize access"
    assert body["recordCount"] == 1


@pytest.mark.anyio
async def test_dropped_entries_lower_inserted_count(client: AsyncClient) -> None:
    response = await client.post(
        "/api/chatwork-sync",
        json=[_entry("m-1"), _entry("", message="x"), _entry("m-3", datetime="someday")],
        headers=HEADERS,
    )

    assert response.json() == {
        "message": "Sync complete",
        "inserted": 1,
        "skipped": 0,
        "skippedNames": [],
    }


@pytest.mark.anyio
async def test_request_id_is_propagated(client: AsyncClient) -> None:
    response = await client.post(
        "/api/chatwork-sync",
        content=json.dumps([]),
        headers={**HEADERS, "X-Request-ID": "sync-123"},
    )

    assert response.headers["X-Request-ID"] == "sync-123"
