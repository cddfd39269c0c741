"""HTTP tests for the import, stats and pulls routes."""

import json
from collections.abc import AsyncGenerator, Callable
from typing import Any

import httpx
import pytest
import pytest_asyncio
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.config import settings
from app.core.db import get_db
from app.core.enums import Game, ImportState
from app.core.security import create_access_token
from app.main import app
from app.models.user import User
from app.services.fetcher import PullSource
from app.services.hoyo_api import HoyoApiSource
from app.services.importer import ImportJobRunner, get_import_runner
from app.services.progress import ProgressStore, get_progress_store

EXPORT = {
    "wish-counter-standard": {
        "pulls": [
            {"id": "amber", "type": "character", "time": "2024-01-01 09:00:00"},
            {"id": "keqing", "type": "character", "time": "2024-01-03 09:00:00", "rate": 1},
            {"id": "cool_steel", "type": "weapon", "time": "2024-01-04 09:00:00"},
        ]
    },
    "wish-counter-character-event": {
        "pulls": [
            {"id": "diluc", "type": "character", "time": "2024-01-01 10:00:00"},
            {"id": "black_tassel", "type": "weapon", "time": "2024-01-02 10:00:00"},
            {"id": "slingshot", "type": "weapon", "time": "2024-01-02 10:00:00"},
        ]
    },
}
GACHA_URL = "https://example.com/log?authkey=abc&game_biz=hk4e_global"


class RecordingRunner(ImportJobRunner):
    """Accepts jobs without running them."""

    def __init__(self) -> None:
        super().__init__(ProgressStore())
        self.sources: list[PullSource] = []

    def submit(self, *, user_id: int, source: PullSource) -> str:
        self.sources.append(source)
        return "queued-upload"


@pytest.fixture
def runner(session_factory: Callable[[], AsyncSession]) -> ImportJobRunner:
    return ImportJobRunner(ProgressStore(), session_factory)


@pytest_asyncio.fixture
async def client(
    session_factory: Callable[[], AsyncSession], runner: ImportJobRunner
) -> AsyncGenerator[httpx.AsyncClient]:
    async def override_get_db() -> AsyncGenerator[AsyncSession]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_import_runner] = lambda: runner
    app.dependency_overrides[get_progress_store] = lambda: runner.progress

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(sub=user.uid)}"}


async def upload(
    client: httpx.AsyncClient,
    headers: dict[str, str],
    content: bytes,
    *,
    content_type: str = "application/json",
    game: str = "GENSHIN",
) -> httpx.Response:
    return await client.post(
        "/api/imports/file",
        params={"game": game},
        files={"file": ("export.json", content, content_type)},
        headers=headers,
    )


async def import_export(
    client: httpx.AsyncClient, headers: dict[str, str], runner: ImportJobRunner
) -> dict[str, Any]:
    response = await upload(client, headers, json.dumps(EXPORT).encode())
    assert response.status_code == 200
    upload_id = response.json()["data"]["upload_id"]
    await runner.wait(upload_id)

    progress = await client.get(f"/api/imports/progress/{upload_id}", headers=headers)
    assert progress.status_code == 200
    return progress.json()["data"]


class TestAuth:
    @pytest.mark.asyncio
    async def test_missing_token(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/imports/progress/anything")

        assert response.status_code == 401
        assert response.json()["status"] == "error"

    @pytest.mark.asyncio
    async def test_invalid_token(self, client: httpx.AsyncClient) -> None:
        response = await client.get(
            "/api/imports/progress/anything", headers={"Authorization": "Bearer not-a-jwt"}
        )

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid token"

    @pytest.mark.asyncio
    async def test_expired_token(self, client: httpx.AsyncClient, user: User) -> None:
        token = create_access_token(sub=user.uid, ttl_seconds=-60)
        response = await client.get(
            "/api/imports/progress/anything", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 401
        assert response.json()["message"] == "Token expired"

    @pytest.mark.asyncio
    async def test_unknown_user(self, client: httpx.AsyncClient) -> None:
        token = create_access_token(sub="does-not-exist")
        response = await client.get(
            "/api/stats/GENSHIN", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 404


class TestFileImport:
    @pytest.mark.asyncio
    async def test_import_and_poll(
        self, client: httpx.AsyncClient, auth_headers: dict[str, str], runner: ImportJobRunner
    ) -> None:
        progress = await import_export(client, auth_headers, runner)

        assert progress["completed"] is True
        assert progress["state"] == ImportState.COMPLETED
        assert progress["progress_percent"] == 100
        assert progress["imported"] == 6
        assert progress["errors"] == 0

    @pytest.mark.asyncio
    async def test_reports_pull_count(
        self, client: httpx.AsyncClient, auth_headers: dict[str, str], runner: ImportJobRunner
    ) -> None:
        response = await upload(client, auth_headers, json.dumps(EXPORT).encode())

        assert response.json()["message"] == "Import of 6 pulls started"
        await runner.wait(response.json()["data"]["upload_id"])

    @pytest.mark.asyncio
    async def test_rejects_non_json_content_type(
        self, client: httpx.AsyncClient, auth_headers: dict[str, str]
    ) -> None:
        response = await upload(client, auth_headers, b"a,b,c", content_type="text/csv")

        assert response.status_code == 400
        assert response.json()["message"] == "Only JSON files are allowed"

    @pytest.mark.asyncio
    async def test_rejects_unknown_export_layout(
        self, client: httpx.AsyncClient, auth_headers: dict[str, str]
    ) -> None:
        response = await upload(client, auth_headers, json.dumps({"foo": []}).encode())

        assert response.status_code == 400
        assert "Unrecognized export format" in response.json()["message"]

    @pytest.mark.asyncio
    async def test_rejects_oversized_file(
        self,
        client: httpx.AsyncClient,
        auth_headers: dict[str, str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(settings, "max_upload_bytes", 10)

        response = await upload(client, auth_headers, json.dumps(EXPORT).encode())

        assert response.status_code == 413

    @pytest.mark.asyncio
    async def test_unknown_game(
        self, client: httpx.AsyncClient, auth_headers: dict[str, str]
    ) -> None:
        response = await upload(client, auth_headers, b"{}", game="ZZZ")

        assert response.status_code == 422
        assert response.json()["message"] == "Validation error"


class TestUrlImport:
    @pytest.mark.asyncio
    async def test_queues_api_import(
        self, client: httpx.AsyncClient, auth_headers: dict[str, str]
    ) -> None:
        recording = RecordingRunner()
        app.dependency_overrides[get_import_runner] = lambda: recording

        response = await client.post(
            "/api/imports/url", json={"game": "HSR", "url": GACHA_URL}, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["data"] == {"upload_id": "queued-upload"}
        source = recording.sources[0]
        assert isinstance(source, HoyoApiSource)
        assert source.game == Game.HSR

    @pytest.mark.asyncio
    async def test_url_without_authkey(
        self, client: httpx.AsyncClient, auth_headers: dict[str, str]
    ) -> None:
        response = await client.post(
            "/api/imports/url",
            json={"game": "GENSHIN", "url": "https://example.com/log?lang=en"},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert "authkey" in response.json()["message"]


class TestProgressAndCancel:
    @pytest.mark.asyncio
    async def test_unknown_upload_id(
        self, client: httpx.AsyncClient, auth_headers: dict[str, str]
    ) -> None:
        response = await client.get("/api/imports/progress/nope", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["message"] == "Import not found or expired"

    @pytest.mark.asyncio
    async def test_cancel_unknown_upload_id(
        self, client: httpx.AsyncClient, auth_headers: dict[str, str]
    ) -> None:
        response = await client.delete("/api/imports/nope", headers=auth_headers)

        assert response.status_code == 404


class TestStatsAndPulls:
    @pytest.mark.asyncio
    async def test_stats_after_import(
        self, client: httpx.AsyncClient, auth_headers: dict[str, str], runner: ImportJobRunner
    ) -> None:
        await import_export(client, auth_headers, runner)

        response = await client.get("/api/stats/GENSHIN", headers=auth_headers)

        assert response.status_code == 200
        stats = {row["banner_type"]: row for row in response.json()["data"]}
        assert stats["standard"]["five_star_count"] == 1
        assert stats["standard"]["current_pity"] == 1
        assert stats["character"]["total_pulls"] == 3

    @pytest.mark.asyncio
    async def test_paginated_pulls(
        self, client: httpx.AsyncClient, auth_headers: dict[str, str], runner: ImportJobRunner
    ) -> None:
        await import_export(client, auth_headers, runner)

        response = await client.get(
            "/api/pulls/GENSHIN", params={"page": 1, "page_size": 2}, headers=auth_headers
        )

        body = response.json()
        assert body["pagination"] == {"page": 1, "page_size": 2, "total_items": 6, "total_pages": 3}
        assert [pull["item_name"] for pull in body["data"]] == ["cool steel", "keqing"]

    @pytest.mark.asyncio
    async def test_pulls_filtered_by_rarity(
        self, client: httpx.AsyncClient, auth_headers: dict[str, str], runner: ImportJobRunner
    ) -> None:
        await import_export(client, auth_headers, runner)

        response = await client.get(
            "/api/pulls/GENSHIN", params={"rank_type": 5}, headers=auth_headers
        )

        data = response.json()["data"]
        assert [(pull["item_name"], pull["pity_count"]) for pull in data] == [("keqing", 2)]


@pytest.mark.asyncio
async def test_healthz(client: httpx.AsyncClient) -> None:
    response = await client.get("/")
    assert response.json() == "OK"
