"""Tests for the subtitle processing routes."""

import asyncio
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from starlette.websockets import WebSocketDisconnect

from toolbox_subtitles.database import AsyncSessionLocal, Base, engine, get_db
from toolbox_subtitles.main import app
from toolbox_subtitles.routes.auth import EDIT_PERMISSION, VIEW_PERMISSION
from toolbox_subtitles.routes.subtitles import get_subtitle_orchestrator
from toolbox_subtitles.schemas.subtitles import SubtitleProgressUpdate
from toolbox_subtitles.utils.security import create_access_token

from tests.fakes import (
    ENGLISH_SRT,
    OTHER_TENANT_ID,
    TENANT_ID,
    VIDEO_URL,
    FakeTranslator,
    create_talk,
    make_orchestrator,
)


def make_token(tenant_id=TENANT_ID, permissions=(VIEW_PERMISSION, EDIT_PERMISSION)):
    return create_access_token("user-1", tenant_id, permissions)


def auth(**kwargs):
    return {"Authorization": f"Bearer {make_token(**kwargs)}"}


@pytest.fixture
async def test_db():
    """Create test database."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def orchestrator(tmp_path):
    orchestrator = make_orchestrator(tmp_path, translator=FakeTranslator(failing={"French"}))
    app.dependency_overrides[get_subtitle_orchestrator] = lambda: orchestrator
    yield orchestrator
    app.dependency_overrides.clear()


@pytest.fixture
async def client(test_db, orchestrator):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client


@pytest.fixture
async def talk_id(test_db):
    return await create_talk()


async def start_job(client, talk_id, languages=("Spanish", "French")):
    response = await client.post(
        f"/toolbox-talks/{talk_id}/subtitles/process",
        json={"video_url": VIDEO_URL, "target_languages": list(languages)},
        headers=auth(),
    )
    assert response.status_code == 202, response.text
    return response.json()["job_id"]


async def run_job(orchestrator, job_id):
    async with AsyncSessionLocal() as session:
        await orchestrator.process(session, job_id)


@pytest.mark.asyncio
async def test_process_requires_token_and_edit_permission(client, talk_id):
    url = f"/toolbox-talks/{talk_id}/subtitles/process"
    body = {"video_url": VIDEO_URL, "target_languages": ["Spanish"]}

    missing = await client.post(url, json=body)
    invalid = await client.post(url, json=body, headers={"Authorization": "Bearer nope"})
    view_only = await client.post(url, json=body, headers=auth(permissions=[VIEW_PERMISSION]))

    assert missing.status_code == 403
    assert invalid.status_code == 401
    assert view_only.status_code == 403


@pytest.mark.asyncio
async def test_process_accepts_and_queues_job(client, talk_id, orchestrator):
    response = await client.post(
        f"/toolbox-talks/{talk_id}/subtitles/process",
        json={"video_url": VIDEO_URL, "target_languages": ["Spanish"]},
        headers=auth(),
    )

    assert response.status_code == 202
    data = response.json()
    assert data["status_url"] == f"/toolbox-talks/{talk_id}/subtitles/status"
    assert orchestrator.dispatcher.enqueued == [(data["job_id"], "process")]


@pytest.mark.asyncio
async def test_process_rejects_unsupported_languages(client, talk_id):
    response = await client.post(
        f"/toolbox-talks/{talk_id}/subtitles/process",
        json={"video_url": VIDEO_URL, "target_languages": ["Spanish", "Elvish"]},
        headers=auth(),
    )

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["invalid_languages"] == ["Elvish"]
    assert "Spanish" in detail["valid_languages"]


@pytest.mark.asyncio
async def test_process_rejects_second_job_and_foreign_talk(client, talk_id):
    await start_job(client, talk_id)

    again = await client.post(
        f"/toolbox-talks/{talk_id}/subtitles/process",
        json={"video_url": VIDEO_URL, "target_languages": ["Spanish"]},
        headers=auth(),
    )
    foreign = await client.post(
        f"/toolbox-talks/{talk_id}/subtitles/process",
        json={"video_url": VIDEO_URL, "target_languages": ["Spanish"]},
        headers=auth(tenant_id=OTHER_TENANT_ID),
    )

    assert again.status_code == 400
    assert "already active" in again.json()["detail"]
    assert foreign.status_code == 400


@pytest.mark.asyncio
async def test_process_validates_body(client, talk_id):
    response = await client.post(
        f"/toolbox-talks/{talk_id}/subtitles/process",
        json={"video_url": VIDEO_URL, "target_languages": []},
        headers=auth(),
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_status_lifecycle(client, talk_id, orchestrator):
    url = f"/toolbox-talks/{talk_id}/subtitles/status"
    assert (await client.get(url, headers=auth())).status_code == 404

    job_id = await start_job(client, talk_id)
    pending = (await client.get(url, headers=auth())).json()
    assert pending["status"] == "pending"
    assert pending["job_id"] == job_id

    await run_job(orchestrator, job_id)
    done = (await client.get(url, headers=auth())).json()
    assert done["status"] == "completed"
    assert done["overall_percentage"] == 100
    assert done["current_step"] == "Complete!"
    languages = {item["language_code"]: item for item in done["languages"]}
    assert languages["es"]["status"] == "completed"
    assert languages["fr"]["status"] == "failed"

    foreign = await client.get(url, headers=auth(tenant_id=OTHER_TENANT_ID))
    assert foreign.status_code == 404


@pytest.mark.asyncio
async def test_cancel_endpoint(client, talk_id, orchestrator):
    url = f"/toolbox-talks/{talk_id}/subtitles/cancel"
    assert (await client.post(url, headers=auth())).status_code == 404

    await start_job(client, talk_id)
    response = await client.post(url, headers=auth())
    assert response.status_code == 200
    assert response.json() == {"message": "Subtitle processing cancelled"}

    again = await client.post(url, headers=auth())
    assert again.status_code == 400


@pytest.mark.asyncio
async def test_retry_endpoint(client, talk_id, orchestrator):
    url = f"/toolbox-talks/{talk_id}/subtitles/retry"
    assert (await client.post(url, headers=auth())).status_code == 404

    job_id = await start_job(client, talk_id)
    running = await client.post(url, headers=auth())
    assert running.status_code == 400

    await run_job(orchestrator, job_id)
    response = await client.post(url, headers=auth())
    assert response.status_code == 202
    assert response.json()["job_id"] == job_id
    assert orchestrator.dispatcher.enqueued[-1] == (job_id, "retry")


@pytest.mark.asyncio
async def test_download_subtitle_file(client, talk_id, orchestrator):
    job_id = await start_job(client, talk_id)
    base = f"/toolbox-talks/{talk_id}/subtitles"
    assert (await client.get(f"{base}/en", headers=auth())).status_code == 404

    await run_job(orchestrator, job_id)

    srt = await client.get(f"{base}/en", headers=auth())
    assert srt.status_code == 200
    assert srt.text == ENGLISH_SRT
    assert srt.headers["content-type"].startswith("application/x-subrip")
    assert "content-disposition" not in srt.headers

    vtt = await client.get(f"{base}/es", params={"format": "vtt", "download": "true"}, headers=auth())
    assert vtt.status_code == 200
    assert vtt.text.startswith("WEBVTT")
    assert "00:00:00.000 --> 00:00:01.100" in vtt.text
    assert vtt.headers["content-type"].startswith("text/vtt")
    assert vtt.headers["content-disposition"] == 'attachment; filename="working_at_height_es.vtt"'

    assert (await client.get(f"{base}/fr", headers=auth())).status_code == 404
    assert (await client.get(f"{base}/en", params={"format": "txt"}, headers=auth())).status_code == 422
    foreign = await client.get(f"{base}/en", headers=auth(tenant_id=OTHER_TENANT_ID))
    assert foreign.status_code == 404


@pytest.mark.asyncio
async def test_available_languages(client):
    response = await client.get("/subtitles/languages", headers=auth(permissions=[VIEW_PERMISSION]))

    assert response.status_code == 200
    languages = response.json()["languages"]
    assert len(languages) == 24
    assert languages[0] == {"language": "English", "language_code": "en"}


class PrefilledBroker:
    """Hands every subscriber a queue that already holds the given updates."""

    def __init__(self, updates):
        self.updates = updates
        self.unsubscribed: list[str] = []

    def subscribe(self, job_id):
        queue = asyncio.Queue()
        for update in self.updates:
            queue.put_nowait(update)
        return queue

    def unsubscribe(self, job_id, queue):
        self.unsubscribed.append(job_id)


class StubSession:
    def __init__(self, jobs):
        self.jobs = jobs

    async def get(self, model, ident):
        return self.jobs.get(ident)


@pytest.fixture
def ws_client():
    updates = [
        SubtitleProgressUpdate(job_id="job-1", stage="translating", percent=55, message="Spanish subtitles ready"),
        SubtitleProgressUpdate(job_id="job-1", stage="completed", percent=100, message="Processing complete!"),
        SubtitleProgressUpdate(job_id="job-1", stage="completed", percent=100, message="never sent"),
    ]
    broker = PrefilledBroker(updates)

    async def stub_db():
        yield StubSession({"job-1": SimpleNamespace(id="job-1", tenant_id=TENANT_ID)})

    app.dependency_overrides[get_db] = stub_db
    app.dependency_overrides[get_subtitle_orchestrator] = lambda: SimpleNamespace(broker=broker)
    yield TestClient(app), broker
    app.dependency_overrides.clear()


def test_progress_stream_ends_at_terminal_stage(ws_client):
    client, broker = ws_client

    with client.websocket_connect(f"/subtitles/jobs/job-1/progress?token={make_token()}") as ws:
        first = ws.receive_json()
        last = ws.receive_json()
        with pytest.raises(WebSocketDisconnect):
            ws.receive_json()

    assert first["percent"] == 55
    assert first["stage"] == "translating"
    assert last["stage"] == "completed"
    assert last["message"] == "Processing complete!"
    assert broker.unsubscribed == ["job-1"]


@pytest.mark.parametrize(
    "job_id,token",
    [
        ("job-1", "not-a-token"),
        ("job-1", "other-tenant"),
        ("missing", "valid"),
        ("job-1", "no-view"),
    ],
)
def test_progress_stream_rejects_unauthorized(ws_client, job_id, token):
    client, broker = ws_client
    if token == "valid":
        token = make_token()
    elif token == "no-view":
        token = make_token(permissions=[EDIT_PERMISSION])
    elif token == "other-tenant":
        token = make_token(tenant_id=OTHER_TENANT_ID)

    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(f"/subtitles/jobs/{job_id}/progress?token={token}"):
            pass

    assert exc_info.value.code == 1008
    assert broker.unsubscribed == []


@pytest.mark.asyncio
async def test_health_reports_database(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["database"] == "healthy"
