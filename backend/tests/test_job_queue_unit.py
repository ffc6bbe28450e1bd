"""Unit tests for SubtitleJobQueue internals."""

import asyncio
from types import SimpleNamespace

import pytest

import toolbox_subtitles.services.job_queue as job_queue_module
from toolbox_subtitles.services.job_queue import SubtitleJobQueue, resume_pending_jobs


class DummySession:
    """AsyncSession stub used to avoid touching the real database."""

    def __init__(self):
        self.commits = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def commit(self):
        self.commits += 1


@pytest.fixture
def recorded_calls(monkeypatch):
    calls: list[tuple[str, str]] = []

    async def fake_process(job_id, db, *, mode="process"):
        calls.append((job_id, mode))

    monkeypatch.setattr(job_queue_module, "AsyncSessionLocal", lambda: DummySession())
    monkeypatch.setattr(job_queue_module, "process_subtitle_job", fake_process)
    return calls


@pytest.mark.asyncio
async def test_enqueue_processes_job_once(recorded_calls):
    """Enqueue runs the job once and skips ids that are already running."""
    queue = SubtitleJobQueue(concurrency=1)
    await queue.start()

    await queue.enqueue("job-1")
    await asyncio.wait_for(queue.join(), timeout=1)

    assert recorded_calls == [("job-1", "process")]

    queue._running_ids.add("job-1")
    await queue.enqueue("job-1")
    assert queue._queue.qsize() == 0
    queue._running_ids.clear()

    await queue.stop()


@pytest.mark.asyncio
async def test_enqueue_passes_retry_mode(recorded_calls):
    queue = SubtitleJobQueue(concurrency=1)
    await queue.start()

    await queue.enqueue("job-2", mode="retry")
    await asyncio.wait_for(queue.join(), timeout=1)

    assert recorded_calls == [("job-2", "retry")]
    await queue.stop()


@pytest.mark.asyncio
async def test_enqueue_rejects_unknown_mode():
    queue = SubtitleJobQueue()
    with pytest.raises(ValueError):
        await queue.enqueue("job-3", mode="transcode")


@pytest.mark.asyncio
async def test_enqueue_skips_when_testing(monkeypatch):
    """When not started and settings.is_testing is True, enqueue should no-op."""
    queue = SubtitleJobQueue()
    monkeypatch.setattr(job_queue_module, "settings", SimpleNamespace(is_testing=True))
    monkeypatch.delenv("FORCE_QUEUE_START", raising=False)

    await queue.enqueue("job-x")

    assert queue._queue is None
    assert not queue.started


@pytest.mark.asyncio
async def test_enqueue_autostarts_when_not_testing(monkeypatch, recorded_calls):
    queue = SubtitleJobQueue()
    monkeypatch.setattr(job_queue_module, "settings", SimpleNamespace(is_testing=False))

    await queue.enqueue("auto-job")
    assert queue.started is True
    await asyncio.wait_for(queue.join(), timeout=1)
    assert recorded_calls == [("auto-job", "process")]
    await queue.stop()
    assert queue.started is False


@pytest.mark.asyncio
async def test_worker_survives_failing_job(monkeypatch):
    """A job that raises is logged and the worker keeps serving the queue."""
    calls: list[str] = []

    async def flaky_process(job_id, db, *, mode="process"):
        calls.append(job_id)
        if job_id == "bad":
            raise RuntimeError("boom")

    monkeypatch.setattr(job_queue_module, "AsyncSessionLocal", lambda: DummySession())
    monkeypatch.setattr(job_queue_module, "process_subtitle_job", flaky_process)

    queue = SubtitleJobQueue(concurrency=1)
    await queue.start()
    await queue.enqueue("bad")
    await queue.enqueue("good")
    await asyncio.wait_for(queue.join(), timeout=1)

    assert calls == ["bad", "good"]
    assert queue._running_ids == set()
    await queue.stop()


@pytest.mark.asyncio
async def test_stop_handles_event_loop_closed(monkeypatch):
    """RuntimeError from a closed loop during stop still resets state."""
    queue = SubtitleJobQueue()

    class FakeQueue:
        async def put(self, item):
            raise RuntimeError("Event loop is closed")

    queue._queue = FakeQueue()
    queue._workers = [object(), object()]

    async def fake_gather(*args, **kwargs):
        return None

    monkeypatch.setattr(asyncio, "gather", fake_gather)
    await queue.stop()
    assert queue._queue is None


@pytest.mark.asyncio
async def test_resume_pending_jobs_enqueues_unfinished(monkeypatch):
    class FakeResult:
        def scalars(self):
            return SimpleNamespace(all=lambda: ["job-a", "job-b"])

    class QuerySession(DummySession):
        async def execute(self, stmt):
            return FakeResult()

    enqueued: list[str] = []

    class RecordingQueue:
        async def enqueue(self, job_id, *, mode="process"):
            enqueued.append(job_id)

    monkeypatch.setattr(job_queue_module, "AsyncSessionLocal", lambda: QuerySession())

    resumed = await resume_pending_jobs(RecordingQueue())

    assert resumed == 2
    assert enqueued == ["job-a", "job-b"]
