"""Tests for the in-process progress broker."""

import pytest

from toolbox_subtitles.schemas.subtitles import SubtitleProgressUpdate
from toolbox_subtitles.services.progress import ProgressBroker


def update(job_id="job-1", percent=10, stage="transcribing"):
    return SubtitleProgressUpdate(
        job_id=job_id, stage=stage, percent=percent, message="Transcribing audio..."
    )


@pytest.mark.asyncio
async def test_publish_reaches_only_subscribers_of_the_job():
    broker = ProgressBroker()
    first = broker.subscribe("job-1")
    second = broker.subscribe("job-1")
    other = broker.subscribe("job-2")

    delivered = await broker.publish(update())

    assert delivered == 2
    assert first.get_nowait().percent == 10
    assert second.get_nowait().percent == 10
    assert other.empty()


@pytest.mark.asyncio
async def test_publish_without_subscribers_is_a_noop():
    assert await ProgressBroker().publish(update()) == 0


@pytest.mark.asyncio
async def test_slow_subscriber_misses_updates_without_blocking():
    broker = ProgressBroker(max_queue_size=1)
    slow = broker.subscribe("job-1")

    assert await broker.publish(update(percent=5)) == 1
    assert await broker.publish(update(percent=10)) == 0

    assert slow.get_nowait().percent == 5
    assert slow.empty()


def test_unsubscribe_removes_group_when_empty():
    broker = ProgressBroker()
    queue = broker.subscribe("job-1")
    assert broker.subscriber_count("job-1") == 1

    broker.unsubscribe("job-1", queue)
    broker.unsubscribe("job-1", queue)

    assert broker.subscriber_count("job-1") == 0
    assert "job-1" not in broker._groups
