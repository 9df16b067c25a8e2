"""
Tests for background sync jobs.
"""
from catalog_sync.core.config import settings
from catalog_sync.services import job_queue
from conftest import OWNER_ID, create_connection


class FakeRedis:
    def __init__(self) -> None:
        self.jobs: list[tuple] = []

    async def enqueue_job(self, function: str, *args):
        self.jobs.append((function, *args))


async def test_job_without_connection_reports_failure(session_factory):
    result = await job_queue.full_import_job({}, OWNER_ID)

    assert result == {"success": False, "error": "No active Shopify connections found"}


async def test_scheduled_sync_queues_auto_sync_connections(session_factory):
    auto = await create_connection(session_factory, name="Auto", configuration={"auto_sync": True})
    await create_connection(session_factory, name="Manual")
    redis = FakeRedis()

    result = await job_queue.scheduled_incremental_sync({"redis": redis})

    assert result == {"queued": 1}
    assert redis.jobs == [("incremental_sync_job", OWNER_ID, str(auto.id))]


async def test_scheduled_sync_with_nothing_to_do(session_factory):
    result = await job_queue.scheduled_incremental_sync({"redis": FakeRedis()})

    assert result == {"queued": 0}


def test_cron_minutes(monkeypatch):
    monkeypatch.setattr(settings, "auto_sync_interval_minutes", 15)
    assert job_queue._cron_minutes() == {0, 15, 30, 45}

    monkeypatch.setattr(settings, "auto_sync_interval_minutes", 60)
    assert job_queue._cron_minutes() == {0}
