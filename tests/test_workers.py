import pytest

from orca.infrastructure.redis import LockService
from orca.workers import billing_tasks
from orca.workers.celery_app import celery_app


class FakeRedis:
    """Just enough of the Redis API for SET NX and the release script"""

    def __init__(self):
        self.store = {}

    async def set(self, key, value, ex=None, nx=False):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def eval(self, script, numkeys, key, value):
        if self.store.get(key) == value:
            del self.store[key]
            return 1
        return 0


class FakeRedisManager:
    client = None

    def __init__(self):
        self.client = FakeRedis()

    async def connect(self, redis_url):
        pass

    async def disconnect(self):
        pass


@pytest.mark.billing
@pytest.mark.unit
class TestLockService:

    async def test_hold_acquires_and_releases(self):
        redis = FakeRedis()
        locks = LockService(redis)

        async with locks.hold("process-due-payments:c1") as acquired:
            assert acquired is True
            assert "lock:process-due-payments:c1" in redis.store

        assert redis.store == {}

    async def test_contended_lock_is_not_acquired(self):
        redis = FakeRedis()
        locks = LockService(redis)
        token = await locks.acquire_lock("expire-credits:c1")

        async with locks.hold("expire-credits:c1") as acquired:
            assert acquired is False

        # The holder's key survives the failed attempt
        assert redis.store["lock:expire-credits:c1"] == token
        assert await locks.release_lock("expire-credits:c1", "someone-else") is False
        assert await locks.release_lock("expire-credits:c1", token) is True


@pytest.mark.billing
@pytest.mark.integration
class TestBillingTasks:

    def test_beat_schedule_registers_billing_jobs(self):
        tasks = {entry["task"] for entry in celery_app.conf.beat_schedule.values()}
        assert tasks == {
            "orca.workers.billing_tasks.process_due_scheduled_payments",
            "orca.workers.billing_tasks.expire_credits",
        }

    async def test_run_for_clinics_visits_active_clinics(self, monkeypatch, session_factory, clinic, other_clinic):
        engine = session_factory.kw["bind"]
        monkeypatch.setattr(billing_tasks, "create_async_engine", lambda *args, **kwargs: engine)
        monkeypatch.setattr(billing_tasks, "RedisManager", FakeRedisManager)

        async def job(db, clinic_id):
            return {"visited": clinic_id}

        results = await billing_tasks.run_for_clinics("expire-credits", job)

        assert results == {
            clinic.id: {"visited": clinic.id},
            other_clinic.id: {"visited": other_clinic.id},
        }
