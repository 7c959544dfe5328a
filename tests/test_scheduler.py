"""
任务调度器测试
"""
import pytest

from rc_core.tasks import TaskScheduler


class TestTaskScheduler:

    async def test_run_service_passes_config(self):
        scheduler = TaskScheduler()
        received = []

        async def handler(config):
            received.append(config)
            return {"done": True}

        scheduler.register_handler("demo.job", handler)

        assert await scheduler.run_service("demo.job", {"limit": 5}) == {"done": True}
        assert received == [{"limit": 5}]

    async def test_failed_job_is_logged_not_raised(self):
        scheduler = TaskScheduler()

        async def handler(config):
            raise RuntimeError("boom")

        scheduler.register_handler("demo.failing", handler)

        assert await scheduler.run_service("demo.failing") is None
        assert not scheduler._running_jobs

    def test_add_service_without_handler_is_skipped(self):
        scheduler = TaskScheduler()

        scheduler.add_service("demo.unknown", "interval", "60")

        assert scheduler.scheduler.get_job("demo.unknown") is None

    def test_unknown_service_type(self):
        scheduler = TaskScheduler()
        scheduler.register_handler("demo.job", lambda config: None)

        with pytest.raises(ValueError):
            scheduler.add_service("demo.job", "weekly", "1")

    def test_cron_service(self):
        scheduler = TaskScheduler()
        scheduler.register_handler("demo.job", lambda config: None)

        scheduler.add_service("demo.job", "cron", "*/5 * * * *")

        assert scheduler.scheduler.get_job("demo.job").name == "demo.job"
