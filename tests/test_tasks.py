"""
Tests for the Celery maintenance task and beat schedule.
"""

from orderpay import tasks
from orderpay.celery_worker import celery_app


class TestCleanupTask:

    def test_scheduled_by_beat(self):
        entry = celery_app.conf.beat_schedule["cleanup-expired-otps"]

        assert entry["task"] == "orderpay.tasks.cleanup_expired_otps"
        assert entry["schedule"] == 60.0

    def test_reports_removed_count(self, monkeypatch):
        async def fake_cleanup():
            return 3

        monkeypatch.setattr(tasks, "_cleanup", fake_cleanup)
        result = tasks.cleanup_expired_otps.apply().get()

        assert result["success"] is True
        assert result["removed"] == 3
