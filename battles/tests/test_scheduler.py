from datetime import timedelta
from unittest.mock import MagicMock, patch

import redis
from django.test import SimpleTestCase, TestCase
from django.utils import timezone

from battles.models import ScheduledJob
from battles.services.scheduler import BattleScheduler, RedisSchedulerHealth
from battles.tests.helpers import make_battle, make_user


class _Health:
    def __init__(self, up=True):
        self.up = up

    def available(self):
        return self.up


def _app(task_ids=("task-1", "task-2", "task-3")):
    app = MagicMock()
    app.send_task.side_effect = [MagicMock(id=task_id) for task_id in task_ids]
    return app


class BattleSchedulerTests(TestCase):
    def setUp(self):
        self.battle = make_battle(make_user("alice"))
        self.when = timezone.now() + timedelta(minutes=5)

    def test_schedule_once_records_job_with_eta(self):
        app = _app()
        scheduler = BattleScheduler(health=_Health(), app=app, lock_client=MagicMock())

        job = scheduler.schedule_once(self.when, ScheduledJob.KIND_START, self.battle.id)

        self.assertEqual(job.task_id, "task-1")
        self.assertEqual(job.run_at, self.when)
        name = app.send_task.call_args.args[0]
        self.assertEqual(name, "battles.tasks.start_battle_job")
        self.assertEqual(app.send_task.call_args.kwargs["args"], [self.battle.id])
        self.assertEqual(app.send_task.call_args.kwargs["eta"], self.when)

    def test_unavailable_scheduler_returns_none_and_records_nothing(self):
        app = _app()
        scheduler = BattleScheduler(health=_Health(up=False), app=app, lock_client=MagicMock())

        self.assertIsNone(scheduler.schedule_once(self.when, ScheduledJob.KIND_START, self.battle.id))
        self.assertIsNone(
            scheduler.schedule_recurring(timedelta(seconds=60), ScheduledJob.KIND_POLL, self.battle.id)
        )
        app.send_task.assert_not_called()
        self.assertFalse(ScheduledJob.objects.exists())

    def test_send_failure_drops_the_job_row(self):
        app = MagicMock()
        app.send_task.side_effect = ConnectionError("broker gone")
        scheduler = BattleScheduler(health=_Health(), app=app, lock_client=MagicMock())

        self.assertIsNone(scheduler.schedule_once(self.when, ScheduledJob.KIND_END, self.battle.id))
        self.assertFalse(ScheduledJob.objects.exists())

    def test_recurring_job_passes_its_id_and_interval(self):
        app = _app()
        scheduler = BattleScheduler(health=_Health(), app=app, lock_client=MagicMock())

        job = scheduler.schedule_recurring(timedelta(seconds=60), ScheduledJob.KIND_POLL, self.battle.id)

        self.assertTrue(job.is_recurring)
        self.assertEqual(job.interval_seconds, 60)
        self.assertEqual(app.send_task.call_args.kwargs["args"], [self.battle.id, job.id])
        self.assertEqual(app.send_task.call_args.kwargs["countdown"], 60)

    def test_reschedule_updates_task_id(self):
        app = _app()
        scheduler = BattleScheduler(health=_Health(), app=app, lock_client=MagicMock())
        job = scheduler.schedule_recurring(timedelta(seconds=60), ScheduledJob.KIND_POLL, self.battle.id)

        self.assertTrue(scheduler.reschedule(job))

        job.refresh_from_db()
        self.assertEqual(job.task_id, "task-2")

    def test_reschedule_after_cancel_revokes_new_task(self):
        app = _app()
        scheduler = BattleScheduler(health=_Health(), app=app, lock_client=MagicMock())
        job = scheduler.schedule_recurring(timedelta(seconds=60), ScheduledJob.KIND_POLL, self.battle.id)
        ScheduledJob.objects.filter(id=job.id).delete()

        self.assertFalse(scheduler.reschedule(job))
        app.control.revoke.assert_called_once_with("task-2")

    def test_cancel_all_revokes_and_deletes_group(self):
        app = _app()
        scheduler = BattleScheduler(health=_Health(), app=app, lock_client=MagicMock())
        scheduler.schedule_once(self.when, ScheduledJob.KIND_START, self.battle.id)
        scheduler.schedule_recurring(timedelta(seconds=60), ScheduledJob.KIND_POLL, self.battle.id)

        cancelled = scheduler.cancel_all(self.battle.id)

        self.assertEqual(cancelled, 2)
        revoked = {call.args[0] for call in app.control.revoke.call_args_list}
        self.assertEqual(revoked, {"task-1", "task-2"})
        self.assertFalse(ScheduledJob.objects.filter(battle=self.battle).exists())

    def test_cancel_all_respects_kind_filter(self):
        app = _app()
        scheduler = BattleScheduler(health=_Health(), app=app, lock_client=MagicMock())
        scheduler.schedule_once(self.when, ScheduledJob.KIND_START, self.battle.id)
        scheduler.schedule_once(self.when, ScheduledJob.KIND_END, self.battle.id)

        scheduler.cancel_all(self.battle.id, kinds=[ScheduledJob.KIND_START])

        kinds = list(ScheduledJob.objects.filter(battle=self.battle).values_list("kind", flat=True))
        self.assertEqual(kinds, [ScheduledJob.KIND_END])

    def test_cancel_all_on_empty_group_is_noop(self):
        app = _app()
        scheduler = BattleScheduler(health=_Health(), app=app, lock_client=MagicMock())

        self.assertEqual(scheduler.cancel_all(self.battle.id), 0)
        app.control.revoke.assert_not_called()


class StartLockTests(SimpleTestCase):
    def test_lock_uses_set_nx_with_expiry(self):
        lock_client = MagicMock()
        lock_client.set.return_value = True
        scheduler = BattleScheduler(health=_Health(), app=MagicMock(), lock_client=lock_client)

        self.assertTrue(scheduler.acquire_start_lock(7))

        args, kwargs = lock_client.set.call_args
        self.assertEqual(args[0], "battle_start:7")
        self.assertTrue(kwargs["nx"])
        self.assertEqual(kwargs["ex"], 300)

    def test_held_lock_is_reported(self):
        lock_client = MagicMock()
        lock_client.set.return_value = None
        scheduler = BattleScheduler(health=_Health(), app=MagicMock(), lock_client=lock_client)

        self.assertFalse(scheduler.acquire_start_lock(7))

    def test_lock_backend_error_lets_start_proceed(self):
        lock_client = MagicMock()
        lock_client.set.side_effect = redis.ConnectionError("down")
        scheduler = BattleScheduler(health=_Health(), app=MagicMock(), lock_client=lock_client)

        self.assertTrue(scheduler.acquire_start_lock(7))

    def test_release_deletes_key(self):
        lock_client = MagicMock()
        scheduler = BattleScheduler(health=_Health(), app=MagicMock(), lock_client=lock_client)

        scheduler.release_start_lock(7)

        lock_client.delete.assert_called_once_with("battle_start:7")


class RedisSchedulerHealthTests(SimpleTestCase):
    def test_ping_success(self):
        health = RedisSchedulerHealth(url="redis://cache.test:6379/0", timeout=0.5)
        with patch("battles.services.scheduler.redis.Redis.from_url") as from_url:
            from_url.return_value.ping.return_value = True
            self.assertTrue(health.available())

        self.assertEqual(from_url.call_args.kwargs["socket_timeout"], 0.5)

    def test_ping_failure_reports_unavailable(self):
        health = RedisSchedulerHealth(url="redis://cache.test:6379/0", timeout=0.5)
        with patch("battles.services.scheduler.redis.Redis.from_url") as from_url:
            from_url.return_value.ping.side_effect = redis.ConnectionError("refused")
            self.assertFalse(health.available())
