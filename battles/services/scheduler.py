"""
Scheduling of battle jobs on top of Celery.

Every job sent for a battle is recorded as a ScheduledJob row; the rows of a
battle form its job group, and cancelling the group revokes their task ids
and deletes the rows. Recurring jobs re-enqueue themselves while their row
exists, so deleting the row also stops the chain.

When the broker is down, scheduling calls log and return None instead of
raising; callers treat that as "manual trigger required".
"""
import logging
import time
from datetime import timedelta

import redis
from celery import current_app
from django.conf import settings
from django.utils import timezone

from battles.models import ScheduledJob

logger = logging.getLogger(__name__)

TASK_NAMES = {
    ScheduledJob.KIND_START: "battles.tasks.start_battle_job",
    ScheduledJob.KIND_POLL: "battles.tasks.poll_battle_submissions",
    ScheduledJob.KIND_END: "battles.tasks.end_battle_job",
}


class RedisSchedulerHealth:
    def __init__(self, url=None, timeout=None):
        self.url = url or getattr(settings, "CELERY_BROKER_URL", "redis://localhost:6379/0")
        self.timeout = timeout or getattr(settings, "SCHEDULER_HEALTH_TIMEOUT_SECONDS", 1.0)
        self._client = None

    @property
    def client(self):
        if self._client is None:
            self._client = redis.Redis.from_url(
                self.url,
                socket_timeout=self.timeout,
                socket_connect_timeout=self.timeout,
            )
        return self._client

    def available(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            logger.warning("Scheduler backend unreachable at %s", self.url)
            return False


class BattleScheduler:
    def __init__(self, health=None, app=None, lock_client=None):
        self.health = health or RedisSchedulerHealth()
        self.app = app or current_app
        self._lock_client = lock_client

    def available(self) -> bool:
        return self.health.available()

    def _get_lock_client(self):
        if self._lock_client is None:
            self._lock_client = getattr(self.health, "client", None)
        return self._lock_client

    def _send(self, job: ScheduledJob, eta=None, countdown=None):
        args = [job.battle_id]
        if job.kind == ScheduledJob.KIND_POLL:
            args.append(job.id)
        try:
            result = self.app.send_task(TASK_NAMES[job.kind], args=args, eta=eta, countdown=countdown)
        except Exception:
            logger.exception("Failed to enqueue %s for battle %s", job.kind, job.battle_id)
            return None
        return result.id

    def schedule_once(self, when, kind, battle_id):
        if not self.available():
            logger.warning("Scheduler unavailable; %s for battle %s needs a manual trigger.", kind, battle_id)
            return None

        job = ScheduledJob.objects.create(battle_id=battle_id, kind=kind, run_at=when)
        task_id = self._send(job, eta=when)
        if not task_id:
            job.delete()
            return None
        job.task_id = task_id
        job.save(update_fields=["task_id"])
        logger.info("Scheduled %s for battle %s at %s", kind, battle_id, when.isoformat())
        return job

    def schedule_recurring(self, interval: timedelta, kind, battle_id):
        if not self.available():
            logger.warning("Scheduler unavailable; recurring %s for battle %s not armed.", kind, battle_id)
            return None

        seconds = max(1, int(interval.total_seconds()))
        job = ScheduledJob.objects.create(
            battle_id=battle_id,
            kind=kind,
            interval_seconds=seconds,
            run_at=timezone.now() + timedelta(seconds=seconds),
        )
        task_id = self._send(job, countdown=seconds)
        if not task_id:
            job.delete()
            return None
        job.task_id = task_id
        job.save(update_fields=["task_id"])
        logger.info("Scheduled %s for battle %s every %ss", kind, battle_id, seconds)
        return job

    def reschedule(self, job: ScheduledJob) -> bool:
        """Enqueue the next tick of a recurring job. False if the chain stopped."""
        if not job.is_recurring:
            return False
        task_id = self._send(job, countdown=job.interval_seconds)
        if not task_id:
            return False
        updated = ScheduledJob.objects.filter(id=job.id).update(
            task_id=task_id,
            run_at=timezone.now() + timedelta(seconds=job.interval_seconds),
        )
        if not updated:
            # Cancelled between the tick and the re-enqueue.
            self._revoke(task_id)
            return False
        return True

    def _revoke(self, task_id):
        try:
            self.app.control.revoke(task_id)
        except Exception:
            logger.exception("Failed to revoke task %s", task_id)

    def cancel_all(self, battle_id, kinds=None) -> int:
        jobs = ScheduledJob.objects.filter(battle_id=battle_id)
        if kinds:
            jobs = jobs.filter(kind__in=list(kinds))
        jobs = list(jobs)
        for job in jobs:
            if job.task_id:
                self._revoke(job.task_id)
        if jobs:
            ScheduledJob.objects.filter(id__in=[job.id for job in jobs]).delete()
            logger.info("Cancelled %s jobs for battle %s", len(jobs), battle_id)
        return len(jobs)

    def acquire_start_lock(self, battle_id) -> bool:
        client = self._get_lock_client()
        if client is None:
            return True
        ttl = int(getattr(settings, "BATTLE_START_LOCK_SECONDS", 300))
        try:
            return bool(client.set(f"battle_start:{battle_id}", str(time.time()), nx=True, ex=ttl))
        except Exception:
            logger.exception("Lock failure for battle_start:%s; continuing without lock.", battle_id)
            return True

    def release_start_lock(self, battle_id) -> None:
        client = self._get_lock_client()
        if client is None:
            return
        try:
            client.delete(f"battle_start:{battle_id}")
        except Exception:
            logger.exception("Failed to release battle_start:%s", battle_id)


_scheduler = None


def get_scheduler():
    global _scheduler
    if _scheduler is None:
        _scheduler = BattleScheduler()
    return _scheduler
