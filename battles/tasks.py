import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.db.models import Exists, OuterRef
from django.utils import timezone

from .errors import BattleError, InvalidState, NotFound, StartInProgress, UpstreamUnavailable
from .models import Battle, ScheduledJob
from .services.ingestion import ingest_battle_submissions
from .services.lifecycle import end_battle, start_battle
from .services.scheduler import get_scheduler

logger = logging.getLogger(__name__)

START_MAX_RETRIES = 5
START_RETRY_BASE_SECONDS = 30
# Longer than the whole retry backoff of start_battle_job.
START_JOB_GRACE = timedelta(seconds=START_RETRY_BASE_SECONDS * (2 ** START_MAX_RETRIES)) + timedelta(minutes=5)
# Poll rows whose next tick is this many intervals overdue lost their chain.
STALE_POLL_INTERVALS = 2


@shared_task(bind=True, max_retries=START_MAX_RETRIES)
def start_battle_job(self, battle_id):
    try:
        result = start_battle(battle_id)
    except (NotFound, InvalidState, StartInProgress) as exc:
        # Redelivery or a manual start won the race; nothing left to do.
        logger.info("start_battle_job battle=%s skipped: %s", battle_id, exc)
        return {"status": "skipped", "battle_id": battle_id, "reason": str(exc)}
    except UpstreamUnavailable as exc:
        logger.warning("start_battle_job battle=%s upstream unavailable; retrying", battle_id)
        try:
            raise self.retry(exc=exc, countdown=START_RETRY_BASE_SECONDS * (2 ** self.request.retries))
        except UpstreamUnavailable:
            Battle.objects.filter(id=battle_id, status=Battle.STATUS_PENDING).update(start_error=str(exc))
            raise
    except BattleError as exc:
        Battle.objects.filter(id=battle_id, status=Battle.STATUS_PENDING).update(start_error=str(exc))
        logger.error("start_battle_job battle=%s failed: %s", battle_id, exc)
        return {"status": "error", "battle_id": battle_id, "reason": str(exc)}

    return {
        "status": "ok",
        "battle_id": battle_id,
        "scheduled": result["scheduled"],
    }


@shared_task
def poll_battle_submissions(battle_id, job_id=None):
    job = None
    if job_id is not None:
        job = ScheduledJob.objects.filter(id=job_id, battle_id=battle_id).first()
        if job is None:
            return {"status": "cancelled", "battle_id": battle_id}

    battle = Battle.objects.filter(id=battle_id).first()
    if battle is None or battle.status != Battle.STATUS_IN_PROGRESS:
        if job is not None:
            job.delete()
        return {"status": "inactive", "battle_id": battle_id}

    try:
        summary = ingest_battle_submissions(battle)
    finally:
        if job is not None:
            get_scheduler().reschedule(job)
    return {"status": "ok", **summary}


@shared_task
def end_battle_job(battle_id):
    try:
        end_battle(battle_id)
    except (NotFound, InvalidState) as exc:
        logger.info("end_battle_job battle=%s skipped: %s", battle_id, exc)
        return {"status": "skipped", "battle_id": battle_id, "reason": str(exc)}
    return {"status": "ok", "battle_id": battle_id}


def _poll_chain_lost(job, now) -> bool:
    last_due = job.run_at or job.created_at
    interval = timedelta(seconds=job.interval_seconds or 0)
    return last_due < now - interval * STALE_POLL_INTERVALS


@shared_task
def recover_battle_schedules():
    """
    Catches up on work the scheduler missed while the broker was down:
    overdue starts, overdue ends and in-progress battles whose poll chain is
    missing or stopped re-enqueueing.
    """
    now = timezone.now()
    scheduler = get_scheduler()
    started = ended = rearmed = 0

    # A start job whose run time passed long ago was lost with the broker.
    has_start_job = ScheduledJob.objects.filter(
        battle=OuterRef("pk"),
        kind=ScheduledJob.KIND_START,
        run_at__gte=now - START_JOB_GRACE,
    )
    overdue_pending = (
        Battle.objects.filter(status=Battle.STATUS_PENDING, start_time__lte=now, start_error="")
        .annotate(has_job=Exists(has_start_job))
        .filter(has_job=False)
        .values_list("id", flat=True)
    )
    for battle_id in overdue_pending:
        start_battle_job.delay(battle_id)
        started += 1

    for battle in Battle.objects.filter(status=Battle.STATUS_IN_PROGRESS):
        if battle.end_time <= now:
            end_battle_job.delay(battle.id)
            ended += 1
            continue
        poll_jobs = list(ScheduledJob.objects.filter(battle=battle, kind=ScheduledJob.KIND_POLL))
        if poll_jobs and all(_poll_chain_lost(job, now) for job in poll_jobs):
            logger.warning("Battle %s poll chain stalled; re-arming", battle.id)
            scheduler.cancel_all(battle.id, kinds=[ScheduledJob.KIND_POLL])
            poll_jobs = []
        if not poll_jobs:
            interval = timedelta(seconds=getattr(settings, "BATTLE_POLL_INTERVAL_SECONDS", 60))
            if scheduler.schedule_recurring(interval, ScheduledJob.KIND_POLL, battle.id):
                rearmed += 1
        if not ScheduledJob.objects.filter(battle=battle, kind=ScheduledJob.KIND_END).exists():
            scheduler.schedule_once(battle.end_time, ScheduledJob.KIND_END, battle.id)

    logger.info(
        "recover_battle_schedules started=%s ended=%s rearmed=%s",
        started,
        ended,
        rearmed,
    )
    return {"started": started, "ended": ended, "rearmed": rearmed}
