"""
Battle state machine: pending -> in_progress -> completed.

Only the functions in this module write Battle.status, and every write is a
compare-and-swap (``UPDATE ... WHERE status = <expected>``). Two racing
transitions therefore serialize at the database: one updates the row, the
other sees zero rows updated and reports an InvalidState error.

``user=None`` means the call comes from a scheduled job and skips the
creator check.
"""
import logging
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from battles.errors import AlreadyCompleted, AlreadyStarted, InvalidToken, NotFound, NotStarted, StartInProgress
from battles.models import Battle, BattleProblem, Participant, Profile, ScheduledJob
from battles.services.guards import (
    assert_not_completed,
    assert_pending,
    get_battle_as_creator,
    get_battle_or_404,
)
from battles.services.ingestion import ingest_battle_submissions
from battles.services.problem_selector import choose_problems
from battles.services.scheduler import get_scheduler
from battles.services.validation import validate_battle_details

logger = logging.getLogger(__name__)


def _compare_and_set_status(battle_id, expected, new, **fields) -> bool:
    updated = Battle.objects.filter(id=battle_id, status=expected).update(
        status=new,
        updated_at=timezone.now(),
        **fields,
    )
    return updated == 1


def _load(battle_id, user, action):
    if user is None:
        return get_battle_or_404(battle_id)
    return get_battle_as_creator(battle_id, user, action)


def create_battle(user, details, scheduler=None) -> dict:
    cleaned = validate_battle_details(details)
    scheduler = scheduler or get_scheduler()

    with transaction.atomic():
        battle = Battle.objects.create(created_by=user, **cleaned)
        Participant.objects.create(battle=battle, user=user)

    job = scheduler.schedule_once(battle.start_time, ScheduledJob.KIND_START, battle.id)
    if job is None:
        logger.warning("Battle %s created without a scheduled start; manual start required.", battle.id)
    return {
        "battle": battle,
        "scheduled": job is not None,
        "manual_start_required": job is None,
    }


def join_battle(join_token, user) -> Battle:
    with transaction.atomic():
        battle = Battle.objects.select_for_update().filter(join_token=join_token).first()
        if battle is None:
            raise InvalidToken()
        if battle.status != Battle.STATUS_PENDING:
            raise AlreadyStarted("Battle already started")
        _, created = Participant.objects.get_or_create(battle=battle, user=user)
    if created:
        logger.info("User %s joined battle %s", user.id, battle.id)
    return battle


def _participant_handles(battle):
    return list(
        Profile.objects.filter(user__battle_memberships__battle=battle)
        .exclude(handle_codeforces__isnull=True)
        .exclude(handle_codeforces="")
        .values_list("handle_codeforces", flat=True)
    )


def _arm_running_jobs(battle, scheduler) -> bool:
    scheduler.cancel_all(battle.id, kinds=[ScheduledJob.KIND_START])
    interval = timedelta(seconds=getattr(settings, "BATTLE_POLL_INTERVAL_SECONDS", 60))
    poll_job = scheduler.schedule_recurring(interval, ScheduledJob.KIND_POLL, battle.id)
    end_job = scheduler.schedule_once(battle.end_time, ScheduledJob.KIND_END, battle.id)
    return poll_job is not None and end_job is not None


def start_battle(battle_id, user=None, scheduler=None, client=None, rng=None) -> dict:
    """
    Selects the problems and moves the battle to in_progress.

    The battle clock starts at the transition, so a manual start ahead of the
    scheduled time (or a late recovery start) still gets the full duration.
    """
    scheduler = scheduler or get_scheduler()
    battle = _load(battle_id, user, "start the battle")
    assert_pending(battle)

    if not scheduler.acquire_start_lock(battle.id):
        raise StartInProgress()

    try:
        problems = choose_problems(
            battle.min_rating,
            battle.max_rating,
            battle.num_problems,
            handles=_participant_handles(battle),
            client=client,
            rng=rng,
        )
        with transaction.atomic():
            started_at = timezone.now()
            if not _compare_and_set_status(
                battle.id,
                Battle.STATUS_PENDING,
                Battle.STATUS_IN_PROGRESS,
                start_time=started_at,
                start_error="",
            ):
                if not Battle.objects.filter(id=battle.id).exists():
                    raise NotFound()
                raise AlreadyStarted()
            BattleProblem.objects.bulk_create([
                BattleProblem(
                    battle_id=battle.id,
                    contest_id=problem["contest_id"],
                    index=problem["index"],
                    name=problem.get("name") or "",
                    rating=problem.get("rating"),
                    position=position,
                )
                for position, problem in enumerate(problems, start=1)
            ])
    finally:
        scheduler.release_start_lock(battle.id)

    battle.refresh_from_db()
    scheduled = _arm_running_jobs(battle, scheduler)
    logger.info("Battle %s started with %s problems (scheduled=%s)", battle.id, len(problems), scheduled)
    return {
        "battle": battle,
        "scheduled": scheduled,
        "manual_polling_required": not scheduled,
    }


def end_battle(battle_id, user=None, scheduler=None, client=None) -> Battle:
    """
    Completes the battle and stops its jobs. One last ingestion then picks up
    submissions made after the final poll tick; the window filter drops
    anything past end_time.
    """
    scheduler = scheduler or get_scheduler()
    battle = _load(battle_id, user, "end the battle")
    if battle.status == Battle.STATUS_PENDING:
        raise NotStarted("Ending")
    if battle.status == Battle.STATUS_COMPLETED:
        raise AlreadyCompleted()

    with transaction.atomic():
        if not _compare_and_set_status(battle.id, Battle.STATUS_IN_PROGRESS, Battle.STATUS_COMPLETED):
            raise AlreadyCompleted()

    scheduler.cancel_all(battle.id)
    battle.refresh_from_db()
    try:
        ingest_battle_submissions(battle, client=client)
    except Exception:
        logger.exception("Final ingestion failed for battle %s", battle.id)
    logger.info("Battle %s ended", battle.id)
    return battle


def cancel_battle(battle_id, user, scheduler=None) -> None:
    scheduler = scheduler or get_scheduler()
    battle = get_battle_as_creator(battle_id, user, "cancel the battle")
    assert_not_completed(battle)

    scheduler.cancel_all(battle.id)
    with transaction.atomic():
        _, deleted = Battle.objects.filter(
            id=battle.id,
            status__in=[Battle.STATUS_PENDING, Battle.STATUS_IN_PROGRESS],
        ).delete()
    if not deleted.get(Battle._meta.label):
        raise AlreadyCompleted("Cannot cancel a completed battle")
    logger.info("Battle %s cancelled by user %s", battle.id, user.id)
