import logging
import time

from django.db import transaction

from battles.errors import BattleError
from battles.models import BattleSubmission, Participant
from battles.services.codeforces import get_codeforces_client

logger = logging.getLogger(__name__)

# Verdicts that will still change; CF also omits the verdict before judging starts.
TRANSIENT_VERDICTS = {"TESTING", "SUBMITTED"}


def is_terminal_verdict(verdict) -> bool:
    return bool(verdict) and verdict not in TRANSIENT_VERDICTS


def filter_new_submissions(submissions, problem_keys, start_time, end_time, stored_ids) -> list[dict]:
    fresh = []
    for sub in submissions:
        if (sub["contest_id"], sub["problem_index"]) not in problem_keys:
            continue
        if not (start_time <= sub["submission_time"] <= end_time):
            continue
        if sub["external_id"] in stored_ids:
            continue
        if not is_terminal_verdict(sub.get("verdict")):
            continue
        fresh.append(sub)
    return fresh


def store_participant_submissions(battle, user, submissions) -> int:
    """Insert one participant's batch atomically; rows already stored are left untouched."""
    created_count = 0
    with transaction.atomic():
        for sub in submissions:
            _, created = BattleSubmission.objects.get_or_create(
                battle=battle,
                external_id=sub["external_id"],
                defaults={
                    "user": user,
                    "contest_id": sub["contest_id"],
                    "index": sub["problem_index"],
                    "verdict": sub["verdict"],
                    "passed_tests": sub.get("passed_test_count") or 0,
                    "submitted_at": sub["submission_time"],
                },
            )
            if created:
                created_count += 1
    return created_count


def ingest_battle_submissions(battle, client=None) -> dict:
    """
    One poll tick: pulls every participant's Codeforces history and stores the
    new terminal submissions to battle problems inside the battle window.
    A failing participant is logged and skipped; the next tick retries it.
    """
    started = time.monotonic()
    client = client or get_codeforces_client()

    problem_keys = set(battle.problems.values_list("contest_id", "index"))
    stored_ids = set(BattleSubmission.objects.filter(battle=battle).values_list("external_id", flat=True))
    start_time, end_time = battle.start_time, battle.end_time

    participants = list(
        Participant.objects.filter(battle=battle).select_related("user", "user__profile")
    )
    if not problem_keys:
        # Nothing can match; skip the remote calls.
        logger.info("Battle %s has no problems; skipping ingestion", battle.id)
        participants = []
    fetched_total = 0
    created_total = 0
    errored = 0

    for participant in participants:
        user = participant.user
        profile = getattr(user, "profile", None)
        handle = profile.handle_codeforces if profile else None
        if not handle:
            logger.warning("Battle %s participant %s has no Codeforces handle", battle.id, user.id)
            continue

        try:
            submissions = client.list_submissions(handle)
        except BattleError as exc:
            errored += 1
            logger.warning("Polling %s for battle %s failed: %s", handle, battle.id, exc)
            continue

        fetched_total += len(submissions)
        fresh = filter_new_submissions(submissions, problem_keys, start_time, end_time, stored_ids)
        if not fresh:
            continue

        try:
            created = store_participant_submissions(battle, user, fresh)
        except Exception:
            errored += 1
            logger.exception("Failed to insert submissions for battle %s user %s", battle.id, handle)
            continue

        created_total += created
        stored_ids.update(sub["external_id"] for sub in fresh)
        logger.info("Inserted %s new submissions for battle %s user %s", created, battle.id, handle)

    duration_ms = int((time.monotonic() - started) * 1000)
    logger.info(
        "ingest_battle_submissions battle=%s participants=%s fetched=%s created=%s errors=%s duration_ms=%s",
        battle.id,
        len(participants),
        fetched_total,
        created_total,
        errored,
        duration_ms,
    )
    return {
        "battle_id": battle.id,
        "participants": len(participants),
        "fetched": fetched_total,
        "created": created_total,
        "errors": errored,
        "duration_ms": duration_ms,
    }
