from battles.models import Battle, BattleProblem, BattleSubmission, Participant
from battles.services.guards import assert_in_progress, assert_started, get_battle_with_access
from battles.services.ingestion import ingest_battle_submissions
from battles.services.standings import compute_standings


def get_user_battles(user):
    return list(
        Battle.objects.filter(participants__user=user)
        .select_related("created_by")
        .distinct()
        .order_by("-start_time")
    )


def get_battle(battle_id, user) -> Battle:
    return get_battle_with_access(battle_id, user)


def get_participants(battle_id, user) -> list[Participant]:
    battle = get_battle_with_access(battle_id, user)
    return list(battle.participants.select_related("user", "user__profile"))


def get_problems(battle_id, user) -> list[BattleProblem]:
    battle = get_battle_with_access(battle_id, user)
    assert_started(battle, "Problems")
    return list(battle.problems.order_by("position"))


def get_submissions(battle_id, user) -> list[BattleSubmission]:
    battle = get_battle_with_access(battle_id, user)
    assert_started(battle, "Submissions")
    return list(battle.submissions.select_related("user").order_by("submitted_at", "id"))


def get_standings(battle_id, user):
    """Always computed from the stored problems and submissions."""
    battle = get_battle_with_access(battle_id, user)
    assert_started(battle, "Standings")

    problems = list(battle.problems.order_by("position"))
    submissions = list(battle.submissions.all())
    participant_ids = list(battle.participants.values_list("user_id", flat=True))
    return battle, problems, compute_standings(problems, submissions, participant_ids, battle.start_time)


def refresh_submissions(battle_id, user, client=None) -> dict:
    battle = get_battle_with_access(battle_id, user)
    assert_in_progress(battle, "Refreshing submissions")
    return ingest_battle_submissions(battle, client=client)
