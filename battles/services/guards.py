from battles.errors import (
    AlreadyCompleted,
    AlreadyStarted,
    CreatorOnly,
    NotFound,
    NotInProgress,
    NotStarted,
    PermissionDenied,
)
from battles.models import Battle, Participant


def get_battle_or_404(battle_id) -> Battle:
    battle = Battle.objects.filter(id=battle_id).first()
    if battle is None:
        raise NotFound()
    return battle


def is_member(battle: Battle, user) -> bool:
    if battle.created_by_id == user.id:
        return True
    return Participant.objects.filter(battle=battle, user=user).exists()


def get_battle_with_access(battle_id, user) -> Battle:
    """Creator or participant."""
    battle = get_battle_or_404(battle_id)
    if not is_member(battle, user):
        raise PermissionDenied("You are not allowed to view this battle")
    return battle


def get_battle_as_creator(battle_id, user, action="perform this action") -> Battle:
    battle = get_battle_or_404(battle_id)
    if battle.created_by_id != user.id:
        raise CreatorOnly(action)
    return battle


def assert_pending(battle: Battle):
    if battle.status != Battle.STATUS_PENDING:
        raise AlreadyStarted()


def assert_started(battle: Battle, resource="Resource"):
    if battle.status == Battle.STATUS_PENDING:
        raise NotStarted(resource)


def assert_in_progress(battle: Battle, action="This action"):
    if battle.status != Battle.STATUS_IN_PROGRESS:
        raise NotInProgress(action)


def assert_not_completed(battle: Battle):
    if battle.status == Battle.STATUS_COMPLETED:
        raise AlreadyCompleted("Cannot cancel a completed battle")
