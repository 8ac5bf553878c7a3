import json
import logging
from functools import wraps

from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from .errors import BattleError, ValidationError
from .services import lifecycle, queries

logger = logging.getLogger(__name__)


def battle_api(view):
    """Translates BattleError into a JSON error body with its status code."""
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except BattleError as exc:
            return JsonResponse({"error": exc.message}, status=exc.status_code)
    return wrapper


def _json_body(request):
    try:
        return json.loads(request.body or b"{}")
    except ValueError:
        raise ValidationError("Request body must be valid JSON")


def _user_payload(user):
    profile = getattr(user, "profile", None)
    return {
        "id": user.id,
        "username": user.username,
        "handle": profile.handle_codeforces if profile else None,
    }


def _battle_payload(battle, user=None):
    payload = {
        "id": battle.id,
        "title": battle.title,
        "status": battle.status,
        "created_by": battle.created_by_id,
        "start_time": battle.start_time.isoformat(),
        "end_time": battle.end_time.isoformat(),
        "duration_min": battle.duration_min,
        "min_rating": battle.min_rating,
        "max_rating": battle.max_rating,
        "num_problems": battle.num_problems,
    }
    if user is not None and battle.created_by_id == user.id:
        payload["join_token"] = battle.join_token
        payload["start_error"] = battle.start_error or None
    return payload


@login_required
@require_POST
@battle_api
def create_battle(request):
    result = lifecycle.create_battle(request.user, _json_body(request))
    battle = result["battle"]
    return JsonResponse({
        "battleId": battle.id,
        "joinToken": battle.join_token,
        "scheduled": result["scheduled"],
        "manualStartRequired": result["manual_start_required"],
    }, status=201)


@login_required
@require_POST
@battle_api
def join_battle(request, join_token):
    battle = lifecycle.join_battle(join_token, request.user)
    return JsonResponse({"battleId": battle.id})


@login_required
@require_GET
@battle_api
def user_battles(request):
    battles = queries.get_user_battles(request.user)
    return JsonResponse([_battle_payload(b, request.user) for b in battles], safe=False)


@login_required
@require_GET
@battle_api
def battle_detail(request, battle_id):
    battle = queries.get_battle(battle_id, request.user)
    return JsonResponse(_battle_payload(battle, request.user))


@login_required
@require_GET
@battle_api
def battle_participants(request, battle_id):
    participants = queries.get_participants(battle_id, request.user)
    return JsonResponse([_user_payload(p.user) for p in participants], safe=False)


@login_required
@require_GET
@battle_api
def battle_problems(request, battle_id):
    problems = queries.get_problems(battle_id, request.user)
    return JsonResponse([
        {
            "id": p.id,
            "label": p.label,
            "contest_id": p.contest_id,
            "index": p.index,
            "name": p.name,
            "rating": p.rating,
            "url": f"https://codeforces.com/contest/{p.contest_id}/problem/{p.index}",
        }
        for p in problems
    ], safe=False)


@login_required
@require_GET
@battle_api
def battle_standings(request, battle_id):
    _battle, _problems, rows = queries.get_standings(battle_id, request.user)
    return JsonResponse([
        {
            "rank": row.rank,
            "user_id": row.user_id,
            "solved": row.solved,
            "penalty": row.penalty,
            "problems": {
                label: {
                    "solved": result.solved,
                    "wrong_attempts": result.wrong_attempts,
                    "solve_seconds": result.solve_seconds,
                }
                for label, result in row.problems.items()
            },
        }
        for row in rows
    ], safe=False)


@login_required
@require_GET
@battle_api
def battle_submissions(request, battle_id):
    submissions = queries.get_submissions(battle_id, request.user)
    return JsonResponse([
        {
            "id": s.external_id,
            "user_id": s.user_id,
            "contest_id": s.contest_id,
            "index": s.index,
            "verdict": s.verdict,
            "passed_tests": s.passed_tests,
            "time": s.submitted_at.isoformat(),
        }
        for s in submissions
    ], safe=False)


@login_required
@require_POST
@battle_api
def refresh_submissions(request, battle_id):
    summary = queries.refresh_submissions(battle_id, request.user)
    return JsonResponse({"message": "Submissions refreshed successfully", "created": summary["created"]})


@login_required
@require_POST
@battle_api
def cancel_battle(request, battle_id):
    lifecycle.cancel_battle(battle_id, request.user)
    return JsonResponse({"message": "Battle cancelled successfully"})


@login_required
@require_POST
@battle_api
def start_battle(request, battle_id):
    result = lifecycle.start_battle(battle_id, request.user)
    return JsonResponse({
        "battle": _battle_payload(result["battle"], request.user),
        "scheduled": result["scheduled"],
        "manualPollingRequired": result["manual_polling_required"],
    })


@login_required
@require_POST
@battle_api
def end_battle(request, battle_id):
    lifecycle.end_battle(battle_id, request.user)
    return JsonResponse({"message": "Battle ended successfully"})
