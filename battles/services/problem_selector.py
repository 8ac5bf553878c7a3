import logging
import random

from battles.errors import BattleError, InsufficientProblems
from battles.services.codeforces import get_codeforces_client

logger = logging.getLogger(__name__)

SPECIAL_TAG = "*special"


def is_candidate(problem: dict, min_rating: int, max_rating: int) -> bool:
    rating = problem.get("rating")
    if rating is None or not (min_rating <= rating <= max_rating):
        return False
    if problem.get("type") != "PROGRAMMING":
        return False
    return SPECIAL_TAG not in (problem.get("tags") or [])


def collect_solved_problems(handles, client) -> set[tuple[str, str]]:
    """Problems already accepted by any of the handles. Failures are skipped."""
    solved = set()
    for handle in handles:
        if not handle:
            continue
        try:
            submissions = client.list_submissions(handle)
        except BattleError:
            logger.warning("Could not load solved problems for %s; selecting without exclusion.", handle)
            continue
        for sub in submissions:
            if sub.get("verdict") == "OK":
                solved.add((sub["contest_id"], sub["problem_index"]))
    return solved


def choose_problems(min_rating, max_rating, count, handles=(), client=None, rng=None) -> list[dict]:
    client = client or get_codeforces_client()
    rng = rng or random.SystemRandom()

    catalog = client.list_problems()
    solved = collect_solved_problems(handles, client)

    candidates = {}
    for problem in catalog:
        if not is_candidate(problem, min_rating, max_rating):
            continue
        key = (problem["contest_id"], problem["index"])
        if key in solved or key in candidates:
            continue
        candidates[key] = problem

    if len(candidates) < count:
        raise InsufficientProblems(min_rating, max_rating, found=len(candidates), requested=count)

    # Sort first so a seeded rng gives reproducible picks regardless of catalog order.
    ordered = [candidates[key] for key in sorted(candidates)]
    chosen = rng.sample(ordered, count)
    logger.info(
        "Selected %s problems rating=%s-%s candidates=%s excluded_solved=%s",
        count,
        min_rating,
        max_rating,
        len(candidates),
        len(solved),
    )
    return chosen
