"""
Live battle standings.

Scoring follows the ICPC-style penalty rule: for every solved problem the
participant pays the whole minutes elapsed from the battle start until the
first accepted submission, plus a fixed penalty for every earlier rejected
submission that passed at least one test. Rows are ranked by solved count
(descending) and penalty (ascending). Exact ties keep the participant order
given by the caller; no further tie-break is applied.
"""
from dataclasses import dataclass, field
from datetime import datetime

from django.conf import settings

ACCEPTED_VERDICT = "OK"


@dataclass
class ProblemResult:
    solved: bool
    wrong_attempts: int
    solve_seconds: int = 0


@dataclass
class StandingRow:
    user_id: int
    solved: int = 0
    penalty: int = 0
    rank: int = 0
    problems: dict[str, ProblemResult] = field(default_factory=dict)


def _wrong_attempt_penalty() -> int:
    return int(getattr(settings, "BATTLE_WRONG_ATTEMPT_PENALTY_MINUTES", 10))


def _counts_as_wrong(submission) -> bool:
    return submission.verdict != ACCEPTED_VERDICT and submission.passed_tests > 0


def score_problem(submissions, start_time: datetime) -> tuple[ProblemResult, int]:
    """Result and penalty minutes for one participant on one problem."""
    ordered = sorted(submissions, key=lambda s: s.submitted_at)
    solve = next((s for s in ordered if s.verdict == ACCEPTED_VERDICT), None)

    if solve is None:
        wrong = sum(1 for s in ordered if _counts_as_wrong(s))
        return ProblemResult(solved=False, wrong_attempts=wrong), 0

    wrong = sum(1 for s in ordered if s.submitted_at < solve.submitted_at and _counts_as_wrong(s))
    elapsed_seconds = int((solve.submitted_at - start_time).total_seconds())
    elapsed_minutes = elapsed_seconds // 60
    penalty = elapsed_minutes + wrong * _wrong_attempt_penalty()
    return ProblemResult(solved=True, wrong_attempts=wrong, solve_seconds=elapsed_seconds), penalty


def compute_standings(problems, submissions, participants, start_time: datetime) -> list[StandingRow]:
    """
    problems: objects with contest_id, index and label.
    submissions: objects with user_id, contest_id, index, verdict, passed_tests, submitted_at.
    participants: user ids, in the order exact ties should keep.
    """
    by_key = {}
    for sub in submissions:
        by_key.setdefault((sub.user_id, sub.contest_id, sub.index), []).append(sub)

    rows = []
    for user_id in participants:
        row = StandingRow(user_id=user_id)
        for problem in problems:
            result, penalty = score_problem(
                by_key.get((user_id, problem.contest_id, problem.index), []),
                start_time,
            )
            row.problems[problem.label] = result
            if result.solved:
                row.solved += 1
                row.penalty += penalty
        rows.append(row)

    rows.sort(key=lambda r: (-r.solved, r.penalty))
    for position, row in enumerate(rows, start=1):
        row.rank = position
    return rows
