from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from django.test import SimpleTestCase

from battles.services.standings import compute_standings

START = datetime(2024, 5, 1, 18, 0, tzinfo=timezone.utc)

P1 = SimpleNamespace(contest_id="1900", index="A", label="P1")
P2 = SimpleNamespace(contest_id="1900", index="B", label="P2")


def sub(user_id, problem, verdict, minutes, passed=1, seconds=0):
    return SimpleNamespace(
        user_id=user_id,
        contest_id=problem.contest_id,
        index=problem.index,
        verdict=verdict,
        passed_tests=passed,
        submitted_at=START + timedelta(minutes=minutes, seconds=seconds),
    )


class StandingsTests(SimpleTestCase):
    def test_wrong_then_accepted_adds_time_and_attempt_penalty(self):
        submissions = [
            sub(1, P1, "WRONG_ANSWER", 2, passed=3),
            sub(1, P1, "OK", 5, passed=10),
        ]

        rows = compute_standings([P1], submissions, [1], START)

        self.assertEqual(rows[0].solved, 1)
        self.assertEqual(rows[0].penalty, 15)
        self.assertEqual(rows[0].problems["P1"].wrong_attempts, 1)
        self.assertEqual(rows[0].problems["P1"].solve_seconds, 300)

    def test_unsolved_problem_has_no_penalty(self):
        submissions = [
            sub(1, P1, "WRONG_ANSWER", 1, passed=4),
            sub(1, P1, "TIME_LIMIT_EXCEEDED", 3, passed=2),
            sub(1, P1, "COMPILATION_ERROR", 4, passed=0),
        ]

        rows = compute_standings([P1], submissions, [1], START)

        self.assertEqual(rows[0].solved, 0)
        self.assertEqual(rows[0].penalty, 0)
        self.assertFalse(rows[0].problems["P1"].solved)
        self.assertEqual(rows[0].problems["P1"].wrong_attempts, 2)

    def test_zero_passed_tests_never_penalized(self):
        submissions = [
            sub(1, P1, "COMPILATION_ERROR", 1, passed=0),
            sub(1, P1, "WRONG_ANSWER", 2, passed=0),
            sub(1, P1, "OK", 7),
        ]

        rows = compute_standings([P1], submissions, [1], START)

        self.assertEqual(rows[0].penalty, 7)

    def test_attempts_after_the_solve_are_ignored(self):
        submissions = [
            sub(1, P1, "OK", 4),
            sub(1, P1, "WRONG_ANSWER", 6, passed=5),
            sub(1, P1, "OK", 8),
        ]

        rows = compute_standings([P1], submissions, [1], START)

        self.assertEqual(rows[0].penalty, 4)
        self.assertEqual(rows[0].problems["P1"].wrong_attempts, 0)

    def test_each_extra_wrong_attempt_adds_exactly_ten(self):
        base = [sub(1, P1, "WRONG_ANSWER", 1, passed=2), sub(1, P1, "OK", 20)]
        extra = base + [sub(1, P1, "RUNTIME_ERROR", 10, passed=1)]

        before = compute_standings([P1], base, [1], START)[0].penalty
        after = compute_standings([P1], extra, [1], START)[0].penalty

        self.assertEqual(after - before, 10)

    def test_solve_time_is_truncated_to_whole_minutes(self):
        rows = compute_standings([P1], [sub(1, P1, "OK", 5, seconds=59)], [1], START)

        self.assertEqual(rows[0].penalty, 5)
        self.assertEqual(rows[0].problems["P1"].solve_seconds, 359)

    def test_submission_order_in_input_does_not_matter(self):
        submissions = [
            sub(1, P1, "OK", 9),
            sub(1, P1, "WRONG_ANSWER", 3, passed=1),
        ]

        rows = compute_standings([P1], submissions, [1], START)

        self.assertEqual(rows[0].penalty, 19)

    def test_more_solved_ranks_above_lower_penalty(self):
        submissions = [
            sub(1, P1, "OK", 50),
            sub(1, P2, "OK", 55),
            sub(2, P1, "OK", 1),
        ]

        rows = compute_standings([P1, P2], submissions, [2, 1], START)

        self.assertEqual([row.user_id for row in rows], [1, 2])
        self.assertEqual(rows[0].rank, 1)
        self.assertGreater(rows[0].penalty, rows[1].penalty)

    def test_equal_solved_sorted_by_penalty(self):
        submissions = [
            sub(1, P1, "OK", 30),
            sub(2, P1, "OK", 10),
        ]

        rows = compute_standings([P1], submissions, [1, 2], START)

        self.assertEqual([row.user_id for row in rows], [2, 1])

    def test_exact_ties_keep_participant_order(self):
        submissions = [
            sub(1, P1, "OK", 10),
            sub(2, P1, "OK", 10),
        ]

        rows = compute_standings([P1], submissions, [2, 1], START)

        self.assertEqual([row.user_id for row in rows], [2, 1])

    def test_participant_without_submissions_is_listed(self):
        rows = compute_standings([P1, P2], [], [7], START)

        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].solved, 0)
        self.assertEqual(set(rows[0].problems), {"P1", "P2"})
