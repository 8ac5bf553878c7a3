import random
from datetime import datetime, timezone

from django.test import SimpleTestCase

from battles.errors import InsufficientProblems, InsufficientResources
from battles.services.problem_selector import choose_problems
from battles.tests.helpers import FakeCodeforces, make_problem, make_submission

WHEN = datetime(2024, 5, 1, tzinfo=timezone.utc)


class ProblemSelectorTests(SimpleTestCase):
    def test_filters_rating_type_and_special_problems(self):
        client = FakeCodeforces(problems=[
            make_problem(1, "A", 1000),
            make_problem(2, "A", 1100),
            make_problem(3, "A", 1050),
            make_problem(4, "A", 1200),
            make_problem(5, "A", None),
            make_problem(6, "A", 1000, type_="QUESTION"),
            make_problem(7, "A", 1000, tags=["*special", "math"]),
        ])

        chosen = choose_problems(1000, 1100, 3, client=client, rng=random.Random(1))

        self.assertEqual({p["contest_id"] for p in chosen}, {"1", "2", "3"})

    def test_returns_exactly_count_distinct_problems(self):
        catalog = [make_problem(c, i, 1000) for c in range(10, 20) for i in "AB"]
        catalog += [make_problem(10, "A", 1000)]
        client = FakeCodeforces(problems=catalog)

        for seed in range(5):
            chosen = choose_problems(900, 1100, 6, client=client, rng=random.Random(seed))
            keys = [(p["contest_id"], p["index"]) for p in chosen]
            self.assertEqual(len(keys), 6)
            self.assertEqual(len(set(keys)), 6)

    def test_excludes_problems_already_solved_by_participants(self):
        client = FakeCodeforces(
            problems=[make_problem(1, "A", 1000), make_problem(2, "A", 1000), make_problem(3, "A", 1000)],
            submissions={
                "alice": [make_submission(1, 1, "A", "OK", WHEN)],
                "bob": [make_submission(2, 2, "A", "WRONG_ANSWER", WHEN)],
            },
        )

        chosen = choose_problems(900, 1100, 2, handles=["alice", "bob"], client=client, rng=random.Random(0))

        self.assertEqual({p["contest_id"] for p in chosen}, {"2", "3"})

    def test_solved_lookup_failure_does_not_block_selection(self):
        client = FakeCodeforces(
            problems=[make_problem(1, "A", 1000), make_problem(2, "A", 1000)],
            failing_handles={"alice"},
        )

        chosen = choose_problems(900, 1100, 2, handles=["alice"], client=client, rng=random.Random(0))

        self.assertEqual(len(chosen), 2)

    def test_insufficient_candidates_raise(self):
        client = FakeCodeforces(problems=[make_problem(1, "A", 1000), make_problem(2, "B", 1100)])

        with self.assertRaises(InsufficientProblems) as ctx:
            choose_problems(1000, 1100, 3, client=client)

        self.assertIsInstance(ctx.exception, InsufficientResources)
        self.assertIn("1000-1100", ctx.exception.message)
