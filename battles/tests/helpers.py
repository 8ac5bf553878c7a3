from datetime import timedelta

from django.contrib.auth.models import User
from django.utils import timezone

from battles.errors import UpstreamUnavailable
from battles.models import Battle, BattleProblem, Participant, Profile, ScheduledJob


class FakeScheduler:
    """Records scheduling calls and keeps ScheduledJob rows like the real scheduler."""

    def __init__(self, available=True, lock_free=True):
        self._available = available
        self.lock_free = lock_free
        self.scheduled = []
        self.cancelled = []
        self.released = []

    def available(self):
        return self._available

    def schedule_once(self, when, kind, battle_id):
        if not self._available:
            return None
        self.scheduled.append((kind, battle_id, when))
        return ScheduledJob.objects.create(battle_id=battle_id, kind=kind, run_at=when, task_id=f"task-{kind}")

    def schedule_recurring(self, interval, kind, battle_id):
        if not self._available:
            return None
        self.scheduled.append((kind, battle_id, interval))
        return ScheduledJob.objects.create(
            battle_id=battle_id,
            kind=kind,
            interval_seconds=int(interval.total_seconds()),
            run_at=timezone.now() + interval,
            task_id=f"task-{kind}",
        )

    def reschedule(self, job):
        return True

    def cancel_all(self, battle_id, kinds=None):
        self.cancelled.append((battle_id, kinds))
        jobs = ScheduledJob.objects.filter(battle_id=battle_id)
        if kinds:
            jobs = jobs.filter(kind__in=kinds)
        count, _ = jobs.delete()
        return count

    def acquire_start_lock(self, battle_id):
        return self.lock_free

    def release_start_lock(self, battle_id):
        self.released.append(battle_id)

    def kinds(self):
        return [kind for kind, _battle_id, _when in self.scheduled]


class FakeCodeforces:
    def __init__(self, problems=None, submissions=None, failing_handles=()):
        self.problems = problems or []
        self.submissions = submissions or {}
        self.failing_handles = set(failing_handles)
        self.calls = []

    def list_problems(self, tags=None):
        self.calls.append(("problemset.problems", None))
        return list(self.problems)

    def list_submissions(self, handle, count=None):
        self.calls.append(("user.status", handle))
        if handle in self.failing_handles:
            raise UpstreamUnavailable("Codeforces unreachable")
        return list(self.submissions.get(handle, []))


def make_problem(contest_id, index, rating, type_="PROGRAMMING", tags=None):
    return {
        "contest_id": str(contest_id),
        "index": index,
        "name": f"Problem {contest_id}{index}",
        "type": type_,
        "rating": rating,
        "tags": tags or [],
    }


def make_submission(external_id, contest_id, index, verdict, when, passed=1):
    return {
        "external_id": str(external_id),
        "contest_id": str(contest_id),
        "problem_index": index,
        "verdict": verdict,
        "passed_test_count": passed,
        "submission_time": when,
    }


def make_user(username, handle=None):
    user = User.objects.create_user(username=username, password="StrongPass123!")
    Profile.objects.create(user=user, handle_codeforces=handle or f"{username}_cf")
    return user


def make_battle(creator, status=Battle.STATUS_PENDING, start_time=None, **overrides):
    fields = {
        "title": "Friday battle",
        "start_time": start_time or timezone.now() + timedelta(minutes=5),
        "duration_min": 60,
        "min_rating": 800,
        "max_rating": 1200,
        "num_problems": 3,
    }
    fields.update(overrides)
    battle = Battle.objects.create(created_by=creator, status=status, **fields)
    Participant.objects.create(battle=battle, user=creator)
    return battle


def add_problems(battle, refs):
    return [
        BattleProblem.objects.create(
            battle=battle,
            contest_id=str(contest_id),
            index=index,
            rating=1000,
            position=position,
        )
        for position, (contest_id, index) in enumerate(refs, start=1)
    ]
