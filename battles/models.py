import secrets
from datetime import timedelta

from django.db import models
from django.contrib.auth.models import User


def generate_join_token():
    return secrets.token_urlsafe(16)


class Profile(models.Model):
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='profile')
    handle_codeforces = models.CharField(max_length=100, blank=True, null=True, unique=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.user.username} ({self.handle_codeforces or '-'})"


class Battle(models.Model):
    STATUS_PENDING = 'pending'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_COMPLETED = 'completed'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_IN_PROGRESS, 'In progress'),
        (STATUS_COMPLETED, 'Completed'),
    ]

    created_by = models.ForeignKey(User, on_delete=models.CASCADE, related_name='created_battles')
    title = models.CharField(max_length=200)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    start_time = models.DateTimeField()
    duration_min = models.PositiveIntegerField()
    min_rating = models.PositiveIntegerField()
    max_rating = models.PositiveIntegerField()
    num_problems = models.PositiveSmallIntegerField()
    join_token = models.CharField(max_length=64, unique=True, default=generate_join_token)

    # Last failed scheduled start, shown to the creator while the battle is pending.
    start_error = models.CharField(max_length=500, blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-start_time']
        indexes = [
            models.Index(fields=['status', 'start_time'], name='battles_bat_status_6c1f0e_idx'),
        ]

    def __str__(self):
        return f"{self.title} [{self.status}]"

    @property
    def end_time(self):
        return self.start_time + timedelta(minutes=self.duration_min)


class Participant(models.Model):
    battle = models.ForeignKey(Battle, on_delete=models.CASCADE, related_name='participants')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='battle_memberships')
    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['joined_at', 'id']
        constraints = [
            models.UniqueConstraint(fields=['battle', 'user'], name='participant_battle_user_uniq'),
        ]

    def __str__(self):
        return f"{self.user.username} @ {self.battle_id}"


class BattleProblem(models.Model):
    battle = models.ForeignKey(Battle, on_delete=models.CASCADE, related_name='problems')
    contest_id = models.CharField(max_length=20)
    index = models.CharField(max_length=10)
    name = models.CharField(max_length=200, blank=True, default='')
    rating = models.PositiveIntegerField(null=True, blank=True)
    position = models.PositiveSmallIntegerField(help_text="1-based order of selection (P1, P2, ...)")

    class Meta:
        ordering = ['battle', 'position']
        constraints = [
            models.UniqueConstraint(
                fields=['battle', 'contest_id', 'index'],
                name='battle_problem_ref_uniq',
            ),
            models.UniqueConstraint(
                fields=['battle', 'position'],
                name='battle_problem_position_uniq',
            ),
        ]

    def __str__(self):
        return f"{self.label} {self.contest_id}{self.index}"

    @property
    def label(self):
        return f"P{self.position}"


class BattleSubmission(models.Model):
    # Codeforces submission id; unique per battle so repeated polls never duplicate rows.
    external_id = models.CharField(max_length=32)
    battle = models.ForeignKey(Battle, on_delete=models.CASCADE, related_name='submissions')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='battle_submissions')
    contest_id = models.CharField(max_length=20)
    index = models.CharField(max_length=10)
    verdict = models.CharField(max_length=50)
    passed_tests = models.PositiveIntegerField(default=0)
    submitted_at = models.DateTimeField()

    class Meta:
        ordering = ['submitted_at', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['battle', 'external_id'],
                name='battle_submission_external_id_uniq',
            ),
        ]
        indexes = [
            models.Index(fields=['battle', 'user'], name='battles_bat_battle__a4e2d9_idx'),
        ]

    def __str__(self):
        return f"{self.user.username} - {self.contest_id}{self.index} ({self.verdict})"


class ScheduledJob(models.Model):
    KIND_START = 'battle:start'
    KIND_POLL = 'battle:poll-submissions'
    KIND_END = 'battle:end'
    KIND_CHOICES = [
        (KIND_START, 'Start battle'),
        (KIND_POLL, 'Poll submissions'),
        (KIND_END, 'End battle'),
    ]

    battle = models.ForeignKey(Battle, on_delete=models.CASCADE, related_name='scheduled_jobs')
    kind = models.CharField(max_length=40, choices=KIND_CHOICES)
    task_id = models.CharField(max_length=255, blank=True, default='')
    run_at = models.DateTimeField(null=True, blank=True)
    interval_seconds = models.PositiveIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['battle', 'kind'], name='battles_sch_battle__5b7e21_idx'),
        ]

    def __str__(self):
        return f"{self.kind} battle={self.battle_id} task={self.task_id or '-'}"

    @property
    def is_recurring(self):
        return self.interval_seconds is not None
