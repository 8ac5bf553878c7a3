import battles.models
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Battle',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=200)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('in_progress', 'In progress'), ('completed', 'Completed')], default='pending', max_length=20)),
                ('start_time', models.DateTimeField()),
                ('duration_min', models.PositiveIntegerField()),
                ('min_rating', models.PositiveIntegerField()),
                ('max_rating', models.PositiveIntegerField()),
                ('num_problems', models.PositiveSmallIntegerField()),
                ('join_token', models.CharField(default=battles.models.generate_join_token, max_length=64, unique=True)),
                ('start_error', models.CharField(blank=True, default='', max_length=500)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='created_battles', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-start_time'],
                'indexes': [models.Index(fields=['status', 'start_time'], name='battles_bat_status_6c1f0e_idx')],
            },
        ),
        migrations.CreateModel(
            name='Profile',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('handle_codeforces', models.CharField(blank=True, max_length=100, null=True, unique=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='profile', to=settings.AUTH_USER_MODEL)),
            ],
        ),
        migrations.CreateModel(
            name='Participant',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('joined_at', models.DateTimeField(auto_now_add=True)),
                ('battle', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='participants', to='battles.battle')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='battle_memberships', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['joined_at', 'id'],
                'constraints': [models.UniqueConstraint(fields=('battle', 'user'), name='participant_battle_user_uniq')],
            },
        ),
        migrations.CreateModel(
            name='BattleProblem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('contest_id', models.CharField(max_length=20)),
                ('index', models.CharField(max_length=10)),
                ('name', models.CharField(blank=True, default='', max_length=200)),
                ('rating', models.PositiveIntegerField(blank=True, null=True)),
                ('position', models.PositiveSmallIntegerField(help_text='1-based order of selection (P1, P2, ...)')),
                ('battle', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='problems', to='battles.battle')),
            ],
            options={
                'ordering': ['battle', 'position'],
                'constraints': [
                    models.UniqueConstraint(fields=('battle', 'contest_id', 'index'), name='battle_problem_ref_uniq'),
                    models.UniqueConstraint(fields=('battle', 'position'), name='battle_problem_position_uniq'),
                ],
            },
        ),
        migrations.CreateModel(
            name='BattleSubmission',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('external_id', models.CharField(max_length=32)),
                ('contest_id', models.CharField(max_length=20)),
                ('index', models.CharField(max_length=10)),
                ('verdict', models.CharField(max_length=50)),
                ('passed_tests', models.PositiveIntegerField(default=0)),
                ('submitted_at', models.DateTimeField()),
                ('battle', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='submissions', to='battles.battle')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='battle_submissions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['submitted_at', 'id'],
                'indexes': [models.Index(fields=['battle', 'user'], name='battles_bat_battle__a4e2d9_idx')],
                'constraints': [models.UniqueConstraint(fields=('battle', 'external_id'), name='battle_submission_external_id_uniq')],
            },
        ),
        migrations.CreateModel(
            name='ScheduledJob',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('kind', models.CharField(choices=[('battle:start', 'Start battle'), ('battle:poll-submissions', 'Poll submissions'), ('battle:end', 'End battle')], max_length=40)),
                ('task_id', models.CharField(blank=True, default='', max_length=255)),
                ('run_at', models.DateTimeField(blank=True, null=True)),
                ('interval_seconds', models.PositiveIntegerField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('battle', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='scheduled_jobs', to='battles.battle')),
            ],
            options={
                'indexes': [models.Index(fields=['battle', 'kind'], name='battles_sch_battle__5b7e21_idx')],
            },
        ),
    ]
