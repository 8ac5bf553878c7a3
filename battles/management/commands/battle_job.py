from django.core.management.base import BaseCommand, CommandError

from battles.errors import BattleError
from battles.models import Battle
from battles.services.ingestion import ingest_battle_submissions
from battles.services.lifecycle import end_battle, start_battle
from battles.tasks import recover_battle_schedules


class Command(BaseCommand):
    help = "Runs a battle job in-process, for use while the scheduler backend is down."

    def add_arguments(self, parser):
        parser.add_argument(
            "job",
            choices=["start", "poll", "end", "recover"],
            help="Job to run.",
        )
        parser.add_argument(
            "battle_id",
            nargs="?",
            type=int,
            help="Target battle (not needed for recover).",
        )

    def handle(self, *args, **options):
        job = options["job"]
        battle_id = options.get("battle_id")

        if job == "recover":
            result = recover_battle_schedules()
            self.stdout.write(self.style.SUCCESS(f"Recovery done: {result}"))
            return

        if battle_id is None:
            raise CommandError(f"battle_id is required for '{job}'")

        try:
            if job == "start":
                result = start_battle(battle_id)
                if not result["scheduled"]:
                    self.stdout.write(
                        self.style.WARNING(
                            "Scheduler unavailable: run 'battle_job poll' and 'battle_job end' manually."
                        )
                    )
                message = f"Battle {battle_id} started."
            elif job == "end":
                end_battle(battle_id)
                message = f"Battle {battle_id} ended."
            else:
                battle = Battle.objects.filter(id=battle_id).first()
                if battle is None or battle.status != Battle.STATUS_IN_PROGRESS:
                    raise CommandError(f"Battle {battle_id} is not in progress.")
                summary = ingest_battle_submissions(battle)
                message = f"Polled battle {battle_id}: {summary['created']} new submissions, {summary['errors']} errors."
        except BattleError as exc:
            raise CommandError(exc.message)

        self.stdout.write(self.style.SUCCESS(message))
