from django.core.management.base import BaseCommand, CommandError

from tracker.application.ledger import find_ledger_drift


class Command(BaseCommand):
    help = "Replay each project's fund ledger and report projects whose cached totals disagree."

    def add_arguments(self, parser):
        parser.add_argument(
            "--project",
            type=int,
            action="append",
            dest="projects",
            help="Only check this project id (repeatable).",
        )
        parser.add_argument(
            "--fail-on-drift",
            action="store_true",
            help="Exit with an error status when any drift is found.",
        )

    def handle(self, *args, **options):
        drift = find_ledger_drift(options["projects"])

        if not drift:
            self.stdout.write(self.style.SUCCESS("Ledger totals match the transaction log."))
            return

        for project, cached, replayed in drift:
            self.stdout.write(self.style.WARNING(
                f"Project {project.id} ({project.title}): "
                f"cached allocated={cached.allocated} utilized={cached.utilized}, "
                f"log allocated={replayed.allocated} utilized={replayed.utilized}"
            ))

        if options["fail_on_drift"]:
            raise CommandError(f"{len(drift)} project(s) with ledger drift")
