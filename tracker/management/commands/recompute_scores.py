from django.core.management.base import BaseCommand

from tracker.application.scoring import recompute_village_score
from tracker.models import Village


class Command(BaseCommand):
    help = "Recompute Adarsh scores, for every active village or the ones given."

    def add_arguments(self, parser):
        parser.add_argument("--village", type=int, action="append", dest="villages", help="Village id (repeatable).")

    def handle(self, *args, **options):
        villages = Village.objects.order_by("id")
        if options["villages"]:
            villages = villages.filter(id__in=options["villages"])
        else:
            villages = villages.filter(is_active=True)

        recomputed = 0
        for village in villages:
            score = recompute_village_score(village.id)
            recomputed += 1
            marker = " (candidate)" if score.is_candidate else ""
            self.stdout.write(f"{village}: {score.overall_score}{marker}")

        self.stdout.write(self.style.SUCCESS(f"Recomputed {recomputed} village score(s)."))
