"""
Application Use Cases — Adarsh Score Recompute

recompute_village_score() reads a village's current facts, runs the pure
scoring function and upserts the single AdarshScore row for the village.
It is a full overwrite, so redundant or concurrent calls converge on the
same row.

Mutations that change a scoring input call request_score_recompute(). The
request is registered with transaction.on_commit(), so it runs only after
the triggering write has committed, and it goes through the handler named
by settings.TRACKER_SCORE_RECOMPUTE_HANDLER. The default handler recomputes
synchronously and logs failures instead of raising: scoring is best-effort
relative to the write that triggered it.
"""

import logging
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Q, Sum
from django.utils.module_loading import import_string

from tracker.domain.scoring import VillageFacts, compute_score
from tracker.models import AdarshScore, Checkpoint, CheckpointSubmission, Project, Village

logger = logging.getLogger(__name__)

DEFAULT_RECOMPUTE_HANDLER = "tracker.application.scoring.recompute_quietly"

SCORE_FIELDS = (
    "overall_score",
    "infrastructure_score",
    "completion_rate_score",
    "social_indicators_score",
    "feedback_score",
    "fund_utilization_score",
    "is_candidate",
    "score_breakdown",
)


def collect_village_facts(village_id):
    """Raises Village.DoesNotExist."""
    village = Village.objects.get(id=village_id)

    projects = Project.objects.filter(village_id=village.id).aggregate(
        total=Count("id"),
        completed=Count("id", filter=Q(status=Project.STATUS_COMPLETED)),
        allocated=Sum("allocated_amount"),
        utilized=Sum("utilized_amount"),
    )

    checkpoints = Checkpoint.objects.filter(project__village_id=village.id)
    approved_checkpoints = (
        checkpoints
        .filter(submissions__status=CheckpointSubmission.STATUS_APPROVED)
        .distinct()
        .count()
    )

    reviews = CheckpointSubmission.objects.filter(
        checkpoint__project__village_id=village.id,
    ).aggregate(
        approved=Count("id", filter=Q(status=CheckpointSubmission.STATUS_APPROVED)),
        rejected=Count("id", filter=Q(status=CheckpointSubmission.STATUS_REJECTED)),
    )

    return VillageFacts(
        baseline_metrics=village.baseline_metrics or {},
        total_projects=projects["total"],
        completed_projects=projects["completed"],
        total_checkpoints=checkpoints.count(),
        approved_checkpoints=approved_checkpoints,
        approved_submissions=reviews["approved"],
        rejected_submissions=reviews["rejected"],
        total_allocated=projects["allocated"] or Decimal("0"),
        total_utilized=projects["utilized"] or Decimal("0"),
    )


def recompute_village_score(village_id):
    """
    Recompute and upsert the AdarshScore row for one village.

    Raises Village.DoesNotExist.
    """
    facts = collect_village_facts(village_id)
    card = compute_score(facts)

    score = AdarshScore(
        village_id=village_id,
        overall_score=card.overall_score,
        infrastructure_score=card.breakdown()["infrastructure"],
        completion_rate_score=card.breakdown()["completion_rate"],
        social_indicators_score=card.breakdown()["social_indicators"],
        feedback_score=card.breakdown()["feedback"],
        fund_utilization_score=card.breakdown()["fund_utilization"],
        is_candidate=card.is_candidate,
        score_breakdown=card.breakdown(),
    )

    # INSERT ... ON CONFLICT (village_id) DO UPDATE
    AdarshScore.objects.bulk_create(
        [score],
        update_conflicts=True,
        unique_fields=["village"],
        update_fields=list(SCORE_FIELDS),
    )

    logger.info(
        "Adarsh score recomputed: village=%s overall=%s candidate=%s",
        village_id, card.overall_score, card.is_candidate,
    )
    return score


def recompute_quietly(village_id, reason=""):
    """Default recompute handler: never raises."""
    try:
        return recompute_village_score(village_id)
    except Exception:
        logger.exception("Adarsh score recompute failed: village=%s reason=%s", village_id, reason)
        return None


def _dispatch(village_id, reason):
    handler_path = getattr(settings, "TRACKER_SCORE_RECOMPUTE_HANDLER", DEFAULT_RECOMPUTE_HANDLER)
    try:
        handler = import_string(handler_path)
        handler(village_id, reason=reason)
    except Exception:
        logger.exception(
            "Adarsh score recompute handler %s failed: village=%s reason=%s",
            handler_path, village_id, reason,
        )


def request_score_recompute(village_id, reason=""):
    """
    Ask for a village score recompute once the current transaction commits.

    Outside an atomic block the request is dispatched immediately.
    """
    logger.debug("Score recompute requested: village=%s reason=%s", village_id, reason)
    transaction.on_commit(lambda: _dispatch(village_id, reason))
