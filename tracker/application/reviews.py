"""
Application Use Case — Checkpoint Submission Review

Approving a submission is the only path that releases funds automatically.
The status change and the pro-rata release commit together; the score
recompute is requested for after the commit and cannot fail the review.
"""

import logging

from django.db import transaction
from django.utils import timezone

from tracker.application import ledger
from tracker.application.errors import translate_store_errors
from tracker.application.scoring import request_score_recompute
from tracker.domain.exceptions import InvalidStatus
from tracker.domain.ledger import ZERO
from tracker.models import Checkpoint, CheckpointSubmission

logger = logging.getLogger(__name__)

REVIEW_STATUSES = (
    CheckpointSubmission.STATUS_APPROVED,
    CheckpointSubmission.STATUS_REJECTED,
    CheckpointSubmission.STATUS_REQUIRES_REVISION,
)


@translate_store_errors
def review_submission(checkpoint_id, submission_id, status, reviewer="", review_notes=""):
    """
    Approve, reject or send back a submission.

    On the transition to ``approved``, if the checkpoint has not drawn its
    share yet, that share of the project allocation is released through the
    ledger and the checkpoint is marked. Later approvals of the same or a
    sibling submission release nothing, even after a rejection in between.

    Returns (submission, released_amount). Raises
    Checkpoint.DoesNotExist, CheckpointSubmission.DoesNotExist or InvalidStatus.
    """
    if status not in REVIEW_STATUSES:
        raise InvalidStatus(status, REVIEW_STATUSES)

    released = ZERO
    with transaction.atomic():
        # Checkpoint row serializes concurrent approvals of sibling submissions
        checkpoint = (
            Checkpoint.objects
            .select_for_update()
            .get(id=checkpoint_id)
        )
        submission = (
            CheckpointSubmission.objects
            .select_for_update()
            .get(id=submission_id, checkpoint_id=checkpoint.id)
        )
        project = checkpoint.project
        previous_status = submission.status

        submission.status = status
        submission.review_notes = review_notes or ""
        submission.reviewed_by = reviewer or ""
        submission.reviewed_at = timezone.now()
        submission.save(update_fields=["status", "review_notes", "reviewed_by", "reviewed_at"])

        if status == CheckpointSubmission.STATUS_APPROVED and previous_status != status:
            if checkpoint.funds_released_at is not None:
                logger.info(
                    "Checkpoint %s already drew its share, no auto-release for submission %s",
                    checkpoint.id, submission.id,
                )
            else:
                released = ledger.auto_release_on_approval(project.id, approver=reviewer)
                checkpoint.funds_released_at = timezone.now()
                checkpoint.save(update_fields=["funds_released_at"])

        if previous_status != status:
            request_score_recompute(project.village_id, reason=f"submission {status}")

    logger.info(
        "Submission reviewed: id=%s %s -> %s released=%s",
        submission.id, previous_status, status, released,
    )
    return submission, released
