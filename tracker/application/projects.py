"""
Application Use Cases — Projects, Checkpoints and Village Baselines

These are the remaining writes that feed the Adarsh score. Each one commits
its own change and then requests a recompute for the affected village.
Fund totals are never written here: a new project gets its money through
ledger.allocate(), and direct edits of the totals are refused.
"""

import logging
from decimal import Decimal, InvalidOperation

from django.db import transaction

from tracker.application import ledger
from tracker.application.errors import translate_store_errors
from tracker.application.parsing import parse_date
from tracker.application.scoring import request_score_recompute
from tracker.domain.exceptions import InvalidInput, InvalidStatus
from tracker.domain.ledger import parse_amount
from tracker.domain.scoring import BASELINE_METRIC_KEYS
from tracker.models import Checkpoint, PriorityVote, Project, Village

logger = logging.getLogger(__name__)

EDITABLE_PROJECT_FIELDS = ("title", "description", "project_type", "status", "start_date", "end_date")
LEDGER_CONTROLLED_FIELDS = ("allocated_amount", "utilized_amount")
PROJECT_STATUSES = tuple(choice for choice, _ in Project.STATUS_CHOICES)


@translate_store_errors
def create_project(village_id, title, allocated_amount, approver="", description="", project_type="",
                   start_date=None, end_date=None, from_vote_id=None):
    """
    Create a project together with its initial allocation entry.

    If from_vote_id is given, that priority vote of the same village is
    marked as converted. Raises Village.DoesNotExist,
    PriorityVote.DoesNotExist, InvalidInput or InvalidAmount.
    """
    if not title:
        raise InvalidInput("title is required", field="title")
    amount = parse_amount(allocated_amount)

    with transaction.atomic():
        village = Village.objects.get(id=village_id)
        project = Project.objects.create(
            village=village,
            title=title,
            description=description or "",
            project_type=project_type or "",
            start_date=parse_date(start_date, "start_date"),
            end_date=parse_date(end_date, "end_date"),
        )
        ledger.allocate(
            project.id,
            amount,
            approver=approver,
            description="Initial fund allocation for project",
        )

        if from_vote_id:
            vote = (
                PriorityVote.objects
                .select_for_update()
                .get(id=from_vote_id, village_id=village.id)
            )
            vote.status = PriorityVote.STATUS_CONVERTED
            vote.save(update_fields=["status"])

        project.refresh_from_db()
        request_score_recompute(village.id, reason="project created")

    logger.info("Project created: id=%s village=%s allocated=%s", project.id, village.id, amount)
    return project


@translate_store_errors
def update_project(project_id, **changes):
    """
    Update descriptive fields and status of a project.

    Raises Project.DoesNotExist, InvalidInput or InvalidStatus.
    """
    forbidden = [name for name in LEDGER_CONTROLLED_FIELDS if name in changes]
    if forbidden:
        raise InvalidInput(
            "Fund totals can only change through fund allocations and releases",
            field=forbidden[0],
        )
    unknown = [name for name in changes if name not in EDITABLE_PROJECT_FIELDS]
    if unknown:
        raise InvalidInput(f"Unknown project field: {unknown[0]}", field=unknown[0])
    if "status" in changes and changes["status"] not in PROJECT_STATUSES:
        raise InvalidStatus(changes["status"], PROJECT_STATUSES)
    if "title" in changes and not changes["title"]:
        raise InvalidInput("title cannot be empty", field="title")

    with transaction.atomic():
        project = (
            Project.objects
            .select_for_update()
            .get(id=project_id)
        )
        for name, value in changes.items():
            if name.endswith("_date"):
                value = parse_date(value, name)
            elif value is None:
                value = ""
            setattr(project, name, value)
        if changes:
            project.save(update_fields=list(changes) + ["updated_at"])
        request_score_recompute(project.village_id, reason="project updated")

    logger.info("Project updated: id=%s fields=%s", project.id, sorted(changes))
    return project


@translate_store_errors
def delete_project(project_id):
    """
    Delete a project with its checkpoints, submissions, media and ledger entries.

    Raises Project.DoesNotExist.
    """
    with transaction.atomic():
        project = (
            Project.objects
            .select_for_update()
            .get(id=project_id)
        )
        village_id = project.village_id
        ledger_entries = project.fund_transactions.count()
        project.delete()
        request_score_recompute(village_id, reason="project deleted")

    logger.info(
        "Project deleted: id=%s village=%s ledger entries removed=%s",
        project_id, village_id, ledger_entries,
    )
    return village_id


@translate_store_errors
def add_checkpoint(project_id, name, sequence_order, description="", is_mandatory=True, estimated_date=None):
    """Raises Project.DoesNotExist or InvalidInput."""
    if not name:
        raise InvalidInput("name is required", field="name")
    try:
        sequence_order = int(sequence_order)
    except (TypeError, ValueError):
        raise InvalidInput("sequence_order must be an integer", field="sequence_order")
    if sequence_order < 0:
        raise InvalidInput("sequence_order cannot be negative", field="sequence_order")

    with transaction.atomic():
        project = Project.objects.get(id=project_id)
        checkpoint = Checkpoint.objects.create(
            project=project,
            name=name,
            description=description or "",
            sequence_order=sequence_order,
            is_mandatory=bool(is_mandatory),
            estimated_date=parse_date(estimated_date, "estimated_date"),
        )
        request_score_recompute(project.village_id, reason="checkpoint added")

    logger.info("Checkpoint created: id=%s project=%s", checkpoint.id, project.id)
    return checkpoint


def _clean_baseline_metrics(metrics):
    if not isinstance(metrics, dict):
        raise InvalidInput("baseline_metrics must be an object", field="baseline_metrics")

    cleaned = dict(metrics)
    for key in BASELINE_METRIC_KEYS:
        value = metrics.get(key)
        if value is None:
            continue
        try:
            number = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise InvalidInput(f"{key} must be a number", field=key)
        if not number.is_finite() or number < 0:
            raise InvalidInput(f"{key} must be a non-negative number", field=key)
    return cleaned


@translate_store_errors
def update_village_baseline(village_id, baseline_metrics):
    """
    Merge new values into a village's baseline metrics.

    Raises Village.DoesNotExist or InvalidInput.
    """
    metrics = _clean_baseline_metrics(baseline_metrics)

    with transaction.atomic():
        village = (
            Village.objects
            .select_for_update()
            .get(id=village_id)
        )
        village.baseline_metrics = {**(village.baseline_metrics or {}), **metrics}
        village.save(update_fields=["baseline_metrics", "updated_at"])
        request_score_recompute(village.id, reason="baseline updated")

    logger.info("Village baseline updated: id=%s keys=%s", village.id, sorted(metrics))
    return village
