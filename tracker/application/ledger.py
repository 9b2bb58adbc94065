"""
Application Use Cases — Fund Ledger

Every operation here reads and writes a project's running totals inside a
single transaction.atomic() block that first locks the project row with
select_for_update(). Operations on the same project therefore serialize;
operations on different projects run concurrently.

Core guarantees provided:

- All-or-nothing: a rejected operation leaves no FundTransaction row and no
  change to allocated_amount / utilized_amount.
- No lost updates: totals are advanced with F() expressions while the row
  lock is held.
- Invariant utilized_amount <= allocated_amount is checked before any write
  and backed by a database check constraint.
- Totals are maintained incrementally (edits apply a delta); replaying the
  log is only used by the consistency check.
"""

import logging

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from tracker.application.errors import translate_store_errors
from tracker.application.parsing import parse_timestamp
from tracker.domain.exceptions import InvalidAmount, OverRelease
from tracker.domain.ledger import (
    ALLOCATION,
    RELEASE,
    ZERO,
    LedgerTotals,
    parse_amount,
    pro_rata_share,
    replay,
)
from tracker.models import Checkpoint, FundTransaction, Project

logger = logging.getLogger(__name__)

DESCRIPTION_SEPARATOR = " - "


def _lock_project(project_id):
    # Raises Project.DoesNotExist, surfaced by the view as 404
    return (
        Project.objects
        .select_for_update()
        .get(id=project_id)
    )


def _guard_invariant(project, proposed, requested):
    if proposed.is_overdrawn:
        logger.warning(
            "Over-release rejected: project=%s requested=%s allocated=%s utilized=%s",
            project.id, requested, project.allocated_amount, project.utilized_amount,
        )
        raise OverRelease(project.id, requested, LedgerTotals.of(project).remaining)
    if proposed.exceeds_capacity:
        logger.warning(
            "Allocation above storable total rejected: project=%s requested=%s allocated=%s",
            project.id, requested, project.allocated_amount,
        )
        raise InvalidAmount(requested, "project total would exceed the largest storable amount")


def _append(project, transaction_type, amount, description, approver, approved_at):
    entry = FundTransaction.objects.create(
        project=project,
        transaction_type=transaction_type,
        amount=amount,
        description=description,
        approver=approver or "",
        approved_at=approved_at or timezone.now(),
    )

    total_field = "allocated_amount" if transaction_type == ALLOCATION else "utilized_amount"
    Project.objects.filter(id=project.id).update(
        **{total_field: F(total_field) + amount, "updated_at": timezone.now()}
    )

    project.refresh_from_db()
    entry.project = project
    return entry


@translate_store_errors
def allocate(project_id, amount, approver="", description=None, tranche=None, approved_at=None):
    """
    Increase a project's allocation and append an ``allocation`` entry.

    Raises Project.DoesNotExist or InvalidAmount.
    """
    amount = parse_amount(amount)
    approved_at = parse_timestamp(approved_at, "effective_date")

    parts = []
    if tranche:
        parts.append(f"Tranche: {tranche}")
    if description:
        parts.append(description)
    description = DESCRIPTION_SEPARATOR.join(parts) or "Additional fund allocation"

    with transaction.atomic():
        project = _lock_project(project_id)
        _guard_invariant(project, LedgerTotals.of(project).apply(ALLOCATION, amount), amount)
        entry = _append(project, ALLOCATION, amount, description, approver, approved_at)

    logger.info(
        "Funds allocated: project=%s amount=%s allocated=%s",
        project.id, amount, project.allocated_amount,
    )
    return entry


@translate_store_errors
def release(project_id, amount, approver="", description=None, approved_at=None):
    """
    Record utilization of allocated funds.

    Raises Project.DoesNotExist, InvalidAmount or OverRelease. A rejected
    release writes nothing.
    """
    amount = parse_amount(amount)
    approved_at = parse_timestamp(approved_at, "effective_date")

    with transaction.atomic():
        project = _lock_project(project_id)
        proposed = LedgerTotals.of(project).apply(RELEASE, amount)
        _guard_invariant(project, proposed, amount)
        entry = _append(project, RELEASE, amount, description or "Fund release", approver, approved_at)

    logger.info(
        "Funds released: project=%s amount=%s utilized=%s allocated=%s",
        project.id, amount, project.utilized_amount, project.allocated_amount,
    )
    return entry


@translate_store_errors
def edit_transaction(transaction_id, amount=None, description=None):
    """
    Change the amount and/or description of an existing ledger entry.

    The project's totals move by the difference between the new and old
    amount; the log is not replayed. Lowering an allocation below what has
    already been utilized is rejected just like an over-release.

    Raises FundTransaction.DoesNotExist, Project.DoesNotExist, InvalidAmount
    or OverRelease.
    """
    new_amount = parse_amount(amount) if amount is not None else None

    with transaction.atomic():
        project_id = (
            FundTransaction.objects
            .values_list("project_id", flat=True)
            .get(id=transaction_id)
        )
        # Project row first, then the entry: same lock order as release()
        project = _lock_project(project_id)
        entry = (
            FundTransaction.objects
            .select_for_update()
            .get(id=transaction_id)
        )

        update_fields = []
        delta = ZERO
        if new_amount is not None and new_amount != entry.amount:
            delta = new_amount - entry.amount
            proposed = LedgerTotals.of(project).adjust(entry.transaction_type, delta)
            _guard_invariant(project, proposed, delta)

            total_field = (
                "allocated_amount" if entry.transaction_type == ALLOCATION else "utilized_amount"
            )
            Project.objects.filter(id=project.id).update(
                **{total_field: F(total_field) + delta, "updated_at": timezone.now()}
            )
            entry.amount = new_amount
            update_fields.append("amount")

        if description is not None:
            entry.description = description
            update_fields.append("description")

        if update_fields:
            entry.edited_at = timezone.now()
            entry.save(update_fields=update_fields + ["edited_at"])

        project.refresh_from_db()
        entry.project = project

    logger.info(
        "Fund transaction edited: id=%s type=%s delta=%s allocated=%s utilized=%s",
        entry.id, entry.transaction_type, delta, project.allocated_amount, project.utilized_amount,
    )
    return entry


def auto_release_on_approval(project_id, checkpoint_count=None, approver=""):
    """
    Release the pro-rata share of a project's allocation for one approved checkpoint.

    share = allocated_amount / max(checkpoint_count, 1), truncated to cents,
    then clamped to what is still unreleased. Returns the amount actually
    released; zero means nothing was left and no entry was written.

    Must be called inside the caller's transaction so the release commits
    or rolls back together with the approval.
    """
    with transaction.atomic():
        project = _lock_project(project_id)
        if checkpoint_count is None:
            checkpoint_count = Checkpoint.objects.filter(project_id=project.id).count()

        share = pro_rata_share(project.allocated_amount, checkpoint_count)
        remaining = LedgerTotals.of(project).remaining
        amount = min(share, remaining)

        if amount < share:
            logger.warning(
                "Auto-release clamped: project=%s share=%s remaining=%s",
                project.id, share, remaining,
            )
        if amount <= 0:
            logger.info("Auto-release skipped, allocation exhausted: project=%s", project.id)
            return ZERO

        _append(
            project,
            RELEASE,
            amount,
            f"Auto-release for completing checkpoint in: {project.title}",
            approver,
            None,
        )

    logger.info(
        "Auto-release applied: project=%s amount=%s checkpoints=%s",
        project.id, amount, checkpoint_count,
    )
    return amount


def find_ledger_drift(project_ids=None):
    """
    Replay each project's log and compare it with the cached totals.

    Returns a list of (project, cached, replayed) for every project whose
    totals disagree.
    """
    projects = Project.objects.order_by("id")
    if project_ids:
        projects = projects.filter(id__in=project_ids)

    drift = []
    for project in projects.iterator():
        entries = project.fund_transactions.values_list("transaction_type", "amount")
        replayed = replay(entries)
        cached = LedgerTotals.of(project)
        if replayed != cached:
            logger.warning(
                "Ledger drift: project=%s cached=%s replayed=%s",
                project.id, cached, replayed,
            )
            drift.append((project, cached, replayed))
    return drift
