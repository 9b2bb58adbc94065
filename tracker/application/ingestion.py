"""
Application Use Cases — Idempotent Ingestion of Field Data

Checkpoint evidence and priority votes arrive from volunteers' devices,
either one at a time or as offline batches, and may be delivered more than
once. Each incoming item is resolved with tracker.domain.merge.resolve():

- a row already carrying the item's client_id      -> NoOp, nothing written
- a vote row with the same (village, infrastructure) -> MergeInto, total_votes + 1
- otherwise                                         -> Insert

Core guarantees provided:

- Idempotency: client_id is UNIQUE in the database. An insert that loses a
  race against a concurrent delivery of the same client_id is rolled back to
  its savepoint and resolved again as a replay.
- Counter safety: merges lock the target row and increment with an F()
  expression.
- Batch isolation: every batch item runs in its own transaction. A failing
  item is logged, reported and left out of the synced map; it never rolls
  back items already committed.

Known gap: a merged vote does not store the merging submitter's client_id
(the row keeps the client_id of the vote that created it). A retry of that
merged submission is therefore indistinguishable from a new vote and
increments total_votes again. Closing it needs one row per voter.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import F

from tracker.application.errors import translate_store_errors
from tracker.application.parsing import parse_coordinate, parse_int, parse_timestamp
from tracker.application.scoring import request_score_recompute
from tracker.domain.exceptions import IdempotencyReplay, InvalidInput, InvalidStatus
from tracker.domain.merge import Insert, MergeInto, NoOp, normalize_client_id, resolve, vote_semantic_key
from tracker.models import Checkpoint, CheckpointSubmission, PriorityVote, SubmissionMedia, SyncLog, Village

logger = logging.getLogger(__name__)

MEDIA_TYPE_ALIASES = {"photo": "image"}
MEDIA_TYPES = {choice for choice, _ in SubmissionMedia.MEDIA_TYPES}

VOTE_REVIEW_STATUSES = (PriorityVote.STATUS_VERIFIED, PriorityVote.STATUS_REJECTED)


@dataclass(frozen=True)
class IngestionOutcome:
    decision: Any
    row: Any

    @property
    def is_new(self):
        return isinstance(self.decision, Insert)

    @property
    def is_merge(self):
        return isinstance(self.decision, MergeInto)

    @property
    def is_replay(self):
        return isinstance(self.decision, NoOp)


@dataclass
class SyncReport:
    """Acknowledgment for an offline batch."""

    synced_map: dict = field(default_factory=dict)
    synced_count: int = 0
    duplicate_count: int = 0
    failures: list = field(default_factory=list)

    def record(self, client_id, outcome):
        self.synced_map[client_id] = outcome.row.id
        if outcome.is_replay:
            self.duplicate_count += 1
        else:
            self.synced_count += 1

    def record_failure(self, index, client_id, exc):
        self.failures.append({"index": index, "client_id": client_id, "error": str(exc)})

    @property
    def status(self):
        if not self.failures:
            return SyncLog.STATUS_SUCCESS
        if self.synced_map:
            return SyncLog.STATUS_PARTIAL
        return SyncLog.STATUS_FAILED


def _clean_media(item):
    if not isinstance(item, dict) or not item.get("file_url"):
        raise InvalidInput("each media item needs a file_url", field="media_items")

    media_type = str(item.get("media_type") or "image").lower()
    media_type = MEDIA_TYPE_ALIASES.get(media_type, media_type)
    if media_type not in MEDIA_TYPES:
        media_type = "other"

    file_size = item.get("file_size")
    if file_size not in (None, ""):
        file_size = parse_int(file_size, "file_size")
    else:
        file_size = None

    return {
        "media_type": media_type,
        "file_url": item["file_url"],
        "file_name": item.get("file_name") or "",
        "file_size": file_size,
        "mime_type": item.get("mime_type") or "",
        "metadata": item.get("metadata") or {},
    }


def _insert_submission(checkpoint, client_id, fields):
    try:
        with transaction.atomic():
            return CheckpointSubmission.objects.create(
                checkpoint=checkpoint,
                client_id=client_id,
                status=CheckpointSubmission.STATUS_PENDING,
                **fields,
            )
    except IntegrityError:
        if client_id is None:
            raise
        raise IdempotencyReplay(client_id)


def _ingest_submission(checkpoint_id, submitted_by, client_id=None, notes="", location_lat=None,
                       location_lng=None, submitted_at=None, media_items=()):
    """Returns (IngestionOutcome, village_id). Raises Checkpoint.DoesNotExist or InvalidInput."""
    if not submitted_by:
        raise InvalidInput("submitted_by is required", field="submitted_by")

    client_id = normalize_client_id(client_id)
    fields = {
        "submitted_by": str(submitted_by),
        "notes": notes or "",
        "location_lat": parse_coordinate(location_lat, "location_lat"),
        "location_lng": parse_coordinate(location_lng, "location_lng"),
        "submitted_at": parse_timestamp(submitted_at, "submitted_at"),
    }
    media = [_clean_media(item) for item in media_items or ()]

    with transaction.atomic():
        checkpoint = (
            Checkpoint.objects
            .select_related("project")
            .get(id=parse_int(checkpoint_id, "checkpoint_id"))
        )
        village_id = checkpoint.project.village_id

        replayed_id = None
        if client_id:
            replayed_id = (
                CheckpointSubmission.objects
                .filter(client_id=client_id)
                .values_list("id", flat=True)
                .first()
            )

        # Submissions carry no aggregate counter, so there is no semantic merge tier
        decision = resolve(fields, replayed_id=replayed_id)

        if isinstance(decision, Insert):
            try:
                submission = _insert_submission(checkpoint, client_id, fields)
            except IdempotencyReplay:
                logger.info("Idempotency replay on insert: submission client_id=%s", client_id)
                submission = CheckpointSubmission.objects.get(client_id=client_id)
                return IngestionOutcome(NoOp(submission.id), submission), village_id

            SubmissionMedia.objects.bulk_create(
                [SubmissionMedia(submission=submission, **item) for item in media]
            )
            logger.info(
                "Submission created: id=%s checkpoint=%s client_id=%s media=%s",
                submission.id, checkpoint.id, client_id, len(media),
            )
            return IngestionOutcome(decision, submission), village_id

    logger.info("Submission already processed: client_id=%s id=%s", client_id, decision.existing_id)
    return IngestionOutcome(decision, CheckpointSubmission.objects.get(id=decision.existing_id)), village_id


@translate_store_errors
def submit_checkpoint_evidence(checkpoint_id, submitted_by, client_id=None, notes="", location_lat=None,
                               location_lng=None, submitted_at=None, media_items=()):
    """
    Record evidence for one checkpoint from a single online request.

    Raises Checkpoint.DoesNotExist or InvalidInput. A client_id that was
    already processed returns the existing submission untouched.
    """
    outcome, _ = _ingest_submission(
        checkpoint_id,
        submitted_by,
        client_id=client_id,
        notes=notes,
        location_lat=location_lat,
        location_lng=location_lng,
        submitted_at=submitted_at,
        media_items=media_items,
    )
    return outcome


def _apply_vote(village_id, infrastructure, client_id, fields):
    with transaction.atomic():
        replayed_id = None
        if client_id:
            replayed_id = (
                PriorityVote.objects
                .filter(client_id=client_id)
                .values_list("id", flat=True)
                .first()
            )

        matches = PriorityVote.objects.filter(
            village_id=village_id,
            required_infrastructure=infrastructure,
        )
        if client_id:
            matches = matches.exclude(client_id=client_id)
        semantic_match_id = matches.values_list("id", flat=True).first()

        decision = resolve(fields, replayed_id=replayed_id, semantic_match_id=semantic_match_id)

        if isinstance(decision, NoOp):
            logger.info("Priority vote already processed: client_id=%s id=%s", client_id, decision.existing_id)
            return IngestionOutcome(decision, PriorityVote.objects.get(id=decision.existing_id))

        if isinstance(decision, MergeInto):
            vote = (
                PriorityVote.objects
                .select_for_update()
                .get(id=decision.existing_id)
            )
            # The row keeps its original client_id
            PriorityVote.objects.filter(id=vote.id).update(total_votes=F("total_votes") + 1)
            vote.refresh_from_db()
            logger.info(
                "Priority vote merged: id=%s total_votes=%s incoming client_id=%s",
                vote.id, vote.total_votes, client_id,
            )
            return IngestionOutcome(decision, vote)

        vote = PriorityVote.objects.create(
            village_id=village_id,
            required_infrastructure=infrastructure,
            client_id=client_id,
            total_votes=1,
            **fields,
        )
        logger.info("Priority vote created: id=%s village=%s client_id=%s", vote.id, village_id, client_id)
        return IngestionOutcome(decision, vote)


@translate_store_errors
def submit_priority_vote(village_id, required_infrastructure, description="", category="",
                         is_volunteer=False, volunteer_id="", employee_id="", client_id=None,
                         audio_url="", submitted_at=None):
    """
    Record a demand for infrastructure in a village.

    Raises Village.DoesNotExist or InvalidInput. Returns an IngestionOutcome
    whose decision says whether a row was inserted, merged into, or left
    alone because the client_id was already processed.
    """
    if not required_infrastructure or not str(required_infrastructure).strip():
        raise InvalidInput("required_infrastructure is required", field="required_infrastructure")

    village_id = parse_int(village_id, "village_id")
    village_id, infrastructure = vote_semantic_key(village_id, required_infrastructure)
    Village.objects.only("id").get(id=village_id)

    client_id = normalize_client_id(client_id)
    fields = {
        "description": description or "",
        "category": category or "",
        "is_volunteer": bool(is_volunteer),
        "volunteer_id": str(volunteer_id or ""),
        "employee_id": str(employee_id or ""),
        "audio_url": audio_url or "",
        "submitted_at": parse_timestamp(submitted_at, "submitted_at"),
    }

    try:
        return _apply_vote(village_id, infrastructure, client_id, fields)
    except IntegrityError:
        # A concurrent delivery inserted the same client_id or semantic key first
        logger.info("Priority vote insert lost a race, resolving again: client_id=%s", client_id)
        return _apply_vote(village_id, infrastructure, client_id, fields)


@translate_store_errors
def verify_priority_vote(vote_id, volunteer_id, status, notes=""):
    """Raises PriorityVote.DoesNotExist, InvalidInput or InvalidStatus."""
    if not volunteer_id:
        raise InvalidInput("volunteer_id is required", field="volunteer_id")
    if status not in VOTE_REVIEW_STATUSES:
        raise InvalidStatus(status, VOTE_REVIEW_STATUSES)

    with transaction.atomic():
        vote = (
            PriorityVote.objects
            .select_for_update()
            .get(id=vote_id)
        )
        vote.status = status
        vote.volunteer_id = str(volunteer_id)
        vote.verification_notes = notes or ""
        vote.save(update_fields=["status", "volunteer_id", "verification_notes"])

    logger.info("Priority vote %s: id=%s volunteer=%s", status, vote.id, volunteer_id)
    return vote


def _require_batch(items, name):
    if not isinstance(items, list) or not items:
        raise InvalidInput(f"{name} must be a non-empty array", field=name)


def _item_client_id(item):
    if not isinstance(item, dict):
        return None
    return normalize_client_id(item.get("client_id"))


def _write_sync_log(volunteer_id, sync_type, report):
    try:
        SyncLog.objects.create(
            volunteer_id=str(volunteer_id or ""),
            sync_type=sync_type,
            client_ids=list(report.synced_map),
            failed_client_ids=[f["client_id"] for f in report.failures if f["client_id"]],
            synced_count=report.synced_count,
            sync_status=report.status,
        )
    except DatabaseError:
        # The items are already committed; losing the audit row must not fail the ack
        logger.exception("Could not write %s sync log for volunteer=%s", sync_type, volunteer_id)


@translate_store_errors
def sync_submissions(volunteer_id, reports):
    """
    Ingest an offline batch of checkpoint reports.

    Every item with a client_id that resolves to a row (new or already
    processed) appears in the returned synced_map. Scores are recomputed once
    per village that received a new submission.
    """
    if not volunteer_id:
        raise InvalidInput("volunteer_id is required", field="volunteer_id")
    _require_batch(reports, "reports")

    report = SyncReport()
    villages = set()

    for index, item in enumerate(reports):
        client_id = _item_client_id(item)
        try:
            if not isinstance(item, dict):
                raise InvalidInput("each report must be an object")
            if not client_id:
                raise InvalidInput("client_id is required", field="client_id")
            if not item.get("checkpoint_id"):
                raise InvalidInput("checkpoint_id is required", field="checkpoint_id")

            outcome, village_id = _ingest_submission(
                item["checkpoint_id"],
                volunteer_id,
                client_id=client_id,
                notes=item.get("notes"),
                location_lat=item.get("location_lat"),
                location_lng=item.get("location_lng"),
                submitted_at=item.get("submitted_at"),
                media_items=item.get("media_items") or (),
            )
        except Exception as exc:
            logger.warning("Skipping report index=%s client_id=%s: %s", index, client_id, exc)
            report.record_failure(index, client_id, exc)
            continue

        report.record(client_id, outcome)
        if outcome.is_new:
            villages.add(village_id)

    for village_id in sorted(villages):
        request_score_recompute(village_id, reason="offline report sync")

    _write_sync_log(volunteer_id, SyncLog.TYPE_REPORTS, report)
    logger.info(
        "Report sync finished: volunteer=%s synced=%s duplicates=%s failed=%s",
        volunteer_id, report.synced_count, report.duplicate_count, len(report.failures),
    )
    return report


@translate_store_errors
def sync_priority_votes(votes, volunteer_id=None):
    """Ingest an offline batch of priority votes; same contract as sync_submissions()."""
    _require_batch(votes, "votes")

    report = SyncReport()

    for index, item in enumerate(votes):
        client_id = _item_client_id(item)
        try:
            if not isinstance(item, dict):
                raise InvalidInput("each vote must be an object")
            if not client_id:
                raise InvalidInput("client_id is required", field="client_id")
            if not item.get("village_id"):
                raise InvalidInput("village_id is required", field="village_id")

            outcome = submit_priority_vote(
                item["village_id"],
                item.get("required_infrastructure"),
                description=item.get("description"),
                category=item.get("category"),
                is_volunteer=item.get("is_volunteer", False),
                volunteer_id=item.get("volunteer_id") or volunteer_id,
                employee_id=item.get("employee_id"),
                client_id=client_id,
                submitted_at=item.get("created_at") or item.get("submitted_at"),
            )
        except Exception as exc:
            logger.warning("Skipping vote index=%s client_id=%s: %s", index, client_id, exc)
            report.record_failure(index, client_id, exc)
            continue

        report.record(client_id, outcome)

    _write_sync_log(volunteer_id, SyncLog.TYPE_PRIORITY_VOTES, report)
    logger.info(
        "Vote sync finished: volunteer=%s synced=%s duplicates=%s failed=%s",
        volunteer_id, report.synced_count, report.duplicate_count, len(report.failures),
    )
    return report
