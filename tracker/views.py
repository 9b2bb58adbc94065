"""
API Layer — Village Development Tracker (Django REST Framework)

Thin controllers: each view coerces the request body, delegates to one
application use case and translates the domain exceptions into HTTP
responses. No business rules live here; locking, idempotency and score
recompute triggers all belong to tracker.application.

Error mapping:

- Model.DoesNotExist                  -> 404 {"error": ...}
- InvalidInput / InvariantViolation   -> 400 {"error": ...}
- Conflict                            -> 409 {"error": ...}
- Transient                           -> 503 {"error": ...}
- anything else                       -> 500 via api_exception_handler
"""

import logging

from django.core.exceptions import ObjectDoesNotExist
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView, exception_handler

from tracker.application import ingestion, ledger, projects, reviews
from tracker.domain.exceptions import Conflict, InvalidInput, InvariantViolation, Transient
from tracker.models import AdarshScore
from tracker.serializers import (
    AdarshScoreSerializer,
    CheckpointSerializer,
    CheckpointSubmissionSerializer,
    FundTransactionSerializer,
    PriorityVoteSerializer,
    ProjectSerializer,
    VillageSerializer,
)

logger = logging.getLogger(__name__)

DOMAIN_ERRORS = (ObjectDoesNotExist, InvalidInput, InvariantViolation, Conflict, Transient)


def _error(message, status_code):
    return Response({"error": message}, status=status_code)


def _failure_response(exc):
    if isinstance(exc, ObjectDoesNotExist):
        entity = type(exc).__qualname__.split(".")[0]
        return _error(f"{entity} not found.", status.HTTP_404_NOT_FOUND)
    if isinstance(exc, (InvalidInput, InvariantViolation)):
        return _error(str(exc), status.HTTP_400_BAD_REQUEST)
    if isinstance(exc, Conflict):
        return _error("Request conflicts with existing data.", status.HTTP_409_CONFLICT)
    return _error("Service temporarily unavailable, retry later.", status.HTTP_503_SERVICE_UNAVAILABLE)


def api_exception_handler(exc, context):
    """Keep DRF's handling for API exceptions; turn anything else into a JSON 500."""
    response = exception_handler(exc, context)
    if response is not None:
        return response
    logger.exception("Unhandled error in %s", context.get("view").__class__.__name__, exc_info=exc)
    return _error("Internal server error.", status.HTTP_500_INTERNAL_SERVER_ERROR)


def _actor(request):
    user = getattr(request, "user", None)
    if user is not None and user.is_authenticated:
        return user.get_username()
    return str(request.data.get("actor") or "")


def _required_int(data, name):
    value = data.get(name)
    if value in (None, ""):
        raise InvalidInput(f"{name} is required.", field=name)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{name} must be an integer.", field=name)


def _ledger_payload(message, entry):
    return {
        "message": message,
        "transaction": FundTransactionSerializer(entry).data,
        "project": ProjectSerializer(entry.project).data,
    }


class AllocateFundsView(APIView):
    """POST /api/funds/allocate/"""

    def post(self, request):
        try:
            project_id = _required_int(request.data, "project_id")
            entry = ledger.allocate(
                project_id,
                request.data.get("amount"),
                approver=_actor(request),
                description=request.data.get("note"),
                tranche=request.data.get("tranche"),
                approved_at=request.data.get("effective_date") or None,
            )
        except DOMAIN_ERRORS as exc:
            return _failure_response(exc)

        return Response(_ledger_payload("Funds allocated successfully.", entry), status=status.HTTP_200_OK)


class ReleaseFundsView(APIView):
    """POST /api/funds/release/"""

    def post(self, request):
        try:
            project_id = _required_int(request.data, "project_id")
            entry = ledger.release(
                project_id,
                request.data.get("amount"),
                approver=_actor(request),
                description=request.data.get("note"),
                approved_at=request.data.get("effective_date") or None,
            )
        except DOMAIN_ERRORS as exc:
            return _failure_response(exc)

        return Response(_ledger_payload("Funds released successfully.", entry), status=status.HTTP_200_OK)


class FundTransactionDetailView(APIView):
    """PATCH /api/funds/transactions/<id>/"""

    def patch(self, request, transaction_id):
        amount = request.data.get("amount")
        note = request.data.get("note")
        if amount is None and note is None:
            return _error("amount or note is required.", status.HTTP_400_BAD_REQUEST)

        try:
            entry = ledger.edit_transaction(transaction_id, amount=amount, description=note)
        except DOMAIN_ERRORS as exc:
            return _failure_response(exc)

        return Response(_ledger_payload("Fund transaction updated successfully.", entry))


class ProjectListView(APIView):
    """POST /api/projects/"""

    def post(self, request):
        try:
            village_id = _required_int(request.data, "village_id")
            project = projects.create_project(
                village_id,
                request.data.get("title"),
                request.data.get("allocated_amount"),
                approver=_actor(request),
                description=request.data.get("description"),
                project_type=request.data.get("project_type"),
                start_date=request.data.get("start_date"),
                end_date=request.data.get("end_date"),
                from_vote_id=request.data.get("from_vote_id"),
            )
        except DOMAIN_ERRORS as exc:
            return _failure_response(exc)

        return Response(
            {"message": "Project created successfully.", "project": ProjectSerializer(project).data},
            status=status.HTTP_201_CREATED,
        )


class ProjectDetailView(APIView):
    """PATCH / DELETE /api/projects/<id>/"""

    def patch(self, request, project_id):
        changes = {key: value for key, value in request.data.items() if key != "actor"}
        try:
            project = projects.update_project(project_id, **changes)
        except DOMAIN_ERRORS as exc:
            return _failure_response(exc)

        return Response({"message": "Project updated successfully.", "project": ProjectSerializer(project).data})

    def delete(self, request, project_id):
        try:
            projects.delete_project(project_id)
        except DOMAIN_ERRORS as exc:
            return _failure_response(exc)

        return Response({"message": "Project deleted successfully."})


class CheckpointListView(APIView):
    """POST /api/projects/<id>/checkpoints/"""

    def post(self, request, project_id):
        is_mandatory = request.data.get("is_mandatory")
        try:
            checkpoint = projects.add_checkpoint(
                project_id,
                request.data.get("name"),
                request.data.get("sequence_order"),
                description=request.data.get("description"),
                is_mandatory=True if is_mandatory is None else is_mandatory,
                estimated_date=request.data.get("estimated_date"),
            )
        except DOMAIN_ERRORS as exc:
            return _failure_response(exc)

        return Response(
            {"message": "Checkpoint created successfully.", "checkpoint": CheckpointSerializer(checkpoint).data},
            status=status.HTTP_201_CREATED,
        )


class VillageBaselineView(APIView):
    """PATCH /api/villages/<id>/baseline/"""

    def patch(self, request, village_id):
        metrics = request.data.get("baseline_metrics")
        if metrics is None:
            return _error("baseline_metrics is required.", status.HTTP_400_BAD_REQUEST)

        try:
            village = projects.update_village_baseline(village_id, metrics)
        except DOMAIN_ERRORS as exc:
            return _failure_response(exc)

        return Response({"message": "Village updated successfully.", "village": VillageSerializer(village).data})


class CheckpointSubmissionView(APIView):
    """POST /api/checkpoints/<id>/submissions/"""

    def post(self, request, checkpoint_id):
        submitted_by = request.data.get("volunteer_id") or _actor(request)
        if not submitted_by:
            return _error("volunteer_id is required.", status.HTTP_400_BAD_REQUEST)

        try:
            outcome = ingestion.submit_checkpoint_evidence(
                checkpoint_id,
                submitted_by,
                client_id=request.data.get("client_id"),
                notes=request.data.get("notes"),
                location_lat=request.data.get("location_lat"),
                location_lng=request.data.get("location_lng"),
                submitted_at=request.data.get("submitted_at"),
                media_items=request.data.get("media_items") or (),
            )
        except DOMAIN_ERRORS as exc:
            return _failure_response(exc)

        payload = {"submission": CheckpointSubmissionSerializer(outcome.row).data, "is_new": outcome.is_new}
        if outcome.is_replay:
            return Response({"message": "Request already processed.", **payload}, status=status.HTTP_200_OK)
        return Response({"message": "Submission uploaded successfully.", **payload}, status=status.HTTP_201_CREATED)


class SubmissionReviewView(APIView):
    """POST /api/checkpoints/<id>/submissions/<submission_id>/review/"""

    def post(self, request, checkpoint_id, submission_id):
        try:
            submission, released = reviews.review_submission(
                checkpoint_id,
                submission_id,
                request.data.get("status"),
                reviewer=_actor(request),
                review_notes=request.data.get("review_notes"),
            )
        except DOMAIN_ERRORS as exc:
            return _failure_response(exc)

        village_id = submission.checkpoint.project.village_id
        score = AdarshScore.objects.filter(village_id=village_id).first()
        return Response({
            "message": "Submission reviewed successfully.",
            "submission": CheckpointSubmissionSerializer(submission).data,
            "released_amount": str(released),
            "adarsh": AdarshScoreSerializer(score).data if score else None,
        })


class PriorityVoteView(APIView):
    """POST /api/priority-votes/"""

    def post(self, request):
        data = request.data
        if not all([data.get("village_id"), data.get("required_infrastructure"), data.get("description")]):
            return _error(
                "village_id, required_infrastructure, and description are required.",
                status.HTTP_400_BAD_REQUEST,
            )

        try:
            outcome = ingestion.submit_priority_vote(
                data.get("village_id"),
                data.get("required_infrastructure"),
                description=data.get("description"),
                category=data.get("category"),
                is_volunteer=data.get("is_volunteer", False),
                volunteer_id=data.get("volunteer_id"),
                employee_id=data.get("employee_id"),
                client_id=data.get("client_id"),
                audio_url=data.get("audio_url"),
            )
        except DOMAIN_ERRORS as exc:
            return _failure_response(exc)

        payload = {"priority": PriorityVoteSerializer(outcome.row).data, "is_new": outcome.is_new}
        if outcome.is_replay:
            return Response({"message": "Priority vote already submitted.", **payload})
        if outcome.is_merge:
            return Response({"message": "Vote added successfully.", **payload})
        return Response(
            {"message": "Priority vote submitted successfully.", **payload},
            status=status.HTTP_201_CREATED,
        )


class PriorityVoteVerifyView(APIView):
    """POST /api/priority-votes/<id>/verify/"""

    def post(self, request, vote_id):
        try:
            vote = ingestion.verify_priority_vote(
                vote_id,
                request.data.get("volunteer_id"),
                request.data.get("status"),
                notes=request.data.get("notes"),
            )
        except DOMAIN_ERRORS as exc:
            return _failure_response(exc)

        return Response({"message": f"Vote {vote.status} successfully.", "vote": PriorityVoteSerializer(vote).data})


def _sync_payload(message, report):
    return {
        "message": message,
        "synced_map": report.synced_map,
        "synced_count": report.synced_count,
        "duplicate_count": report.duplicate_count,
        "failed": report.failures,
    }


class SyncReportsView(APIView):
    """POST /api/sync/reports/"""

    def post(self, request):
        try:
            report = ingestion.sync_submissions(
                request.data.get("volunteer_id"),
                request.data.get("reports"),
            )
        except DOMAIN_ERRORS as exc:
            return _failure_response(exc)

        return Response(_sync_payload("Reports synced successfully.", report))


class SyncPriorityVotesView(APIView):
    """POST /api/sync/priority-votes/"""

    def post(self, request):
        try:
            report = ingestion.sync_priority_votes(
                request.data.get("votes"),
                volunteer_id=request.data.get("volunteer_id"),
            )
        except DOMAIN_ERRORS as exc:
            return _failure_response(exc)

        return Response(_sync_payload("Votes synced successfully.", report))
