"""
Persistence Models — Village Development Tracker (Django ORM)

This module defines the persistence layer for the three pieces of coupled
state the tracker keeps consistent: the per-project fund ledger, the derived
per-village composite score, and the idempotently ingested field data
(checkpoint evidence and priority votes).

Key decisions:

- Project carries two denormalized running totals (allocated_amount,
  utilized_amount). They are a fold over FundTransaction rows, maintained
  incrementally by tracker.application.ledger under a row lock. Database
  check constraints back the invariant utilized_amount <= allocated_amount.
- FundTransaction rows cascade with their project; deleting a project erases
  its ledger.
- client_id columns are UNIQUE at the database level so at-least-once
  delivery from offline clients can never create a second row.
- PriorityVote is unique per semantic key (village, required_infrastructure);
  repeat demands merge into total_votes instead of adding rows.
- AdarshScore uses the village as its primary key: at most one row per
  village, replaced wholesale on every recompute.
"""

from decimal import Decimal

from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

ZERO = Decimal("0.00")


class Village(models.Model):
    """
    A village whose development is tracked.

    baseline_metrics holds survey figures used by the scoring engine:
    infrastructure_score, healthcare_facilities, schools, literacy_rate and
    employment_rate.
    """

    name = models.CharField(max_length=100)
    state = models.CharField(max_length=50)
    district = models.CharField(max_length=50)
    block = models.CharField(max_length=50, blank=True)
    population = models.PositiveIntegerField(null=True, blank=True)
    baseline_metrics = models.JSONField(default=dict, blank=True)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name}, {self.district}"


class Project(models.Model):
    """
    A development project funded through the ledger.

    allocated_amount and utilized_amount must only be written by the ledger
    use cases; they are never accepted from request bodies.
    """

    STATUS_PLANNED = "planned"
    STATUS_IN_PROGRESS = "in_progress"
    STATUS_COMPLETED = "completed"
    STATUS_ON_HOLD = "on_hold"
    STATUS_CHOICES = (
        (STATUS_PLANNED, "Planned"),
        (STATUS_IN_PROGRESS, "In progress"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_ON_HOLD, "On hold"),
    )

    village = models.ForeignKey(
        Village,
        on_delete=models.CASCADE,
        related_name="projects",
    )
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    project_type = models.CharField(max_length=50, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PLANNED)

    allocated_amount = models.DecimalField(max_digits=15, decimal_places=2, default=ZERO)
    utilized_amount = models.DecimalField(max_digits=15, decimal_places=2, default=ZERO)

    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.CheckConstraint(
                condition=Q(allocated_amount__gte=0) & Q(utilized_amount__gte=0),
                name="project_non_negative_fund_totals",
            ),
            models.CheckConstraint(
                condition=Q(utilized_amount__lte=F("allocated_amount")),
                name="project_utilized_not_above_allocated",
            ),
        ]

    def __str__(self):
        return f"Project {self.id} - {self.title}"


class FundTransaction(models.Model):
    """
    One entry of the append-only fund ledger.

    created_at and id only define display order; validity of the running
    totals never depends on it.
    """

    TYPE_ALLOCATION = "allocation"
    TYPE_RELEASE = "release"
    TYPE_CHOICES = (
        (TYPE_ALLOCATION, "Allocation"),
        (TYPE_RELEASE, "Release"),
    )

    project = models.ForeignKey(
        Project,
        on_delete=models.CASCADE,
        related_name="fund_transactions",
    )
    transaction_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    description = models.TextField(blank=True)
    approver = models.CharField(max_length=150, blank=True)
    approved_at = models.DateTimeField(default=timezone.now)

    created_at = models.DateTimeField(auto_now_add=True)
    edited_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="fund_transaction_positive_amount",
            ),
        ]

    def __str__(self):
        return f"{self.get_transaction_type_display()} {self.id} - {self.amount}"


class Checkpoint(models.Model):
    """
    A project milestone that needs evidence before it counts as complete.

    funds_released_at is set the first time a submission for the checkpoint
    is approved; it stays set whatever happens to that submission later, so
    a checkpoint draws its share of the allocation at most once.
    """

    project = models.ForeignKey(
        Project,
        on_delete=models.CASCADE,
        related_name="checkpoints",
    )
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    sequence_order = models.PositiveIntegerField()
    is_mandatory = models.BooleanField(default=True)
    estimated_date = models.DateField(null=True, blank=True)
    funds_released_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["sequence_order", "id"]

    def __str__(self):
        return f"Checkpoint {self.sequence_order} - {self.name}"


class CheckpointSubmission(models.Model):
    """
    Evidence for one checkpoint attempt.

    client_id is generated by the mobile client per physical submission and
    is UNIQUE, so offline retries resolve to the row created first.
    """

    STATUS_PENDING = "pending"
    STATUS_APPROVED = "approved"
    STATUS_REJECTED = "rejected"
    STATUS_REQUIRES_REVISION = "requires_revision"
    STATUS_CHOICES = (
        (STATUS_PENDING, "Pending"),
        (STATUS_APPROVED, "Approved"),
        (STATUS_REJECTED, "Rejected"),
        (STATUS_REQUIRES_REVISION, "Requires revision"),
    )
    TERMINAL_STATUSES = (STATUS_APPROVED, STATUS_REJECTED)

    checkpoint = models.ForeignKey(
        Checkpoint,
        on_delete=models.CASCADE,
        related_name="submissions",
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    submitted_by = models.CharField(max_length=100)
    submitted_at = models.DateTimeField(default=timezone.now)
    notes = models.TextField(blank=True)
    location_lat = models.FloatField(null=True, blank=True)
    location_lng = models.FloatField(null=True, blank=True)

    review_notes = models.TextField(blank=True)
    reviewed_by = models.CharField(max_length=150, blank=True)
    reviewed_at = models.DateTimeField(null=True, blank=True)

    client_id = models.CharField(max_length=100, unique=True, null=True, blank=True)

    class Meta:
        ordering = ["-submitted_at", "-id"]

    def __str__(self):
        return f"Submission {self.id} - {self.status}"


class SubmissionMedia(models.Model):
    """A reference to evidence stored by the media layer. Only the URL is kept."""

    MEDIA_TYPES = (
        ("image", "Image"),
        ("audio", "Audio"),
        ("video", "Video"),
        ("other", "Other"),
    )

    submission = models.ForeignKey(
        CheckpointSubmission,
        on_delete=models.CASCADE,
        related_name="media",
    )
    media_type = models.CharField(max_length=20, choices=MEDIA_TYPES, default="image")
    file_url = models.TextField()
    file_name = models.CharField(max_length=255, blank=True)
    file_size = models.PositiveBigIntegerField(null=True, blank=True)
    mime_type = models.CharField(max_length=100, blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self):
        return f"{self.media_type} for submission {self.submission_id}"


class AdarshScore(models.Model):
    """
    Composite readiness score for a village.

    Fully derived by tracker.application.scoring; never edited by hand.
    """

    village = models.OneToOneField(
        Village,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="adarsh_score",
    )
    overall_score = models.DecimalField(max_digits=5, decimal_places=2, default=ZERO)
    infrastructure_score = models.DecimalField(max_digits=5, decimal_places=2, default=ZERO)
    completion_rate_score = models.DecimalField(max_digits=5, decimal_places=2, default=ZERO)
    social_indicators_score = models.DecimalField(max_digits=5, decimal_places=2, default=ZERO)
    feedback_score = models.DecimalField(max_digits=5, decimal_places=2, default=ZERO)
    fund_utilization_score = models.DecimalField(max_digits=5, decimal_places=2, default=ZERO)
    is_candidate = models.BooleanField(default=False)
    score_breakdown = models.JSONField(default=dict, encoder=DjangoJSONEncoder)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=Q(overall_score__gte=0) & Q(overall_score__lte=100),
                name="adarsh_score_overall_in_range",
            ),
        ]

    def __str__(self):
        return f"Adarsh score {self.overall_score} for village {self.village_id}"


class PriorityVote(models.Model):
    """
    Aggregated demand for a piece of infrastructure in a village.

    Repeat demands for the same (village, required_infrastructure) merge into
    total_votes. client_id belongs to the submission that created the row;
    merged submissions do not leave their own client_id behind.
    """

    STATUS_PENDING = "pending"
    STATUS_VERIFIED = "verified"
    STATUS_REJECTED = "rejected"
    STATUS_CONVERTED = "converted"
    STATUS_CHOICES = (
        (STATUS_PENDING, "Pending"),
        (STATUS_VERIFIED, "Verified"),
        (STATUS_REJECTED, "Rejected"),
        (STATUS_CONVERTED, "Converted to project"),
    )

    village = models.ForeignKey(
        Village,
        on_delete=models.CASCADE,
        related_name="priority_votes",
    )
    required_infrastructure = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    category = models.CharField(max_length=50, blank=True)
    total_votes = models.PositiveIntegerField(default=1)
    is_volunteer = models.BooleanField(default=False)
    volunteer_id = models.CharField(max_length=100, blank=True)
    employee_id = models.CharField(max_length=100, blank=True)
    audio_url = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    verification_notes = models.TextField(blank=True)

    client_id = models.CharField(max_length=100, unique=True, null=True, blank=True)
    submitted_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-total_votes", "-submitted_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["village", "required_infrastructure"],
                name="unique_priority_vote_per_village_infrastructure",
            ),
        ]

    def __str__(self):
        return f"{self.required_infrastructure} ({self.total_votes} votes)"


class SyncLog(models.Model):
    """Record of one offline batch sync attempt, kept whatever the per-item outcome."""

    TYPE_REPORTS = "reports"
    TYPE_PRIORITY_VOTES = "priority_votes"
    TYPE_CHOICES = (
        (TYPE_REPORTS, "Checkpoint reports"),
        (TYPE_PRIORITY_VOTES, "Priority votes"),
    )

    STATUS_SUCCESS = "success"
    STATUS_PARTIAL = "partial"
    STATUS_FAILED = "failed"
    STATUS_CHOICES = (
        (STATUS_SUCCESS, "Success"),
        (STATUS_PARTIAL, "Partial"),
        (STATUS_FAILED, "Failed"),
    )

    volunteer_id = models.CharField(max_length=100, blank=True)
    sync_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    client_ids = models.JSONField(default=list)
    failed_client_ids = models.JSONField(default=list)
    synced_count = models.PositiveIntegerField(default=0)
    sync_status = models.CharField(max_length=20, choices=STATUS_CHOICES)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.sync_type} sync {self.id} - {self.sync_status}"
