from rest_framework import serializers

from tracker.models import (
    AdarshScore,
    Checkpoint,
    CheckpointSubmission,
    FundTransaction,
    PriorityVote,
    Project,
    SubmissionMedia,
    Village,
)


class VillageSerializer(serializers.ModelSerializer):
    class Meta:
        model = Village
        fields = ["id", "name", "state", "district", "block", "population", "baseline_metrics", "updated_at"]


class ProjectSerializer(serializers.ModelSerializer):
    remaining_amount = serializers.SerializerMethodField()

    class Meta:
        model = Project
        fields = [
            "id",
            "village",
            "title",
            "description",
            "project_type",
            "status",
            "allocated_amount",
            "utilized_amount",
            "remaining_amount",
            "start_date",
            "end_date",
            "created_at",
            "updated_at",
        ]

    def get_remaining_amount(self, project):
        return str(project.allocated_amount - project.utilized_amount)


class FundTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = FundTransaction
        fields = [
            "id",
            "project",
            "transaction_type",
            "amount",
            "description",
            "approver",
            "approved_at",
            "created_at",
            "edited_at",
        ]


class CheckpointSerializer(serializers.ModelSerializer):
    class Meta:
        model = Checkpoint
        fields = [
            "id",
            "project",
            "name",
            "description",
            "sequence_order",
            "is_mandatory",
            "estimated_date",
            "funds_released_at",
        ]


class SubmissionMediaSerializer(serializers.ModelSerializer):
    class Meta:
        model = SubmissionMedia
        fields = ["id", "media_type", "file_url", "file_name", "file_size", "mime_type", "metadata"]


class CheckpointSubmissionSerializer(serializers.ModelSerializer):
    media = SubmissionMediaSerializer(many=True, read_only=True)

    class Meta:
        model = CheckpointSubmission
        fields = [
            "id",
            "checkpoint",
            "status",
            "submitted_by",
            "submitted_at",
            "notes",
            "location_lat",
            "location_lng",
            "review_notes",
            "reviewed_by",
            "reviewed_at",
            "client_id",
            "media",
        ]


class PriorityVoteSerializer(serializers.ModelSerializer):
    class Meta:
        model = PriorityVote
        fields = [
            "id",
            "village",
            "required_infrastructure",
            "description",
            "category",
            "total_votes",
            "is_volunteer",
            "volunteer_id",
            "employee_id",
            "audio_url",
            "status",
            "verification_notes",
            "client_id",
            "submitted_at",
        ]


class AdarshScoreSerializer(serializers.ModelSerializer):
    class Meta:
        model = AdarshScore
        fields = [
            "village",
            "overall_score",
            "infrastructure_score",
            "completion_rate_score",
            "social_indicators_score",
            "feedback_score",
            "fund_utilization_score",
            "is_candidate",
            "score_breakdown",
        ]
