from django.urls import path

from .views import (
    AllocateFundsView,
    CheckpointListView,
    CheckpointSubmissionView,
    FundTransactionDetailView,
    PriorityVoteVerifyView,
    PriorityVoteView,
    ProjectDetailView,
    ProjectListView,
    ReleaseFundsView,
    SubmissionReviewView,
    SyncPriorityVotesView,
    SyncReportsView,
    VillageBaselineView,
)

urlpatterns = [
    # Fund ledger
    path("funds/allocate/", AllocateFundsView.as_view(), name="funds-allocate"),
    path("funds/release/", ReleaseFundsView.as_view(), name="funds-release"),
    path(
        "funds/transactions/<int:transaction_id>/",
        FundTransactionDetailView.as_view(),
        name="fund-transaction-detail",
    ),

    # Projects, checkpoints and baselines
    path("projects/", ProjectListView.as_view(), name="project-list"),
    path("projects/<int:project_id>/", ProjectDetailView.as_view(), name="project-detail"),
    path("projects/<int:project_id>/checkpoints/", CheckpointListView.as_view(), name="checkpoint-list"),
    path("villages/<int:village_id>/baseline/", VillageBaselineView.as_view(), name="village-baseline"),

    # Checkpoint evidence
    path(
        "checkpoints/<int:checkpoint_id>/submissions/",
        CheckpointSubmissionView.as_view(),
        name="checkpoint-submissions",
    ),
    path(
        "checkpoints/<int:checkpoint_id>/submissions/<int:submission_id>/review/",
        SubmissionReviewView.as_view(),
        name="submission-review",
    ),

    # Priority votes
    path("priority-votes/", PriorityVoteView.as_view(), name="priority-votes"),
    path("priority-votes/<int:vote_id>/verify/", PriorityVoteVerifyView.as_view(), name="priority-vote-verify"),

    # Offline sync
    path("sync/reports/", SyncReportsView.as_view(), name="sync-reports"),
    path("sync/priority-votes/", SyncPriorityVotesView.as_view(), name="sync-priority-votes"),
]
