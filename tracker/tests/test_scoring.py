from decimal import Decimal
from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.test import TestCase, override_settings

from tracker.application import ingestion, ledger, projects, reviews
from tracker.application.scoring import (
    collect_village_facts,
    recompute_quietly,
    recompute_village_score,
    request_score_recompute,
)
from tracker.models import AdarshScore, CheckpointSubmission, Project
from tracker.tests.helpers import make_checkpoints, make_project, make_village, submit

RECORDED = []


def record_recompute(village_id, reason=""):
    RECORDED.append((village_id, reason))


class CollectFactsTest(TestCase):

    def setUp(self):
        self.village = make_village(baseline_metrics={"literacy_rate": 80, "employment_rate": 60})
        self.project = make_project(self.village, allocated=200)
        self.checkpoints = make_checkpoints(self.project, 2)

    def test_approved_checkpoints_are_counted_once(self):
        first = submit(self.checkpoints[0])
        second = submit(self.checkpoints[0])
        rejected = submit(self.checkpoints[1])
        CheckpointSubmission.objects.filter(id__in=[first.id, second.id]).update(status="approved")
        CheckpointSubmission.objects.filter(id=rejected.id).update(status="rejected")

        facts = collect_village_facts(self.village.id)

        self.assertEqual(facts.total_checkpoints, 2)
        self.assertEqual(facts.approved_checkpoints, 1)
        self.assertEqual(facts.approved_submissions, 2)
        self.assertEqual(facts.rejected_submissions, 1)

    def test_fund_totals_are_summed_across_projects(self):
        make_project(self.village, allocated=100, title="School roof")
        ledger.release(self.project.id, 50)

        facts = collect_village_facts(self.village.id)

        self.assertEqual(facts.total_projects, 2)
        self.assertEqual(facts.total_allocated, Decimal("300.00"))
        self.assertEqual(facts.total_utilized, Decimal("50.00"))


class RecomputeTest(TestCase):

    def setUp(self):
        self.village = make_village(baseline_metrics={"literacy_rate": 80, "employment_rate": 60})
        project = make_project(self.village, allocated=100, status=Project.STATUS_COMPLETED)
        make_project(self.village, allocated=100, title="Drainage")
        checkpoints = make_checkpoints(project, 5)
        for checkpoint in checkpoints[:3]:
            row = submit(checkpoint)
            CheckpointSubmission.objects.filter(id=row.id).update(status="approved")

    def test_recompute_writes_one_row_per_village(self):
        recompute_village_score(self.village.id)
        recompute_village_score(self.village.id)

        score = AdarshScore.objects.get(village=self.village)
        self.assertEqual(AdarshScore.objects.count(), 1)
        self.assertEqual(score.social_indicators_score, Decimal("70.00"))
        self.assertEqual(score.completion_rate_score, Decimal("53.00"))
        self.assertEqual(score.feedback_score, Decimal("100.00"))
        self.assertEqual(score.score_breakdown["completion_rate"], "53.00")

    def test_recompute_is_idempotent(self):
        recompute_village_score(self.village.id)
        first = AdarshScore.objects.filter(village=self.village).values().get()

        recompute_village_score(self.village.id)
        second = AdarshScore.objects.filter(village=self.village).values().get()

        self.assertEqual(first, second)

    def test_unreadable_survey_figures_still_score(self):
        village = make_village(name="Sarai", baseline_metrics={"schools": "NaN", "infrastructure_score": "Infinity"})

        recompute_village_score(village.id)

        self.assertEqual(AdarshScore.objects.get(village=village).infrastructure_score, Decimal("0.00"))

    def test_recompute_quietly_logs_failures(self):
        with mock.patch(
            "tracker.application.scoring.recompute_village_score",
            side_effect=RuntimeError("store went away"),
        ):
            with self.assertLogs("tracker.application.scoring", level="ERROR"):
                self.assertIsNone(recompute_quietly(self.village.id, reason="test"))

    def test_request_runs_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            request_score_recompute(self.village.id, reason="test")
            self.assertFalse(AdarshScore.objects.exists())

        self.assertEqual(len(callbacks), 1)
        self.assertTrue(AdarshScore.objects.filter(village=self.village).exists())

    @override_settings(TRACKER_SCORE_RECOMPUTE_HANDLER="tracker.tests.test_scoring.record_recompute")
    def test_configured_handler_is_used(self):
        RECORDED.clear()

        with self.captureOnCommitCallbacks(execute=True):
            request_score_recompute(self.village.id, reason="baseline updated")

        self.assertEqual(RECORDED, [(self.village.id, "baseline updated")])
        self.assertFalse(AdarshScore.objects.exists())

    @override_settings(TRACKER_SCORE_RECOMPUTE_HANDLER="tracker.tests.no_such_module.handler")
    def test_broken_handler_does_not_raise(self):
        with self.assertLogs("tracker.application.scoring", level="ERROR"):
            with self.captureOnCommitCallbacks(execute=True):
                request_score_recompute(self.village.id)

    def test_recompute_scores_command(self):
        out = StringIO()
        call_command("recompute_scores", stdout=out)

        self.assertTrue(AdarshScore.objects.filter(village=self.village).exists())
        self.assertIn("Recomputed 1 village score(s)", out.getvalue())


@mock.patch("tracker.application.scoring.recompute_village_score")
class RecomputeTriggerTest(TestCase):
    """Every write that changes a scoring input must attempt a recompute after commit."""

    def setUp(self):
        self.village = make_village()
        self.project = make_project(self.village, allocated=90)
        self.checkpoints = make_checkpoints(self.project, 3)

    def assertRecomputed(self, recompute, times=1):
        self.assertEqual(recompute.call_count, times)
        recompute.assert_called_with(self.village.id)

    def test_project_created(self, recompute):
        with self.captureOnCommitCallbacks(execute=True):
            projects.create_project(self.village.id, "Solar lights", 500)
        self.assertRecomputed(recompute)

    def test_project_updated(self, recompute):
        with self.captureOnCommitCallbacks(execute=True):
            projects.update_project(self.project.id, status=Project.STATUS_COMPLETED)
        self.assertRecomputed(recompute)

    def test_project_deleted(self, recompute):
        with self.captureOnCommitCallbacks(execute=True):
            projects.delete_project(self.project.id)
        self.assertRecomputed(recompute)

    def test_checkpoint_added(self, recompute):
        with self.captureOnCommitCallbacks(execute=True):
            projects.add_checkpoint(self.project.id, "Handover", 4)
        self.assertRecomputed(recompute)

    def test_baseline_updated(self, recompute):
        with self.captureOnCommitCallbacks(execute=True):
            projects.update_village_baseline(self.village.id, {"schools": 2})
        self.assertRecomputed(recompute)

    def test_submission_approved(self, recompute):
        submission = submit(self.checkpoints[0])
        with self.captureOnCommitCallbacks(execute=True):
            reviews.review_submission(self.checkpoints[0].id, submission.id, "approved")
        self.assertRecomputed(recompute)

    def test_submission_rejected(self, recompute):
        submission = submit(self.checkpoints[0])
        with self.captureOnCommitCallbacks(execute=True):
            reviews.review_submission(self.checkpoints[0].id, submission.id, "rejected")
        self.assertRecomputed(recompute)

    def test_batch_sync_recomputes_once_per_village(self, recompute):
        reports = [
            {"client_id": f"r-{n}", "checkpoint_id": checkpoint.id}
            for n, checkpoint in enumerate(self.checkpoints)
        ]
        with self.captureOnCommitCallbacks(execute=True):
            ingestion.sync_submissions("volunteer-7", reports)
        self.assertRecomputed(recompute)

    def test_batch_of_replays_does_not_recompute(self, recompute):
        submit(self.checkpoints[0], client_id="r-0")
        with self.captureOnCommitCallbacks(execute=True):
            ingestion.sync_submissions("volunteer-7", [{"client_id": "r-0", "checkpoint_id": self.checkpoints[0].id}])
        recompute.assert_not_called()

    def test_failed_recompute_does_not_fail_the_review(self, recompute):
        recompute.side_effect = RuntimeError("scoring down")
        submission = submit(self.checkpoints[0])

        with self.assertLogs("tracker.application.scoring", level="ERROR"):
            with self.captureOnCommitCallbacks(execute=True):
                _, released = reviews.review_submission(self.checkpoints[0].id, submission.id, "approved")

        submission.refresh_from_db()
        self.assertEqual(submission.status, "approved")
        self.assertEqual(released, Decimal("30.00"))
