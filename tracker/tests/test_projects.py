from decimal import Decimal

from django.test import TestCase

from tracker.application import ingestion, ledger, projects
from tracker.domain.exceptions import InvalidAmount, InvalidInput, InvalidStatus
from tracker.models import Checkpoint, CheckpointSubmission, FundTransaction, PriorityVote, Project
from tracker.tests.helpers import make_checkpoints, make_project, make_village, submit


class CreateProjectTest(TestCase):

    def setUp(self):
        self.village = make_village()

    def test_initial_allocation_goes_through_the_ledger(self):
        project = projects.create_project(self.village.id, "Community hall", "1500000", approver="dm")

        self.assertEqual(project.allocated_amount, Decimal("1500000.00"))
        self.assertEqual(project.utilized_amount, Decimal("0.00"))
        entry = FundTransaction.objects.get(project=project)
        self.assertEqual(entry.transaction_type, "allocation")
        self.assertEqual(entry.description, "Initial fund allocation for project")
        self.assertEqual(entry.approver, "dm")

    def test_project_from_priority_vote(self):
        vote = ingestion.submit_priority_vote(self.village.id, "Community hall", client_id="v-1").row

        projects.create_project(self.village.id, "Community hall", 1000, from_vote_id=vote.id)

        vote.refresh_from_db()
        self.assertEqual(vote.status, PriorityVote.STATUS_CONVERTED)

    def test_vote_from_another_village_rolls_back_the_project(self):
        other = make_village(name="Sarnath")
        vote = ingestion.submit_priority_vote(other.id, "Community hall", client_id="v-1").row

        with self.assertRaises(PriorityVote.DoesNotExist):
            projects.create_project(self.village.id, "Community hall", 1000, from_vote_id=vote.id)

        self.assertFalse(Project.objects.exists())
        self.assertFalse(FundTransaction.objects.exists())

    def test_invalid_project(self):
        with self.assertRaises(InvalidAmount):
            projects.create_project(self.village.id, "Community hall", 0)
        with self.assertRaises(InvalidInput):
            projects.create_project(self.village.id, "", 1000)
        with self.assertRaises(InvalidInput):
            projects.create_project(self.village.id, "Community hall", 1000, start_date="soon")

        self.assertFalse(Project.objects.exists())


class UpdateProjectTest(TestCase):

    def setUp(self):
        self.project = make_project(make_village(), allocated=100)

    def test_descriptive_fields_and_status(self):
        project = projects.update_project(
            self.project.id, status=Project.STATUS_IN_PROGRESS, end_date="2025-03-31", description=None,
        )

        project.refresh_from_db()
        self.assertEqual(project.status, "in_progress")
        self.assertEqual(str(project.end_date), "2025-03-31")
        self.assertEqual(project.description, "")

    def test_fund_totals_cannot_be_edited_directly(self):
        with self.assertRaises(InvalidInput):
            projects.update_project(self.project.id, allocated_amount="5000")
        with self.assertRaises(InvalidInput):
            projects.update_project(self.project.id, utilized_amount="0")

        self.project.refresh_from_db()
        self.assertEqual(self.project.allocated_amount, Decimal("100.00"))

    def test_unknown_field_and_status(self):
        with self.assertRaises(InvalidInput):
            projects.update_project(self.project.id, village=3)
        with self.assertRaises(InvalidStatus):
            projects.update_project(self.project.id, status="abandoned")


class DeleteProjectTest(TestCase):

    def test_delete_cascades(self):
        village = make_village()
        project = make_project(village, allocated=100)
        checkpoint = make_checkpoints(project, 1)[0]
        submit(checkpoint, client_id="c-1")
        ledger.release(project.id, 10)

        self.assertEqual(projects.delete_project(project.id), village.id)

        self.assertFalse(Project.objects.exists())
        self.assertFalse(FundTransaction.objects.exists())
        self.assertFalse(Checkpoint.objects.exists())
        self.assertFalse(CheckpointSubmission.objects.exists())

        with self.assertRaises(Project.DoesNotExist):
            projects.delete_project(project.id)


class CheckpointAndBaselineTest(TestCase):

    def setUp(self):
        self.village = make_village(baseline_metrics={"literacy_rate": 70, "survey_year": 2021})
        self.project = make_project(self.village)

    def test_add_checkpoint(self):
        checkpoint = projects.add_checkpoint(
            self.project.id, "Foundation", "1", is_mandatory=False, estimated_date="2025-01-15",
        )

        self.assertEqual(checkpoint.sequence_order, 1)
        self.assertFalse(checkpoint.is_mandatory)

        with self.assertRaises(InvalidInput):
            projects.add_checkpoint(self.project.id, "Walls", -1)
        with self.assertRaises(Project.DoesNotExist):
            projects.add_checkpoint(99999, "Walls", 2)

    def test_baseline_update_merges_metrics(self):
        village = projects.update_village_baseline(self.village.id, {"employment_rate": 55, "schools": 3})

        village.refresh_from_db()
        self.assertEqual(
            village.baseline_metrics,
            {"literacy_rate": 70, "survey_year": 2021, "employment_rate": 55, "schools": 3},
        )

    def test_baseline_rejects_bad_numbers(self):
        for metrics in ({"literacy_rate": "high"}, {"schools": -1}, ["literacy_rate", 70]):
            with self.subTest(metrics=metrics):
                with self.assertRaises(InvalidInput):
                    projects.update_village_baseline(self.village.id, metrics)

        self.village.refresh_from_db()
        self.assertEqual(self.village.baseline_metrics, {"literacy_rate": 70, "survey_year": 2021})
