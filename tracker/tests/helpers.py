from unittest import mock

from tracker.application import ingestion, ledger
from tracker.models import Checkpoint, Project, Village


def make_village(**overrides):
    fields = {"name": "Rampur", "state": "Uttar Pradesh", "district": "Varanasi"}
    fields.update(overrides)
    return Village.objects.create(**fields)


def make_project(village, allocated=None, **overrides):
    """Project whose allocation, if any, goes through the ledger like in production."""
    overrides.setdefault("title", "Village road")
    project = Project.objects.create(village=village, **overrides)
    if allocated is not None:
        ledger.allocate(project.id, allocated, approver="district-officer")
        project.refresh_from_db()
    return project


def make_checkpoints(project, count):
    return [
        Checkpoint.objects.create(project=project, name=f"Stage {order}", sequence_order=order)
        for order in range(1, count + 1)
    ]


def submit(checkpoint, client_id=None, submitted_by="volunteer-7", **fields):
    return ingestion.submit_checkpoint_evidence(
        checkpoint.id, submitted_by, client_id=client_id, **fields
    ).row


def fail_after_append(exc):
    """Let the ledger write its entry and totals, then fail before commit."""
    real_append = ledger._append

    def append_then_fail(*args):
        real_append(*args)
        raise exc

    return mock.patch("tracker.application.ledger._append", side_effect=append_then_fail)
