"""
Adarsh composite score - pure calculation from a village's current facts.

Five sub-scores, each on a 0-100 scale:
- infrastructure (30%): baseline infrastructure score plus facility bonuses
- completion_rate (30%): 70% project completion, 30% checkpoint approval
- social_indicators (20%): mean of literacy and employment rates
- feedback (10%): approval rate over reviewed submissions, 50 when none
- fund_utilization (10%): utilized / allocated, capped at 100

The overall score is the weighted sum rounded to two decimal places. A
village at or above 85 is an Adarsh candidate.

All arithmetic is Decimal so the same facts always produce the same row.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

ZERO = Decimal("0")
HUNDRED = Decimal("100")
TWO_PLACES = Decimal("0.01")

WEIGHTS = {
    "infrastructure": Decimal("0.30"),
    "completion_rate": Decimal("0.30"),
    "social_indicators": Decimal("0.20"),
    "feedback": Decimal("0.10"),
    "fund_utilization": Decimal("0.10"),
}

CANDIDATE_THRESHOLD = Decimal("85")
NEUTRAL_FEEDBACK = Decimal("50")

BASELINE_METRIC_KEYS = (
    "infrastructure_score",
    "healthcare_facilities",
    "schools",
    "literacy_rate",
    "employment_rate",
)


@dataclass(frozen=True)
class VillageFacts:
    """Everything the score depends on, read from the store in one pass."""

    baseline_metrics: dict = field(default_factory=dict)
    total_projects: int = 0
    completed_projects: int = 0
    total_checkpoints: int = 0
    approved_checkpoints: int = 0
    approved_submissions: int = 0
    rejected_submissions: int = 0
    total_allocated: Decimal = ZERO
    total_utilized: Decimal = ZERO


@dataclass(frozen=True)
class ScoreCard:
    infrastructure: Decimal
    completion_rate: Decimal
    social_indicators: Decimal
    feedback: Decimal
    fund_utilization: Decimal
    overall_score: Decimal
    is_candidate: bool

    def breakdown(self):
        return {name: _two_places(getattr(self, name)) for name in WEIGHTS}


def _metric(metrics, key):
    value = (metrics or {}).get(key)
    if value in (None, ""):
        return ZERO
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return ZERO
    return number if number.is_finite() else ZERO


def _clamp(value):
    return min(HUNDRED, max(ZERO, value))


def _two_places(value):
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def calculate_infrastructure_score(metrics):
    score = _metric(metrics, "infrastructure_score")

    healthcare = _metric(metrics, "healthcare_facilities")
    if healthcare >= 3:
        score += 10
    elif healthcare >= 2:
        score += 5

    schools = _metric(metrics, "schools")
    if schools >= 4:
        score += 10
    elif schools >= 2:
        score += 5

    return _clamp(score)


def calculate_completion_rate_score(total_projects, completed_projects, total_checkpoints, approved_checkpoints):
    """
    Weighted average of project completion and checkpoint approval.

    A village without projects scores 0. Without checkpoints the approval
    term contributes 0.
    """
    if not total_projects:
        return ZERO

    project_rate = Decimal(completed_projects) / Decimal(total_projects) * HUNDRED
    checkpoint_rate = ZERO
    if total_checkpoints:
        checkpoint_rate = Decimal(approved_checkpoints) / Decimal(total_checkpoints) * HUNDRED

    return _clamp(project_rate * Decimal("0.7") + checkpoint_rate * Decimal("0.3"))


def calculate_social_indicators_score(metrics):
    literacy = _metric(metrics, "literacy_rate")
    employment = _metric(metrics, "employment_rate")
    return _clamp((literacy + employment) / 2)


def calculate_feedback_score(approved_submissions, rejected_submissions):
    reviewed = approved_submissions + rejected_submissions
    if not reviewed:
        return NEUTRAL_FEEDBACK
    return _clamp(Decimal(approved_submissions) / Decimal(reviewed) * HUNDRED)


def calculate_fund_utilization_score(total_allocated, total_utilized):
    allocated = Decimal(total_allocated or 0)
    if allocated <= 0:
        return ZERO
    return _clamp(Decimal(total_utilized or 0) / allocated * HUNDRED)


def compute_score(facts):
    """Compute the full score card for one village. Pure and deterministic."""
    components = {
        "infrastructure": calculate_infrastructure_score(facts.baseline_metrics),
        "completion_rate": calculate_completion_rate_score(
            facts.total_projects,
            facts.completed_projects,
            facts.total_checkpoints,
            facts.approved_checkpoints,
        ),
        "social_indicators": calculate_social_indicators_score(facts.baseline_metrics),
        "feedback": calculate_feedback_score(facts.approved_submissions, facts.rejected_submissions),
        "fund_utilization": calculate_fund_utilization_score(facts.total_allocated, facts.total_utilized),
    }

    overall = _two_places(sum(components[name] * weight for name, weight in WEIGHTS.items()))

    return ScoreCard(
        overall_score=overall,
        is_candidate=overall >= CANDIDATE_THRESHOLD,
        **components,
    )
