from decimal import Decimal

from django.test import SimpleTestCase

from tracker.domain.exceptions import InvalidAmount
from tracker.domain.ledger import ALLOCATION, MAX_AMOUNT, RELEASE, LedgerTotals, parse_amount, pro_rata_share, replay
from tracker.domain.merge import Insert, MergeInto, NoOp, normalize_client_id, resolve, vote_semantic_key
from tracker.domain.scoring import (
    VillageFacts,
    calculate_completion_rate_score,
    calculate_feedback_score,
    calculate_fund_utilization_score,
    calculate_infrastructure_score,
    calculate_social_indicators_score,
    compute_score,
)


class ParseAmountTest(SimpleTestCase):

    def test_accepts_money_values(self):
        self.assertEqual(parse_amount("100"), Decimal("100.00"))
        self.assertEqual(parse_amount(0.1), Decimal("0.10"))
        self.assertEqual(parse_amount(Decimal("12.5")), Decimal("12.50"))

    def test_rejects_non_positive_and_malformed_values(self):
        for value in (None, "", "0", -5, "abc", "NaN", "Infinity", "1.234", True):
            with self.subTest(value=value):
                with self.assertRaises(InvalidAmount):
                    parse_amount(value)

    def test_rejects_amounts_beyond_the_column(self):
        self.assertEqual(parse_amount("9999999999999.99"), MAX_AMOUNT)
        for value in ("1e30", "99999999999999999", "10000000000000"):
            with self.subTest(value=value):
                with self.assertRaises(InvalidAmount):
                    parse_amount(value)


class LedgerTotalsTest(SimpleTestCase):

    def test_replay_is_order_independent(self):
        entries = [
            (ALLOCATION, Decimal("100.00")),
            (RELEASE, Decimal("60.00")),
            (ALLOCATION, Decimal("50.00")),
        ]
        self.assertEqual(replay(entries), LedgerTotals(Decimal("150.00"), Decimal("60.00")))
        self.assertEqual(replay(reversed(entries)), replay(entries))

    def test_release_beyond_allocation_is_overdrawn(self):
        totals = LedgerTotals(Decimal("100.00"), Decimal("60.00"))

        self.assertFalse(totals.apply(RELEASE, Decimal("40.00")).is_overdrawn)
        self.assertTrue(totals.apply(RELEASE, Decimal("50.00")).is_overdrawn)
        self.assertEqual(totals.remaining, Decimal("40.00"))

    def test_lowering_allocation_below_utilized_is_overdrawn(self):
        totals = LedgerTotals(Decimal("100.00"), Decimal("60.00"))
        self.assertTrue(totals.adjust(ALLOCATION, Decimal("-50.00")).is_overdrawn)

    def test_total_beyond_the_column_exceeds_capacity(self):
        totals = LedgerTotals(MAX_AMOUNT, Decimal("0.00"))
        self.assertTrue(totals.apply(ALLOCATION, Decimal("0.01")).exceeds_capacity)

    def test_pro_rata_share_truncates_to_cents(self):
        self.assertEqual(pro_rata_share(Decimal("100.00"), 3), Decimal("33.33"))
        self.assertEqual(pro_rata_share(Decimal("90.00"), 0), Decimal("90.00"))


class ScoringFormulaTest(SimpleTestCase):

    def test_social_indicators_is_mean_of_rates(self):
        score = calculate_social_indicators_score({"literacy_rate": 80, "employment_rate": 60})
        self.assertEqual(score, Decimal("70"))

    def test_completion_rate_weights_projects_and_checkpoints(self):
        # 50% projects complete, 60% checkpoints approved
        self.assertEqual(calculate_completion_rate_score(2, 1, 5, 3), Decimal("53"))

    def test_completion_rate_without_projects_or_checkpoints(self):
        self.assertEqual(calculate_completion_rate_score(0, 0, 0, 0), Decimal("0"))
        self.assertEqual(calculate_completion_rate_score(2, 2, 0, 0), Decimal("70"))

    def test_infrastructure_bonuses_are_capped(self):
        self.assertEqual(calculate_infrastructure_score({"infrastructure_score": 50}), Decimal("50"))
        self.assertEqual(
            calculate_infrastructure_score({"infrastructure_score": 50, "healthcare_facilities": 2, "schools": 2}),
            Decimal("60"),
        )
        self.assertEqual(
            calculate_infrastructure_score({"infrastructure_score": 95, "healthcare_facilities": 3, "schools": 4}),
            Decimal("100"),
        )

    def test_non_finite_metrics_count_as_zero(self):
        metrics = {"infrastructure_score": "NaN", "healthcare_facilities": "Infinity", "schools": "NaN"}

        self.assertEqual(calculate_infrastructure_score(metrics), Decimal("0"))
        self.assertEqual(compute_score(VillageFacts(baseline_metrics=metrics)).infrastructure, Decimal("0"))

    def test_feedback_is_neutral_without_reviews(self):
        self.assertEqual(calculate_feedback_score(0, 0), Decimal("50"))
        self.assertEqual(calculate_feedback_score(3, 1), Decimal("75"))

    def test_fund_utilization_is_capped_and_zero_without_allocation(self):
        self.assertEqual(calculate_fund_utilization_score(Decimal("0"), Decimal("0")), Decimal("0"))
        self.assertEqual(calculate_fund_utilization_score(Decimal("200"), Decimal("50")), Decimal("25"))
        self.assertEqual(calculate_fund_utilization_score(Decimal("100"), Decimal("150")), Decimal("100"))

    def test_overall_score_is_weighted_sum(self):
        facts = VillageFacts(
            baseline_metrics={
                "infrastructure_score": 80,
                "healthcare_facilities": 3,
                "schools": 4,
                "literacy_rate": 80,
                "employment_rate": 60,
            },
            total_projects=2,
            completed_projects=1,
            total_checkpoints=5,
            approved_checkpoints=3,
            approved_submissions=3,
            rejected_submissions=1,
            total_allocated=Decimal("100"),
            total_utilized=Decimal("50"),
        )

        card = compute_score(facts)

        # 100*0.3 + 53*0.3 + 70*0.2 + 75*0.1 + 50*0.1
        self.assertEqual(card.overall_score, Decimal("72.40"))
        self.assertFalse(card.is_candidate)
        self.assertEqual(card.breakdown()["completion_rate"], Decimal("53.00"))

    def test_candidate_threshold_is_inclusive(self):
        facts = VillageFacts(
            baseline_metrics={"infrastructure_score": 100, "literacy_rate": 50, "employment_rate": 50},
            total_projects=1,
            completed_projects=1,
            total_checkpoints=1,
            approved_checkpoints=1,
            total_allocated=Decimal("100"),
            total_utilized=Decimal("100"),
        )

        card = compute_score(facts)

        self.assertEqual(card.overall_score, Decimal("85.00"))
        self.assertTrue(card.is_candidate)

    def test_same_facts_same_card(self):
        facts = VillageFacts(baseline_metrics={"literacy_rate": "66.6"}, total_projects=3, completed_projects=1)
        self.assertEqual(compute_score(facts), compute_score(facts))


class MergeResolverTest(SimpleTestCase):

    def test_client_id_match_wins_over_semantic_match(self):
        self.assertEqual(resolve({}, replayed_id=4, semantic_match_id=9), NoOp(4))

    def test_semantic_match_merges(self):
        self.assertEqual(resolve({}, semantic_match_id=9), MergeInto(9))

    def test_no_match_inserts(self):
        item = {"description": "Borewell"}
        self.assertEqual(resolve(item), Insert(item))

    def test_keys_are_normalized(self):
        self.assertIsNone(normalize_client_id("   "))
        self.assertEqual(normalize_client_id(" abc "), "abc")
        self.assertEqual(vote_semantic_key("3", "  Water   tank "), (3, "Water tank"))
