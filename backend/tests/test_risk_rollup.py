import pytest

from risk_rollup import (
    overall_risk_from_decisions,
    post_risk_levels,
    rollup_decision_severities,
    rollup_keyword_severities,
    severity_rank,
    worst_severity,
)
from vetting_models import VettingDecision


def decision(post_id, severity, confirmed=True):
    return VettingDecision(
        post_id=post_id,
        severity=severity,
        concerns=("concern",),
        reason="reason",
        is_confirmed_risk=confirmed,
    )


class TestDecisionRollup:
    @pytest.mark.parametrize("severities,expected", [
        ([], "low"),
        (["low", "low", "low"], "low"),
        (["medium"], "low"),
        (["medium", "medium"], "low"),
        (["medium", "medium", "medium"], "medium"),
        (["high"], "medium"),
        (["high", "high"], "high"),
        (["high", "low", "medium"], "medium"),
        (["critical"], "critical"),
        (["low", "critical", "high", "high"], "critical"),
    ])
    def test_rules(self, severities, expected):
        assert rollup_decision_severities(severities) == expected

    def test_one_high_is_not_batch_defining(self):
        assert rollup_decision_severities(["high"]) == "medium"
        assert rollup_decision_severities(["high", "high"]) == "high"

    def test_adding_a_decision_never_lowers_risk(self):
        sequence = ["low", "medium", "medium", "high", "medium", "high", "low", "critical"]
        previous = "low"
        for i in range(1, len(sequence) + 1):
            current = rollup_decision_severities(sequence[:i])
            assert severity_rank(current) >= severity_rank(previous)
            previous = current

    def test_unconfirmed_decisions_ignored(self):
        decisions = [decision("p1", "critical", confirmed=False), decision("p2", "high")]
        assert overall_risk_from_decisions(decisions) == "medium"


class TestKeywordRollup:
    def test_worst_single_match(self):
        assert rollup_keyword_severities(["low", "high"]) == "high"

    def test_single_high_is_high(self):
        # Differs from the decision roll-up on purpose
        assert rollup_keyword_severities(["high"]) == "high"
        assert rollup_decision_severities(["high"]) == "medium"

    def test_empty(self):
        assert rollup_keyword_severities([]) == "low"
        assert worst_severity([]) == "low"


class TestPostRisk:
    def test_per_post_rollup(self):
        decisions = [
            decision("p1", "high"),
            decision("p1", "high"),
            decision("p2", "high"),
            decision("p3", "medium"),
        ]
        assert post_risk_levels(decisions) == {"p1": "high", "p2": "medium", "p3": "low"}

    def test_unconfirmed_posts_left_out(self):
        assert post_risk_levels([decision("p1", "critical", confirmed=False)]) == {}

    def test_unknown_severity_ranks_low(self):
        assert severity_rank("bogus") == 0
