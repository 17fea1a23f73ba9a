"""Creator Safety Vetting - Risk Roll-Up
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Deterministic functions that collapse a set of severities into one.

Two rules are in use and they are deliberately different:
  - Adjudicated decisions count: one "high" is not batch-defining,
    two are. Applied per batch and per post.
  - Keyword matches take the worst single match.
"""

from collections import Counter
from typing import Iterable

from vetting_models import SEVERITIES, VettingDecision

# Rank used for comparisons (higher = worse)
SEVERITY_RANK = {"low": 0, "medium": 1, "high": 2, "critical": 3}

# Decision roll-up thresholds
HIGH_COUNT_FOR_HIGH = 2      # This many "high" decisions make the batch high
MEDIUM_COUNT_FOR_MEDIUM = 3  # This many "medium" decisions make the batch medium


def severity_rank(severity: str) -> int:
    """Rank a severity; unknown values rank as low."""
    return SEVERITY_RANK.get(severity, 0)


def worst_severity(severities: Iterable[str]) -> str:
    """Worst single severity present, "low" when empty."""
    present = set(severities)
    for severity in SEVERITIES:
        if severity in present:
            return severity
    return "low"


def rollup_decision_severities(severities: Iterable[str]) -> str:
    """
    Collapse adjudicated severities into one overall severity.

    critical if any critical; high if at least two high; medium if one
    high or at least three medium; low otherwise.
    """
    counts = Counter(severities)
    if counts["critical"] > 0:
        return "critical"
    if counts["high"] >= HIGH_COUNT_FOR_HIGH:
        return "high"
    if counts["high"] >= 1 or counts["medium"] >= MEDIUM_COUNT_FOR_MEDIUM:
        return "medium"
    return "low"


def rollup_keyword_severities(severities: Iterable[str]) -> str:
    """Collapse keyword match severities: the worst single match wins."""
    return worst_severity(severities)


def overall_risk_from_decisions(decisions: Iterable[VettingDecision]) -> str:
    """Batch-level risk over confirmed decisions."""
    return rollup_decision_severities(
        d.severity for d in decisions if d.is_confirmed_risk
    )


def post_risk_levels(decisions: Iterable[VettingDecision]) -> dict[str, str]:
    """Post-level risk: the decision roll-up applied to each post's decisions."""
    by_post: dict[str, list[str]] = {}
    for decision in decisions:
        if decision.is_confirmed_risk:
            by_post.setdefault(decision.post_id, []).append(decision.severity)
    return {post_id: rollup_decision_severities(sevs) for post_id, sevs in by_post.items()}
