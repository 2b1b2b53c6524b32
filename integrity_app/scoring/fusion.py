# integrity_app/scoring/fusion.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Sequence

from integrity_app.analytics.config import ScoringConfig
from integrity_app.analytics.metrics import Metrics
from integrity_app.models import (
    ClassifierVerdict, ReferenceComparison, RiskLevel, Severity, Summary, SuspiciousActivity,
)

ASSESSMENT_CRITICAL = "High risk of academic dishonesty. Manual review strongly recommended."
ASSESSMENT_MULTIPLE = "Multiple suspicious indicators detected. Review recommended."
ASSESSMENT_MINOR = "Minor anomalies detected. Work appears generally authentic."
ASSESSMENT_CLEAN = "No significant anomalies detected. Work appears authentic."


@dataclass(frozen=True)
class FusedScore:
    behavior_score: float
    content_score: float
    confidence_score: float
    risk_level: RiskLevel
    is_human: bool
    critical_flags: int
    high_flags: int
    medium_flags: int


def _count(activities: Sequence[SuspiciousActivity], severity: Severity) -> int:
    return sum(1 for a in activities if a.severity is severity)


def fuse_scores(
    metrics: Metrics,
    activities: Sequence[SuspiciousActivity],
    reference: Optional[ReferenceComparison] = None,
    verdict: Optional[ClassifierVerdict] = None,
    config: Optional[ScoringConfig] = None,
) -> FusedScore:
    """
    Collapse flags, calibration similarity and the AI-text verdict into one
    confidence plus a risk tier. Adding a flag never raises the confidence.
    `metrics` is accepted for symmetry with the other stages; penalties only
    read the activity list.
    """
    cfg = config or ScoringConfig()
    critical = _count(activities, Severity.CRITICAL)
    high = _count(activities, Severity.HIGH)
    medium = _count(activities, Severity.MEDIUM)

    behavior = cfg.baseline_behavior
    behavior -= critical * cfg.critical_penalty + high * cfg.high_penalty + medium * cfg.medium_penalty
    behavior = max(0.0, behavior)

    if reference is not None:
        w = min(cfg.max_reference_weight, reference.statistical_significance)
        behavior = behavior * (1.0 - w) + reference.overall * w

    if verdict is None or verdict.error is not None:
        content = 1.0
    else:
        content = 1.0 - verdict.score

    confidence = cfg.behavior_weight * behavior + cfg.content_weight * content

    if critical > 0 or confidence < cfg.critical_below:
        risk = RiskLevel.CRITICAL
    elif high > 0 or confidence < cfg.high_below:
        risk = RiskLevel.HIGH
    elif medium > 1 or confidence < cfg.medium_below:
        risk = RiskLevel.MEDIUM
    else:
        risk = RiskLevel.LOW

    return FusedScore(
        behavior_score=behavior,
        content_score=content,
        confidence_score=confidence,
        risk_level=risk,
        is_human=confidence > cfg.human_above and risk is not RiskLevel.CRITICAL,
        critical_flags=critical,
        high_flags=high,
        medium_flags=medium,
    )


def summarize(activities: Sequence[SuspiciousActivity], fused: FusedScore) -> Summary:
    if fused.risk_level is RiskLevel.CRITICAL:
        assessment = ASSESSMENT_CRITICAL
    elif len(activities) > 2:
        assessment = ASSESSMENT_MULTIPLE
    elif len(activities) > 0:
        assessment = ASSESSMENT_MINOR
    else:
        assessment = ASSESSMENT_CLEAN
    return Summary(
        total_flags=len(activities),
        high_risk_flags=fused.critical_flags + fused.high_flags,
        behavior_score=round(fused.behavior_score, 2),
        content_score=round(fused.content_score, 2),
        overall_assessment=assessment,
    )
