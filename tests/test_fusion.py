# tests/test_fusion.py
# How to run:
#   pytest -q
#
# Verifies:
#   - Baseline confidence with no flags and no verdict is 0.86 (low risk, human)
#   - Each extra flag never raises confidence
#   - Risk tiers follow flag severities and confidence bands
#   - Calibration blending and summary texts

import pytest

from integrity_app.analytics.metrics import Metrics
from integrity_app.models import (
    ActivityKind, ClassifierVerdict, ReferenceComparison, RiskLevel, Severity, SuspiciousActivity,
)
from integrity_app.scoring.fusion import (
    ASSESSMENT_CLEAN, ASSESSMENT_CRITICAL, ASSESSMENT_MINOR, ASSESSMENT_MULTIPLE, fuse_scores, summarize,
)

def _flag(sev, ts=None):
    return SuspiciousActivity(ActivityKind.BEHAVIOR_DEVIATION, sev, 0.5, f"{sev.value} flag", timestamp=ts)

def _ref(overall, significance):
    return ReferenceComparison(overall=overall, breakdown={}, statistical_significance=significance,
                               profile_match_score=overall, reference_sample_size=int(significance * 1000))

M = Metrics.empty()

def test_baseline_without_flags():
    f = fuse_scores(M, [])
    assert f.confidence_score == pytest.approx(0.86)
    assert f.risk_level == RiskLevel.LOW
    assert f.is_human is True

def test_penalty_is_monotonic():
    flags = []
    prev = fuse_scores(M, flags).confidence_score
    for sev in (Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL, Severity.CRITICAL, Severity.MEDIUM):
        flags.append(_flag(sev))
        cur = fuse_scores(M, flags).confidence_score
        assert cur <= prev, f"Confidence rose after adding a {sev.value} flag"
        prev = cur
    # behavior floors at zero; content still contributes
    assert prev == pytest.approx(0.3)

def test_risk_tiers():
    assert fuse_scores(M, [_flag(Severity.MEDIUM)]).risk_level == RiskLevel.LOW
    assert fuse_scores(M, [_flag(Severity.MEDIUM)] * 2).risk_level == RiskLevel.MEDIUM
    assert fuse_scores(M, [_flag(Severity.HIGH)]).risk_level == RiskLevel.HIGH

    crit = fuse_scores(M, [_flag(Severity.CRITICAL)])
    assert crit.risk_level == RiskLevel.CRITICAL
    assert crit.is_human is False

def test_content_score_from_verdict():
    ai = fuse_scores(M, [], verdict=ClassifierVerdict(True, 0.9, "GPTZero"))
    assert ai.content_score == pytest.approx(0.1)
    assert ai.confidence_score == pytest.approx(0.7 * 0.8 + 0.3 * 0.1)

    errored = ClassifierVerdict(False, 0.0, "GPTZero (Error)", error="GPTZero API error. Manual review recommended.")
    assert fuse_scores(M, [], verdict=errored).content_score == 1.0

def test_reference_weight_is_capped():
    f = fuse_scores(M, [], reference=_ref(1.0, 1.0))
    # weight min(0.5, 1.0): 0.8 * 0.5 + 1.0 * 0.5
    assert f.behavior_score == pytest.approx(0.9)

    f = fuse_scores(M, [], reference=_ref(0.0, 0.2))
    assert f.behavior_score == pytest.approx(0.8 * 0.8)

def test_summary_texts_and_rounding():
    clean = fuse_scores(M, [])
    s = summarize([], clean)
    assert s.overall_assessment == ASSESSMENT_CLEAN
    assert s.behavior_score == 0.8 and s.content_score == 1.0

    one = [_flag(Severity.LOW)]
    assert summarize(one, fuse_scores(M, one)).overall_assessment == ASSESSMENT_MINOR

    many = [_flag(Severity.LOW)] * 3
    assert summarize(many, fuse_scores(M, many)).overall_assessment == ASSESSMENT_MULTIPLE

    crit = [_flag(Severity.CRITICAL), _flag(Severity.HIGH)]
    s = summarize(crit, fuse_scores(M, crit))
    assert s.overall_assessment == ASSESSMENT_CRITICAL
    assert s.high_risk_flags == 2 and s.total_flags == 2
