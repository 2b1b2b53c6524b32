from __future__ import annotations
from typing import Dict, Tuple

from integrity_app.analytics.metrics import Metrics
from integrity_app.models import FeatureComparison, ReferenceComparison

# feature -> (weight, absolute tolerance); speed tolerance is resolved per reference
FEATURE_WEIGHTS: Dict[str, float] = {
    "typingSpeed": 0.25,
    "rhythm": 0.20,
    "pausePatterns": 0.20,
    "deletionRate": 0.15,
    "dwellTime": 0.10,
    "flightTime": 0.10,
}
MIN_SPEED_TOLERANCE_CPM = 25.0
SPEED_TOLERANCE_RATIO = 0.25
TOLERANCES: Dict[str, float] = {
    "rhythm": 0.15,
    "pausePatterns": 0.05,
    "deletionRate": 0.10,
    "dwellTime": 0.20,
    "flightTime": 0.20,
}
FULL_SIGNIFICANCE_SAMPLES = 1000


def compare_feature(current: float, reference: float, tolerance: float) -> FeatureComparison:
    """Similarity decays linearly to 0 once |current - reference| reaches the tolerance band."""
    deviation = abs(current - reference)
    similarity = max(0.0, 1.0 - deviation / tolerance)
    if deviation <= tolerance:
        explanation = "Within expected range"
    else:
        pct = deviation / abs(reference) * 100.0 if reference else 100.0
        explanation = f"Deviates by {deviation:.2f} ({pct:.0f}%)"
    return FeatureComparison(similarity=similarity, deviation=deviation, explanation=explanation)


def speed_tolerance(reference_cpm: float) -> float:
    return max(MIN_SPEED_TOLERANCE_CPM, abs(reference_cpm) * SPEED_TOLERANCE_RATIO)


def _pairs(current: Metrics, reference: Metrics) -> Dict[str, Tuple[float, float]]:
    return {
        "typingSpeed": (current.average_typing_speed, reference.average_typing_speed),
        "rhythm": (current.rhythm_consistency, reference.rhythm_consistency),
        "pausePatterns": (current.pause_frequency, reference.pause_frequency),
        "deletionRate": (current.deletion_rate, reference.deletion_rate),
        "dwellTime": (current.dwell_time_variability, reference.dwell_time_variability),
        "flightTime": (current.flight_time_variability, reference.flight_time_variability),
    }


def profile_match(current: Metrics, reference: Metrics) -> float:
    """1 - mean relative distance over the core behavioral features, zero-safe."""
    pairs = [
        (current.average_typing_speed, reference.average_typing_speed),
        (current.rhythm_consistency, reference.rhythm_consistency),
        (current.pause_frequency, reference.pause_frequency),
        (current.deletion_rate, reference.deletion_rate),
        (current.burstiness, reference.burstiness),
    ]
    distances = []
    for cur, ref in pairs:
        if ref == 0:
            distances.append(0.0 if cur == 0 else 1.0)
        else:
            distances.append(min(1.0, abs(cur - ref) / abs(ref)))
    return max(0.0, 1.0 - sum(distances) / len(distances))


def compare_metrics(current: Metrics, reference: Metrics, reference_sample_size: int) -> ReferenceComparison:
    """
    Compare a session against the writer's calibration profile.
    `deviation` is directional only in the sense that the speed band is sized
    from the reference; the arithmetic itself is symmetric.
    """
    breakdown: Dict[str, FeatureComparison] = {}
    for name, (cur, ref) in _pairs(current, reference).items():
        tol = speed_tolerance(ref) if name == "typingSpeed" else TOLERANCES[name]
        breakdown[name] = compare_feature(cur, ref, tol)

    overall = sum(breakdown[name].similarity * w for name, w in FEATURE_WEIGHTS.items())
    n = max(0, int(reference_sample_size))
    return ReferenceComparison(
        overall=overall,
        breakdown=breakdown,
        statistical_significance=min(1.0, n / FULL_SIGNIFICANCE_SAMPLES),
        profile_match_score=profile_match(current, reference),
        reference_sample_size=n,
    )
