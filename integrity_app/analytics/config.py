from __future__ import annotations
from dataclasses import dataclass

@dataclass(frozen=True)
class DetectionThresholds:
    # feature extraction
    speed_window_actions: int = 50      # actions per window for the speed series
    chars_per_word: float = 5.0
    short_pause_ms: float = 2000.0      # < short => short pause
    long_pause_ms: float = 10000.0      # >= long => long pause
    backtrack_chars: int = 10

    # paste: Δcontent ≫ Δt
    paste_min_growth: int = 20
    paste_max_gap_ms: float = 1000.0
    # paste: burst after a pause
    burst_min_gap_ms: float = 400.0
    burst_min_len: int = 8
    burst_ratio: float = 4.0
    paste_full_confidence_chars: int = 100
    paste_high_confidence: float = 0.8

    # speed (CPM); firing is strictly above the threshold
    speed_high_cpm: float = 200.0
    speed_critical_cpm: float = 300.0

    # rhythm / automation
    rhythm_consistency_max: float = 0.95
    min_interval_samples: int = 12

    # pauses / corrections / consistency (rate rules need a minimum sample)
    min_actions_for_rates: int = 20
    pause_frequency_min: float = 0.01
    deletion_rate_min: float = 0.01
    no_correction_confidence: float = 0.6
    consistency_score_max: float = 0.9

    # calibration deviations
    calib_speed_deviation_ratio: float = 0.5
    calib_rhythm_deviation: float = 0.3

    # ai content severity
    ai_critical_score: float = 0.8
    ai_high_score: float = 0.6


@dataclass(frozen=True)
class ScoringConfig:
    baseline_behavior: float = 0.8
    critical_penalty: float = 0.4
    high_penalty: float = 0.2
    medium_penalty: float = 0.1
    max_reference_weight: float = 0.5

    behavior_weight: float = 0.7
    content_weight: float = 0.3

    critical_below: float = 0.3
    high_below: float = 0.5
    medium_below: float = 0.7
    human_above: float = 0.7
