# integrity_app/analytics/metrics.py
from __future__ import annotations
from dataclasses import dataclass, field, fields
from typing import Sequence, List, Dict, Any, Optional
import numpy as np

from integrity_core.actions.events import (
    BaseAction, ActionKind, InsertAction, CursorAction, PauseAction, KeyDownAction, KeyUpAction,
)
from integrity_app.analytics.config import DetectionThresholds

@dataclass(frozen=True)
class PausePatterns:
    short_pauses: int = 0
    medium_pauses: int = 0
    long_pauses: int = 0
    average_pause_length: float = 0.0

    @property
    def distribution(self) -> List[int]:
        return [self.short_pauses, self.medium_pauses, self.long_pauses]

@dataclass(frozen=True)
class Metrics:
    """Fixed-shape feature vector derived once from one action sequence."""
    average_typing_speed: float = 0.0        # CPM
    window_speed_mean: float = 0.0           # mean of the windowed speed series
    std_typing_speed: float = 0.0            # population stddev of the windowed speed series
    words_per_minute: float = 0.0
    characters_per_minute: float = 0.0
    pause_frequency: float = 0.0
    deletion_rate: float = 0.0
    cursor_jump_frequency: float = 0.0
    rhythm_consistency: float = 0.0
    burstiness: float = 0.0
    dwell_time_variability: float = 0.0
    flight_time_variability: float = 0.0
    backtracking_frequency: float = 0.0
    typing_acceleration: float = 0.0
    fatigue_indicator: float = 0.0
    consistency_score: float = 0.0
    revisions_per_word: float = 0.0
    pause_patterns: PausePatterns = field(default_factory=PausePatterns)
    # sample sizes the rate rules gate on
    action_count: int = 0
    interval_count: int = 0

    @classmethod
    def empty(cls, action_count: int = 0) -> "Metrics":
        return cls(action_count=action_count)

    def to_record(self) -> Dict[str, Any]:
        pp = self.pause_patterns
        return {
            "averageTypingSpeed": self.average_typing_speed,
            "windowSpeedMean": self.window_speed_mean,
            "standardDeviationTypingSpeed": self.std_typing_speed,
            "pauseFrequency": self.pause_frequency,
            "deletionRate": self.deletion_rate,
            "cursorJumpFrequency": self.cursor_jump_frequency,
            "rhythmConsistency": self.rhythm_consistency,
            "burstiness": self.burstiness,
            "dwellTimeVariability": self.dwell_time_variability,
            "flightTimeVariability": self.flight_time_variability,
            "backtrackingFrequency": self.backtracking_frequency,
            "correctionPatterns": self.deletion_rate,
            "typingAcceleration": self.typing_acceleration,
            "fatigueIndicators": self.fatigue_indicator,
            "consistencyScore": self.consistency_score,
            "pausePatterns": {
                "shortPauses": pp.short_pauses,
                "mediumPauses": pp.medium_pauses,
                "longPauses": pp.long_pauses,
                "averagePauseLength": pp.average_pause_length,
                "pauseDistribution": pp.distribution,
            },
            "wordsPerMinute": self.words_per_minute,
            "charactersPerMinute": self.characters_per_minute,
            "revisionsPerWord": self.revisions_per_word,
            "actionCount": self.action_count,
        }

    def is_finite(self) -> bool:
        for f in fields(self):
            v = getattr(self, f.name)
            if isinstance(v, float) and not np.isfinite(v):
                return False
        pp = self.pause_patterns
        return bool(np.isfinite(pp.average_pause_length))


# ---- statistics helpers ----

def _mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(np.asarray(values, dtype=float)))

def _std(values: Sequence[float]) -> float:
    """Population standard deviation (ddof=0)."""
    if len(values) == 0:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float)))

def variability(values: Sequence[float]) -> float:
    """Coefficient of variation (std/mean); 0 for fewer than 2 samples or a non-positive mean."""
    if len(values) < 2:
        return 0.0
    mean = _mean(values)
    if mean <= 0:
        return 0.0
    return _std(values) / mean

def burstiness(intervals: Sequence[float]) -> float:
    """(cv-1)/(cv+1): ~1 bursty, ~-1 metronomic, 0 Poisson-like."""
    if len(intervals) < 2:
        return 0.0
    mean = _mean(intervals)
    if mean <= 0:
        return 0.0
    cv = _std(intervals) / mean
    return (cv - 1.0) / (cv + 1.0)

def speed_series(actions: Sequence[BaseAction], window: int) -> List[float]:
    """CPM per fixed-size window of actions; windows with no elapsed time are skipped."""
    speeds: List[float] = []
    step = max(1, window)
    for i in range(0, len(actions), step):
        chunk = actions[i:i + step]
        if len(chunk) < 2:
            continue
        span = chunk[-1].timestamp - chunk[0].timestamp
        chars = sum(len(a.content) for a in chunk if isinstance(a, InsertAction))
        if span > 0:
            speeds.append(chars / span * 60000.0)
    return speeds

def typing_acceleration(speeds: Sequence[float]) -> float:
    if len(speeds) < 2:
        return 0.0
    return float(np.mean(np.diff(np.asarray(speeds, dtype=float))))

def fatigue_indicator(speeds: Sequence[float]) -> float:
    # only slowdowns count; needs enough windows for two meaningful halves
    if len(speeds) < 5:
        return 0.0
    half = len(speeds) // 2
    first, second = _mean(speeds[:half]), _mean(speeds[half:])
    if first <= 0:
        return 0.0
    return max(0.0, (first - second) / first)

def _backtracking(cursors: Sequence[CursorAction], min_chars: int) -> float:
    jumps = 0
    for prev, cur in zip(cursors, cursors[1:]):
        if cur.from_pos < prev.to_pos - min_chars:
            jumps += 1
    return jumps / max(1, len(cursors))

def _pause_patterns(pauses: Sequence[PauseAction], cfg: DetectionThresholds) -> PausePatterns:
    lengths = [p.duration_ms for p in pauses if p.duration_ms > 0]
    return PausePatterns(
        short_pauses=sum(1 for d in lengths if d < cfg.short_pause_ms),
        medium_pauses=sum(1 for d in lengths if cfg.short_pause_ms <= d < cfg.long_pause_ms),
        long_pauses=sum(1 for d in lengths if d >= cfg.long_pause_ms),
        average_pause_length=sum(lengths) / max(1, len(lengths)),
    )


def extract_metrics(actions: Sequence[BaseAction], config: Optional[DetectionThresholds] = None) -> Metrics:
    """
    Compute the feature vector for one ordered action log.
    Pure; never raises. Fewer than two actions yield Metrics.empty().
    """
    cfg = config or DetectionThresholds()
    n = len(actions)
    if n < 2:
        return Metrics.empty(action_count=n)

    inserts = [a for a in actions if isinstance(a, InsertAction)]
    deletes = [a for a in actions if a.kind == ActionKind.DELETE]
    cursors = [a for a in actions if isinstance(a, CursorAction)]
    pauses = [a for a in actions if isinstance(a, PauseAction)]

    # speed
    total_time = actions[-1].timestamp - actions[0].timestamp
    total_chars = sum(len(a.content) for a in inserts)
    avg_speed = (total_chars / total_time) * 60000.0 if total_time > 0 else 0.0
    wpm = avg_speed / cfg.chars_per_word

    speeds = speed_series(actions, cfg.speed_window_actions)

    # keystroke timing
    dwell = [a.dwell_ms for a in actions if isinstance(a, KeyUpAction) and a.dwell_ms]
    flight = [a.flight_ms for a in actions if isinstance(a, KeyDownAction) and a.flight_ms]

    intervals = [cur.timestamp - prev.timestamp for prev, cur in zip(inserts, inserts[1:])]
    interval_mean = _mean(intervals)
    rhythm = 1.0 - min(1.0, _std(intervals) / interval_mean) if interval_mean > 0 else 0.0

    pp = _pause_patterns(pauses, cfg)
    pause_lengths = [p.duration_ms for p in pauses if p.duration_ms > 0]

    deletion_rate = len(deletes) / max(1, len(inserts))
    final_words = len(inserts[-1].content.split()) if inserts else 0

    consistency = 1.0 - (variability(speeds) + variability(intervals) + variability(pause_lengths)) / 3.0

    return Metrics(
        average_typing_speed=avg_speed,
        window_speed_mean=_mean(speeds),
        std_typing_speed=_std(speeds),
        words_per_minute=wpm,
        characters_per_minute=avg_speed,
        pause_frequency=len(pauses) / max(1, n),
        deletion_rate=deletion_rate,
        cursor_jump_frequency=len(cursors) / max(1, n),
        rhythm_consistency=rhythm,
        burstiness=burstiness(intervals),
        dwell_time_variability=variability(dwell),
        flight_time_variability=variability(flight),
        backtracking_frequency=_backtracking(cursors, cfg.backtrack_chars),
        typing_acceleration=typing_acceleration(speeds),
        fatigue_indicator=fatigue_indicator(speeds),
        consistency_score=max(0.0, min(1.0, consistency)),
        revisions_per_word=len(deletes) / max(1, final_words),
        pause_patterns=pp,
        action_count=n,
        interval_count=len(intervals),
    )
