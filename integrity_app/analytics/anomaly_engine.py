# integrity_app/analytics/anomaly_engine.py
from __future__ import annotations
from typing import List, Optional, Sequence
import structlog

from integrity_core.actions.events import BaseAction, InsertAction
from integrity_app.analytics.config import DetectionThresholds
from integrity_app.analytics.metrics import Metrics
from integrity_app.models import ActivityKind, ClassifierVerdict, Severity, SuspiciousActivity

log = structlog.get_logger()

def _pct(x: float) -> int:
    return int(round(x * 100))

class AnomalyEngine:
    """
    Independent rule bank over the action log and its Metrics. Every rule runs
    on every call and may emit any number of SuspiciousActivity records:
      - paste (Δcontent ≫ Δt, burst after pause)
      - speed above the human ceiling
      - rhythm too uniform
      - too few pauses
      - no corrections
      - over-consistent behavior
    Calibration deviations and AI-content verdicts are exposed separately since
    they need inputs the bank does not always have.
    """
    def __init__(self, config: Optional[DetectionThresholds] = None):
        self.cfg = config or DetectionThresholds()

    def detect(self, actions: Sequence[BaseAction], metrics: Metrics) -> List[SuspiciousActivity]:
        out: List[SuspiciousActivity] = []
        out.extend(self._paste_events(actions))
        for rule in (self._speed, self._rhythm, self._pauses, self._no_corrections, self._over_consistency):
            found = rule(metrics)
            if found is not None:
                out.append(found)
        for a in out:
            log.info("anomaly.flag", rule=a.kind.value, severity=a.severity.value,
                     confidence=round(a.confidence, 3), why=a.description)
        return out

    # ---- Rules ----

    def _paste_events(self, actions: Sequence[BaseAction]) -> List[SuspiciousActivity]:
        cfg = self.cfg
        inserts = [a for a in actions if isinstance(a, InsertAction) and a.content]
        found: List[SuspiciousActivity] = []
        for prev, cur in zip(inserts, inserts[1:]):
            growth = len(cur.content) - len(prev.content)
            gap = cur.timestamp - prev.timestamp
            fast_growth = growth > cfg.paste_min_growth and gap < cfg.paste_max_gap_ms
            burst = (
                gap > cfg.burst_min_gap_ms
                and len(cur.content) > cfg.burst_min_len
                and len(cur.content) > len(prev.content) * cfg.burst_ratio
            )
            if not (fast_growth or burst) or growth <= 0:
                continue
            pasted = cur.content[-growth:]
            confidence = min(1.0, growth / cfg.paste_full_confidence_chars)
            trigger = (
                f"{growth} chars added within {gap:.0f}ms"
                if fast_growth
                else f"{len(cur.content)}-char chunk after a {gap:.0f}ms pause (previous chunk {len(prev.content)} chars)"
            )
            found.append(SuspiciousActivity(
                kind=ActivityKind.PASTE,
                severity=Severity.HIGH if confidence > cfg.paste_high_confidence else Severity.MEDIUM,
                confidence=confidence,
                description="Potential paste operation detected",
                evidence=(
                    f"Large content insertion: {pasted[:50]}...",
                    f"Trigger: {trigger}",
                    f"Confidence: {_pct(confidence)}%",
                    f"Size: {growth} characters",
                ),
                timestamp=cur.timestamp,
                affected_content=pasted,
            ))
        return found

    def _speed(self, m: Metrics) -> Optional[SuspiciousActivity]:
        cfg = self.cfg
        speed = m.average_typing_speed
        if not speed > cfg.speed_high_cpm:
            return None
        band = max(1e-9, cfg.speed_critical_cpm - cfg.speed_high_cpm)
        return SuspiciousActivity(
            kind=ActivityKind.SPEED_ANOMALY,
            severity=Severity.CRITICAL if speed > cfg.speed_critical_cpm else Severity.HIGH,
            confidence=min(1.0, (speed - cfg.speed_high_cpm) / band),
            description="Unusually high typing speed detected",
            evidence=(
                f"Average speed: {speed:.0f} CPM",
                "Expected human range: 30-150 CPM",
                f"Standard deviation: {m.std_typing_speed:.0f}",
            ),
        )

    def _rhythm(self, m: Metrics) -> Optional[SuspiciousActivity]:
        cfg = self.cfg
        if m.interval_count < cfg.min_interval_samples:
            return None
        if not m.rhythm_consistency > cfg.rhythm_consistency_max:
            return None
        return SuspiciousActivity(
            kind=ActivityKind.RHYTHM_ANOMALY,
            severity=Severity.HIGH,
            confidence=(m.rhythm_consistency - cfg.rhythm_consistency_max) / max(1e-9, 1.0 - cfg.rhythm_consistency_max),
            description="Unnaturally consistent typing rhythm",
            evidence=(
                f"Rhythm consistency: {_pct(m.rhythm_consistency)}%",
                "Human typical range: 40-85%",
                f"Low variability in keystroke timing ({m.interval_count} intervals)",
            ),
        )

    def _pauses(self, m: Metrics) -> Optional[SuspiciousActivity]:
        cfg = self.cfg
        if m.action_count < cfg.min_actions_for_rates:
            return None
        if not m.pause_frequency < cfg.pause_frequency_min:
            return None
        return SuspiciousActivity(
            kind=ActivityKind.PAUSE_ANOMALY,
            severity=Severity.MEDIUM,
            confidence=(cfg.pause_frequency_min - m.pause_frequency) / cfg.pause_frequency_min,
            description="Abnormally few pauses during typing",
            evidence=(
                f"Pause frequency: {m.pause_frequency * 100:.1f}%",
                "Human typical range: 5-25%",
                "Continuous typing without natural breaks",
            ),
        )

    def _no_corrections(self, m: Metrics) -> Optional[SuspiciousActivity]:
        cfg = self.cfg
        if m.action_count < cfg.min_actions_for_rates:
            return None
        if not m.deletion_rate < cfg.deletion_rate_min:
            return None
        return SuspiciousActivity(
            kind=ActivityKind.BEHAVIOR_DEVIATION,
            severity=Severity.MEDIUM,
            confidence=cfg.no_correction_confidence,
            description="No corrections or deletions made",
            evidence=(
                f"Deletion rate: {_pct(m.deletion_rate)}%",
                "Human typical range: 5-20%",
                "Perfect typing without errors is unusual",
            ),
        )

    def _over_consistency(self, m: Metrics) -> Optional[SuspiciousActivity]:
        cfg = self.cfg
        if m.action_count < cfg.min_actions_for_rates:
            return None
        if not m.consistency_score > cfg.consistency_score_max:
            return None
        return SuspiciousActivity(
            kind=ActivityKind.BEHAVIOR_DEVIATION,
            severity=Severity.MEDIUM,
            confidence=(m.consistency_score - 0.7) / 0.3,
            description="Unnaturally consistent typing patterns",
            evidence=(
                f"Consistency score: {_pct(m.consistency_score)}%",
                "Low variance in typing behavior",
                "Possible automated input",
            ),
        )

    # ---- Calibration / content ----

    def detect_calibration_deviations(self, current: Metrics, reference: Metrics) -> List[SuspiciousActivity]:
        """Flag sessions that drift far from the writer's own calibration profile."""
        cfg = self.cfg
        found: List[SuspiciousActivity] = []

        ref_speed = reference.average_typing_speed
        speed_dev = abs(current.average_typing_speed - ref_speed)
        allowed = ref_speed * cfg.calib_speed_deviation_ratio
        if ref_speed > 0 and speed_dev > allowed:
            found.append(SuspiciousActivity(
                kind=ActivityKind.BEHAVIOR_DEVIATION,
                severity=Severity.HIGH if speed_dev > ref_speed else Severity.MEDIUM,
                confidence=min(1.0, speed_dev / allowed),
                description="Typing speed significantly different from calibration",
                evidence=(
                    f"Current speed: {current.average_typing_speed:.0f} CPM",
                    f"Calibration speed: {ref_speed:.0f} CPM",
                    f"Deviation: {speed_dev:.0f} CPM ({speed_dev / ref_speed * 100:.0f}%)",
                ),
            ))

        rhythm_dev = abs(current.rhythm_consistency - reference.rhythm_consistency)
        if rhythm_dev > cfg.calib_rhythm_deviation:
            found.append(SuspiciousActivity(
                kind=ActivityKind.BEHAVIOR_DEVIATION,
                severity=Severity.MEDIUM,
                confidence=rhythm_dev / cfg.calib_rhythm_deviation,
                description="Typing rhythm differs significantly from calibration",
                evidence=(
                    f"Current rhythm consistency: {_pct(current.rhythm_consistency)}%",
                    f"Calibration rhythm: {_pct(reference.rhythm_consistency)}%",
                    "Significant change in typing pattern",
                ),
            ))

        for a in found:
            log.info("anomaly.flag", rule="calibration_deviation", severity=a.severity.value,
                     confidence=round(a.confidence, 3), why=a.description)
        return found

    def ai_content_activity(self, verdict: Optional[ClassifierVerdict]) -> Optional[SuspiciousActivity]:
        if verdict is None or verdict.error is not None or not verdict.is_ai_generated:
            return None
        cfg = self.cfg
        if verdict.score > cfg.ai_critical_score:
            severity = Severity.CRITICAL
        elif verdict.score > cfg.ai_high_score:
            severity = Severity.HIGH
        else:
            severity = Severity.MEDIUM
        return SuspiciousActivity(
            kind=ActivityKind.AI_CONTENT,
            severity=severity,
            confidence=verdict.score,
            description=f"Content flagged as AI-generated with {_pct(verdict.score)}% confidence",
            evidence=(
                f"AI detection score: {verdict.score}",
                f"Provider: {verdict.provider}",
            ),
        )
