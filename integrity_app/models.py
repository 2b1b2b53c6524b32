# integrity_app/models.py
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, List, Tuple

class Severity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    def __lt__(self, other: "Severity") -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: "Severity") -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

_SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]

class RiskLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL].index(self)

class TimelineRisk(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

class ActivityKind(Enum):
    # typing-behavior detectors
    PASTE = "paste"
    SPEED_ANOMALY = "speed_anomaly"
    RHYTHM_ANOMALY = "rhythm_anomaly"
    PAUSE_ANOMALY = "pause_anomaly"
    AI_CONTENT = "ai_content"
    BEHAVIOR_DEVIATION = "behavior_deviation"
    # screen-activity detector
    WINDOW_BLUR = "window_blur"
    WINDOW_FOCUS = "window_focus"
    TAB_CHANGE = "tab_change"
    AI_TOOL_DETECTED = "ai_tool_detected"
    SUSPICIOUS_URL = "suspicious_url"
    COPY_PASTE = "copy_paste"


def _clamp01(x: float) -> float:
    return max(0.0, min(1.0, float(x)))


@dataclass(frozen=True)
class SuspiciousActivity:
    """One flagged anomaly, produced by exactly one detector."""
    kind: ActivityKind
    severity: Severity
    confidence: float
    description: str
    evidence: Tuple[str, ...] = ()
    timestamp: Optional[float] = None
    affected_content: Optional[str] = None
    url: Optional[str] = None
    duration_ms: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, "confidence", _clamp01(self.confidence))
        object.__setattr__(self, "evidence", tuple(self.evidence))

    def to_record(self) -> Dict[str, Any]:
        rec: Dict[str, Any] = {
            "type": self.kind.value,
            "severity": self.severity.value,
            "description": self.description,
            "evidence": list(self.evidence),
            "confidence": self.confidence,
        }
        if self.timestamp is not None:
            rec["timestamp"] = self.timestamp
        if self.affected_content is not None:
            rec["affectedContent"] = self.affected_content
        if self.url is not None:
            rec["url"] = self.url
        if self.duration_ms is not None:
            rec["duration"] = self.duration_ms
        return rec


@dataclass(frozen=True)
class FeatureComparison:
    similarity: float
    deviation: float
    explanation: str

    def to_record(self) -> Dict[str, Any]:
        return {"similarity": self.similarity, "deviation": self.deviation, "explanation": self.explanation}


@dataclass(frozen=True)
class ReferenceComparison:
    overall: float
    breakdown: Dict[str, FeatureComparison]
    statistical_significance: float
    profile_match_score: float
    reference_sample_size: int

    def to_record(self) -> Dict[str, Any]:
        return {
            "overall": self.overall,
            "breakdown": {k: v.to_record() for k, v in self.breakdown.items()},
            "statisticalSignificance": self.statistical_significance,
            "profileMatchScore": self.profile_match_score,
            "referenceSampleSize": self.reference_sample_size,
        }


@dataclass(frozen=True)
class SentenceScore:
    sentence: str
    generated_prob: float
    perplexity: float
    highlight_for_ai: bool

@dataclass(frozen=True)
class ParagraphScore:
    start_sentence_index: int
    num_sentences: int
    completely_generated_prob: float

@dataclass(frozen=True)
class ClassifierDetails:
    """Optional provider detail block; every field tolerates absence upstream."""
    version: str = "unknown"
    scan_id: str = "unknown"
    predicted_class: str = "mixed"
    confidence_category: str = "medium"
    class_probabilities: Dict[str, float] = field(default_factory=dict)
    completely_generated_prob: float = 0.0
    average_generated_prob: float = 0.0
    sentences: Optional[List[SentenceScore]] = None
    paragraphs: Optional[List[ParagraphScore]] = None

    def to_record(self) -> Dict[str, Any]:
        rec: Dict[str, Any] = {
            "version": self.version,
            "scanId": self.scan_id,
            "predictedClass": self.predicted_class,
            "confidenceCategory": self.confidence_category,
            "classProbabilities": dict(self.class_probabilities),
            "completelyGeneratedProb": self.completely_generated_prob,
            "averageGeneratedProb": self.average_generated_prob,
        }
        if self.sentences is not None:
            rec["sentences"] = [
                {"sentence": s.sentence, "generatedProb": s.generated_prob,
                 "perplexity": s.perplexity, "highlightForAi": s.highlight_for_ai}
                for s in self.sentences
            ]
        if self.paragraphs is not None:
            rec["paragraphs"] = [
                {"startSentenceIndex": p.start_sentence_index, "numSentences": p.num_sentences,
                 "completelyGeneratedProb": p.completely_generated_prob}
                for p in self.paragraphs
            ]
        return rec


@dataclass(frozen=True)
class ClassifierVerdict:
    is_ai_generated: bool
    score: float
    provider: str
    details: Optional[ClassifierDetails] = None
    fallback_reason: Optional[str] = None   # set when the heuristic answered instead of the provider
    error: Optional[str] = None             # set only when no verdict could be produced at all

    @property
    def is_fallback(self) -> bool:
        return self.fallback_reason is not None

    def to_record(self) -> Dict[str, Any]:
        rec: Dict[str, Any] = {
            "isAiGenerated": self.is_ai_generated,
            "score": self.score,
            "provider": self.provider,
        }
        if self.details is not None:
            rec["details"] = self.details.to_record()
        if self.fallback_reason is not None:
            rec["fallbackReason"] = self.fallback_reason
        if self.error is not None:
            rec["error"] = self.error
        return rec


@dataclass(frozen=True)
class Summary:
    total_flags: int
    high_risk_flags: int
    behavior_score: float
    content_score: float
    overall_assessment: str

    def to_record(self) -> Dict[str, Any]:
        return {
            "totalFlags": self.total_flags,
            "highRiskFlags": self.high_risk_flags,
            "behaviorScore": self.behavior_score,
            "contentScore": self.content_score,
            "overallAssessment": self.overall_assessment,
        }


@dataclass(frozen=True)
class TimelineEntry:
    timestamp: float
    event: str
    risk: TimelineRisk

    def to_record(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "event": self.event, "risk": self.risk.value}


@dataclass(frozen=True)
class AnalysisResult:
    """Terminal artifact of one analysis call."""
    is_human: bool
    confidence_score: float
    risk_level: RiskLevel
    metrics: Any   # analytics.metrics.Metrics
    suspicious_activities: Tuple[SuspiciousActivity, ...]
    summary: Summary
    timeline: Tuple[TimelineEntry, ...]
    reference_comparison: Optional[ReferenceComparison] = None
    ai_text_detection: Optional[ClassifierVerdict] = None
    essay_storage_key: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        rec: Dict[str, Any] = {
            "isHuman": self.is_human,
            "confidenceScore": self.confidence_score,
            "riskLevel": self.risk_level.value,
            "metrics": self.metrics.to_record(),
            "suspiciousActivities": [a.to_record() for a in self.suspicious_activities],
            "summary": self.summary.to_record(),
            "timeline": [t.to_record() for t in self.timeline],
        }
        if self.reference_comparison is not None:
            rec["referenceComparison"] = self.reference_comparison.to_record()
        if self.ai_text_detection is not None:
            rec["aiTextDetection"] = self.ai_text_detection.to_record()
        if self.essay_storage_key is not None:
            rec["essayStorageKey"] = self.essay_storage_key
        return rec
