# integrity_app/analyzer.py
from __future__ import annotations
import threading
from dataclasses import dataclass
from typing import Optional, List, Dict, Any, Sequence
import structlog

from integrity_core.actions.events import BaseAction, parse_actions
from integrity_core.storage.essay_store import EssayStore
from integrity_app.analytics.anomaly_engine import AnomalyEngine
from integrity_app.analytics.calibration import compare_metrics
from integrity_app.analytics.config import DetectionThresholds, ScoringConfig
from integrity_app.analytics.metrics import extract_metrics
from integrity_app.classifier.gateway import ClassifierGateway, error_verdict
from integrity_app.models import AnalysisResult, ClassifierVerdict, ReferenceComparison, SuspiciousActivity
from integrity_app.scoring.fusion import fuse_scores, summarize
from integrity_app.scoring.timeline import build_timeline

log = structlog.get_logger()


class InvalidAnalysisInput(ValueError):
    """The request itself is unusable (client error)."""


@dataclass(frozen=True)
class AnalysisRequest:
    actions: List[BaseAction]
    reference_actions: Optional[List[BaseAction]] = None
    text_content: Optional[str] = None
    submission_id: Optional[str] = None

    @classmethod
    def from_record(cls, rec: Dict[str, Any]) -> "AnalysisRequest":
        if not isinstance(rec, dict):
            raise InvalidAnalysisInput("request body must be a JSON object")
        raw_actions = rec.get("actions")
        if not raw_actions:
            raise InvalidAnalysisInput("No actions provided for analysis")
        try:
            actions = parse_actions(raw_actions)
            raw_ref = rec.get("referenceActions")
            reference = parse_actions(raw_ref) if raw_ref else None
        except (TypeError, ValueError) as e:
            raise InvalidAnalysisInput(str(e)) from e
        text = rec.get("textContent")
        sub = rec.get("submissionId")
        return cls(
            actions=actions,
            reference_actions=reference,
            text_content=str(text) if text is not None else None,
            submission_id=str(sub) if sub is not None else None,
        )


class IntegrityAnalyzer:
    """
    Composition root: metrics → anomaly bank (+ calibration, + AI content)
    → fusion → summary/timeline. Only the classifier call can block.
    """
    def __init__(
        self,
        gateway: Optional[ClassifierGateway] = None,
        essay_store: Optional[EssayStore] = None,
        thresholds: Optional[DetectionThresholds] = None,
        scoring: Optional[ScoringConfig] = None,
    ):
        self.gateway = gateway or ClassifierGateway()
        self.essay_store = essay_store
        self.thresholds = thresholds or DetectionThresholds()
        self.scoring = scoring or ScoringConfig()
        self.engine = AnomalyEngine(self.thresholds)

    def analyze(
        self,
        request: AnalysisRequest,
        cancel: Optional[threading.Event] = None,
        screen_activities: Sequence[SuspiciousActivity] = (),
    ) -> AnalysisResult:
        if not request.actions:
            raise InvalidAnalysisInput("No actions provided for analysis")
        actions = sorted(request.actions, key=lambda a: a.timestamp)

        storage_key = self._archive(request)

        metrics = extract_metrics(actions, self.thresholds)
        activities: List[SuspiciousActivity] = self.engine.detect(actions, metrics)

        reference: Optional[ReferenceComparison] = None
        if request.reference_actions:
            ref_actions = sorted(request.reference_actions, key=lambda a: a.timestamp)
            ref_metrics = extract_metrics(ref_actions, self.thresholds)
            reference = compare_metrics(metrics, ref_metrics, len(ref_actions))
            activities.extend(self.engine.detect_calibration_deviations(metrics, ref_metrics))

        verdict = self._classify(request.text_content, cancel)
        ai_activity = self.engine.ai_content_activity(verdict)
        if ai_activity is not None:
            activities.append(ai_activity)

        activities.extend(screen_activities)

        fused = fuse_scores(metrics, activities, reference, verdict, self.scoring)
        result = AnalysisResult(
            is_human=fused.is_human,
            confidence_score=fused.confidence_score,
            risk_level=fused.risk_level,
            metrics=metrics,
            suspicious_activities=tuple(activities),
            summary=summarize(activities, fused),
            timeline=tuple(build_timeline(actions, activities)),
            reference_comparison=reference,
            ai_text_detection=verdict,
            essay_storage_key=storage_key,
        )
        log.info(
            "analysis.complete",
            actions=len(actions),
            flags=len(activities),
            risk=result.risk_level.value,
            confidence=round(result.confidence_score, 3),
            provider=verdict.provider if verdict else None,
        )
        return result

    def _classify(self, text: Optional[str], cancel: Optional[threading.Event]) -> Optional[ClassifierVerdict]:
        if not text:
            return None
        try:
            return self.gateway.classify(text, cancel=cancel)
        except Exception as e:
            log.error("classifier.gateway.error", err=str(e), exc_info=True)
            return error_verdict()

    def _archive(self, request: AnalysisRequest) -> Optional[str]:
        if self.essay_store is None or not request.text_content or not request.submission_id:
            return None
        try:
            return self.essay_store.save(request.submission_id, request.text_content)
        except Exception as e:
            log.warning("essay.store.error", submission=request.submission_id, err=str(e))
            return None
