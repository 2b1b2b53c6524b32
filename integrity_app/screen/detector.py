# integrity_app/screen/detector.py
from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Dict, Any, Iterable, List, Optional, Pattern
import structlog
from blake3 import blake3

from integrity_core.screen.events import (
    ScreenEvent, FocusLostEvent, FocusGainedEvent, ClipboardSnapshotEvent, NavigationEvent, TabSwitchEvent,
)
from integrity_app.models import ActivityKind, Severity, SuspiciousActivity
from integrity_app.policy.domains import DomainCategory, DomainPolicy

log = structlog.get_logger()

CLIPBOARD_AI_PATTERNS: List[Pattern[str]] = [re.compile(p, re.IGNORECASE) for p in (
    r"I'm an AI",
    r"as an AI",
    r"I cannot",
    r"I don't have the ability",
    r"I'm not able to",
    r"as a language model",
    r"I'm Claude",
    r"I'm ChatGPT",
    r"I'm GPT",
    r"generated by AI",
    r"artificial intelligence",
)]

@dataclass(frozen=True)
class ScreenThresholds:
    # time away ladder (ms); strictly-greater comparisons
    away_critical_ms: float = 120_000
    away_high_ms: float = 60_000
    away_medium_ms: float = 30_000
    away_brief_ms: float = 10_000
    clipboard_min_chars: int = 100
    clipboard_large_chars: int = 500
    preview_chars: int = 100


class ScreenActivityDetector:
    """
    Stateful consumer of ScreenEvents for one session.
    - Tracks focus loss to report time away on regain.
    - Classifies navigation/tab targets through DomainPolicy.
    - Clipboard snapshots are reduced to a blake3 digest; unchanged content is ignored.
    """
    def __init__(self, policy: Optional[DomainPolicy] = None, thresholds: Optional[ScreenThresholds] = None,
                 session_salt: bytes = b""):
        self.policy = policy or DomainPolicy()
        self.cfg = thresholds or ScreenThresholds()
        self.session_salt = session_salt
        self.activities: List[SuspiciousActivity] = []
        self.total_time_out_of_focus_ms = 0.0
        self.ai_tool_detections = 0
        self._blur_at: Optional[float] = None
        self._last_clip_digest: Optional[str] = None

    def process(self, ev: ScreenEvent) -> List[SuspiciousActivity]:
        if isinstance(ev, FocusLostEvent):
            found = [self._on_blur(ev)]
        elif isinstance(ev, FocusGainedEvent):
            found = self._on_focus(ev)
        elif isinstance(ev, ClipboardSnapshotEvent):
            found = self._on_clipboard(ev)
        elif isinstance(ev, TabSwitchEvent):
            found = self._on_tab_switch(ev)
        elif isinstance(ev, NavigationEvent):
            found = self._check_url(ev.url, ev.title, ev.timestamp)
        else:
            found = []

        for a in found:
            if a.kind is ActivityKind.AI_TOOL_DETECTED:
                self.ai_tool_detections += 1
            log.info("screen.flag", kind=a.kind.value, severity=a.severity.value, ts=a.timestamp)
        self.activities.extend(found)
        return found

    def summary(self) -> Dict[str, Any]:
        return {
            "suspiciousActivityCount": sum(1 for a in self.activities if Severity.HIGH <= a.severity),
            "totalTimeOutOfFocus": self.total_time_out_of_focus_ms,
            "aiToolDetections": self.ai_tool_detections,
            "activities": [a.to_record() for a in self.activities],
        }

    # ---- Handlers ----

    def _on_blur(self, ev: FocusLostEvent) -> SuspiciousActivity:
        self._blur_at = ev.timestamp
        return SuspiciousActivity(
            kind=ActivityKind.WINDOW_BLUR,
            severity=Severity.MEDIUM,
            confidence=0.5,
            description="Assessment window lost focus - student switched away",
            evidence=(
                "Student navigated to another tab, window, or application",
                "Potential access to external resources",
                f"Time of focus loss: {ev.timestamp:.0f}ms",
            ),
            timestamp=ev.timestamp,
        )

    def _on_focus(self, ev: FocusGainedEvent) -> List[SuspiciousActivity]:
        if self._blur_at is None:
            return []
        cfg = self.cfg
        duration = max(0.0, ev.timestamp - self._blur_at)
        self._blur_at = None
        self.total_time_out_of_focus_ms += duration

        if duration > cfg.away_critical_ms:
            severity, level = Severity.CRITICAL, "Extended absence - high risk of external assistance"
        elif duration > cfg.away_high_ms:
            severity, level = Severity.HIGH, "Significant time away - potential resource access"
        elif duration > cfg.away_medium_ms:
            severity, level = Severity.MEDIUM, "Moderate absence - possible distraction or resource check"
        elif duration > cfg.away_brief_ms:
            severity, level = Severity.MEDIUM, "Brief absence - minor concern"
        else:
            severity, level = Severity.LOW, "Very brief focus loss - likely accidental"

        seconds = round(duration / 1000)
        return [SuspiciousActivity(
            kind=ActivityKind.WINDOW_FOCUS,
            severity=severity,
            confidence=min(1.0, duration / cfg.away_critical_ms),
            description=f"Assessment window regained focus after {seconds} seconds",
            evidence=(
                f"Time out of focus: {seconds} seconds",
                f"Risk assessment: {level}",
                f"Total time away this session: {round(self.total_time_out_of_focus_ms / 1000)} seconds",
                "Sufficient time to access external resources" if duration > cfg.away_medium_ms else "Brief interruption",
            ),
            timestamp=ev.timestamp,
            duration_ms=duration,
        )]

    def _on_tab_switch(self, ev: TabSwitchEvent) -> List[SuspiciousActivity]:
        found = self._check_url(ev.url, ev.title, ev.timestamp)
        verdict = self.policy.decide(ev.url)
        if verdict.category is not DomainCategory.ASSESSMENT:
            found.append(SuspiciousActivity(
                kind=ActivityKind.TAB_CHANGE,
                severity=Severity.MEDIUM,
                confidence=0.5,
                description=f"Switched to different tab: {ev.title or verdict.host or 'unknown'}",
                evidence=(f"URL: {ev.url}",),
                timestamp=ev.timestamp,
                url=ev.url or None,
            ))
        return found

    def _check_url(self, url: str, title: Optional[str], ts: float) -> List[SuspiciousActivity]:
        verdict = self.policy.decide(url)
        if verdict.category is DomainCategory.AI_TOOL:
            return [SuspiciousActivity(
                kind=ActivityKind.AI_TOOL_DETECTED,
                severity=Severity.CRITICAL,
                confidence=1.0,
                description=f"AI tool accessed: {verdict.host}",
                evidence=(
                    f"Domain: {verdict.host}",
                    f"Tab title: {title or 'unknown'}",
                    f"Full URL: {url}",
                    "Accessed during assessment period",
                ),
                timestamp=ts,
                url=url,
            )]
        if verdict.category is DomainCategory.SUSPICIOUS_SEARCH:
            return [SuspiciousActivity(
                kind=ActivityKind.SUSPICIOUS_URL,
                severity=Severity.HIGH,
                confidence=0.8,
                description=f"Suspicious search query: {verdict.query}",
                evidence=(
                    f"Search query: {verdict.query}",
                    f"Search engine: {verdict.host}",
                    "Contains academic assistance keywords",
                ),
                timestamp=ts,
                url=url,
            )]
        return []

    def _on_clipboard(self, ev: ClipboardSnapshotEvent) -> List[SuspiciousActivity]:
        text = ev.text
        h = blake3()
        h.update(self.session_salt)
        h.update(text.encode(errors="ignore"))
        digest = h.hexdigest()
        if digest == self._last_clip_digest:
            return []
        self._last_clip_digest = digest

        cfg = self.cfg
        length = len(text)
        if length <= cfg.clipboard_min_chars:
            return []

        ai_like = any(p.search(text) for p in CLIPBOARD_AI_PATTERNS)
        if ai_like:
            severity = Severity.CRITICAL
        elif length > cfg.clipboard_large_chars:
            severity = Severity.HIGH
        else:
            severity = Severity.MEDIUM

        evidence = [
            f"Content length: {length} characters",
            f"Content preview: {text[:cfg.preview_chars]}...",
            "Contains AI-generated content patterns" if ai_like else "Large text paste detected",
        ]
        if ai_like:
            evidence.append("Suspicious phrases detected in clipboard")
        return [SuspiciousActivity(
            kind=ActivityKind.COPY_PASTE,
            severity=severity,
            confidence=1.0 if ai_like else min(1.0, length / cfg.clipboard_large_chars),
            description=(
                "Suspicious AI-generated content detected in clipboard" if ai_like
                else "Large text content detected in clipboard"
            ),
            evidence=tuple(evidence),
            timestamp=ev.timestamp,
        )]


def analyze_screen_events(events: Iterable[ScreenEvent], policy: Optional[DomainPolicy] = None) -> Dict[str, Any]:
    """Replay a recorded event stream through a fresh detector and return its summary."""
    det = ScreenActivityDetector(policy=policy)
    for ev in sorted(events, key=lambda e: e.timestamp):
        det.process(ev)
    return det.summary()
