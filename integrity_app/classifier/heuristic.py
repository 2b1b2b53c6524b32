from __future__ import annotations
import re
from typing import List, Pattern

from integrity_app.analytics.metrics import variability
from integrity_app.models import ClassifierVerdict

FALLBACK_PROVIDER = "Fallback Heuristic (GPTZero unavailable)"

# self-referential phrases language models tend to leave behind
AI_INDICATORS: List[Pattern[str]] = [re.compile(p, re.IGNORECASE) for p in (
    r"as an ai",
    r"i don't have the ability",
    r"i cannot",
    r"i'm an ai",
    r"as a language model",
    r"i don't have personal",
    r"i'm not able to",
)]

TRANSITION_PATTERNS: List[Pattern[str]] = [re.compile(p, re.IGNORECASE) for p in (
    r"furthermore",
    r"moreover",
    r"in conclusion",
    r"it's worth noting",
    r"it's important to",
)]

_SENTENCE_SPLIT = re.compile(r"[.!?]+")


class HeuristicClassifier:
    """
    Local stand-in for the external AI-text classifier. A pure function of the
    text: the same input always produces the same verdict.
    """
    provider = FALLBACK_PROVIDER

    def __init__(self, indicator_weight: float = 0.3, transition_weight: float = 2.0,
                 uniform_cv_threshold: float = 0.3, uniform_bonus: float = 0.2,
                 ai_threshold: float = 0.6):
        self.indicator_weight = indicator_weight
        self.transition_weight = transition_weight
        self.uniform_cv_threshold = uniform_cv_threshold
        self.uniform_bonus = uniform_bonus
        self.ai_threshold = ai_threshold

    def score(self, text: str) -> float:
        score = 0.0
        score += self.indicator_weight * sum(1 for p in AI_INDICATORS if p.search(text))

        words = len(text.split())
        transitions = sum(1 for p in TRANSITION_PATTERNS if p.search(text))
        score += transitions / max(1, words) * self.transition_weight

        sentences = [s for s in _SENTENCE_SPLIT.split(text) if s.strip()]
        if len(sentences) > 3:
            cv = variability([len(s) for s in sentences])
            if cv < self.uniform_cv_threshold:
                score += self.uniform_bonus

        return round(min(1.0, max(0.0, score)), 2)

    def classify(self, text: str) -> ClassifierVerdict:
        s = self.score(text)
        return ClassifierVerdict(is_ai_generated=s > self.ai_threshold, score=s, provider=self.provider)
