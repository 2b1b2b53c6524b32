# integrity_app/classifier/gateway.py
from __future__ import annotations
import asyncio
import os
import threading
import time
from dataclasses import dataclass, replace
from queue import Queue, Empty
from typing import Optional, Any, Mapping, Protocol, Tuple

import httpx
import structlog

from integrity_app.classifier.heuristic import HeuristicClassifier
from integrity_app.models import ClassifierDetails, ClassifierVerdict, ParagraphScore, SentenceScore

log = structlog.get_logger()

PRIMARY_PROVIDER = "GPTZero"
ERROR_PROVIDER = "GPTZero (Error)"


class ClassifierUnavailable(RuntimeError):
    """The external classifier could not produce a verdict; `reason` is a short machine tag."""
    def __init__(self, reason: str, detail: str = ""):
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason


class TextClassifier(Protocol):
    def classify(self, text: str) -> ClassifierVerdict: ...


@dataclass(frozen=True)
class ClassifierSettings:
    api_key: Optional[str] = None
    api_url: str = "https://api.gptzero.me/v2/predict/text"
    model_version: str = "2025-05-14-multilingual"
    timeout_s: float = 15.0
    min_text_chars: int = 50
    ai_threshold: float = 0.6

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ClassifierSettings":
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            api_key=env.get("GPTZERO_API_KEY") or None,
            api_url=env.get("GPTZERO_API_URL", defaults.api_url),
            model_version=env.get("GPTZERO_MODEL_VERSION", defaults.model_version),
            timeout_s=float(env.get("GPTZERO_TIMEOUT_S", defaults.timeout_s)),
        )


# ---- provider payload ----

def _num(value: Any) -> float:
    return float(value or 0)

def parse_gptzero_response(data: Any, ai_threshold: float = 0.6) -> ClassifierVerdict:
    """
    Map `documents[0].class_probabilities.{human,ai,mixed}` to one score:
    P(ai) + 0.5 * P(mixed). Detail arrays are optional.
    """
    try:
        document = data["documents"][0]
        probs = document["class_probabilities"]
        if not isinstance(document, dict) or not isinstance(probs, dict):
            raise TypeError("unexpected document shape")
        human, ai, mixed = _num(probs.get("human")), _num(probs.get("ai")), _num(probs.get("mixed"))

        sentences = None
        if isinstance(document.get("sentences"), list):
            sentences = [
                SentenceScore(
                    sentence=str(s.get("sentence") or ""),
                    generated_prob=_num(s.get("generated_prob")),
                    perplexity=_num(s.get("perplexity")),
                    highlight_for_ai=bool(s.get("highlight_sentence_for_ai", False)),
                )
                for s in document["sentences"] if isinstance(s, dict)
            ]
        paragraphs = None
        if isinstance(document.get("paragraphs"), list):
            paragraphs = [
                ParagraphScore(
                    start_sentence_index=int(p.get("start_sentence_index") or 0),
                    num_sentences=int(p.get("num_sentences") or 0),
                    completely_generated_prob=_num(p.get("completely_generated_prob")),
                )
                for p in document["paragraphs"] if isinstance(p, dict)
            ]

        details = ClassifierDetails(
            version=str(data.get("version") or "unknown"),
            scan_id=str(data.get("scanId") or "unknown"),
            predicted_class=str(document.get("predicted_class") or "mixed"),
            confidence_category=str(document.get("confidence_category") or "medium"),
            class_probabilities={"human": human, "ai": ai, "mixed": mixed},
            completely_generated_prob=_num(document.get("completely_generated_prob")),
            average_generated_prob=_num(document.get("average_generated_prob")),
            sentences=sentences,
            paragraphs=paragraphs,
        )
    except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
        raise ClassifierUnavailable("malformed_payload", str(e)) from e

    score = max(0.0, min(1.0, ai + 0.5 * mixed))
    return ClassifierVerdict(is_ai_generated=score > ai_threshold, score=score,
                             provider=PRIMARY_PROVIDER, details=details)


class GPTZeroClassifier:
    """
    HTTP-backed classifier. Raises ClassifierUnavailable on any failure; never retries.
    `aclassify` is the cancellable form: cancelling its task closes the client and
    drops the in-flight request.
    """
    provider = PRIMARY_PROVIDER

    def __init__(self, settings: ClassifierSettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport

    def classify(self, text: str) -> ClassifierVerdict:
        return asyncio.run(self.aclassify(text))

    async def aclassify(self, text: str) -> ClassifierVerdict:
        s = self.settings
        if not s.api_key:
            raise ClassifierUnavailable("missing_api_key")

        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "x-api-key": s.api_key,
        }
        try:
            async with httpx.AsyncClient(timeout=s.timeout_s, transport=self._transport) as client:
                resp = await client.post(s.api_url, json={"document": text, "version": s.model_version},
                                         headers=headers)
        except httpx.TimeoutException as e:
            raise ClassifierUnavailable("timeout", str(e)) from e
        except httpx.HTTPError as e:
            raise ClassifierUnavailable("transport_error", str(e)) from e

        log.debug("classifier.response", status=resp.status_code, text_len=len(text))
        if resp.status_code == 401:
            log.warning("classifier.auth_error", msg="Invalid GPTZero API key")
        elif resp.status_code == 402:
            log.warning("classifier.payment_required", msg="GPTZero quota exceeded")
        elif resp.status_code == 429:
            log.warning("classifier.rate_limited", msg="GPTZero rate limit exceeded")
        if not resp.is_success:
            raise ClassifierUnavailable(f"http_{resp.status_code}", resp.text[:200])

        try:
            data = resp.json()
        except ValueError as e:
            raise ClassifierUnavailable("malformed_json", str(e)) from e
        return parse_gptzero_response(data, s.ai_threshold)


class _PrimaryCall:
    """
    One primary call on a daemon thread. Primaries exposing `aclassify` run on a
    private event loop so abort() can cancel the request itself; plain
    `classify` primaries can only be abandoned.
    """
    def __init__(self, primary: TextClassifier, text: str):
        self.results: "Queue[Tuple[str, Any]]" = Queue(maxsize=1)
        self._primary = primary
        self._aclassify = getattr(primary, "aclassify", None)
        self._text = text
        self._lock = threading.Lock()
        self._aborted = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._task: Optional["asyncio.Task[ClassifierVerdict]"] = None
        self._thr = threading.Thread(target=self._run, daemon=True, name="classifier-call")

    def start(self) -> None:
        self._thr.start()

    def abort(self, join_sec: float) -> None:
        with self._lock:
            self._aborted = True
            if self._loop is not None and self._task is not None:
                self._loop.call_soon_threadsafe(self._task.cancel)
        if self._aclassify is not None:
            self._thr.join(timeout=join_sec)
            if self._thr.is_alive():
                log.warning("classifier.abort.slow", join_sec=join_sec)

    def _run(self) -> None:
        try:
            if self._aclassify is None:
                verdict = self._primary.classify(self._text)
            else:
                verdict = self._run_async()
            self.results.put_nowait(("ok", verdict))
        except Exception as e:  # forwarded to the waiting caller
            self.results.put_nowait(("err", e))

    def _run_async(self) -> ClassifierVerdict:
        loop = asyncio.new_event_loop()
        try:
            with self._lock:
                if self._aborted:
                    raise ClassifierUnavailable("cancelled")
                self._loop = loop
                self._task = loop.create_task(self._aclassify(self._text))
            try:
                return loop.run_until_complete(self._task)
            except asyncio.CancelledError:
                raise ClassifierUnavailable("cancelled") from None
        finally:
            with self._lock:
                self._loop = None
            loop.close()


class ClassifierGateway:
    """
    Single entry point for AI-text verdicts.
    - Text at or under `min_text_chars` (after strip) is skipped: no verdict.
    - The primary runs on a worker thread bounded by `timeout_s`; a caller-supplied
      cancel event stops the wait immediately and cancels an async primary's request.
    - Any failure resolves to the heuristic, tagged with `fallback_reason`.
    """
    def __init__(
        self,
        primary: Optional[TextClassifier] = None,
        fallback: Optional[TextClassifier] = None,
        settings: Optional[ClassifierSettings] = None,
        poll_sec: float = 0.05,
        join_sec: float = 1.0,
    ):
        self.settings = settings or ClassifierSettings()
        self.primary = primary
        self.fallback = fallback or HeuristicClassifier(ai_threshold=self.settings.ai_threshold)
        self.poll_sec = poll_sec
        self.join_sec = join_sec

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ClassifierGateway":
        settings = ClassifierSettings.from_env(environ)
        return cls(primary=GPTZeroClassifier(settings), settings=settings)

    def classify(self, text: Optional[str], cancel: Optional[threading.Event] = None) -> Optional[ClassifierVerdict]:
        if not text or len(text.strip()) <= self.settings.min_text_chars:
            log.debug("classifier.skip", text_len=len(text or ""))
            return None
        if self.primary is None:
            return self._fall_back(text, "no_primary")
        if cancel is not None and cancel.is_set():
            return self._fall_back(text, "cancelled")

        call = _PrimaryCall(self.primary, text)
        call.start()

        deadline = time.monotonic() + self.settings.timeout_s
        while True:
            if cancel is not None and cancel.is_set():
                call.abort(self.join_sec)
                return self._fall_back(text, "cancelled")
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                call.abort(self.join_sec)
                return self._fall_back(text, "timeout")
            try:
                status, payload = call.results.get(timeout=min(self.poll_sec, remaining))
            except Empty:
                continue
            break

        if status == "err":
            reason = getattr(payload, "reason", type(payload).__name__)
            log.warning("classifier.error", reason=reason, err=str(payload))
            return self._fall_back(text, reason)
        log.info("classifier.verdict", provider=payload.provider, score=round(payload.score, 3))
        return payload

    def _fall_back(self, text: str, reason: str) -> ClassifierVerdict:
        verdict = replace(self.fallback.classify(text), fallback_reason=reason)
        log.info("classifier.fallback", reason=reason, provider=verdict.provider, score=verdict.score)
        return verdict


def error_verdict() -> ClassifierVerdict:
    """Verdict recorded when even the fallback path failed; carries no content signal."""
    return ClassifierVerdict(
        is_ai_generated=False,
        score=0.0,
        provider=ERROR_PROVIDER,
        error="GPTZero API error. Manual review recommended.",
    )
