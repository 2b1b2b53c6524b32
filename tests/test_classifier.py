# tests/test_classifier.py
# How to run:
#   pytest -q
#
# What this covers:
#   - GPTZero request shape and response mapping (httpx.MockTransport, no network)
#   - Every provider failure raises ClassifierUnavailable with a reason tag
#   - Gateway falls back to the heuristic on timeout/401/429/malformed JSON/missing key/cancel
#   - Cancel and deadline interrupt the in-flight HTTP request instead of abandoning it
#   - Short text is skipped; the heuristic is deterministic

import asyncio
import json
import threading
import time

import httpx
import pytest

from integrity_app.classifier.gateway import (
    ClassifierGateway, ClassifierSettings, ClassifierUnavailable, GPTZeroClassifier, parse_gptzero_response,
)
from integrity_app.classifier.heuristic import FALLBACK_PROVIDER, HeuristicClassifier
from integrity_app.models import ClassifierVerdict

ESSAY = (
    "The river bent twice before it reached the mill, and every spring my grandfather "
    "walked its banks looking for the first green shoots of watercress."
)

GOOD_PAYLOAD = {
    "version": "2025-05-14-multilingual",
    "scanId": "scan-123",
    "documents": [{
        "class_probabilities": {"human": 0.1, "ai": 0.8, "mixed": 0.1},
        "predicted_class": "ai",
        "confidence_category": "high",
        "completely_generated_prob": 0.83,
        "average_generated_prob": 0.79,
        "sentences": [
            {"sentence": "The river bent twice.", "generated_prob": 0.9, "perplexity": 12.5,
             "highlight_sentence_for_ai": True},
        ],
        "paragraphs": [{"start_sentence_index": 0, "num_sentences": 1, "completely_generated_prob": 0.9}],
    }],
}

def _settings(**kw):
    base = dict(api_key="test-key", api_url="https://gptzero.test/v2/predict/text", timeout_s=2.0)
    base.update(kw)
    return ClassifierSettings(**base)

def _client(handler, **kw):
    return GPTZeroClassifier(_settings(**kw), transport=httpx.MockTransport(handler))

def test_gptzero_request_and_mapping():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        seen["url"] = str(request.url)
        return httpx.Response(200, json=GOOD_PAYLOAD)

    verdict = _client(handler).classify(ESSAY)

    assert seen["url"] == "https://gptzero.test/v2/predict/text"
    assert seen["headers"]["x-api-key"] == "test-key"
    assert seen["body"] == {"document": ESSAY, "version": "2025-05-14-multilingual"}

    assert verdict.provider == "GPTZero"
    assert verdict.score == pytest.approx(0.85)    # ai + 0.5 * mixed
    assert verdict.is_ai_generated is True
    assert verdict.fallback_reason is None
    d = verdict.details
    assert d.scan_id == "scan-123" and d.predicted_class == "ai"
    assert d.sentences[0].highlight_for_ai is True
    assert d.paragraphs[0].num_sentences == 1

def test_optional_detail_fields_may_be_absent():
    v = parse_gptzero_response({"documents": [{"class_probabilities": {"human": 0.9, "ai": 0.05, "mixed": 0.05}}]})
    assert v.is_ai_generated is False
    assert v.details.version == "unknown"
    assert v.details.sentences is None and v.details.paragraphs is None

@pytest.mark.parametrize("status", [401, 402, 429, 500])
def test_non_success_status_raises(status):
    clf = _client(lambda req: httpx.Response(status, json={"error": "nope"}))
    with pytest.raises(ClassifierUnavailable) as ei:
        clf.classify(ESSAY)
    assert ei.value.reason == f"http_{status}"

def test_malformed_json_and_payload_raise():
    with pytest.raises(ClassifierUnavailable) as ei:
        _client(lambda req: httpx.Response(200, content=b"<html>oops</html>")).classify(ESSAY)
    assert ei.value.reason == "malformed_json"

    with pytest.raises(ClassifierUnavailable) as ei:
        _client(lambda req: httpx.Response(200, json={"documents": []})).classify(ESSAY)
    assert ei.value.reason == "malformed_payload"

def test_transport_timeout_raises():
    def handler(request):
        raise httpx.ReadTimeout("slow upstream", request=request)
    with pytest.raises(ClassifierUnavailable) as ei:
        _client(handler).classify(ESSAY)
    assert ei.value.reason == "timeout"

def test_missing_key_raises_before_any_request():
    calls = []
    clf = GPTZeroClassifier(ClassifierSettings(), transport=httpx.MockTransport(lambda r: calls.append(r)))
    with pytest.raises(ClassifierUnavailable) as ei:
        clf.classify(ESSAY)
    assert ei.value.reason == "missing_api_key"
    assert calls == []

# ---- gateway ----

def _assert_fallback(verdict, reason):
    assert verdict is not None
    assert verdict.provider == FALLBACK_PROVIDER
    assert verdict.fallback_reason == reason
    assert 0.0 <= verdict.score <= 1.0

def test_gateway_passes_primary_verdict_through():
    gw = ClassifierGateway(primary=_client(lambda req: httpx.Response(200, json=GOOD_PAYLOAD)), settings=_settings())
    v = gw.classify(ESSAY)
    assert v.provider == "GPTZero"
    assert not v.is_fallback

@pytest.mark.parametrize("response,reason", [
    (httpx.Response(401, json={"error": "bad key"}), "http_401"),
    (httpx.Response(429, json={"error": "slow down"}), "http_429"),
    (httpx.Response(200, content=b"not json"), "malformed_json"),
])
def test_gateway_falls_back_on_provider_errors(response, reason):
    gw = ClassifierGateway(primary=_client(lambda req: response), settings=_settings())
    _assert_fallback(gw.classify(ESSAY), reason)

class _BlockingPrimary:
    """Never answers until released."""
    def __init__(self):
        self.release = threading.Event()

    def classify(self, text):
        self.release.wait(5.0)
        return ClassifierVerdict(False, 0.0, "GPTZero")

def test_gateway_timeout_falls_back():
    primary = _BlockingPrimary()
    gw = ClassifierGateway(primary=primary, settings=_settings(timeout_s=0.1), poll_sec=0.01)
    try:
        _assert_fallback(gw.classify(ESSAY), "timeout")
    finally:
        primary.release.set()

def test_gateway_cancel_falls_back_immediately():
    primary = _BlockingPrimary()
    gw = ClassifierGateway(primary=primary, settings=_settings(timeout_s=5.0), poll_sec=0.01)
    cancel = threading.Event()
    timer = threading.Timer(0.05, cancel.set)
    timer.start()
    try:
        _assert_fallback(gw.classify(ESSAY, cancel=cancel), "cancelled")
    finally:
        timer.cancel()
        primary.release.set()

class _SlowUpstream:
    """Async handler that answers after one second unless the request is cancelled."""
    def __init__(self):
        self.started = threading.Event()
        self.interrupted = threading.Event()
        self.done = threading.Event()

    async def __call__(self, request):
        self.started.set()
        try:
            await asyncio.sleep(1.0)
        except asyncio.CancelledError:
            self.interrupted.set()
            raise
        self.done.set()
        return httpx.Response(200, json=GOOD_PAYLOAD)

def test_gateway_cancel_interrupts_http_call():
    upstream = _SlowUpstream()
    gw = ClassifierGateway(primary=_client(upstream), settings=_settings(timeout_s=5.0), poll_sec=0.01)
    cancel = threading.Event()
    timer = threading.Timer(0.05, cancel.set)
    timer.start()
    try:
        _assert_fallback(gw.classify(ESSAY, cancel=cancel), "cancelled")
    finally:
        timer.cancel()
    assert upstream.started.is_set()
    assert upstream.interrupted.wait(1.0)
    time.sleep(1.3)
    assert not upstream.done.is_set()

def test_gateway_deadline_interrupts_http_call():
    upstream = _SlowUpstream()
    gw = ClassifierGateway(primary=_client(upstream), settings=_settings(timeout_s=0.1), poll_sec=0.01)
    started = time.monotonic()
    _assert_fallback(gw.classify(ESSAY), "timeout")
    assert time.monotonic() - started < 0.9
    assert upstream.interrupted.wait(1.0)
    time.sleep(1.3)
    assert not upstream.done.is_set()

def test_gateway_without_key_uses_fallback():
    gw = ClassifierGateway.from_env({})
    _assert_fallback(gw.classify(ESSAY), "missing_api_key")

def test_short_text_is_skipped():
    gw = ClassifierGateway(primary=_BlockingPrimary(), settings=_settings())
    assert gw.classify("too short to judge") is None
    assert gw.classify("   " + "x" * 50 + "   ") is None   # exactly 50 after strip
    assert gw.classify(None) is None

def test_settings_from_env():
    s = ClassifierSettings.from_env({"GPTZERO_API_KEY": "k", "GPTZERO_TIMEOUT_S": "3"})
    assert s.api_key == "k"
    assert s.timeout_s == 3.0
    assert s.api_url == "https://api.gptzero.me/v2/predict/text"
    assert ClassifierSettings.from_env({"GPTZERO_API_KEY": ""}).api_key is None

# ---- heuristic ----

def test_heuristic_flags_self_referential_text():
    v = HeuristicClassifier().classify("As an AI, I cannot write this. I'm not able to browse.")
    assert v.score == pytest.approx(0.9)
    assert v.is_ai_generated is True
    assert v.provider == FALLBACK_PROVIDER

def test_heuristic_is_deterministic_and_quiet_on_plain_prose():
    h = HeuristicClassifier()
    assert h.classify(ESSAY) == h.classify(ESSAY)
    assert h.score(ESSAY) == 0.0
