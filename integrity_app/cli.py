from __future__ import annotations
import argparse, json, sys
from typing import Any, Dict, List, Optional
import structlog

from integrity_app.logging_config import configure_logging

log = structlog.get_logger()

def _load_json(path: str) -> Any:
    if path == "-":
        return json.load(sys.stdin)
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)

def _emit(obj: Dict[str, Any]) -> None:
    json.dump(obj, sys.stdout, indent=2)
    sys.stdout.write("\n")

def _policy(args):
    from integrity_app.policy.domains import DomainPolicy
    if not args.assessment_host:
        return DomainPolicy()
    return DomainPolicy(assessment=tuple(h.lower() for h in args.assessment_host))

def _open_store(args, request):
    from integrity_core.crypto.key_manager import MasterKeyManager
    from integrity_core.storage.essay_store import EssayStore

    if args.no_store or not request.text_content or not request.submission_id:
        return None
    try:
        return EssayStore(args.db, MasterKeyManager(args.secrets))
    except Exception as e:
        log.warning("essay.store.error", db=args.db, secrets=args.secrets, err=str(e))
        return None

def _cmd_analyze(args) -> int:
    from integrity_app.analyzer import AnalysisRequest, IntegrityAnalyzer, InvalidAnalysisInput
    from integrity_app.classifier.gateway import ClassifierGateway

    try:
        request = AnalysisRequest.from_record(_load_json(args.request))
    except (OSError, json.JSONDecodeError) as e:
        _emit({"error": f"Could not read request: {e}"})
        return 2
    except InvalidAnalysisInput as e:
        _emit({"error": str(e)})
        return 2

    store = _open_store(args, request)
    try:
        analyzer = IntegrityAnalyzer(gateway=ClassifierGateway.from_env(), essay_store=store)
        screen: List[Any] = []
        if args.screen:
            from integrity_app.screen.detector import ScreenActivityDetector
            from integrity_core.screen.events import parse_screen_events
            det = ScreenActivityDetector(policy=_policy(args))
            for ev in parse_screen_events(_load_json(args.screen)):
                det.process(ev)
            screen = det.activities
        result = analyzer.analyze(request, screen_activities=screen)
    except InvalidAnalysisInput as e:
        _emit({"error": str(e)})
        return 2
    except Exception as e:
        log.error("analysis.error", err=str(e), exc_info=True)
        _emit({"error": "Failed to analyze typing behavior"})
        return 1

    _emit(result.to_record())
    return 0

def _cmd_screen(args) -> int:
    from integrity_app.screen.detector import analyze_screen_events
    from integrity_core.screen.events import parse_screen_events

    try:
        events = parse_screen_events(_load_json(args.events))
    except (OSError, ValueError, TypeError, AttributeError) as e:
        _emit({"error": f"Invalid screen events: {e}"})
        return 2
    _emit(analyze_screen_events(events, policy=_policy(args)))
    return 0

def _cmd_essay(args) -> int:
    from integrity_core.crypto.key_manager import MasterKeyManager
    from integrity_core.storage.essay_store import EssayStore

    store = EssayStore(args.db, MasterKeyManager(args.secrets))
    try:
        text = store.load(args.key)
    except KeyError:
        _emit({"error": f"No essay stored under {args.key}"})
        return 2
    sys.stdout.write(text)
    if not text.endswith("\n"):
        sys.stdout.write("\n")
    return 0

def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(prog="trace-integrity", description="Writing-process integrity analysis")
    ap.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p_an = sub.add_parser("analyze", help="Analyze a typing session request (JSON)")
    p_an.add_argument("request", help="path to request JSON, or - for stdin")
    p_an.add_argument("--screen", help="optional screen events JSON to merge into the review")
    p_an.add_argument("--db", default="essays.sqlite3")
    p_an.add_argument("--secrets", default="secrets")
    p_an.add_argument("--no-store", action="store_true", help="do not archive the essay text")
    p_an.add_argument("--assessment-host", action="append", metavar="PATTERN",
                      help="host glob the assessment is served from (repeatable)")

    p_sc = sub.add_parser("screen", help="Summarize recorded screen activity events (JSON)")
    p_sc.add_argument("events")
    p_sc.add_argument("--assessment-host", action="append", metavar="PATTERN",
                      help="host glob the assessment is served from (repeatable)")

    p_es = sub.add_parser("essay", help="Print an archived essay by storage key")
    p_es.add_argument("key")
    p_es.add_argument("--db", default="essays.sqlite3")
    p_es.add_argument("--secrets", default="secrets")

    args = ap.parse_args(argv)
    configure_logging(debug=args.verbose)

    if args.cmd == "analyze":
        return _cmd_analyze(args)
    if args.cmd == "screen":
        return _cmd_screen(args)
    return _cmd_essay(args)

if __name__ == "__main__":
    sys.exit(main())
