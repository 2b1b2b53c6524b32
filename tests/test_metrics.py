# tests/test_metrics.py
# How to run:
#   pytest -q
#
# Verifies:
#   - Fewer than two actions -> all-zero metrics
#   - Every ratio is finite, even with zero elapsed time or no inserts
#   - Pause buckets, backtracking, dwell/flight variability, speed

import pytest

from integrity_core.actions.events import (
    InsertAction, DeleteAction, CursorAction, PauseAction, KeyDownAction, KeyUpAction,
)
from integrity_app.analytics.metrics import Metrics, extract_metrics, burstiness, variability, fatigue_indicator

def test_empty_and_single_action_are_all_zero():
    for actions in ([], [InsertAction(timestamp=1000.0, content="H")]):
        m = extract_metrics(actions)
        assert m.average_typing_speed == 0.0
        assert m.rhythm_consistency == 0.0
        assert m.deletion_rate == 0.0
        assert m.pause_patterns.distribution == [0, 0, 0]
        assert m.is_finite()
        assert m.action_count == len(actions)

def test_zero_elapsed_time_is_finite():
    actions = [InsertAction(timestamp=500.0, content="a"), InsertAction(timestamp=500.0, content="ab")]
    m = extract_metrics(actions)
    assert m.average_typing_speed == 0.0
    assert m.is_finite(), f"Non-finite metric in {m}"

def test_no_inserts_floors_denominators():
    actions = [DeleteAction(timestamp=0.0), DeleteAction(timestamp=100.0), PauseAction(timestamp=200.0, duration_ms=0)]
    m = extract_metrics(actions)
    assert m.deletion_rate == 2.0   # 2 deletes / max(1, 0 inserts)
    assert m.revisions_per_word == 2.0
    assert m.is_finite()

def test_speed_counts_insert_content_over_span():
    actions = [InsertAction(timestamp=0.0, content="a"), InsertAction(timestamp=1000.0, content="ab")]
    m = extract_metrics(actions)
    # 3 chars of insert content over 1 s
    assert m.average_typing_speed == pytest.approx(180.0)
    assert m.words_per_minute == pytest.approx(36.0)

def test_pause_buckets_and_average():
    actions = [
        InsertAction(timestamp=0.0, content="a"),
        PauseAction(timestamp=1.0, duration_ms=500.0),
        PauseAction(timestamp=2.0, duration_ms=3000.0),
        PauseAction(timestamp=3.0, duration_ms=15000.0),
        InsertAction(timestamp=4.0, content="ab"),
    ]
    pp = extract_metrics(actions).pause_patterns
    assert (pp.short_pauses, pp.medium_pauses, pp.long_pauses) == (1, 1, 1)
    assert pp.average_pause_length == pytest.approx((500 + 3000 + 15000) / 3)

def test_backtracking_counts_jumps_behind_previous_cursor():
    actions = [
        CursorAction(timestamp=0.0, from_pos=0, to_pos=50),
        CursorAction(timestamp=10.0, from_pos=20, to_pos=20),   # jumps back 30 chars
        CursorAction(timestamp=20.0, from_pos=15, to_pos=15),   # only 5 back
    ]
    m = extract_metrics(actions)
    assert m.backtracking_frequency == pytest.approx(1 / 3)

def test_regular_insert_rhythm_is_fully_consistent():
    actions = [InsertAction(timestamp=i * 100.0, content="x" * (i + 1)) for i in range(10)]
    m = extract_metrics(actions)
    assert m.rhythm_consistency == pytest.approx(1.0)
    assert m.interval_count == 9
    assert 0.0 <= m.consistency_score <= 1.0

def test_dwell_and_flight_variability_from_key_timing():
    actions = [
        KeyDownAction(timestamp=0.0, key="a", flight_ms=100.0),
        KeyUpAction(timestamp=80.0, key="a", dwell_ms=80.0),
        KeyDownAction(timestamp=200.0, key="b", flight_ms=120.0),
        KeyUpAction(timestamp=320.0, key="b", dwell_ms=120.0),
    ]
    m = extract_metrics(actions)
    assert m.dwell_time_variability == pytest.approx(variability([80.0, 120.0]))
    assert m.flight_time_variability == pytest.approx(variability([100.0, 120.0]))
    assert m.dwell_time_variability > 0

def test_helpers_handle_short_inputs():
    assert burstiness([]) == 0.0
    assert burstiness([100.0]) == 0.0
    assert burstiness([100.0, 100.0, 100.0]) == pytest.approx(-1.0)
    assert variability([5.0]) == 0.0
    assert fatigue_indicator([100, 90, 80, 70]) == 0.0   # fewer than five windows
    assert fatigue_indicator([100, 100, 50, 50, 50]) > 0

def test_metrics_record_shape():
    rec = Metrics.empty().to_record()
    for key in ("averageTypingSpeed", "rhythmConsistency", "pausePatterns", "wordsPerMinute", "revisionsPerWord"):
        assert key in rec
    assert rec["pausePatterns"]["pauseDistribution"] == [0, 0, 0]
