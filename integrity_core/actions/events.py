from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, List, Iterable

# --- core enums ---
class ActionKind(Enum):
    """Closed set of editing events the capture collaborator may record."""
    INSERT = "insert"
    DELETE = "delete"
    CURSOR = "cursor"
    PAUSE = "pause"
    KEYDOWN = "keydown"
    KEYUP = "keyup"

# --- base action ---
@dataclass(frozen=True)
class BaseAction:
    """Common shape for all actions. `timestamp` is ms since session epoch."""
    kind: ActionKind = field(init=False)         # auto-set by subclasses
    timestamp: float = 0.0

    def to_record(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "timestamp": self.timestamp,
        }

# --- text actions ---
@dataclass(frozen=True)
class InsertAction(BaseAction):
    """Editor content after an insertion (the capture side sends the full text)."""
    content: str = ""

    def __post_init__(self):
        object.__setattr__(self, "kind", ActionKind.INSERT)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base["content"] = self.content
        return base

@dataclass(frozen=True)
class DeleteAction(BaseAction):
    content: str = ""  # removed text when known; Backspace/Delete alone leaves it empty

    def __post_init__(self):
        object.__setattr__(self, "kind", ActionKind.DELETE)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        if self.content:
            base["content"] = self.content
        return base

# --- cursor / pause ---
@dataclass(frozen=True)
class CursorAction(BaseAction):
    """Selection change; from/to are document offsets."""
    from_pos: int = 0
    to_pos: int = 0

    def __post_init__(self):
        object.__setattr__(self, "kind", ActionKind.CURSOR)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base["position"] = {"from": self.from_pos, "to": self.to_pos}
        return base

@dataclass(frozen=True)
class PauseAction(BaseAction):
    """Emitted by the capture side when the gap before a keystroke exceeds its pause timer."""
    duration_ms: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, "kind", ActionKind.PAUSE)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base["pauseDuration"] = self.duration_ms
        return base

# --- key timing ---
@dataclass(frozen=True)
class KeyDownAction(BaseAction):
    key: str = ""
    flight_ms: Optional[float] = None   # previous key-up -> this key-down

    def __post_init__(self):
        object.__setattr__(self, "kind", ActionKind.KEYDOWN)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base["content"] = self.key
        if self.flight_ms is not None:
            base["flightTime"] = self.flight_ms
        return base

@dataclass(frozen=True)
class KeyUpAction(BaseAction):
    key: str = ""
    dwell_ms: Optional[float] = None    # key-down -> key-up for the same key

    def __post_init__(self):
        object.__setattr__(self, "kind", ActionKind.KEYUP)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base["content"] = self.key
        if self.dwell_ms is not None:
            base["dwellTime"] = self.dwell_ms
        return base


# --- wire parsing ---
def _opt_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    return float(value)

def action_from_record(rec: Dict[str, Any]) -> BaseAction:
    """
    Build a typed action from a capture record:
      {type, timestamp, content?, position?: {from, to}, pauseDuration?, dwellTime?, flightTime?}
    Raises ValueError for unknown types or a missing timestamp.
    """
    if not isinstance(rec, dict):
        raise ValueError(f"action record must be an object, got {type(rec).__name__}")
    try:
        kind = ActionKind(rec.get("type"))
    except ValueError:
        raise ValueError(f"unknown action type: {rec.get('type')!r}") from None
    if rec.get("timestamp") is None:
        raise ValueError(f"{kind.value} action is missing a timestamp")
    ts = float(rec["timestamp"])
    content = rec.get("content") or ""

    if kind == ActionKind.INSERT:
        return InsertAction(timestamp=ts, content=str(content))
    if kind == ActionKind.DELETE:
        return DeleteAction(timestamp=ts, content=str(content))
    if kind == ActionKind.CURSOR:
        pos = rec.get("position") or {}
        return CursorAction(timestamp=ts, from_pos=int(pos.get("from", 0)), to_pos=int(pos.get("to", 0)))
    if kind == ActionKind.PAUSE:
        return PauseAction(timestamp=ts, duration_ms=float(rec.get("pauseDuration") or 0.0))
    if kind == ActionKind.KEYDOWN:
        return KeyDownAction(timestamp=ts, key=str(content), flight_ms=_opt_float(rec.get("flightTime")))
    return KeyUpAction(timestamp=ts, key=str(content), dwell_ms=_opt_float(rec.get("dwellTime")))

def parse_actions(records: Iterable[Dict[str, Any]]) -> List[BaseAction]:
    """Parse and order by timestamp (stable, so same-ms actions keep capture order)."""
    actions = [action_from_record(r) for r in records]
    return sorted(actions, key=lambda a: a.timestamp)
