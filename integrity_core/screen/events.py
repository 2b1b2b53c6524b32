from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional, Dict, Any, List, Iterable

class ScreenEventType(Enum):
    """Top-level classifier for browser/runtime activity routing."""
    FOCUS_LOST = auto()
    FOCUS_GAINED = auto()
    CLIPBOARD = auto()
    NAVIGATION = auto()
    TAB_SWITCH = auto()

@dataclass(frozen=True)
class ScreenEvent:
    """Common shape for activity reported by the browser/runtime collaborator."""
    etype: ScreenEventType = field(init=False)   # auto-set by subclasses
    timestamp: float = 0.0                       # ms since session epoch

    def to_record(self) -> Dict[str, Any]:
        return {"etype": self.etype.name, "timestamp": self.timestamp}

@dataclass(frozen=True)
class FocusLostEvent(ScreenEvent):
    """Assessment window lost focus (blur / visibility hidden)."""
    def __post_init__(self):
        object.__setattr__(self, "etype", ScreenEventType.FOCUS_LOST)

@dataclass(frozen=True)
class FocusGainedEvent(ScreenEvent):
    def __post_init__(self):
        object.__setattr__(self, "etype", ScreenEventType.FOCUS_GAINED)

@dataclass(frozen=True)
class ClipboardSnapshotEvent(ScreenEvent):
    """Clipboard text as read by the collaborator; the detector keeps only a digest."""
    text: str = ""

    def __post_init__(self):
        object.__setattr__(self, "etype", ScreenEventType.CLIPBOARD)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base["length"] = len(self.text)  # no raw content in records
        return base

@dataclass(frozen=True)
class NavigationEvent(ScreenEvent):
    url: str = ""
    title: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "etype", ScreenEventType.NAVIGATION)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base.update({"url": self.url, "title": self.title})
        return base

@dataclass(frozen=True)
class TabSwitchEvent(ScreenEvent):
    """User activated another tab; url/title describe the tab switched to."""
    url: str = ""
    title: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "etype", ScreenEventType.TAB_SWITCH)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base.update({"url": self.url, "title": self.title})
        return base


_BY_NAME = {
    "blur": FocusLostEvent,
    "window_blur": FocusLostEvent,
    "focus": FocusGainedEvent,
    "window_focus": FocusGainedEvent,
    "clipboard": ClipboardSnapshotEvent,
    "navigation": NavigationEvent,
    "tab_switch": TabSwitchEvent,
}

def screen_event_from_record(rec: Dict[str, Any]) -> ScreenEvent:
    """Parse {type, timestamp, text?, url?, title?}; raises ValueError on unknown type."""
    cls = _BY_NAME.get(str(rec.get("type", "")).lower())
    if cls is None:
        raise ValueError(f"unknown screen event type: {rec.get('type')!r}")
    ts = float(rec.get("timestamp") or 0.0)
    if cls is ClipboardSnapshotEvent:
        return ClipboardSnapshotEvent(timestamp=ts, text=str(rec.get("text") or ""))
    if cls in (NavigationEvent, TabSwitchEvent):
        return cls(timestamp=ts, url=str(rec.get("url") or ""), title=rec.get("title"))
    return cls(timestamp=ts)

def parse_screen_events(records: Iterable[Dict[str, Any]]) -> List[ScreenEvent]:
    return sorted((screen_event_from_record(r) for r in records), key=lambda e: e.timestamp)
