"""
Collected diagnostics for the retargeting pipeline.

Every condition is recorded as a DiagnosticEvent so callers and tests can
inspect what happened; with echo enabled the message is also printed with the
usual "[Retarget] ..." style tags.
"""
from __future__ import annotations
import sys
from typing import Any, Dict, List, Optional

INFO = "info"
WARNING = "warning"
ERROR = "error"

# kind -> console tag
EVENT_TAGS = {
    "skeleton_not_found": "Retarget",
    "malformed_track": "Retarget",
    "unmapped_bone": "Retarget",
    "empty_clip": "Retarget",
    "track_error": "Retarget",
    "clip_retargeted": "Retarget",
    "bone_map_built": "Retarget",
    "missing_bone": "T-Pose",
    "rest_pose_applied": "T-Pose",
    "rest_pose_restored": "T-Pose",
    "clip_load_failed": "Animation",
    "missing_animation": "Animation",
    "no_animations": "Animation",
    "load_summary": "Animation",
    "clip_error": "Animation",
    "rig_pair_loaded": "Retarget",
    "rig_pair_not_found": "Retarget",
}


class DiagnosticEvent:
    def __init__(self, kind: str, level: str, message: str, data: Optional[Dict[str, Any]] = None):
        self.kind = kind
        self.level = level
        self.message = message
        self.data = data or {}

    def __repr__(self):
        return f"DiagnosticEvent({self.kind!r}, {self.level!r}, {self.message!r})"


class Diagnostics:
    """Injectable event sink. Pass echo=False to keep the console quiet."""
    def __init__(self, echo: bool = True):
        self.echo = echo
        self.events: List[DiagnosticEvent] = []

    def emit(self, kind: str, message: str, level: str = INFO, **data) -> DiagnosticEvent:
        event = DiagnosticEvent(kind, level, message, data)
        self.events.append(event)
        if self.echo:
            tag = EVENT_TAGS.get(kind, "Retarget")
            prefix = "ERROR: " if level == ERROR else ("WARNING: " if level == WARNING else "")
            stream = sys.stderr if level == ERROR else sys.stdout
            print(f"[{tag}] {prefix}{message}", file=stream)
        return event

    def info(self, kind: str, message: str, **data) -> DiagnosticEvent:
        return self.emit(kind, message, INFO, **data)

    def warning(self, kind: str, message: str, **data) -> DiagnosticEvent:
        return self.emit(kind, message, WARNING, **data)

    def error(self, kind: str, message: str, **data) -> DiagnosticEvent:
        return self.emit(kind, message, ERROR, **data)

    def of_kind(self, kind: str) -> List[DiagnosticEvent]:
        return [e for e in self.events if e.kind == kind]

    @property
    def warnings(self) -> List[DiagnosticEvent]:
        return [e for e in self.events if e.level == WARNING]

    @property
    def errors(self) -> List[DiagnosticEvent]:
        return [e for e in self.events if e.level == ERROR]


def ensure_diagnostics(diagnostics: Optional[Diagnostics]) -> Diagnostics:
    """Quiet throwaway sink when the caller doesn't care about events."""
    return diagnostics if diagnostics is not None else Diagnostics(echo=False)
