from __future__ import annotations
from typing import Dict, Iterable, List, Optional

from .data_types import AnimationClip
from .diagnostics import Diagnostics, ensure_diagnostics


class AnimationRegistry:
    """
    Named, ready-to-play retargeted clips.

    Also tracks which clip is current: playing a clip stops whatever was
    playing before (no crossfade).
    """
    def __init__(self, target_bone_names: Optional[Iterable[str]] = None,
                 diagnostics: Optional[Diagnostics] = None):
        self.target_bone_names = set(target_bone_names) if target_bone_names is not None else None
        self.diagnostics = ensure_diagnostics(diagnostics)
        self._clips: Dict[str, AnimationClip] = {}
        self.current: Optional[str] = None

    def add(self, name: str, clip: AnimationClip):
        if self.target_bone_names is not None:
            foreign = sorted({t.bone_name or t.name for t in clip.tracks} - self.target_bone_names)
            if foreign:
                raise ValueError(f"Clip '{name}' animates bones missing from the target: {foreign}")
        self._clips[name] = clip

    def get(self, name: str) -> Optional[AnimationClip]:
        return self._clips.get(name)

    def names(self) -> List[str]:
        return list(self._clips)

    def __contains__(self, name: str) -> bool:
        return name in self._clips

    def __len__(self):
        return len(self._clips)

    def __iter__(self):
        return iter(self._clips.items())

    def play(self, name: str) -> AnimationClip:
        if name not in self._clips:
            raise KeyError(f'Animation "{name}" not found. Available: {self.names()}')
        self.current = name
        return self._clips[name]

    def stop(self):
        self.current = None

    def play_default(self, preferred: Optional[str] = None) -> Optional[AnimationClip]:
        """Start the preferred clip, else the first registered one."""
        if preferred and preferred in self._clips:
            return self.play(preferred)
        if self._clips:
            return self.play(next(iter(self._clips)))
        self.diagnostics.error("no_animations", "No animations available!")
        return None
