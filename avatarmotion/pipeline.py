"""
Session pipeline: find the avatar skeleton, load every source animation,
retarget them against one shared bone map and collect the playable clips.
"""
from __future__ import annotations
from typing import Callable, Dict, Optional

from .utils.data_types import LoadedAsset, SceneNode
from .utils.diagnostics import Diagnostics, ensure_diagnostics
from .utils.loader import load_sources
from .utils.presets import MIXAMO_TO_RPM, RigPair
from .utils.registry import AnimationRegistry
from .utils.retarget_clip import (
    build_bone_name_map,
    find_skeleton,
    get_axis_corrections,
    require_skeleton,
    resolve_source_bone_names,
    rest_pose_corrected,
    retarget_clip,
)


class SessionResult:
    def __init__(self, registry: AnimationRegistry, failures: Dict[str, str], bone_map: Optional[Dict[str, str]]):
        self.registry = registry
        self.failures = failures
        self.bone_map = bone_map

    @property
    def loaded_count(self) -> int:
        return len(self.registry)

    @property
    def failed_count(self) -> int:
        return len(self.failures)


def prepare_animations(
    target_root: SceneNode,
    sources: Dict[str, str],
    load_fn: Callable[[str], LoadedAsset],
    rig_pair: RigPair = MIXAMO_TO_RPM,
    diagnostics: Optional[Diagnostics] = None,
    max_workers: int = 4,
    progress: bool = False,
) -> SessionResult:
    """
    Raises SkeletonNotFoundError when the avatar has no skinned mesh. Every
    other failure is per clip: it is recorded in SessionResult.failures and
    the remaining clips are still processed.
    """
    diagnostics = ensure_diagnostics(diagnostics)
    target_skeleton = require_skeleton(target_root, diagnostics)
    target_names = target_skeleton.bone_names()

    registry = AnimationRegistry(target_names, diagnostics)
    failures: Dict[str, str] = {}
    bone_map: Optional[Dict[str, str]] = None
    axis_corrections = get_axis_corrections(rig_pair)

    with rest_pose_corrected(target_skeleton, rig_pair, diagnostics):
        loaded = load_sources(sources, load_fn, max_workers, diagnostics, progress)
        failures.update(loaded.failures)

        # Sequential from here on: the map is built once, from the first
        # source that actually loaded, and shared by every clip.
        for name, asset in loaded.successes.items():
            try:
                if not asset.animations:
                    failures[name] = "no animation found"
                    diagnostics.error("missing_animation", f"No animation found in asset for: {name}", animation=name)
                    continue
                clip = asset.animations[0]

                if bone_map is None:
                    source_names = resolve_source_bone_names(find_skeleton(asset.scene), clip)
                    bone_map = build_bone_name_map(source_names, target_names, rig_pair, diagnostics)

                retargeted = retarget_clip(clip, bone_map, axis_corrections, name, diagnostics)
                if not retargeted.tracks:
                    failures[name] = "retargeted clip has no tracks"
                    continue
                registry.add(name, retargeted)
            except Exception as e:
                failures[name] = str(e) or type(e).__name__
                diagnostics.error("clip_error", f"Error processing animation {name}: {e}", animation=name)

    registry.play_default(rig_pair.default_animation)
    diagnostics.info(
        "load_summary",
        f"{len(registry)}/{len(sources)} animations ready. Available: {registry.names()}",
        loaded=registry.names(),
        failed=sorted(failures),
    )
    return SessionResult(registry, failures, bone_map)
