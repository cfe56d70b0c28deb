from __future__ import annotations
import math
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional

import numpy as np

from .data_types import AnimationClip, KeyframeTrack, SceneNode, Skeleton
from .diagnostics import Diagnostics, ensure_diagnostics
from .errors import SkeletonNotFoundError
from .presets import HAND_CHECK_BONES, MIXAMO_TO_RPM, RigPair
from .retarget_utils import (
    IDENTITY_QUAT,
    is_identity_quaternion,
    post_multiply_samples,
    quaternion_from_axis_angle,
    quaternion_multiply,
)

# Tracks for these properties are never carried over: bone lengths differ
# between rigs, so translating/scaling target bones would distort the mesh.
DROPPED_PROPERTIES = ("position", "scale")

# =============================================================================
# Skeleton Inspector
# =============================================================================


def find_skinned_mesh(root: SceneNode) -> Optional[SceneNode]:
    """First node carrying a skeleton in pre-order traversal, or None."""
    for node in root.traverse():
        if node.skeleton is not None:
            return node
    return None


def find_skeleton(root: SceneNode) -> Optional[Skeleton]:
    mesh = find_skinned_mesh(root)
    return mesh.skeleton if mesh is not None else None


def require_skeleton(root: SceneNode, diagnostics: Optional[Diagnostics] = None) -> Skeleton:
    """Like find_skeleton, but a missing skeleton ends the session."""
    diagnostics = ensure_diagnostics(diagnostics)
    skeleton = find_skeleton(root)
    if skeleton is None:
        diagnostics.error(
            "skeleton_not_found",
            f"Could not find skeleton in model '{root.name}'",
            model=root.name,
        )
        raise SkeletonNotFoundError(f"Failed to find skeleton in model '{root.name}'")
    diagnostics.info(
        "skeleton_found",
        f"Found target skeleton with {len(skeleton)} bones",
        bone_count=len(skeleton),
    )
    return skeleton


# =============================================================================
# Bone Name Resolver
# =============================================================================


def strip_source_prefix(name: str, prefix: str = MIXAMO_TO_RPM.source_prefix,
                        separator: str = MIXAMO_TO_RPM.prefix_separator) -> str:
    """'mixamorig:Hips' / 'mixamorigHips' -> 'Hips'. Other names pass through."""
    if not prefix or not name.startswith(prefix):
        return name
    stripped = name[len(prefix):]
    if separator and stripped.startswith(separator):
        stripped = stripped[len(separator):]
    return stripped


def bone_names_from_clip(clip: AnimationClip) -> List[str]:
    """Distinct bone names referenced by the clip's tracks (malformed names ignored)."""
    return clip.bone_names()


def resolve_source_bone_names(source_skeleton: Optional[Skeleton],
                              clip: Optional[AnimationClip] = None) -> List[str]:
    """Prefer the real source skeleton; otherwise infer bones from the clip's tracks."""
    if source_skeleton is not None:
        return source_skeleton.bone_names()
    if clip is not None:
        return bone_names_from_clip(clip)
    return []


def build_bone_name_map(
    source_names: Iterable[str],
    target_names: Iterable[str],
    rig_pair: RigPair = MIXAMO_TO_RPM,
    diagnostics: Optional[Diagnostics] = None,
) -> Dict[str, str]:
    """
    Map source bone names to target bone names by stripping the source rig
    prefix and requiring an exact match. Unmatched bones are left out.
    """
    diagnostics = ensure_diagnostics(diagnostics)
    target_set = set(target_names)
    mapping: Dict[str, str] = {}
    unmatched = []

    for name in sorted(set(source_names)):
        candidate = strip_source_prefix(name, rig_pair.source_prefix, rig_pair.prefix_separator)
        if candidate in target_set:
            mapping[name] = candidate
        else:
            unmatched.append(name)
            diagnostics.warning(
                "unmapped_bone",
                f'"{name}" -> "{candidate}" (NOT FOUND)',
                bone=name,
                candidate=candidate,
            )

    diagnostics.info(
        "bone_map_built",
        f"Bone map: {len(mapping)} matched, {len(unmatched)} unmatched "
        f"(target has {len(target_set)} bones)",
        matched=len(mapping),
        unmatched=unmatched,
    )
    return mapping


def hand_bone_report(bone_map: Dict[str, str], target_names: Iterable[str],
                     bones: Iterable[str] = HAND_CHECK_BONES) -> Dict[str, dict]:
    """For each checked bone: is it in the target, and which source bone drives it."""
    target_set = set(target_names)
    report = {}
    for name in bones:
        source = next((s for s, t in sorted(bone_map.items()) if t == name), None)
        report[name] = {"in_target": name in target_set, "mapped_from": source}
    return report


# =============================================================================
# Rest-Pose Corrector
# =============================================================================


def apply_rest_pose_correction(
    skeleton: Skeleton,
    rig_pair: RigPair = MIXAMO_TO_RPM,
    diagnostics: Optional[Diagnostics] = None,
) -> Dict[str, np.ndarray]:
    """
    Raise the target's A-pose arms towards the source's T-pose.

    Each listed bone gets an extra rotation about rig_pair.rest_pose_axis,
    pre-multiplied so it acts in the parent's space. Returns the original
    local rotations, to be handed back to restore_rest_pose.
    """
    diagnostics = ensure_diagnostics(diagnostics)
    base_angle = math.radians(rig_pair.rest_pose_angle_deg)
    original_rotations: Dict[str, np.ndarray] = {}

    for name, entry in rig_pair.rest_pose_bones.items():
        bone = skeleton.get_bone(name)
        if bone is None:
            diagnostics.warning("missing_bone", f'Bone "{name}" not found in skeleton', bone=name)
            continue
        angle = base_angle * float(entry["sign"]) * float(entry.get("factor", 1.0))
        original_rotations[name] = bone.quaternion.copy()
        correction = quaternion_from_axis_angle(rig_pair.rest_pose_axis, angle)
        bone.quaternion = quaternion_multiply(correction, bone.quaternion)
        diagnostics.info(
            "rest_pose_applied",
            f"Rotated {name} by {math.degrees(angle):.1f} deg",
            bone=name,
            angle_deg=math.degrees(angle),
        )

    skeleton.update_world_matrices()
    return original_rotations


def restore_rest_pose(
    skeleton: Skeleton,
    original_rotations: Dict[str, np.ndarray],
    diagnostics: Optional[Diagnostics] = None,
):
    """Copy the saved rotations back verbatim and refresh world matrices."""
    diagnostics = ensure_diagnostics(diagnostics)
    for name, quat in original_rotations.items():
        bone = skeleton.get_bone(name)
        if bone is not None:
            bone.quaternion = quat.copy()
    skeleton.update_world_matrices()
    diagnostics.info(
        "rest_pose_restored",
        f"Restored original rest pose on {len(original_rotations)} bones",
        bones=sorted(original_rotations),
    )


@contextmanager
def rest_pose_corrected(skeleton: Skeleton, rig_pair: RigPair = MIXAMO_TO_RPM,
                        diagnostics: Optional[Diagnostics] = None):
    """Hold the corrected pose for the duration of the block; always restores."""
    original_rotations = apply_rest_pose_correction(skeleton, rig_pair, diagnostics)
    try:
        yield original_rotations
    finally:
        restore_rest_pose(skeleton, original_rotations, diagnostics)


# =============================================================================
# Axis Correction Table
# =============================================================================


def get_axis_corrections(rig_pair: RigPair = MIXAMO_TO_RPM) -> Dict[str, np.ndarray]:
    """Per-bone local rotation deltas [x, y, z, w] for the rig pair."""
    corrections = {}
    for name, entry in rig_pair.axis_corrections.items():
        angle = math.radians(float(entry["angle_deg"]))
        if angle == 0.0:
            corrections[name] = IDENTITY_QUAT.copy()
        else:
            corrections[name] = quaternion_from_axis_angle(entry["axis"], angle)
    return corrections


# =============================================================================
# Track Retargeter
# =============================================================================


def retarget_clip(
    clip: AnimationClip,
    bone_map: Dict[str, str],
    axis_corrections: Optional[Dict[str, np.ndarray]] = None,
    fallback_name: str = "",
    diagnostics: Optional[Diagnostics] = None,
) -> AnimationClip:
    """
    Rewrite a source clip so its tracks drive the target skeleton.

    Tracks for unmapped bones, malformed track names and position/scale
    channels are dropped. Rotation tracks of corrected bones get every sample
    post-multiplied by the bone's correction (q' = q * c, local space).
    """
    diagnostics = ensure_diagnostics(diagnostics)
    axis_corrections = axis_corrections or {}
    clip_name = clip.name or fallback_name

    new_tracks: List[KeyframeTrack] = []
    processed_bones: List[str] = []
    skipped_bones: List[str] = []
    corrected_bones: List[str] = []

    for track in clip.tracks:
        try:
            parts = KeyframeTrack.split_name(track.name)
            if parts is None:
                diagnostics.warning(
                    "malformed_track",
                    f'Invalid track name format: "{track.name}"',
                    clip=clip_name,
                    track=track.name,
                )
                continue

            bone_name, prop = parts
            mapped_name = bone_map.get(bone_name)
            if not mapped_name:
                if bone_name not in skipped_bones:
                    skipped_bones.append(bone_name)
                    diagnostics.warning(
                        "unmapped_bone",
                        f'Skipping tracks of unmapped bone "{bone_name}" in {clip_name}',
                        clip=clip_name,
                        bone=bone_name,
                    )
                continue

            if prop in DROPPED_PROPERTIES:
                continue

            values = track.values.copy()
            correction = axis_corrections.get(mapped_name)
            if prop == "quaternion" and correction is not None and not is_identity_quaternion(correction):
                values = post_multiply_samples(values, correction)
                corrected_bones.append(mapped_name)

            new_tracks.append(KeyframeTrack(f"{mapped_name}.{prop}", track.times.copy(), values))
            if mapped_name not in processed_bones:
                processed_bones.append(mapped_name)
        except (ValueError, IndexError) as e:
            diagnostics.error(
                "track_error",
                f'Error processing track "{track.name}": {e}',
                clip=clip_name,
                track=track.name,
            )

    retargeted = AnimationClip(clip_name, clip.duration, new_tracks)

    if not new_tracks:
        diagnostics.error(
            "empty_clip",
            f"No tracks created for {clip_name}! Check bone mapping.",
            clip=clip_name,
            input_tracks=len(clip.tracks),
        )
    diagnostics.info(
        "clip_retargeted",
        f'Retargeted "{clip_name}": {len(new_tracks)}/{len(clip.tracks)} tracks, '
        f"{len(processed_bones)} bones, corrected {corrected_bones}, skipped {len(skipped_bones)}",
        clip=clip_name,
        processed=processed_bones,
        corrected=corrected_bones,
        skipped=skipped_bones,
    )
    return retargeted
