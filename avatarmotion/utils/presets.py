"""
Rig-pair policy tables.

A RigPair holds everything that is specific to one (source rig, target rig)
combination: the source bone prefix, the A-pose -> T-pose arm offsets and the
per-bone local axis corrections. The built-in preset covers Mixamo animations
played on Ready Player Me avatars; other pairings can be loaded from JSON.
"""
from __future__ import annotations
import os
import copy
import json
from typing import Optional

from .diagnostics import Diagnostics, ensure_diagnostics
from .errors import RigPairError

# =============================================================================
# Mixamo -> Ready Player Me
# =============================================================================

MIXAMO_PREFIX = "mixamorig"
MIXAMO_SEPARATOR = ":"

# RPM avatars rest with arms ~30-45 degrees below horizontal
APOSE_TO_TPOSE_DEG = 40.0
SHOULDER_FACTOR = 0.3

# bone -> (sign, fraction of the upper-arm angle)
REST_POSE_BONES = {
    "LeftUpperArm": {"sign": 1.0, "factor": 1.0},
    "RightUpperArm": {"sign": -1.0, "factor": 1.0},
    "LeftShoulder": {"sign": 1.0, "factor": SHOULDER_FACTOR},
    "RightShoulder": {"sign": -1.0, "factor": SHOULDER_FACTOR},
}

# Mixamo and RPM hands differ in bone roll: flip the palm around local X.
# Forearms are identity placeholders.
AXIS_CORRECTIONS = {
    "LeftHand": {"axis": [1.0, 0.0, 0.0], "angle_deg": 180.0},
    "RightHand": {"axis": [1.0, 0.0, 0.0], "angle_deg": 180.0},
    "LeftForeArm": {"axis": [1.0, 0.0, 0.0], "angle_deg": 0.0},
    "RightForeArm": {"axis": [1.0, 0.0, 0.0], "angle_deg": 0.0},
}

# Reported by the mapping check
HAND_CHECK_BONES = ["LeftHand", "RightHand", "LeftForeArm", "RightForeArm"]

DEFAULT_ANIMATION = "walking"


class RigPair:
    def __init__(
        self,
        name: str,
        source_prefix: str = MIXAMO_PREFIX,
        prefix_separator: str = MIXAMO_SEPARATOR,
        rest_pose_angle_deg: float = APOSE_TO_TPOSE_DEG,
        rest_pose_axis=(0.0, 0.0, 1.0),
        rest_pose_bones: dict | None = None,
        axis_corrections: dict | None = None,
        default_animation: str = DEFAULT_ANIMATION,
    ):
        self.name = name
        self.source_prefix = source_prefix
        self.prefix_separator = prefix_separator
        self.rest_pose_angle_deg = float(rest_pose_angle_deg)
        self.rest_pose_axis = [float(v) for v in rest_pose_axis]
        self.rest_pose_bones = copy.deepcopy(REST_POSE_BONES if rest_pose_bones is None else rest_pose_bones)
        self.axis_corrections = copy.deepcopy(AXIS_CORRECTIONS if axis_corrections is None else axis_corrections)
        self.default_animation = default_animation

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "source_prefix": self.source_prefix,
            "prefix_separator": self.prefix_separator,
            "rest_pose_angle_deg": self.rest_pose_angle_deg,
            "rest_pose_axis": list(self.rest_pose_axis),
            "rest_pose_bones": copy.deepcopy(self.rest_pose_bones),
            "axis_corrections": copy.deepcopy(self.axis_corrections),
            "default_animation": self.default_animation,
        }

    def __repr__(self):
        return f"RigPair({self.name!r})"


MIXAMO_TO_RPM = RigPair("mixamo_to_rpm")

PRESETS = {
    "mixamo_to_rpm": MIXAMO_TO_RPM,
}


def _as_float(value, what: str) -> float:
    if isinstance(value, bool):
        raise RigPairError(f"{what} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise RigPairError(f"{what} must be a number, got {value!r}") from e


def _as_axis(value, what: str) -> list:
    if not isinstance(value, (list, tuple)) or len(value) != 3:
        raise RigPairError(f"{what} needs a 3-component axis, got {value!r}")
    return [_as_float(v, what) for v in value]


def rig_pair_from_dict(data: dict, base: RigPair = MIXAMO_TO_RPM) -> RigPair:
    """Overlay the keys present in data on top of a base preset."""
    if not isinstance(data, dict):
        raise RigPairError(f"Rig pair must be a JSON object, got {type(data).__name__}")
    merged = base.to_dict()
    unknown = set(data) - set(merged)
    if unknown:
        raise RigPairError(f"Unknown rig pair keys: {sorted(unknown)}")
    merged.update(data)

    for key in ("name", "source_prefix", "prefix_separator", "default_animation"):
        if not isinstance(merged[key], str):
            raise RigPairError(f"'{key}' must be a string, got {merged[key]!r}")
    for key in ("axis_corrections", "rest_pose_bones"):
        if not isinstance(merged[key], dict):
            raise RigPairError(f"'{key}' must be an object mapping bone names, got {type(merged[key]).__name__}")

    axis_corrections = {}
    for bone, entry in merged["axis_corrections"].items():
        if not isinstance(entry, dict) or "axis" not in entry or "angle_deg" not in entry:
            raise RigPairError(f"Axis correction for '{bone}' needs 'axis' and 'angle_deg'")
        axis_corrections[bone] = {
            "axis": _as_axis(entry["axis"], f"Axis correction for '{bone}'"),
            "angle_deg": _as_float(entry["angle_deg"], f"angle_deg for '{bone}'"),
        }
    rest_pose_bones = {}
    for bone, entry in merged["rest_pose_bones"].items():
        if not isinstance(entry, dict) or "sign" not in entry:
            raise RigPairError(f"Rest pose entry for '{bone}' needs 'sign'")
        rest_pose_bones[bone] = {
            "sign": _as_float(entry["sign"], f"sign for '{bone}'"),
            "factor": _as_float(entry.get("factor", 1.0), f"factor for '{bone}'"),
        }

    merged["axis_corrections"] = axis_corrections
    merged["rest_pose_bones"] = rest_pose_bones
    merged["rest_pose_axis"] = _as_axis(merged["rest_pose_axis"], "rest_pose_axis")
    merged["rest_pose_angle_deg"] = _as_float(merged["rest_pose_angle_deg"], "rest_pose_angle_deg")
    return RigPair(**merged)


def load_rig_pair(filepath: str | None, diagnostics: Optional[Diagnostics] = None) -> RigPair:
    """Load a rig pair from a preset name or JSON file, falling back to Mixamo -> RPM."""
    diagnostics = ensure_diagnostics(diagnostics)
    if not filepath:
        return MIXAMO_TO_RPM
    if filepath.lower() in PRESETS:
        return PRESETS[filepath.lower()]
    if not os.path.exists(filepath):
        diagnostics.warning(
            "rig_pair_not_found",
            f"Rig pair file not found: {filepath}, using built-in Mixamo -> RPM preset",
            path=filepath,
        )
        return MIXAMO_TO_RPM

    diagnostics.info("rig_pair_loaded", f"Loading rig pair file: {filepath}", path=filepath)
    try:
        with open(filepath, "r") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise RigPairError(f"Invalid rig pair JSON in {filepath}: {e}") from e
    if isinstance(data, dict):
        data.setdefault("name", os.path.splitext(os.path.basename(filepath))[0])
    return rig_pair_from_dict(data)
