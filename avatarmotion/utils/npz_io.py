"""
NPZ / JSON asset I/O.

Clips are stored as one .npz per clip:
    __name__            0-d str array
    __duration__        0-d float array
    <track>::times      (K,) float
    <track>::values     (K * stride,) float
Skeletons are JSON: {"name": ..., "bones": [{"name", "parent", "position", "quaternion", "scale"}]}
"""
from __future__ import annotations
import io
import zipfile
import os
import json

import numpy as np
import requests

from .data_types import AnimationClip, Bone, KeyframeTrack, LoadedAsset, SceneNode, Skeleton, SkinnedMesh
from .errors import ClipLoadError

TIMES_SUFFIX = "::times"
VALUES_SUFFIX = "::values"


def _is_url(location: str) -> bool:
    return location.startswith("http://") or location.startswith("https://")


def _read_bytes(location: str) -> bytes:
    if _is_url(location):
        response = requests.get(location, timeout=30)
        response.raise_for_status()
        return response.content
    with open(location, "rb") as f:
        return f.read()


def clip_from_arrays(data, default_name: str = "") -> AnimationClip:
    """Build a clip from an NPZ mapping (np.load result or plain dict)."""
    keys = list(data.keys())
    name = str(data["__name__"]) if "__name__" in keys else default_name
    duration = float(data["__duration__"]) if "__duration__" in keys else -1.0

    tracks = []
    for key in keys:
        if not key.endswith(TIMES_SUFFIX):
            continue
        track_name = key[: -len(TIMES_SUFFIX)]
        values_key = track_name + VALUES_SUFFIX
        if values_key not in keys:
            raise ClipLoadError(f"Track '{track_name}' has times but no values")
        tracks.append(KeyframeTrack(track_name, data[key], data[values_key]))
    return AnimationClip(name, duration, tracks)


def load_clip_npz(location: str) -> AnimationClip:
    """Load a clip from a local .npz path or an http(s) URL."""
    default_name = os.path.splitext(os.path.basename(location))[0]
    try:
        payload = _read_bytes(location)
        with np.load(io.BytesIO(payload), allow_pickle=False) as data:
            return clip_from_arrays(data, default_name)
    except ClipLoadError:
        raise
    except (OSError, ValueError, KeyError, zipfile.BadZipFile, requests.RequestException) as e:
        raise ClipLoadError(f"Could not load clip from {location}: {e}") from e


def load_clip_asset(location: str) -> LoadedAsset:
    """Asset loader for the pipeline: NPZ clips carry no skinned mesh."""
    clip = load_clip_npz(location)
    return LoadedAsset(SceneNode(os.path.basename(location)), [clip])


def save_clip_npz(clip: AnimationClip, path: str) -> str:
    arrays = {
        "__name__": np.array(clip.name),
        "__duration__": np.array(clip.duration),
    }
    for track in clip.tracks:
        arrays[track.name + TIMES_SUFFIX] = track.times
        arrays[track.name + VALUES_SUFFIX] = track.values
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    np.savez(path, **arrays)
    return path


def skeleton_from_dict(data: dict) -> Skeleton:
    if not isinstance(data, dict):
        raise ValueError(f"Skeleton description must be a JSON object, got {type(data).__name__}")
    skeleton = Skeleton(name=data.get("name", "Skeleton"))
    for entry in data.get("bones", []):
        bone = Bone(
            entry["name"],
            position=entry.get("position"),
            quaternion=entry.get("quaternion"),
            scale=entry.get("scale"),
        )
        skeleton.add_bone(bone, entry.get("parent"))
    skeleton.update_world_matrices()
    return skeleton


def load_skeleton_json(path: str) -> SceneNode:
    """Load a rig description and wrap it as a one-mesh scene."""
    with open(path, "r") as f:
        data = json.load(f)
    skeleton = skeleton_from_dict(data)
    root = SceneNode(os.path.basename(path))
    root.add(SkinnedMesh(f"{skeleton.name}_mesh", skeleton))
    return root
