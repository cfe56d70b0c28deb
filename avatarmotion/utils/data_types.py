from __future__ import annotations
import numpy as np
from scipy.spatial.transform import Rotation as R
from typing import Dict, List, Optional

# Track property -> number of floats per keyframe
PROPERTY_STRIDES = {
    "position": 3,
    "quaternion": 4,
    "scale": 3,
}


class SceneNode:
    """A node in a loaded scene graph (group, mesh, bone holder...)"""
    def __init__(self, name: str = "", children: Optional[List["SceneNode"]] = None):
        self.name = name
        self.parent: Optional[SceneNode] = None
        self.children: List[SceneNode] = []
        for child in children or []:
            self.add(child)

    def add(self, child: "SceneNode") -> "SceneNode":
        child.parent = self
        self.children.append(child)
        return child

    def traverse(self):
        """Pre-order walk, children in their defined order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    @property
    def skeleton(self) -> Optional["Skeleton"]:
        return None


class SkinnedMesh(SceneNode):
    """Mesh node bound to a skeleton"""
    def __init__(self, name: str, skeleton: "Skeleton", children: Optional[List[SceneNode]] = None):
        super().__init__(name, children)
        self._skeleton = skeleton

    @property
    def skeleton(self) -> Optional["Skeleton"]:
        return self._skeleton


class LoadedAsset:
    """Result of an asset load: a scene graph plus the clips it carried"""
    def __init__(self, scene: SceneNode, animations: Optional[List["AnimationClip"]] = None):
        self.scene = scene
        self.animations: List[AnimationClip] = list(animations or [])


class Bone:
    def __init__(self, name: str, position=None, quaternion=None, scale=None):
        self.name = name
        self.parent: Optional[Bone] = None
        self.children: List[Bone] = []
        self.position = np.zeros(3) if position is None else np.asarray(position, dtype=np.float64)
        # Local rotation [x, y, z, w]
        self.quaternion = np.array([0.0, 0.0, 0.0, 1.0]) if quaternion is None else np.asarray(quaternion, dtype=np.float64)
        self.scale = np.ones(3) if scale is None else np.asarray(scale, dtype=np.float64)
        self.world_matrix = np.eye(4)

    def local_matrix(self) -> np.ndarray:
        mat = np.eye(4)
        mat[:3, :3] = R.from_quat(self.quaternion).as_matrix() * self.scale[np.newaxis, :]
        mat[:3, 3] = self.position
        return mat

    def __repr__(self):
        return f"Bone({self.name!r})"


class Skeleton:
    def __init__(self, bones: Optional[List[Bone]] = None, name: str = "Skeleton"):
        self.name = name
        self.bones: List[Bone] = []
        self._by_name: Dict[str, Bone] = {}
        for bone in bones or []:
            self.add_bone(bone)

    def add_bone(self, bone: Bone, parent_name: Optional[str] = None) -> Bone:
        if bone.name in self._by_name:
            raise ValueError(f"Duplicate bone name in skeleton '{self.name}': {bone.name}")
        if parent_name is not None:
            parent = self._by_name.get(parent_name)
            if parent is None:
                raise ValueError(f"Parent bone '{parent_name}' not found for '{bone.name}'")
            bone.parent = parent
            parent.children.append(bone)
        self.bones.append(bone)
        self._by_name[bone.name] = bone
        return bone

    def get_bone(self, name: str) -> Optional[Bone]:
        return self._by_name.get(name)

    def bone_names(self) -> List[str]:
        return [b.name for b in self.bones]

    def root_bones(self) -> List[Bone]:
        return [b for b in self.bones if b.parent is None]

    def update_world_matrices(self):
        """Recompute world matrices from local transforms, parents first."""
        for root in self.root_bones():
            stack = [(root, np.eye(4))]
            while stack:
                bone, parent_world = stack.pop()
                bone.world_matrix = parent_world @ bone.local_matrix()
                for child in bone.children:
                    stack.append((child, bone.world_matrix))

    def __len__(self):
        return len(self.bones)


class KeyframeTrack:
    """One animated channel: '<boneName>.<property>' with parallel times/values"""
    def __init__(self, name: str, times, values):
        self.name = name
        self.times = np.asarray(times, dtype=np.float64).reshape(-1)
        self.values = np.asarray(values, dtype=np.float64).reshape(-1)
        if self.times.size > 1 and np.any(np.diff(self.times) < 0):
            raise ValueError(f"Track '{name}' times must be non-decreasing")
        stride = self.value_size
        if stride and self.values.size != stride * self.times.size:
            raise ValueError(
                f"Track '{name}' has {self.values.size} values for {self.times.size} keys (stride {stride})"
            )

    @staticmethod
    def split_name(name: str) -> tuple[str, str] | None:
        """Split on the last '.' -> (bone, property), or None when malformed."""
        dot = name.rfind(".")
        if dot == -1:
            return None
        return name[:dot], name[dot + 1:]

    @property
    def bone_name(self) -> Optional[str]:
        parts = self.split_name(self.name)
        return parts[0] if parts else None

    @property
    def property_name(self) -> Optional[str]:
        parts = self.split_name(self.name)
        return parts[1] if parts else None

    @property
    def value_size(self) -> int:
        return PROPERTY_STRIDES.get(self.property_name, 0)

    def __len__(self):
        return self.times.size

    def __repr__(self):
        return f"KeyframeTrack({self.name!r}, keys={len(self)})"


class AnimationClip:
    def __init__(self, name: str, duration: float = -1.0, tracks: Optional[List[KeyframeTrack]] = None):
        self.name = name
        self.tracks: List[KeyframeTrack] = list(tracks or [])
        # Negative duration -> derive from the last keyframe
        if duration < 0:
            duration = max((float(t.times[-1]) for t in self.tracks if len(t)), default=0.0)
        self.duration = float(duration)

    def bone_names(self) -> List[str]:
        names = []
        for track in self.tracks:
            bone = track.bone_name
            if bone is not None and bone not in names:
                names.append(bone)
        return names

    def __repr__(self):
        return f"AnimationClip({self.name!r}, duration={self.duration:.2f}, tracks={len(self.tracks)})"
