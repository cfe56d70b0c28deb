from .pipeline import SessionResult, prepare_animations
from .utils.data_types import AnimationClip, Bone, KeyframeTrack, LoadedAsset, SceneNode, Skeleton, SkinnedMesh
from .utils.diagnostics import Diagnostics, DiagnosticEvent
from .utils.errors import ClipLoadError, RetargetError, RigPairError, SkeletonNotFoundError
from .utils.presets import MIXAMO_TO_RPM, RigPair, load_rig_pair
from .utils.registry import AnimationRegistry
from .utils.retarget_clip import (
    apply_rest_pose_correction,
    build_bone_name_map,
    find_skeleton,
    get_axis_corrections,
    rest_pose_corrected,
    restore_rest_pose,
    retarget_clip,
    strip_source_prefix,
)

__version__ = "0.1.0"
