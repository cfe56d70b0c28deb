"""
Quaternion helpers for keyframe retargeting.
All quaternions are stored [x, y, z, w], the layout used by glTF tracks.
"""
import numpy as np
from scipy.spatial.transform import Rotation as R

IDENTITY_QUAT = np.array([0.0, 0.0, 0.0, 1.0])


def quaternion_from_axis_angle(axis, angle: float) -> np.ndarray:
    """Unit quaternion [x, y, z, w] for a rotation of angle (radians) about axis."""
    axis = np.asarray(axis, dtype=np.float64)
    norm = np.linalg.norm(axis)
    if norm < 1e-9:
        return IDENTITY_QUAT.copy()
    return R.from_rotvec(axis / norm * angle).as_quat()


def quaternion_multiply(q1: np.ndarray, q2: np.ndarray) -> np.ndarray:
    """Hamilton product q1 * q2 of [..., 4] arrays of [x, y, z, w] quaternions."""
    q1 = np.asarray(q1, dtype=np.float64)
    q2 = np.asarray(q2, dtype=np.float64)
    x1, y1, z1, w1 = q1[..., 0], q1[..., 1], q1[..., 2], q1[..., 3]
    x2, y2, z2, w2 = q2[..., 0], q2[..., 1], q2[..., 2], q2[..., 3]
    return np.stack(
        [
            w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2,
            w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2,
            w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2,
            w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2,
        ],
        axis=-1,
    )


def is_identity_quaternion(q, tol: float = 1e-9) -> bool:
    """True for [0, 0, 0, +-1] within tol (q and -q are the same rotation)."""
    q = np.asarray(q, dtype=np.float64)
    return bool(np.all(np.abs(q[:3]) <= tol) and abs(abs(q[3]) - 1.0) <= tol)


def post_multiply_samples(values: np.ndarray, correction: np.ndarray) -> np.ndarray:
    """Apply q' = q * correction to every quaternion in a flat track buffer."""
    samples = np.asarray(values, dtype=np.float64).reshape(-1, 4)
    return quaternion_multiply(samples, correction).reshape(-1)
