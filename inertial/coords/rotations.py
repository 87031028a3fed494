"""Attitude representations used by calibration reference frames.

The calibrators only need to rotate a navigation-frame reference vector
(gravity, geomagnetic field, Earth-relative angular rate) into the sensor
body frame, and to recover the body rotation between two consecutive frames.
This module provides the conversions needed for that:
- Rotation matrices (3x3 orthogonal matrices, SO(3))
- Quaternions (unit quaternions, q = [qw, qx, qy, qz])
- Euler angles (roll-pitch-yaw, ZYX convention)
- Rotation vectors (axis * angle)

Conventions:
- Rotation matrices are body-to-navigation: v_nav = C_nb @ v_body
- Quaternions: [qw, qx, qy, qz] where qw is the scalar part
- Euler angles: [roll, pitch, yaw] in radians (ZYX/3-2-1 convention)
"""

import numpy as np
from numpy.typing import NDArray


def euler_to_rotation_matrix(
    roll: float,
    pitch: float,
    yaw: float,
) -> NDArray[np.float64]:
    """Convert Euler angles to a body-to-navigation rotation matrix.

    Args:
        roll: Roll angle φ in radians (rotation about x-axis).
        pitch: Pitch angle θ in radians (rotation about y-axis).
        yaw: Yaw angle ψ in radians (rotation about z-axis).

    Returns:
        3x3 rotation matrix C_nb such that v_nav = C_nb @ v_body.

    Example:
        >>> C = euler_to_rotation_matrix(0.1, 0.2, 0.3)
        >>> print(f"Determinant (should be 1.0): {np.linalg.det(C):.6f}")
    """
    cr = np.cos(roll)
    sr = np.sin(roll)
    cp = np.cos(pitch)
    sp = np.sin(pitch)
    cy = np.cos(yaw)
    sy = np.sin(yaw)

    return np.array(
        [
            [cy * cp, cy * sp * sr - sy * cr, cy * sp * cr + sy * sr],
            [sy * cp, sy * sp * sr + cy * cr, sy * sp * cr - cy * sr],
            [-sp, cp * sr, cp * cr],
        ],
        dtype=np.float64,
    )


def rotation_matrix_to_euler(C: NDArray[np.float64]) -> NDArray[np.float64]:
    """Extract [roll, pitch, yaw] from a body-to-navigation rotation matrix.

    At gimbal lock (pitch = ±90°) roll is set to zero and the whole
    heading is attributed to yaw.

    Raises:
        ValueError: If C is not a 3x3 matrix.
    """
    C = np.asarray(C, dtype=np.float64)
    if C.shape != (3, 3):
        raise ValueError(f"Expected 3x3 matrix, got shape {C.shape}")

    sin_pitch = -C[2, 0]
    if abs(sin_pitch) >= 1.0:
        pitch = np.copysign(np.pi / 2.0, sin_pitch)
        yaw = np.arctan2(-C[0, 1], C[1, 1])
        roll = 0.0
    else:
        pitch = np.arcsin(sin_pitch)
        roll = np.arctan2(C[2, 1], C[2, 2])
        yaw = np.arctan2(C[1, 0], C[0, 0])

    return np.array([roll, pitch, yaw], dtype=np.float64)


def quat_to_rotation_matrix(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Convert a unit quaternion [qw, qx, qy, qz] to a rotation matrix.

    Raises:
        ValueError: If q is not a 4-element array.
    """
    q = np.asarray(q, dtype=np.float64)
    if q.shape != (4,):
        raise ValueError(f"Expected 4-element quaternion, got shape {q.shape}")

    qw, qx, qy, qz = q
    return np.array(
        [
            [1.0 - 2.0 * (qy * qy + qz * qz), 2.0 * (qx * qy - qw * qz), 2.0 * (qx * qz + qw * qy)],
            [2.0 * (qx * qy + qw * qz), 1.0 - 2.0 * (qx * qx + qz * qz), 2.0 * (qy * qz - qw * qx)],
            [2.0 * (qx * qz - qw * qy), 2.0 * (qy * qz + qw * qx), 1.0 - 2.0 * (qx * qx + qy * qy)],
        ],
        dtype=np.float64,
    )


def rotation_matrix_to_quat(C: NDArray[np.float64]) -> NDArray[np.float64]:
    """Convert a rotation matrix to a unit quaternion (Shepperd's method).

    The branch is chosen on the largest of the trace and the diagonal
    entries so the square root argument never approaches zero. The
    returned quaternion always has a non-negative scalar part.

    Raises:
        ValueError: If C is not a 3x3 matrix.
    """
    C = np.asarray(C, dtype=np.float64)
    if C.shape != (3, 3):
        raise ValueError(f"Expected 3x3 matrix, got shape {C.shape}")

    trace = np.trace(C)
    if trace > 0:
        s = 0.5 / np.sqrt(trace + 1.0)
        qw = 0.25 / s
        qx = (C[2, 1] - C[1, 2]) * s
        qy = (C[0, 2] - C[2, 0]) * s
        qz = (C[1, 0] - C[0, 1]) * s
    elif C[0, 0] > C[1, 1] and C[0, 0] > C[2, 2]:
        s = 2.0 * np.sqrt(1.0 + C[0, 0] - C[1, 1] - C[2, 2])
        qw = (C[2, 1] - C[1, 2]) / s
        qx = 0.25 * s
        qy = (C[0, 1] + C[1, 0]) / s
        qz = (C[0, 2] + C[2, 0]) / s
    elif C[1, 1] > C[2, 2]:
        s = 2.0 * np.sqrt(1.0 + C[1, 1] - C[0, 0] - C[2, 2])
        qw = (C[0, 2] - C[2, 0]) / s
        qx = (C[0, 1] + C[1, 0]) / s
        qy = 0.25 * s
        qz = (C[1, 2] + C[2, 1]) / s
    else:
        s = 2.0 * np.sqrt(1.0 + C[2, 2] - C[0, 0] - C[1, 1])
        qw = (C[1, 0] - C[0, 1]) / s
        qx = (C[0, 2] + C[2, 0]) / s
        qy = (C[1, 2] + C[2, 1]) / s
        qz = 0.25 * s

    q = np.array([qw, qx, qy, qz], dtype=np.float64)
    q = q / np.linalg.norm(q)
    if q[0] < 0.0:
        q = -q
    return q


def rotation_vector_to_rotation_matrix(rv: NDArray[np.float64]) -> NDArray[np.float64]:
    """Convert a rotation vector (axis · angle, radians) to a rotation matrix.

    Example:
        >>> C = rotation_vector_to_rotation_matrix(np.array([0.0, 0.0, np.pi / 2]))
        >>> print(C @ np.array([1.0, 0.0, 0.0]))  # x axis rotated onto y
    """
    rv = np.asarray(rv, dtype=np.float64)
    if rv.shape != (3,):
        raise ValueError(f"Expected 3-element rotation vector, got shape {rv.shape}")

    angle = np.linalg.norm(rv)
    if angle < 1e-12:
        return np.eye(3)
    axis = rv / angle
    half = 0.5 * angle
    q = np.concatenate(([np.cos(half)], np.sin(half) * axis))
    return quat_to_rotation_matrix(q)


def rotation_matrix_to_rotation_vector(C: NDArray[np.float64]) -> NDArray[np.float64]:
    """Convert a rotation matrix to its rotation vector (axis · angle).

    The angle is returned in [0, π].
    """
    q = rotation_matrix_to_quat(C)
    sin_half = np.linalg.norm(q[1:])
    if sin_half < 1e-12:
        # Small angle: sin(θ/2) ≈ θ/2
        return 2.0 * q[1:]
    angle = 2.0 * np.arctan2(sin_half, q[0])
    return q[1:] / sin_half * angle
