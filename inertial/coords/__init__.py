"""Reference frames and attitude representations for sensor calibration.

This module provides the pose description attached to every calibration
measurement and the rotation conversions used to express navigation-frame
reference vectors in sensor body axes:
- Frame: latitude, longitude, height, NED velocity and body-to-NED attitude
- Rotation representations (matrices, quaternions, Euler angles, rotation vectors)
"""

from inertial.coords.frames import Frame
from inertial.coords.rotations import (
    euler_to_rotation_matrix,
    quat_to_rotation_matrix,
    rotation_matrix_to_euler,
    rotation_matrix_to_quat,
    rotation_matrix_to_rotation_vector,
    rotation_vector_to_rotation_matrix,
)

__all__ = [
    # Frames
    "Frame",
    # Rotations
    "euler_to_rotation_matrix",
    "quat_to_rotation_matrix",
    "rotation_matrix_to_euler",
    "rotation_matrix_to_quat",
    "rotation_matrix_to_rotation_vector",
    "rotation_vector_to_rotation_matrix",
]
