"""Navigation frames at which calibration measurements are taken.

A frame is the known pose of the sensor when a reading was acquired:
geodetic position, NED velocity and the body-to-NED attitude. Reference
models use it to predict the reading an ideal sensor would produce.

Conventions:
- Navigation frame is NED (x=North, y=East, z=Down)
- Body frame is the sensor frame (x=forward, y=right, z=down)
- Latitude and longitude in radians, height in meters
"""

from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from inertial.coords.rotations import euler_to_rotation_matrix, rotation_matrix_to_euler

_ORTHONORMALITY_TOLERANCE = 1e-6


@dataclass(frozen=True, eq=False)
class Frame:
    """Known sensor pose in the local NED navigation frame.

    Attributes:
        latitude: Geodetic latitude in radians, within [-π/2, π/2].
        longitude: Longitude in radians.
        height: Height above the ellipsoid in meters.
        velocity: NED velocity (3,) in m/s.
        c_body_to_nav: Body-to-NED rotation matrix C_nb (3x3).

    Example:
        >>> frame = Frame.from_euler(0.0, 0.0, np.pi / 2, latitude=np.deg2rad(22.3))
        >>> frame.c_nav_to_body @ np.array([1.0, 0.0, 0.0])  # North seen in body axes
    """

    latitude: float = 0.0
    longitude: float = 0.0
    height: float = 0.0
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    c_body_to_nav: np.ndarray = field(default_factory=lambda: np.eye(3))

    def __post_init__(self) -> None:
        """Validate and freeze array attributes."""
        if not -np.pi / 2 <= self.latitude <= np.pi / 2:
            raise ValueError(f"latitude must be within [-pi/2, pi/2] rad, got {self.latitude}")

        velocity = np.array(self.velocity, dtype=np.float64).reshape(-1)
        if velocity.shape != (3,):
            raise ValueError(f"velocity must have shape (3,), got {velocity.shape}")

        c_nb = np.array(self.c_body_to_nav, dtype=np.float64)
        if c_nb.shape != (3, 3):
            raise ValueError(f"c_body_to_nav must be (3, 3), got {c_nb.shape}")
        if not np.allclose(c_nb.T @ c_nb, np.eye(3), atol=_ORTHONORMALITY_TOLERANCE):
            raise ValueError("c_body_to_nav must be an orthonormal rotation matrix")

        velocity.setflags(write=False)
        c_nb.setflags(write=False)
        object.__setattr__(self, "velocity", velocity)
        object.__setattr__(self, "c_body_to_nav", c_nb)

    @classmethod
    def from_euler(
        cls,
        roll: float,
        pitch: float,
        yaw: float,
        latitude: float = 0.0,
        longitude: float = 0.0,
        height: float = 0.0,
        velocity: Optional[np.ndarray] = None,
    ) -> "Frame":
        """Build a frame from a ZYX Euler attitude (radians)."""
        return cls(
            latitude=latitude,
            longitude=longitude,
            height=height,
            velocity=np.zeros(3) if velocity is None else velocity,
            c_body_to_nav=euler_to_rotation_matrix(roll, pitch, yaw),
        )

    @property
    def c_nav_to_body(self) -> np.ndarray:
        """Inverse attitude C_bn = C_nbᵀ, rotating NED vectors into body axes."""
        return self.c_body_to_nav.T

    @property
    def euler(self) -> np.ndarray:
        """Attitude as [roll, pitch, yaw] in radians."""
        return rotation_matrix_to_euler(self.c_body_to_nav)

    def nav_to_body(self, v_nav: np.ndarray) -> np.ndarray:
        """Rotate a NED vector into the body frame."""
        return self.c_nav_to_body @ np.asarray(v_nav, dtype=np.float64)

    def __repr__(self) -> str:
        roll, pitch, yaw = np.rad2deg(self.euler)
        return (
            f"Frame(lat={np.rad2deg(self.latitude):.6f}°, lon={np.rad2deg(self.longitude):.6f}°, "
            f"h={self.height:.2f}m, rpy=({roll:.2f}°, {pitch:.2f}°, {yaw:.2f}°))"
        )
