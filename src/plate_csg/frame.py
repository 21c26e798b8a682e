"""
Local coordinate frames for placing components.

Every component builds its surfaces in its own (origin, X, Y, Z) frame:
  Y  along the beam / stack axis
  X  horizontal, across the beam
  Z  vertical

A FrameOffset (steps along each axis plus two rotation angles) is applied on
top of the frame supplied by the parent component.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from plate_csg.variables import VariableTable


def _unit(vec: Sequence[float], name: str) -> np.ndarray:
    arr = np.asarray(vec, dtype=float)
    if arr.shape != (3,):
        raise ValueError(f"{name} must be a 3-vector, got shape {arr.shape}")
    norm = float(np.linalg.norm(arr))
    if norm < 1e-12:
        raise ValueError(f"{name} must be non-zero")
    return arr / norm


def _rotate(vec: np.ndarray, axis: np.ndarray, angle_deg: float) -> np.ndarray:
    """Rotate vec about a unit axis (Rodrigues formula)."""
    theta = math.radians(angle_deg)
    c, s = math.cos(theta), math.sin(theta)
    return vec * c + np.cross(axis, vec) * s + axis * float(axis @ vec) * (1.0 - c)


@dataclass(frozen=True)
class FrameOffset:
    """Translation and rotation applied to a parent frame."""

    x_step: float = 0.0
    y_step: float = 0.0
    z_step: float = 0.0
    xy_angle: float = 0.0   # degrees, rotation about Z
    z_angle: float = 0.0    # degrees, rotation about X (after xy_angle)

    @classmethod
    def from_variables(cls, table: VariableTable, key_name: str) -> "FrameOffset":
        """Read the optional XStep/YStep/ZStep/XYAngle/ZAngle variables."""
        return cls(
            x_step=table.eval_def_var(key_name + "XStep", 0.0, float),
            y_step=table.eval_def_var(key_name + "YStep", 0.0, float),
            z_step=table.eval_def_var(key_name + "ZStep", 0.0, float),
            xy_angle=table.eval_def_var(key_name + "XYAngle", 0.0, float),
            z_angle=table.eval_def_var(key_name + "ZAngle", 0.0, float),
        )

    def is_identity(self) -> bool:
        return not any(
            (self.x_step, self.y_step, self.z_step, self.xy_angle, self.z_angle)
        )


@dataclass(frozen=True)
class LocalFrame:
    """Right-handed orthonormal frame."""

    origin: np.ndarray
    x: np.ndarray
    y: np.ndarray
    z: np.ndarray

    def __post_init__(self):
        for name in ("x", "y", "z"):
            vec = np.asarray(getattr(self, name), dtype=float)
            object.__setattr__(self, name, _unit(vec, name))
        object.__setattr__(self, "origin", np.asarray(self.origin, dtype=float))
        if abs(float(self.x @ self.y)) > 1e-8 or abs(float(self.y @ self.z)) > 1e-8:
            raise ValueError("Frame axes must be orthogonal")
        if float(np.cross(self.x, self.y) @ self.z) < 0.0:
            raise ValueError("Frame must be right handed")

    @classmethod
    def identity(cls) -> "LocalFrame":
        return cls(
            origin=np.zeros(3),
            x=np.array([1.0, 0.0, 0.0]),
            y=np.array([0.0, 1.0, 0.0]),
            z=np.array([0.0, 0.0, 1.0]),
        )

    @classmethod
    def from_y_axis(cls, origin: Sequence[float], y_axis: Sequence[float]) -> "LocalFrame":
        """Frame with Y along y_axis and Z as close to world +Z as possible."""
        y = _unit(y_axis, "y_axis")
        ref = np.array([0.0, 0.0, 1.0])
        if abs(float(y @ ref)) > 0.9:
            ref = np.array([1.0, 0.0, 0.0])
        x = np.cross(y, ref)
        x /= np.linalg.norm(x)
        z = np.cross(x, y)
        return cls(origin=np.asarray(origin, dtype=float), x=x, y=y, z=z)

    def apply_offset(self, offset: FrameOffset) -> "LocalFrame":
        """New frame rotated then translated by offset."""
        x, y, z = self.x, self.y, self.z
        if offset.xy_angle:
            x = _rotate(x, z, offset.xy_angle)
            y = _rotate(y, z, offset.xy_angle)
        if offset.z_angle:
            y = _rotate(y, x, offset.z_angle)
            z = _rotate(z, x, offset.z_angle)
        origin = self.origin + x * offset.x_step + y * offset.y_step + z * offset.z_step
        return LocalFrame(origin=origin, x=x, y=y, z=z)

    def to_world(self, local_point: Sequence[float]) -> np.ndarray:
        u, v, w = (float(c) for c in local_point)
        return self.origin + u * self.x + v * self.y + w * self.z

    def to_local(self, world_point: Sequence[float]) -> np.ndarray:
        d = np.asarray(world_point, dtype=float) - self.origin
        return np.array([float(d @ self.x), float(d @ self.y), float(d @ self.z)])

    def rotation_matrix(self) -> np.ndarray:
        """3x3 matrix whose columns are the frame axes."""
        return np.column_stack([self.x, self.y, self.z])
