"""
Surface frame helpers.

A surface frame is the proximity scalar plus three vectors (normal, tangent1,
tangent2). Stacked as columns they form the frame basis Q, which rotates
surface-aligned coordinates into the caller's world coordinates:

    v_world = Q @ v_surface
    v_surface = Q.T @ v_world   (for the near-orthonormal frames accepted here)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Tuple

import numpy as np

from cods.control.faults import ModulatorInputError

ORTHOGONALITY_TOL = 1e-4


class FrameError(ModulatorInputError):
    """Raised for malformed or degenerate surface frames."""


def _to_vec3(x: Any, name: str) -> np.ndarray:
    try:
        arr = np.asarray(x, dtype=float)
    except (TypeError, ValueError) as e:
        raise FrameError(f"{name}: cannot convert to float array: {e}") from e
    if arr.shape != (3,):
        raise FrameError(f"{name} must be shape (3,), got {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise FrameError(f"{name}: contains NaN/Inf.")
    return arr


def frame_basis(normal: np.ndarray, tangent1: np.ndarray, tangent2: np.ndarray) -> np.ndarray:
    """Q with columns [normal, tangent1, tangent2]."""
    return np.column_stack((normal, tangent1, tangent2)).astype(float)


def orthogonality_residual(normal: np.ndarray, tangent1: np.ndarray, tangent2: np.ndarray) -> float:
    n = np.asarray(normal, dtype=float)
    t1 = np.asarray(tangent1, dtype=float)
    t2 = np.asarray(tangent2, dtype=float)
    return float(np.dot(n, t1) + np.dot(n, t2) + np.dot(t1, t2))


def velocity_in_frame(basis: np.ndarray, velocity: np.ndarray) -> np.ndarray:
    return np.asarray(basis, dtype=float).T @ np.asarray(velocity, dtype=float)


def tangents_from_normal(normal: Any) -> Tuple[np.ndarray, np.ndarray]:
    """
    Completes a normal into a right-handed orthonormal frame.

    tangent1 is the world axis least aligned with the normal, with its normal
    component removed; tangent2 = normal x tangent1.
    """
    n = _to_vec3(normal, "normal")
    norm = float(np.linalg.norm(n))
    if norm <= 1e-12:
        raise FrameError("normal must be non-zero.")
    n = n / norm

    axis = np.zeros(3, dtype=float)
    axis[int(np.argmin(np.abs(n)))] = 1.0
    t1 = axis - float(np.dot(axis, n)) * n
    t1 = t1 / float(np.linalg.norm(t1))
    t2 = np.cross(n, t1)
    return t1, t2


@dataclass(frozen=True, eq=False)
class SurfaceFrame:
    """
    One tick of surface geometry.

    proximity >= threshold is free motion, 0 < proximity < threshold is the
    transition phase and proximity <= 0 is contact.
    """

    proximity: float
    normal: np.ndarray
    tangent1: np.ndarray
    tangent2: np.ndarray

    @classmethod
    def from_normal(cls, proximity: float, normal: Any) -> "SurfaceFrame":
        t1, t2 = tangents_from_normal(normal)
        n = np.cross(t1, t2)
        return cls(proximity=float(proximity), normal=n, tangent1=t1, tangent2=t2)

    def validate(self) -> None:
        try:
            gamma = float(self.proximity)
        except (TypeError, ValueError) as e:
            raise FrameError(f"proximity: cannot convert to float: {e}") from e
        if not np.isfinite(gamma):
            raise FrameError(f"proximity must be finite, got {gamma}")
        n = _to_vec3(self.normal, "normal")
        t1 = _to_vec3(self.tangent1, "tangent1")
        t2 = _to_vec3(self.tangent2, "tangent2")
        r = orthogonality_residual(n, t1, t2)
        if abs(r) >= ORTHOGONALITY_TOL:
            raise FrameError(
                f"frame is not near-orthogonal: n.t1 + n.t2 + t1.t2 = {r:.3e} (tol {ORTHOGONALITY_TOL:g})"
            )

    @property
    def basis(self) -> np.ndarray:
        return frame_basis(
            _to_vec3(self.normal, "normal"),
            _to_vec3(self.tangent1, "tangent1"),
            _to_vec3(self.tangent2, "tangent2"),
        )
