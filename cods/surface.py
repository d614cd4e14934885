from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import numpy as np

from cods.control.faults import ModulatorConfigError, ModulatorInputError
from cods.control.frames import SurfaceFrame, tangents_from_normal


class SurfaceError(ModulatorConfigError):
    pass


class SurfacePositionError(ModulatorInputError):
    """Raised when a surface is queried with a malformed position."""


@runtime_checkable
class SurfaceModel(Protocol):
    def evaluate(self, position: np.ndarray) -> SurfaceFrame: ...


def _vec3(x: Any, name: str, error: type = SurfaceError) -> np.ndarray:
    try:
        v = np.asarray(x, dtype=float).reshape(-1)
    except (TypeError, ValueError) as e:
        raise error(f"{name}: cannot convert to float array: {e}") from e
    if v.shape != (3,):
        raise error(f"{name} must be shape (3,), got {v.shape}")
    if not np.all(np.isfinite(v)):
        raise error(f"{name} contains non-finite values.")
    return v


@dataclass(frozen=True)
class PlanarSurface:
    """
    Built-in planar surface.

    proximity = ((x - point) . n_hat) / transition_distance, so it is 1 one
    transition distance above the plane, 0 on it and negative below.
    """

    point: np.ndarray
    normal: np.ndarray
    transition_distance: float = 0.1

    def __post_init__(self) -> None:
        p = _vec3(self.point, "point")
        n = _vec3(self.normal, "normal")
        norm = float(np.linalg.norm(n))
        if norm <= 1e-12:
            raise SurfaceError("normal must be non-zero.")
        d = float(self.transition_distance)
        if not np.isfinite(d) or d <= 0:
            raise SurfaceError(f"transition_distance must be > 0, got {d}")
        object.__setattr__(self, "point", p)
        object.__setattr__(self, "normal", n / norm)
        object.__setattr__(self, "transition_distance", d)

    def signed_distance(self, position: Any) -> float:
        x = _vec3(position, "position", SurfacePositionError)
        return float(np.dot(x - self.point, self.normal))

    def evaluate(self, position: Any) -> SurfaceFrame:
        gamma = self.signed_distance(position) / self.transition_distance
        t1, t2 = tangents_from_normal(self.normal)
        return SurfaceFrame(proximity=gamma, normal=self.normal.copy(), tangent1=t1, tangent2=t2)
