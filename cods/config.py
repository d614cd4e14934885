from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from cods.control.faults import ModulatorConfigError

STATE_DIMENSION = 3


def _finite_scalar(x: float, name: str) -> float:
    try:
        v = float(x)
    except (TypeError, ValueError) as e:
        raise ModulatorConfigError(f"{name}: cannot convert to float: {e}") from e
    if not np.isfinite(v):
        raise ModulatorConfigError(f"{name} must be finite, got {v}")
    return v


@dataclass(frozen=True)
class ModulatorConfig:
    """
    Static modulator configuration, set once at construction.

    - dimension: Cartesian state dimension, must be 3 (x, y, z)
    - impact_velocity: desired normal velocity at impact, strictly negative (into the surface)
    - desired_contact_force: steady-state contact force magnitude, >= 0
    - free_motion_threshold: proximity at and above which the robot is in free motion
    - uses_builtin_surface: take proximity/frame from a built-in surface model
      instead of an external source (does not change the modulation law)
    """

    impact_velocity: float
    desired_contact_force: float
    free_motion_threshold: float = 1.0
    uses_builtin_surface: bool = False
    dimension: int = STATE_DIMENSION

    def validate(self) -> int:
        if isinstance(self.dimension, bool) or not isinstance(self.dimension, (int, np.integer)):
            raise ModulatorConfigError(f"dimension must be an integer, got {self.dimension!r}")
        if int(self.dimension) != STATE_DIMENSION:
            raise ModulatorConfigError(
                f"The dimension of the system should be {STATE_DIMENSION} (x, y, z); got {self.dimension}"
            )
        dv = _finite_scalar(self.impact_velocity, "impact_velocity")
        if dv >= 0:
            raise ModulatorConfigError(f"impact_velocity must be negative, got {dv}")
        fd = _finite_scalar(self.desired_contact_force, "desired_contact_force")
        if fd < 0:
            raise ModulatorConfigError(f"desired_contact_force must be >= 0, got {fd}")
        _finite_scalar(self.free_motion_threshold, "free_motion_threshold")
        if not isinstance(self.uses_builtin_surface, bool):
            raise ModulatorConfigError("uses_builtin_surface must be bool.")
        return int(self.dimension)

    def as_dict(self) -> dict:
        return {
            "dimension": int(self.dimension),
            "impact_velocity": float(self.impact_velocity),
            "desired_contact_force": float(self.desired_contact_force),
            "free_motion_threshold": float(self.free_motion_threshold),
            "uses_builtin_surface": bool(self.uses_builtin_surface),
        }
