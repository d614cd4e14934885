from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Any, Optional

import numpy as np

from cods.config import ModulatorConfig
from cods.control.faults import (
    ModulationComputeError,
    ModulatorInputError,
    ModulatorNotReadyError,
)
from cods.control.frames import FrameError, SurfaceFrame, frame_basis, velocity_in_frame

logger = logging.getLogger(__name__)

# Keeps exp(-gamma / EPSILON) from being an exact analytic zero; not a tuning knob.
EPSILON = 10e-20

# Correction gain for a robot moving away from (or along) the surface in the transition phase.
DEPARTING_GAIN = 100.0


class ContactPhase(str, Enum):
    FREE_MOTION = "FREE_MOTION"
    TRANSITION_OVERSHOOT = "TRANSITION_OVERSHOOT"
    TRANSITION_IN_ENVELOPE = "TRANSITION_IN_ENVELOPE"
    TRANSITION_DEPARTING = "TRANSITION_DEPARTING"
    CONTACT = "CONTACT"


def _to_vec(x: Any, n: int, name: str) -> np.ndarray:
    try:
        arr = np.asarray(x, dtype=float)
    except (TypeError, ValueError) as e:
        raise ModulatorInputError(f"{name}: cannot convert to float array: {e}") from e
    if arr.shape != (n,):
        raise ModulatorInputError(f"{name} must be shape ({n},), got {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise ModulatorInputError(f"{name}: contains NaN/Inf.")
    return arr.copy()


def _to_mat(x: Any, n: int, name: str) -> np.ndarray:
    try:
        arr = np.asarray(x, dtype=float)
    except (TypeError, ValueError) as e:
        raise ModulatorInputError(f"{name}: cannot convert to float array: {e}") from e
    if arr.shape != (n, n):
        raise ModulatorInputError(f"{name} must be shape ({n}, {n}), got {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise ModulatorInputError(f"{name}: contains NaN/Inf.")
    return arr.copy()


def _inverse(m: np.ndarray, name: str) -> np.ndarray:
    try:
        inv = np.linalg.inv(m)
    except np.linalg.LinAlgError as e:
        raise ModulatorInputError(f"{name} is singular: {e}") from e
    if not np.all(np.isfinite(inv)):
        raise ModulatorInputError(f"{name} inverse contains NaN/Inf.")
    return inv


class Modulator:
    """
    Contact-transition modulation.

    Produces a 3x3 matrix M that the caller multiplies into its nominal
    dynamics. M = Q @ Lambda @ inv(Q), where Q holds the surface frame as
    columns and Lambda is diagonal: only the normal axis is reshaped while the
    robot approaches, touches or penetrates the surface.

    Contract (strict; fail-closed):
      - set_frame and set_state must both have been called before compute_modulation
      - all vectors are shape (3,), the mass matrix is (3, 3), all finite
      - any violation raises a ModulationFault; no partial matrix is returned

    Usage per control tick:
        mod.set_frame(gamma, n, t1, t2)
        mod.set_state(x, dx, f_nominal)
        M = mod.compute_modulation()
    """

    def __init__(self, cfg: ModulatorConfig):
        self.cfg = cfg
        self.n = cfg.validate()
        n = self.n

        self._impact_velocity = float(cfg.impact_velocity)
        self._desired_force = float(cfg.desired_contact_force)
        self._threshold = float(cfg.free_motion_threshold)

        self._proximity = 0.0
        self._normal = np.zeros(n, dtype=float)
        self._tangent1 = np.zeros(n, dtype=float)
        self._tangent2 = np.zeros(n, dtype=float)

        self._position = np.zeros(n, dtype=float)
        self._velocity = np.zeros(n, dtype=float)
        self._nominal_force = np.zeros(n, dtype=float)

        self._basis = np.zeros((n, n), dtype=float)
        self._basis_inv = np.zeros((n, n), dtype=float)
        self._scaling = np.zeros((n, n), dtype=float)
        self._matrix = np.zeros((n, n), dtype=float)
        self._inv_mass = np.eye(n, dtype=float)

        self._velocity_in_frame = np.zeros(n, dtype=float)
        self._phase: Optional[ContactPhase] = None

        self._frame_ready = False
        self._state_ready = False

    @classmethod
    def from_parameters(
        cls,
        dimension: int,
        impact_velocity: float,
        desired_contact_force: float,
        free_motion_threshold: float,
        uses_builtin_surface: bool = False,
    ) -> "Modulator":
        return cls(
            ModulatorConfig(
                impact_velocity=impact_velocity,
                desired_contact_force=desired_contact_force,
                free_motion_threshold=free_motion_threshold,
                uses_builtin_surface=uses_builtin_surface,
                dimension=dimension,
            )
        )

    # ------------------------------------------------------------------ #
    # Inputs
    # ------------------------------------------------------------------ #
    def set_frame(self, proximity: float, normal: Any, tangent1: Any, tangent2: Any) -> None:
        n = _to_vec(normal, self.n, "normal")
        t1 = _to_vec(tangent1, self.n, "tangent1")
        t2 = _to_vec(tangent2, self.n, "tangent2")
        frame = SurfaceFrame(proximity=proximity, normal=n, tangent1=t1, tangent2=t2)
        frame.validate()

        basis = frame_basis(n, t1, t2)
        try:
            basis_inv = _inverse(basis, "frame basis")
        except ModulatorInputError as e:
            raise FrameError(str(e)) from e

        self._proximity = float(proximity)
        self._normal = n
        self._tangent1 = t1
        self._tangent2 = t2
        self._basis = basis
        self._basis_inv = basis_inv
        self._frame_ready = True

    def set_surface_frame(self, frame: SurfaceFrame) -> None:
        self.set_frame(frame.proximity, frame.normal, frame.tangent1, frame.tangent2)

    def set_state(self, position: Any, velocity: Any, nominal_force: Any) -> None:
        x = _to_vec(position, self.n, "position")
        dx = _to_vec(velocity, self.n, "velocity")
        f = _to_vec(nominal_force, self.n, "nominal_force")

        self._position = x
        self._velocity = dx
        self._nominal_force = f
        self._state_ready = True

    def set_mass(self, mass_matrix: Any) -> None:
        m = _to_mat(mass_matrix, self.n, "mass_matrix")
        self._inv_mass = _inverse(m, "mass_matrix")

    # ------------------------------------------------------------------ #
    # Outputs
    # ------------------------------------------------------------------ #
    @property
    def ready(self) -> bool:
        return self._frame_ready and self._state_ready

    @property
    def phase(self) -> Optional[ContactPhase]:
        return self._phase

    @property
    def scaling(self) -> np.ndarray:
        """Lambda from the last successful compute, in surface coordinates."""
        return self._scaling.copy()

    @property
    def modulation_matrix(self) -> np.ndarray:
        """Matrix from the last successful compute; zero before the first one."""
        return self._matrix.copy()

    @property
    def last_velocity_in_frame(self) -> np.ndarray:
        """Surface-frame velocity as of the last transition-phase compute."""
        return self._velocity_in_frame.copy()

    @property
    def frame_basis(self) -> np.ndarray:
        return self._basis.copy()

    @property
    def frame_basis_inverse(self) -> np.ndarray:
        return self._basis_inv.copy()

    @property
    def effective_inverse_mass(self) -> np.ndarray:
        return self._inv_mass.copy()

    def normal_frame_velocity(self) -> np.ndarray:
        """Q.T @ velocity for the current frame and state, independent of compute."""
        return velocity_in_frame(self._basis, self._velocity)

    def compute_modulation(self) -> np.ndarray:
        if not self.ready:
            raise ModulatorNotReadyError(
                "compute_modulation called before all inputs were set "
                f"(state_is_set={self._state_ready}, surface_is_set={self._frame_ready})"
            )

        gamma = self._proximity
        threshold = self._threshold
        scaling = np.eye(self.n, dtype=float)

        if threshold <= gamma:
            ramp = 1.0 - math.exp(-(gamma - threshold))
            scaling[0, 0] = ramp
            scaling[1, 1] = ramp
            scaling[2, 2] = ramp
            phase = ContactPhase.FREE_MOTION

        # Contact is checked independently of free motion: with a non-positive
        # threshold, penetration overrides the free-motion ramp on the normal axis.
        if 0.0 < gamma < threshold:
            self._velocity_in_frame = velocity_in_frame(self._basis, self._velocity)
            v_n = float(self._velocity_in_frame[0])
            nf = self._normalized_nominal_force()
            gate = math.exp(-gamma / EPSILON)

            if v_n < self._impact_velocity:
                self._require_nonzero(gamma * nf, "proximity * normalized nominal force")
                scaling[0, 0] = (self._impact_velocity - v_n + gate) / (gamma * nf)
                phase = ContactPhase.TRANSITION_OVERSHOOT
            else:
                force_term = self._force_term(nf)
                if v_n < 0.0:
                    scaling[0, 0] = -force_term * gate
                    phase = ContactPhase.TRANSITION_IN_ENVELOPE
                else:
                    scaling[0, 0] = -DEPARTING_GAIN * force_term * (v_n + gate)
                    phase = ContactPhase.TRANSITION_DEPARTING
        elif gamma <= 0.0:
            nf = self._normalized_nominal_force()
            scaling[0, 0] = -self._force_term(nf)
            phase = ContactPhase.CONTACT

        if not np.all(np.isfinite(scaling)):
            raise ModulationComputeError(f"{phase.value}: modulation scaling contains NaN/Inf.")

        matrix = self._basis @ scaling @ self._basis_inv
        if not np.all(np.isfinite(matrix)):
            raise ModulationComputeError(f"{phase.value}: modulation matrix contains NaN/Inf.")

        logger.debug("phase=%s gamma=%.6g lambda_n=%.6g", phase.value, gamma, scaling[0, 0])

        self._scaling = scaling
        self._matrix = matrix
        self._phase = phase
        return matrix.copy()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _normalized_nominal_force(self) -> float:
        return float(np.dot(self._normal, self._nominal_force))

    def _force_term(self, nf: float) -> float:
        self._require_nonzero(nf, "normalized nominal force (normal . nominal_force)")
        nmn = float(self._normal @ self._inv_mass @ self._normal)
        return self._desired_force * nmn / nf

    @staticmethod
    def _require_nonzero(value: float, name: str) -> None:
        if value == 0.0:
            raise ModulationComputeError(f"{name} is zero; cannot normalize the modulation.")
