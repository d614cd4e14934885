from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

import numpy as np

from cods.config import ModulatorConfig
from cods.control.faults import (
    ModulationFault,
    ModulatorConfigError,
    ModulatorHaltedError,
    ModulatorInputError,
)
from cods.control.frames import SurfaceFrame
from cods.control.modulation import ContactPhase, Modulator
from cods.surface import SurfaceModel

if TYPE_CHECKING:
    from cods.logging import TickRecorder

logger = logging.getLogger(__name__)


def _finite_vec(x: Any, n: int, name: str) -> np.ndarray:
    try:
        v = np.asarray(x, dtype=float).reshape(-1)
    except (TypeError, ValueError) as e:
        raise ModulatorInputError(f"{name}: cannot convert to float array: {e}") from e
    if v.shape != (n,):
        raise ModulatorInputError(f"{name} must be shape ({n},), got {v.shape}")
    if not np.all(np.isfinite(v)):
        raise ModulatorInputError(f"{name} contains non-finite values.")
    return v


@dataclass(frozen=True, eq=False)
class TickResult:
    matrix: np.ndarray
    phase: ContactPhase
    scaling: np.ndarray
    modulated_dynamics: np.ndarray
    frame: SurfaceFrame
    velocity_in_frame: np.ndarray


class SupervisedModulator:
    """
    Owns a Modulator for one control loop and acts as its fault barrier.

    Any ModulationFault is logged, latched and re-raised. While latched, every
    step raises ModulatorHaltedError until reset() rebuilds the modulator from
    its config. No matrix is ever handed out after a fault.
    """

    def __init__(
        self,
        cfg: ModulatorConfig,
        *,
        surface: Optional[SurfaceModel] = None,
        recorder: Optional["TickRecorder"] = None,
    ):
        if cfg.uses_builtin_surface and surface is None:
            raise ModulatorConfigError("uses_builtin_surface requires a surface model.")
        self.cfg = cfg
        self.surface = surface
        self.recorder = recorder
        self.modulator = Modulator(cfg)
        self.halted = False
        self.halt_reason = ""

    def latch(self, reason: str) -> None:
        self.halted = True
        self.halt_reason = str(reason or "halted")

    def reset(self) -> None:
        self.modulator = Modulator(self.cfg)
        self.halted = False
        self.halt_reason = ""

    def step(
        self,
        *,
        position: Any,
        velocity: Any,
        nominal_force: Any,
        frame: Optional[SurfaceFrame] = None,
        mass_matrix: Optional[Any] = None,
        nominal_dynamics: Optional[Any] = None,
    ) -> TickResult:
        if self.halted:
            raise ModulatorHaltedError(f"modulator halted: {self.halt_reason}")

        try:
            if self.cfg.uses_builtin_surface:
                if frame is not None:
                    raise ModulatorConfigError("frame given but the built-in surface is in use.")
                frame = self.surface.evaluate(position)
            elif frame is None:
                raise ModulatorConfigError("no frame given and the built-in surface is disabled.")

            mod = self.modulator
            mod.set_surface_frame(frame)
            mod.set_state(position, velocity, nominal_force)
            if mass_matrix is not None:
                mod.set_mass(mass_matrix)
            # The nominal force doubles as the nominal dynamics unless the caller passes its own.
            f = nominal_force if nominal_dynamics is None else nominal_dynamics
            f = _finite_vec(f, mod.n, "nominal_dynamics")
            matrix = mod.compute_modulation()
        except ModulationFault as e:
            logger.error("%s fault, halting modulator: %s", e.kind.value, e)
            self.latch(f"{e.kind.value}: {e}")
            raise

        res = TickResult(
            matrix=matrix,
            phase=mod.phase,
            scaling=mod.scaling,
            modulated_dynamics=matrix @ f,
            frame=frame,
            velocity_in_frame=mod.normal_frame_velocity(),
        )
        if self.recorder is not None:
            self.recorder.record(position=position, velocity=velocity, nominal_force=nominal_force, result=res)
        return res
