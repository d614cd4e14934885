from __future__ import annotations

from enum import Enum


class FaultKind(str, Enum):
    CONFIG = "CONFIG"
    INPUT = "INPUT"
    NOT_READY = "NOT_READY"
    COMPUTE = "COMPUTE"
    HALTED = "HALTED"


class ModulationFault(RuntimeError):
    """
    Base class for every fatal modulation error.

    None of these are recoverable by the modulator itself; they unwind to whoever
    owns the control loop (see cods.control.supervisor).
    """

    kind: FaultKind = FaultKind.COMPUTE


class ModulatorConfigError(ModulationFault):
    """Raised for invalid modulator configuration."""

    kind = FaultKind.CONFIG


class ModulatorInputError(ModulationFault):
    """Raised when a setter receives a malformed frame, state or mass matrix."""

    kind = FaultKind.INPUT


class ModulatorNotReadyError(ModulationFault):
    """Raised when compute is called before both frame and state were supplied."""

    kind = FaultKind.NOT_READY


class ModulationComputeError(ModulationFault):
    """Raised when the modulation law cannot produce a finite matrix."""

    kind = FaultKind.COMPUTE


class ModulatorHaltedError(ModulationFault):
    """Raised by a supervisor that has latched a previous fault."""

    kind = FaultKind.HALTED
