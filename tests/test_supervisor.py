import logging

import numpy as np
import pytest

from cods.config import ModulatorConfig
from cods.control.faults import (
    FaultKind,
    ModulationComputeError,
    ModulatorConfigError,
    ModulatorHaltedError,
    ModulatorInputError,
)
from cods.control.frames import SurfaceFrame
from cods.control.modulation import ContactPhase
from cods.control.supervisor import SupervisedModulator
from cods.surface import PlanarSurface

CFG = ModulatorConfig(impact_velocity=-0.05, desired_contact_force=5.0, free_motion_threshold=0.3)
ZERO = np.zeros(3)


def _frame(gamma: float) -> SurfaceFrame:
    return SurfaceFrame.from_normal(gamma, [1.0, 0.0, 0.0])


def test_step_with_external_frame():
    sup = SupervisedModulator(CFG)
    res = sup.step(position=ZERO, velocity=ZERO, nominal_force=[2.0, 1.0, 0.0], frame=_frame(-0.01))
    assert res.phase == ContactPhase.CONTACT
    assert np.allclose(res.matrix, np.diag([-2.5, 1.0, 1.0]))
    assert np.allclose(res.modulated_dynamics, [-5.0, 1.0, 0.0])
    assert np.isclose(res.scaling[0, 0], -2.5)


def test_step_applies_matrix_to_separate_nominal_dynamics():
    sup = SupervisedModulator(CFG)
    res = sup.step(
        position=ZERO,
        velocity=ZERO,
        nominal_force=[2.0, 0.0, 0.0],
        frame=_frame(-0.01),
        nominal_dynamics=[0.1, 0.2, 0.3],
    )
    assert np.allclose(res.modulated_dynamics, [-0.25, 0.2, 0.3])


def test_step_with_mass_matrix():
    sup = SupervisedModulator(CFG)
    res = sup.step(
        position=ZERO,
        velocity=ZERO,
        nominal_force=[2.0, 0.0, 0.0],
        frame=_frame(-0.01),
        mass_matrix=np.diag([4.0, 1.0, 1.0]),
    )
    assert np.isclose(res.matrix[0, 0], -5.0 * 0.25 / 2.0)


def test_builtin_surface_drives_phases():
    cfg = ModulatorConfig(
        impact_velocity=-0.05, desired_contact_force=5.0, free_motion_threshold=1.0, uses_builtin_surface=True
    )
    surf = PlanarSurface(point=ZERO, normal=[0.0, 0.0, 1.0], transition_distance=0.1)
    sup = SupervisedModulator(cfg, surface=surf)

    far = sup.step(position=[0.0, 0.0, 0.5], velocity=[0.0, 0.0, -0.1], nominal_force=[0.0, 0.0, -1.0])
    assert far.phase == ContactPhase.FREE_MOTION
    assert np.isclose(far.frame.proximity, 5.0)

    near = sup.step(position=[0.0, 0.0, 0.05], velocity=[0.0, 0.0, -0.02], nominal_force=[0.0, 0.0, -1.0])
    assert near.phase == ContactPhase.TRANSITION_IN_ENVELOPE
    assert np.isclose(near.velocity_in_frame[0], -0.02)

    touch = sup.step(position=[0.0, 0.0, -0.01], velocity=ZERO, nominal_force=[0.0, 0.0, -2.0])
    assert touch.phase == ContactPhase.CONTACT
    assert np.allclose(touch.matrix, np.diag([1.0, 1.0, 2.5]))


def test_builtin_surface_required():
    cfg = ModulatorConfig(impact_velocity=-0.05, desired_contact_force=5.0, uses_builtin_surface=True)
    with pytest.raises(ModulatorConfigError):
        SupervisedModulator(cfg)


def test_fault_latches_until_reset(caplog):
    sup = SupervisedModulator(CFG)
    with caplog.at_level(logging.ERROR, logger="cods.control.supervisor"):
        with pytest.raises(ModulatorInputError):
            sup.step(position=ZERO, velocity=[0.0, 0.0], nominal_force=[1.0, 0.0, 0.0], frame=_frame(0.5))
    assert sup.halted
    assert sup.halt_reason.startswith(FaultKind.INPUT.value)
    assert "halting modulator" in caplog.text

    with pytest.raises(ModulatorHaltedError):
        sup.step(position=ZERO, velocity=ZERO, nominal_force=[1.0, 0.0, 0.0], frame=_frame(0.5))

    sup.reset()
    assert not sup.halted
    assert not sup.modulator.ready
    res = sup.step(position=ZERO, velocity=ZERO, nominal_force=[1.0, 0.0, 0.0], frame=_frame(0.5))
    assert res.phase == ContactPhase.FREE_MOTION


def test_missing_frame_latches():
    sup = SupervisedModulator(CFG)
    with pytest.raises(ModulatorConfigError):
        sup.step(position=ZERO, velocity=ZERO, nominal_force=[1.0, 0.0, 0.0])
    assert sup.halted


def test_compute_fault_latches():
    sup = SupervisedModulator(CFG)
    with pytest.raises(ModulationComputeError) as ei:
        sup.step(position=ZERO, velocity=ZERO, nominal_force=[0.0, 1.0, 0.0], frame=_frame(-0.1))
    assert ei.value.kind == FaultKind.COMPUTE
    assert sup.halted


def test_bad_nominal_dynamics_latches():
    sup = SupervisedModulator(CFG)
    with pytest.raises(ModulatorInputError):
        sup.step(
            position=ZERO,
            velocity=ZERO,
            nominal_force=[1.0, 0.0, 0.0],
            frame=_frame(0.5),
            nominal_dynamics=[1.0, np.inf, 0.0],
        )
    assert sup.halted


def test_builtin_surface_bad_position_is_input_fault():
    cfg = ModulatorConfig(impact_velocity=-0.05, desired_contact_force=5.0, uses_builtin_surface=True)
    surf = PlanarSurface(point=ZERO, normal=[0.0, 0.0, 1.0])
    sup = SupervisedModulator(cfg, surface=surf)
    with pytest.raises(ModulatorInputError) as ei:
        sup.step(position=[0.0, 0.0], velocity=ZERO, nominal_force=[0.0, 0.0, -1.0])
    assert ei.value.kind == FaultKind.INPUT
    assert sup.halted
    assert sup.halt_reason.startswith(FaultKind.INPUT.value)


def test_tick_results_compare_by_identity():
    sup = SupervisedModulator(CFG)
    a = sup.step(position=ZERO, velocity=ZERO, nominal_force=[1.0, 0.0, 0.0], frame=_frame(0.5))
    b = sup.step(position=ZERO, velocity=ZERO, nominal_force=[1.0, 0.0, 0.0], frame=_frame(0.5))
    assert a == a
    assert a != b
