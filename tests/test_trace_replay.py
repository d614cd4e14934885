import numpy as np
import pytest

from cods.config import ModulatorConfig
from cods.control.frames import SurfaceFrame
from cods.control.modulation import Modulator
from cods.control.supervisor import SupervisedModulator
from cods.logging import JsonlWriter, TickRecorder, load_header, load_jsonl_ticks, make_run_id
from cods.replay import replay_ticks
from cods.versioning import build_manifest, config_from_manifest

CFG = ModulatorConfig(impact_velocity=-0.05, desired_contact_force=5.0, free_motion_threshold=0.3)


def _approach(sup: SupervisedModulator) -> None:
    normal = np.array([0.0, 0.6, 0.8])
    velocities = [-0.3, -0.2, -0.04, 0.01, 0.0]
    gammas = [1.0, 0.2, 0.1, 0.05, -0.02]
    for gamma, vn in zip(gammas, velocities):
        sup.step(
            position=np.zeros(3),
            velocity=vn * normal,
            nominal_force=-2.0 * normal,
            frame=SurfaceFrame.from_normal(gamma, normal),
        )


def test_record_and_replay_matches(tmp_path):
    run_id = make_run_id("approach")
    writer = JsonlWriter(tmp_path, run_id)
    recorder = TickRecorder(writer, dt=0.002, header=build_manifest(config=CFG, run_name="approach"))
    sup = SupervisedModulator(CFG, recorder=recorder)
    _approach(sup)
    recorder.close()

    ticks = load_jsonl_ticks(writer.path_ticks)
    assert len(ticks) == 5
    assert [t.phase for t in ticks] == [
        "FREE_MOTION",
        "TRANSITION_OVERSHOOT",
        "TRANSITION_IN_ENVELOPE",
        "TRANSITION_DEPARTING",
        "CONTACT",
    ]
    assert np.allclose([t.t for t in ticks], [0.0, 0.002, 0.004, 0.006, 0.008])

    header = load_header(writer.path_header)
    assert header["run_name"] == "approach"
    cfg = config_from_manifest(header)
    assert cfg == CFG

    res = replay_ticks(Modulator(cfg), writer.path_ticks)
    assert res.ticks == 5
    assert res.phase_mismatches == 0
    assert res.max_abs_error < 1e-12
    assert res.rms_error < 1e-12


def test_replay_detects_config_drift(tmp_path):
    writer = JsonlWriter(tmp_path, "drift")
    recorder = TickRecorder(writer, dt=0.01)
    _approach(SupervisedModulator(CFG, recorder=recorder))
    recorder.close()

    other = ModulatorConfig(impact_velocity=-0.05, desired_contact_force=8.0, free_motion_threshold=0.3)
    res = replay_ticks(Modulator(other), writer.path_ticks)
    assert res.ticks == 5
    assert res.max_abs_error > 0.1


def test_recorder_rejects_bad_dt(tmp_path):
    with JsonlWriter(tmp_path, "bad") as writer:
        with pytest.raises(ValueError):
            TickRecorder(writer, dt=0.0)
