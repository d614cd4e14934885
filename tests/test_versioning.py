from __future__ import annotations

import pytest

from cods.config import ModulatorConfig
from cods.control.faults import ModulatorConfigError
from cods.versioning import PACKAGE_VERSION, build_manifest, config_from_manifest, manifest_hash, stable_hash

CFG = ModulatorConfig(impact_velocity=-0.05, desired_contact_force=5.0, free_motion_threshold=0.3)


def test_manifest_is_deterministic_for_same_inputs():
    m1 = build_manifest(config=CFG, run_name="pytest_determinism", notes={"why": "determinism_test"})
    m2 = build_manifest(config=CFG, run_name="pytest_determinism", notes={"why": "determinism_test"})
    assert m1 == m2
    assert m1["hash"] == m2["hash"]

    body = {k: v for k, v in m1.items() if k != "hash"}
    assert manifest_hash(body) == m1["hash"]


def test_manifest_hash_tracks_config():
    other = ModulatorConfig(impact_velocity=-0.1, desired_contact_force=5.0, free_motion_threshold=0.3)
    assert build_manifest(config=CFG)["hash"] != build_manifest(config=other)["hash"]


def test_stable_hash_accepts_config_objects():
    assert stable_hash({"cfg": CFG}) == stable_hash({"cfg": CFG.as_dict()})


def test_config_round_trips_through_manifest():
    m = build_manifest(config=CFG)
    assert config_from_manifest(m) == CFG


def test_manifest_rejects_invalid_config():
    bad = ModulatorConfig(impact_velocity=0.5, desired_contact_force=5.0)
    with pytest.raises(ModulatorConfigError):
        build_manifest(config=bad)


def test_manifest_records_package_version():
    m = build_manifest(config=CFG)
    assert m["package_version"] == PACKAGE_VERSION
