from __future__ import annotations

import json
import hashlib
from typing import Any, Dict, Optional

from cods.config import ModulatorConfig
from cods.schema import SCHEMA_VERSION

PACKAGE_VERSION = "0.1.0"


def stable_hash(obj: Any) -> str:
    def _default(o: Any):
        if hasattr(o, "as_dict"):
            return o.as_dict()
        if hasattr(o, "__dict__"):
            return o.__dict__
        return str(o)

    s = json.dumps(obj, sort_keys=True, default=_default, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def manifest_hash(manifest: Any) -> str:
    return stable_hash(manifest)


def build_manifest(
    *,
    config: ModulatorConfig,
    run_name: Optional[str] = None,
    notes: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Deterministic run manifest; the hash covers every other key.
    Used as the header of a tick trace so replays can check what produced it.
    """
    config.validate()
    manifest = {
        "package_version": PACKAGE_VERSION,
        "schema_version": SCHEMA_VERSION,
        "run_name": run_name or "run",
        "config": config.as_dict(),
        "notes": notes or {},
    }
    manifest["hash"] = manifest_hash(manifest)
    return manifest


def config_from_manifest(manifest: Dict[str, Any]) -> ModulatorConfig:
    c = manifest["config"]
    cfg = ModulatorConfig(
        impact_velocity=float(c["impact_velocity"]),
        desired_contact_force=float(c["desired_contact_force"]),
        free_motion_threshold=float(c["free_motion_threshold"]),
        uses_builtin_surface=bool(c["uses_builtin_surface"]),
        dimension=int(c["dimension"]),
    )
    cfg.validate()
    return cfg
