from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from cods.config import STATE_DIMENSION, ModulatorConfig
from cods.control.faults import ModulatorConfigError
from cods.surface import PlanarSurface

SCHEMA_VERSION = "0.1.0"


class PlanarSurfaceSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    point: List[float] = Field(default_factory=lambda: [0.0, 0.0, 0.0], min_length=3, max_length=3)
    normal: List[float] = Field(default_factory=lambda: [0.0, 0.0, 1.0], min_length=3, max_length=3)
    transition_distance: float = Field(default=0.1, gt=0)


class ModulatorSettings(BaseModel):
    """
    File/dict form of the modulator configuration.

    Loaded from JSON by load_settings(); turned into the runtime
    ModulatorConfig with to_config().
    """

    model_config = ConfigDict(extra="forbid")

    schema_version: str = Field(default=SCHEMA_VERSION)
    dimension: int = Field(default=STATE_DIMENSION)
    impact_velocity: float = Field(lt=0)
    desired_contact_force: float = Field(ge=0)
    free_motion_threshold: float = Field(default=1.0, allow_inf_nan=False)
    uses_builtin_surface: bool = False
    surface: Optional[PlanarSurfaceSettings] = None

    def to_config(self) -> ModulatorConfig:
        cfg = ModulatorConfig(
            impact_velocity=self.impact_velocity,
            desired_contact_force=self.desired_contact_force,
            free_motion_threshold=self.free_motion_threshold,
            uses_builtin_surface=self.uses_builtin_surface,
            dimension=self.dimension,
        )
        cfg.validate()
        return cfg

    def build_surface(self) -> Optional[PlanarSurface]:
        if self.surface is None:
            if self.uses_builtin_surface:
                raise ModulatorConfigError("uses_builtin_surface is set but no surface is configured.")
            return None
        s = self.surface
        return PlanarSurface(point=s.point, normal=s.normal, transition_distance=s.transition_distance)


def parse_settings(data: Mapping[str, Any]) -> ModulatorSettings:
    try:
        return ModulatorSettings.model_validate(dict(data))
    except ValidationError as e:
        raise ModulatorConfigError(f"invalid modulator settings: {e}") from e


def load_settings(path: str | Path) -> ModulatorSettings:
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ModulatorConfigError(f"cannot read settings from {path}: {e}") from e
    if not isinstance(data, dict):
        raise ModulatorConfigError(f"{path}: top-level JSON must be an object.")
    return parse_settings(data)
