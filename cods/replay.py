from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional
from pathlib import Path
import numpy as np

from .control.modulation import Modulator
from .logging import load_jsonl_ticks


@dataclass(frozen=True)
class ReplayResult:
    ticks: int
    max_abs_error: float
    rms_error: float
    phase_mismatches: int


def replay_ticks(
    modulator: Modulator,
    ticks_path: str | Path,
    mass_matrix: Optional[Any] = None,
) -> ReplayResult:
    """
    Feeds recorded frames and states back through a modulator and compares matrices.

    The trace does not carry the mass matrix; pass the one used while recording
    if it was not the identity. Any fault from the modulator propagates.
    """
    rec = load_jsonl_ticks(ticks_path)
    if mass_matrix is not None:
        modulator.set_mass(mass_matrix)

    max_abs = 0.0
    err_acc = 0.0
    count = 0
    phase_mismatches = 0

    for s in rec:
        modulator.set_frame(s.proximity, s.normal, s.tangent1, s.tangent2)
        modulator.set_state(s.position, s.velocity, s.nominal_force)
        m_now = modulator.compute_modulation()

        m_rec = np.asarray(s.matrix, dtype=float)
        if m_rec.shape == m_now.shape:
            d = m_now - m_rec
            max_abs = max(max_abs, float(np.max(np.abs(d))))
            err_acc += float(np.sum(d * d))
            count += d.size

        if modulator.phase is None or modulator.phase.value != s.phase:
            phase_mismatches += 1

    rms = float(np.sqrt(err_acc / max(1, count)))
    return ReplayResult(ticks=len(rec), max_abs_error=max_abs, rms_error=rms, phase_mismatches=phase_mismatches)
