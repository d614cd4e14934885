from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import TYPE_CHECKING, Any, Dict, List, Optional
import json
import hashlib
import time
from pathlib import Path

import numpy as np

if TYPE_CHECKING:
    from cods.control.supervisor import TickResult


def _json_dumps(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def sha256_bytes(b: bytes) -> str:
    return hashlib.sha256(b).hexdigest()


@dataclass
class TickLog:
    t: float
    proximity: float
    normal: List[float]
    tangent1: List[float]
    tangent2: List[float]
    position: List[float]
    velocity: List[float]
    nominal_force: List[float]
    phase: str
    matrix: List[List[float]]


class JsonlWriter:
    """
    Modulation trace.
    Writes one JSON per tick. Stores header separately.
    """

    def __init__(self, out_dir: str | Path, run_id: str) -> None:
        self.out_dir = Path(out_dir)
        self.out_dir.mkdir(parents=True, exist_ok=True)
        self.run_id = str(run_id)
        self.path_ticks = self.out_dir / f"{self.run_id}.ticks.jsonl"
        self.path_header = self.out_dir / f"{self.run_id}.header.json"
        self._f = open(self.path_ticks, "w", encoding="utf-8")

    def write_header(self, header: Dict[str, Any]) -> None:
        self.path_header.write_text(_json_dumps(header), encoding="utf-8")

    def write_tick(self, tick: TickLog) -> None:
        self._f.write(_json_dumps(asdict(tick)) + "\n")

    def close(self) -> None:
        try:
            self._f.flush()
        finally:
            self._f.close()

    def __enter__(self) -> "JsonlWriter":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


def make_run_id(prefix: str = "run") -> str:
    ts = int(time.time() * 1000)
    rnd = sha256_bytes(f"{ts}-{time.time_ns()}".encode("utf-8"))[:10]
    return f"{prefix}_{ts}_{rnd}"


def load_header(path: str | Path) -> Dict[str, Any]:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def load_jsonl_ticks(path: str | Path) -> List[TickLog]:
    path = Path(path)
    ticks: List[TickLog] = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            if not line.strip():
                continue
            d = json.loads(line)
            ticks.append(
                TickLog(
                    t=float(d["t"]),
                    proximity=float(d["proximity"]),
                    normal=list(map(float, d["normal"])),
                    tangent1=list(map(float, d["tangent1"])),
                    tangent2=list(map(float, d["tangent2"])),
                    position=list(map(float, d["position"])),
                    velocity=list(map(float, d["velocity"])),
                    nominal_force=list(map(float, d["nominal_force"])),
                    phase=str(d["phase"]),
                    matrix=[list(map(float, row)) for row in d["matrix"]],
                )
            )
    return ticks


def to_float_list(x: Any) -> List[float]:
    a = np.asarray(x, dtype=float).ravel()
    return [float(v) for v in a.tolist()]


class TickRecorder:
    """
    Feeds supervisor ticks into a JsonlWriter with a fixed-rate clock.

    The header is written once, on construction.
    """

    def __init__(self, writer: JsonlWriter, *, dt: float, header: Optional[Dict[str, Any]] = None) -> None:
        dt = float(dt)
        if not np.isfinite(dt) or dt <= 0:
            raise ValueError(f"dt must be > 0, got {dt}")
        self.writer = writer
        self.dt = dt
        self.t = 0.0
        self.count = 0
        writer.write_header(dict(header or {}))

    def record(self, *, position: Any, velocity: Any, nominal_force: Any, result: "TickResult") -> TickLog:
        fr = result.frame
        tick = TickLog(
            t=self.t,
            proximity=float(fr.proximity),
            normal=to_float_list(fr.normal),
            tangent1=to_float_list(fr.tangent1),
            tangent2=to_float_list(fr.tangent2),
            position=to_float_list(position),
            velocity=to_float_list(velocity),
            nominal_force=to_float_list(nominal_force),
            phase=result.phase.value,
            matrix=np.asarray(result.matrix, dtype=float).tolist(),
        )
        self.writer.write_tick(tick)
        self.count += 1
        self.t = self.count * self.dt
        return tick

    def close(self) -> None:
        self.writer.close()
