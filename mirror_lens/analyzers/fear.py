import json
from typing import Any

from mirror_lens.aggregation import ProfileSources
from mirror_lens.analyzers.patterns import fear_indicators
from mirror_lens.llm.base import TextGenerationService
from mirror_lens.models import Cube, FearItem, FearSnapshot, Geometry
from mirror_lens.synthesis.policy import synthesize
from mirror_lens.synthesis.repair import bounded
from mirror_lens.synthesis.result import SynthesisResult

TEMPERATURE = 0.3
HEAT_MAP_SIZE = 3
TOP_N = 3

DEFAULT_FEARS = [("powerlessness", 0.4), ("betrayal", 0.3), ("incompetence", 0.3)]
DEFAULT_HEAT_MAP = [[0.4, 0.3, 0.2], [0.3, 0.5, 0.3], [0.2, 0.3, 0.4]]
DEFAULT_CUBE = {"x": 0.4, "y": 0.3, "z": 0.3, "d": 0.58}

SYSTEM_PROMPT = """You analyze recurring fear themes in a person's communication. Base the
analysis on communication themes, not clinical assessment.

Return a JSON object with:
- fears: array of {"key": string, "pct": number 0-1} for fears such as powerlessness,
  betrayal, incompetence, unworthiness, unlovability, unsafety
- heat_map: 3x3 array of intensity values, each 0-1
- geometry: {"cube": {"x", "y", "z", "d"}}, each 0-1, for a 3D visualization
- top3: the three most prominent fear keys, each one taken from fears"""


def default_fear_snapshot() -> FearSnapshot:
    return FearSnapshot(
        fears=[FearItem(key=k, pct=p) for k, p in DEFAULT_FEARS],
        heat_map=[list(row) for row in DEFAULT_HEAT_MAP],
        geometry=Geometry(cube=Cube(**DEFAULT_CUBE)),
        top3=[k for k, _ in DEFAULT_FEARS],
    )


def _repair_fears(raw: Any, notes: list[str]) -> list[FearItem]:
    fears: list[FearItem] = []
    seen: set[str] = set()
    for entry in raw if isinstance(raw, list) else []:
        if not isinstance(entry, dict):
            continue
        key = entry.get("key")
        if not isinstance(key, str) or not key.strip() or key.strip() in seen:
            continue
        key = key.strip()
        seen.add(key)
        fears.append(FearItem(key=key, pct=bounded(entry.get("pct"), 0.0, notes, f"fears.{key}.pct")))
    if not isinstance(raw, list) or len(fears) != len(raw):
        notes.append("fears: missing or invalid entries dropped")
    if not fears:
        notes.append("fears: none usable, using defaults")
        return [FearItem(key=k, pct=p) for k, p in DEFAULT_FEARS]
    for key, _ in DEFAULT_FEARS:
        if len(fears) >= TOP_N:
            break
        if key not in seen:
            notes.append(f"fears: padded with {key}")
            fears.append(FearItem(key=key, pct=0.0))
            seen.add(key)
    return fears


def _repair_heat_map(raw: Any, notes: list[str]) -> list[list[float]]:
    well_formed = (
        isinstance(raw, list)
        and len(raw) == HEAT_MAP_SIZE
        and all(isinstance(row, list) and len(row) == HEAT_MAP_SIZE for row in raw)
    )
    if not well_formed:
        notes.append("heat_map: not a 3x3 matrix, using default")
        return [list(row) for row in DEFAULT_HEAT_MAP]
    return [
        [bounded(raw[i][j], DEFAULT_HEAT_MAP[i][j], notes, f"heat_map[{i}][{j}]") for j in range(HEAT_MAP_SIZE)]
        for i in range(HEAT_MAP_SIZE)
    ]


def _repair_cube(raw: Any, fears: list[FearItem], notes: list[str]) -> Cube:
    cube = raw.get("cube") if isinstance(raw, dict) else None
    if not isinstance(cube, dict):
        notes.append("geometry.cube: missing, derived from fear percentages")
        pcts = [f.pct for f in fears[:4]] + [0.0] * 4
        return Cube(x=pcts[0], y=pcts[1], z=pcts[2], d=pcts[3])
    return Cube(**{axis: bounded(cube.get(axis), DEFAULT_CUBE[axis], notes, f"geometry.cube.{axis}") for axis in DEFAULT_CUBE})


def _repair_top3(raw: Any, fears: list[FearItem], notes: list[str]) -> list[str]:
    keys = {f.key for f in fears}
    top: list[str] = []
    for key in raw if isinstance(raw, list) else []:
        if isinstance(key, str) and key.strip() in keys and key.strip() not in top:
            top.append(key.strip())
    for fear in sorted(fears, key=lambda f: f.pct, reverse=True):
        if len(top) >= TOP_N:
            break
        if fear.key not in top:
            top.append(fear.key)
    top = top[:TOP_N]
    if top != raw:
        notes.append("top3: rebuilt from fears")
    return top


def repair_fear(data: dict[str, Any]) -> tuple[FearSnapshot, list[str]]:
    notes: list[str] = []
    fears = _repair_fears(data.get("fears"), notes)
    snapshot = FearSnapshot(
        fears=fears,
        heat_map=_repair_heat_map(data.get("heat_map"), notes),
        geometry=Geometry(cube=_repair_cube(data.get("geometry"), fears, notes)),
        top3=_repair_top3(data.get("top3"), fears, notes),
    )
    return snapshot, notes


def build_prompt(sources: ProfileSources) -> str:
    indicators = fear_indicators(sources.reflections, sources.intake_sessions, sources.wimts_sessions)
    return (
        "Communication history:\n"
        f"- {len(sources.reflections)} reflections\n"
        f"- {len(sources.intake_sessions)} intake sessions\n"
        f"- {len(sources.wimts_sessions)} WIMTS sessions\n\n"
        f"Fear indicators: {json.dumps(indicators)}\n\n"
        "Generate the fear snapshot."
    )


async def synthesize_fear(
    llm: TextGenerationService,
    sources: ProfileSources,
    *,
    timeout: float | None = None,
) -> SynthesisResult[FearSnapshot]:
    return await synthesize(
        llm,
        build_prompt(sources),
        task="fear_snapshot",
        temperature=TEMPERATURE,
        repair=repair_fear,
        default=default_fear_snapshot,
        system=SYSTEM_PROMPT,
        timeout=timeout,
    )
