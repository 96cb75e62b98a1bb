import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

from mirror_lens.aggregation import ProfileSources
from mirror_lens.analyzers.fear import (
    DEFAULT_HEAT_MAP,
    default_fear_snapshot,
    repair_fear,
    synthesize_fear,
)
from mirror_lens.synthesis.result import Defaulted, Valid

GOOD = {
    "fears": [
        {"key": "betrayal", "pct": 0.7},
        {"key": "unworthiness", "pct": 0.5},
        {"key": "unsafety", "pct": 0.2},
    ],
    "heat_map": [[0.1, 0.2, 0.3], [0.4, 0.5, 0.6], [0.7, 0.8, 0.9]],
    "geometry": {"cube": {"x": 0.7, "y": 0.5, "z": 0.2, "d": 0.4}},
    "top3": ["betrayal", "unworthiness", "unsafety"],
}


def _llm(*responses):
    llm = MagicMock()
    llm.complete = AsyncMock(side_effect=list(responses))
    return llm


def test_well_formed_snapshot_is_valid():
    result = asyncio.run(synthesize_fear(_llm(json.dumps(GOOD)), ProfileSources()))
    assert isinstance(result, Valid)
    assert result.value.top3 == ["betrayal", "unworthiness", "unsafety"]


def test_malformed_heat_map_is_replaced_with_default():
    snapshot, notes = repair_fear(dict(GOOD, heat_map=[[0.1, 0.2], [0.3]]))
    assert snapshot.heat_map == DEFAULT_HEAT_MAP
    assert len(snapshot.heat_map) == 3
    assert all(len(row) == 3 for row in snapshot.heat_map)
    assert notes


def test_heat_map_cells_are_clamped():
    snapshot, _ = repair_fear(dict(GOOD, heat_map=[[2, 0.2, 0.3], [0.4, -1, 0.6], [0.7, 0.8, 0.9]]))
    assert snapshot.heat_map[0][0] == 1.0
    assert snapshot.heat_map[1][1] == 0.0


def test_top3_is_derived_from_fears_when_missing():
    data = {
        "fears": [
            {"key": "a", "pct": 0.1},
            {"key": "b", "pct": 0.9},
            {"key": "c", "pct": 0.5},
            {"key": "d", "pct": 0.3},
        ],
    }
    snapshot, notes = repair_fear(data)
    assert snapshot.top3 == ["b", "c", "d"]
    assert any("top3" in n for n in notes)


def test_top3_drops_keys_not_in_fears():
    snapshot, _ = repair_fear(dict(GOOD, top3=["betrayal", "ghosts"]))
    assert snapshot.top3[0] == "betrayal"
    assert "ghosts" not in snapshot.top3
    assert len(snapshot.top3) == 3
    assert set(snapshot.top3) <= {f.key for f in snapshot.fears}


def test_short_fear_list_is_padded_to_three():
    snapshot, _ = repair_fear({"fears": [{"key": "betrayal", "pct": 0.8}]})
    assert len(snapshot.fears) == 3
    assert snapshot.fears[0].key == "betrayal"
    assert len(snapshot.top3) == 3


def test_missing_cube_is_derived_from_fear_percentages():
    snapshot, _ = repair_fear({k: v for k, v in GOOD.items() if k != "geometry"})
    cube = snapshot.geometry.cube
    assert (cube.x, cube.y, cube.z, cube.d) == (0.7, 0.5, 0.2, 0.0)


def test_double_failure_returns_default():
    result = asyncio.run(synthesize_fear(_llm("{}", "not json"), ProfileSources()))
    assert isinstance(result, Defaulted)
    assert result.value == default_fear_snapshot()
