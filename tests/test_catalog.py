import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from exercise_catalog import BODYWEIGHT, FREE_WEIGHT, ExerciseCatalog


def test_default_catalog():
    catalog = ExerciseCatalog()
    bench = catalog.get("bench_press")
    assert bench.movement == FREE_WEIGHT
    assert bench.load_factor is None
    assert bench.rest_seconds == 150
    dips = catalog.get("dips")
    assert dips.is_bodyweight
    assert dips.load_factor == 0.9
    assert not catalog.get("plank").tracks_load
    assert catalog.days() == ["Push", "Pull", "Legs", "Core"]
    assert "pull_up" in catalog
    with pytest.raises(KeyError):
        catalog.get("unknown")


def test_custom_catalog(tmp_path):
    path = tmp_path / "catalog.csv"
    path.write_text(
        "id,name,day,movement,load_factor,increment,rest_seconds,tracks_load,prescription\n"
        "ring_dip,Ring Dip,A,bodyweight,,1.25,90,1,3x8\n",
        encoding="utf-8",
    )
    catalog = ExerciseCatalog(str(path))
    item = catalog.get("ring_dip")
    assert item.movement == BODYWEIGHT
    assert item.load_factor is None
    assert item.increment == 1.25
    assert [e.id for e in catalog.by_day("A")] == ["ring_dip"]


def test_unknown_movement_rejected(tmp_path):
    path = tmp_path / "catalog.csv"
    path.write_text(
        "id,name,day,movement,load_factor,increment,rest_seconds,tracks_load,prescription\n"
        "x,X,A,machine,,2.5,90,1,\n",
        encoding="utf-8",
    )
    with pytest.raises(ValueError):
        ExerciseCatalog(str(path))
