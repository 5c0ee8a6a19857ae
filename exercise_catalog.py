import csv
import os
from dataclasses import dataclass
from typing import Dict, List, Optional

FREE_WEIGHT = "free-weight"
BODYWEIGHT = "bodyweight"


@dataclass(frozen=True)
class ExerciseDefinition:
    """Static description of a known movement."""

    id: str
    name: str
    day: str
    movement: str = FREE_WEIGHT
    load_factor: Optional[float] = None
    increment: float = 2.5
    rest_seconds: int = 120
    tracks_load: bool = True
    prescription: str = ""

    @property
    def is_bodyweight(self) -> bool:
        return self.movement == BODYWEIGHT


class ExerciseCatalog:
    """Known movements loaded from ``exercise_catalog.csv``."""

    def __init__(self, csv_path: str | None = None) -> None:
        self.csv_path = csv_path or os.path.join(
            os.path.dirname(__file__), "exercise_catalog.csv"
        )
        self._items: Dict[str, ExerciseDefinition] = {}
        self._import_catalog_data()

    def _import_catalog_data(self) -> None:
        if not os.path.exists(self.csv_path):
            return
        with open(self.csv_path, newline="", encoding="utf-8") as csvfile:
            reader = csv.DictReader(csvfile)
            for row in reader:
                movement = row["movement"].strip() or FREE_WEIGHT
                if movement not in (FREE_WEIGHT, BODYWEIGHT):
                    raise ValueError(f"unknown movement class: {movement}")
                factor = row.get("load_factor", "").strip()
                self._items[row["id"]] = ExerciseDefinition(
                    id=row["id"],
                    name=row["name"],
                    day=row["day"],
                    movement=movement,
                    load_factor=float(factor) if factor else None,
                    increment=float(row.get("increment") or 2.5),
                    rest_seconds=int(row.get("rest_seconds") or 120),
                    tracks_load=row.get("tracks_load", "1") not in ("0", "false"),
                    prescription=row.get("prescription", ""),
                )

    def get(self, exercise_id: str) -> ExerciseDefinition:
        try:
            return self._items[exercise_id]
        except KeyError:
            raise KeyError(f"unknown exercise: {exercise_id}") from None

    def __contains__(self, exercise_id: object) -> bool:
        return exercise_id in self._items

    def all(self) -> List[ExerciseDefinition]:
        return list(self._items.values())

    def days(self) -> List[str]:
        seen: List[str] = []
        for item in self._items.values():
            if item.day not in seen:
                seen.append(item.day)
        return seen

    def by_day(self, day: str) -> List[ExerciseDefinition]:
        return [e for e in self._items.values() if e.day == day]
