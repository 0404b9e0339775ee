"""Level thresholds and computation.

Level is a pure function of cumulative points; it is never stored
independently of the point total.
"""

from __future__ import annotations

LEVELS: list[dict] = [
    {"level": 1, "name": "Beginner", "points_required": 0},
    {"level": 2, "name": "Starter", "points_required": 500},
    {"level": 3, "name": "Achiever", "points_required": 2000},
    {"level": 4, "name": "Go-Getter", "points_required": 5000},
    {"level": 5, "name": "Performer", "points_required": 10000},
    {"level": 6, "name": "Rockstar", "points_required": 25000},
    {"level": 7, "name": "Champion", "points_required": 50000},
    {"level": 8, "name": "Elite", "points_required": 75000},
    {"level": 9, "name": "Master", "points_required": 100000},
    {"level": 10, "name": "Fastlaner", "points_required": 150000},
]


def _entry_for(points: int) -> dict:
    current = LEVELS[0]
    for entry in LEVELS:
        if points >= entry["points_required"]:
            current = entry
        else:
            break
    return current


def level_for(points: int) -> int:
    """Highest level whose threshold is <= points."""
    return _entry_for(points)["level"]


def level_name(level: int) -> str:
    for entry in LEVELS:
        if entry["level"] == level:
            return entry["name"]
    return "Unknown"


def compute_level(total_points: int) -> dict:
    """Compute display info for a point total."""
    current = _entry_for(total_points)
    idx = LEVELS.index(current)
    next_level = LEVELS[idx + 1] if idx + 1 < len(LEVELS) else None

    points_into_level = total_points - current["points_required"]
    if next_level is None:
        return {
            "level": current["level"],
            "name": current["name"],
            "points_into_level": points_into_level,
            "points_to_next_level": 0,
            "next_level": current["level"],
            "next_name": current["name"],
            "progress": 100,
            "is_max_level": True,
        }

    level_range = next_level["points_required"] - current["points_required"]
    return {
        "level": current["level"],
        "name": current["name"],
        "points_into_level": points_into_level,
        "points_to_next_level": next_level["points_required"] - total_points,
        "next_level": next_level["level"],
        "next_name": next_level["name"],
        "progress": min(100, round(points_into_level / level_range * 100)),
        "is_max_level": False,
    }
