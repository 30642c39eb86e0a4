# gamify/utils/level_utils.py
"""
Level curve. XP required to *reach* a level grows quadratically:

    level 1 -> 0 XP, level 2 -> 100, level 3 -> 400, level 4 -> 900 ...

so ``level = floor(sqrt(xp / XP_BASE_PER_LEVEL)) + 1``.
"""
import math
import os
from typing import Dict

XP_BASE_PER_LEVEL = int(os.getenv("XP_BASE_PER_LEVEL", "100"))


def calculate_level(xp: int) -> int:
    if xp is None or xp < 0:
        return 1
    return max(1, math.isqrt(int(xp) // XP_BASE_PER_LEVEL) + 1)


def xp_for_level(level: int) -> int:
    if level <= 1:
        return 0
    return XP_BASE_PER_LEVEL * (level - 1) ** 2


def xp_for_next_level(level: int) -> int:
    return xp_for_level(level + 1)


def has_leveled_up(old_xp: int, new_xp: int) -> bool:
    return calculate_level(old_xp) < calculate_level(new_xp)


def level_progress(xp: int, level: int) -> Dict[str, float]:
    floor_xp = xp_for_level(level)
    next_xp = xp_for_next_level(level)
    in_level = xp - floor_xp
    needed = next_xp - floor_xp
    pct = (in_level / needed) * 100 if needed > 0 else 0.0
    return {
        "current_xp": in_level,
        "xp_needed": needed,
        "progress_percentage": round(min(100.0, max(0.0, pct)), 2),
        "xp_for_current_level": floor_xp,
        "xp_for_next_level": next_xp,
    }
