# services/quiz_engine/progression.py
"""
Player progression derived from cumulative XP: level number, level name and
XP threshold badges.

Level names:
- Deckhand (0 XP)
- Bridge Novice (100 XP)
- Experienced Sailor (500 XP)
- Quartermaster (1,000 XP)
- Second Master (5,000 XP)
- Lieutenant (10,000 XP)
- Admiral (50,000 XP)
- Master of Oceans (100,000 XP)
"""

from __future__ import annotations
from typing import Dict, Any, List, Optional
import math

from .utils import get_store, player_stat_path

# ============================================================================
# Configuration
# ============================================================================

LEVEL_NAMES = [
    {"name": "Deckhand", "threshold": 0, "tier": "bronze"},
    {"name": "Bridge Novice", "threshold": 100, "tier": "bronze"},
    {"name": "Experienced Sailor", "threshold": 500, "tier": "silver"},
    {"name": "Quartermaster", "threshold": 1000, "tier": "silver"},
    {"name": "Second Master", "threshold": 5000, "tier": "gold"},
    {"name": "Lieutenant", "threshold": 10000, "tier": "gold"},
    {"name": "Admiral", "threshold": 50000, "tier": "platinum"},
    {"name": "Master of Oceans", "threshold": 100000, "tier": "diamond"},
]

BADGES = [
    {"key": "novice", "name": "Novice", "xpRequired": 100},
    {"key": "skilled", "name": "Skilled", "xpRequired": 500},
    {"key": "competent", "name": "Competent", "xpRequired": 1000},
    {"key": "expert", "name": "Expert", "xpRequired": 5000},
    {"key": "master", "name": "Master", "xpRequired": 10000},
    {"key": "legend", "name": "Legend", "xpRequired": 50000},
    {"key": "eternal_master", "name": "Eternal Master", "xpRequired": 100000},
]

MAX_LEVEL = 100

# ============================================================================
# Level Calculation
# ============================================================================

def calculate_level(xp: int) -> int:
    """
    Calculate level from XP using square root progression.

    - Level 10 = 200 XP
    - Level 20 = 800 XP
    - Level 50 = 5,000 XP
    - Level 100 = 20,000 XP

    Formula: level = sqrt(xp / 2)
    Inverse: xp_needed = level^2 * 2
    """
    if xp <= 0:
        return 1

    level = int(math.sqrt(xp / 2))
    return min(max(1, level), MAX_LEVEL)

def xp_for_level(level: int) -> int:
    """Calculate XP needed to reach a specific level"""
    if level <= 1:
        return 0
    return level * level * 2

# ============================================================================
# Level Names & Badges
# ============================================================================

def level_name(xp: int) -> Dict[str, Any]:
    """
    Current level name and progress towards the next one.

    Returns:
    {
        "name": "Quartermaster",
        "tier": "silver",
        "threshold": 1000,
        "next": {"name": "Second Master", ...} or None,
        "progress": 0.125   # 0.0 to 1.0
    }
    """
    current = LEVEL_NAMES[0]
    nxt = None
    for i, entry in enumerate(LEVEL_NAMES):
        if xp >= entry["threshold"]:
            current = entry
            nxt = LEVEL_NAMES[i + 1] if i + 1 < len(LEVEL_NAMES) else None
        else:
            break

    if nxt:
        span = nxt["threshold"] - current["threshold"]
        progress = (xp - current["threshold"]) / span if span > 0 else 1.0
    else:
        progress = 1.0

    return {
        "name": current["name"],
        "tier": current["tier"],
        "threshold": current["threshold"],
        "next": nxt,
        "progress": round(progress, 3),
    }

def badges_crossed(old_xp: int, new_xp: int) -> List[Dict[str, Any]]:
    """Badges whose XP requirement lies in (old_xp, new_xp]."""
    return [dict(b) for b in BADGES if old_xp < b["xpRequired"] <= new_xp]

# ============================================================================
# Public API
# ============================================================================

def get_profile(player_id: str, store=None) -> Optional[Dict[str, Any]]:
    """
    Player's cumulative stats plus level info, for profile/leaderboard screens.
    Returns None when the player has no aggregated games yet.
    """
    store = store or get_store()
    stat = store.get(player_stat_path(player_id))
    if stat is None:
        return None

    total_xp = int(stat.get("totalXp", 0))
    info = level_name(total_xp)
    next_level = calculate_level(total_xp) + 1
    stat["levelInfo"] = {
        "level": calculate_level(total_xp),
        "name": info["name"],
        "tier": info["tier"],
        "progress": info["progress"],
        "next_name": info["next"]["name"] if info["next"] else None,
        "xp_to_next_level": max(0, xp_for_level(next_level) - total_xp) if next_level <= MAX_LEVEL else None,
    }
    return stat
