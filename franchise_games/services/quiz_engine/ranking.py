"""
End-of-session ranking, podium and special awards.

Players are ranked by totalScore DESC, then by total answer time ASC (faster
wins), then by joinedAt ASC (earlier wins), then by playerId so the order is
fully deterministic. Ranks are positions 1..n.

Awards are independent of rank and shared when tied:
- fastest_overall: lowest mean timeTaken over correct answers
- highest_streak:  highest current streak at session end (skipped when 0)
"""

from __future__ import annotations
from typing import Any, Dict, List

PODIUM_SIZE = 3
AWARD_FASTEST = "fastest_overall"
AWARD_STREAK = "highest_streak"

_NEVER = float("inf")


def _answers(player: Dict[str, Any]) -> List[Dict[str, Any]]:
    return player.get("answers") or []


def total_time(player: Dict[str, Any]) -> float:
    return float(sum(float(a.get("timeTaken") or 0) for a in _answers(player)))


def _sort_key(player: Dict[str, Any]):
    joined = player.get("joinedAt")
    return (
        -float(player.get("totalScore") or 0),
        total_time(player),
        joined if joined is not None else _NEVER,
        str(player.get("playerId")),
    )


def _summary(player: Dict[str, Any]) -> Dict[str, Any]:
    answers = _answers(player)
    good = sum(1 for a in answers if a.get("isCorrect"))
    spent = total_time(player)
    return {
        "playerId": player.get("playerId"),
        "totalScore": player.get("totalScore") or 0,
        "totalResponseTime": round(spent, 3),
        "avgResponseTime": round(spent / len(answers), 3) if answers else 0.0,
        "goodAnswerCount": good,
        "badAnswerCount": len(answers) - good,
        "accuracy": round(good / len(answers) * 100, 2) if answers else 0.0,
        "currentStreakCount": player.get("streak") or 0,
        "highestStreakCount": player.get("highestStreak") or 0,
        "joinedAt": player.get("joinedAt"),
    }


def rank_players(players: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    ordered = sorted(players, key=_sort_key)
    ranked = []
    for idx, player in enumerate(ordered):
        row = _summary(player)
        row["rank"] = idx + 1
        ranked.append(row)
    return ranked


def _winners(values: Dict[str, float], lowest: bool) -> List[str]:
    if not values:
        return []
    target = min(values.values()) if lowest else max(values.values())
    return sorted(pid for pid, v in values.items() if v == target)


def special_awards(players: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    awards = []

    mean_times = {}
    for p in players:
        correct = [float(a.get("timeTaken") or 0) for a in _answers(p) if a.get("isCorrect")]
        if correct:
            mean_times[str(p.get("playerId"))] = round(sum(correct) / len(correct), 6)
    fastest = _winners(mean_times, lowest=True)
    if fastest:
        awards.append({"award": AWARD_FASTEST, "playerIds": fastest, "value": mean_times[fastest[0]]})

    streaks = {str(p.get("playerId")): int(p.get("streak") or 0) for p in players}
    best = _winners(streaks, lowest=False)
    if best and streaks[best[0]] > 0:
        awards.append({"award": AWARD_STREAK, "playerIds": best, "value": streaks[best[0]]})

    return awards


def resolve(players: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Resolve final standings for one session.

    Returns:
    {
        "ranked": [{"playerId": "p1", "rank": 1, "totalScore": 120, ...}, ...],
        "podium": first 1-3 entries of "ranked",
        "awards": [{"award": "fastest_overall", "playerIds": ["p2"], "value": 3.5}, ...]
    }
    """
    ranked = rank_players(players)
    return {
        "ranked": ranked,
        "podium": ranked[:PODIUM_SIZE],
        "awards": special_awards(players),
    }
