"""
Per-answer point computation.

points = round(base * speed_multiplier) + streak_bonus, capped at maxScore

- base comes from the question difficulty (Easy/Medium/Hard/VeryHard)
- speed_multiplier decays linearly from 1.0 (instant) to the floor (0.3) at
  the time limit, and stays at the floor past it
- streak_bonus is flat and non-stacking: only the highest threshold reached
  by the new streak counts

The result is split into base / speed / streak components that always sum to
`points`; the ledger sums those components per session.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple
import math
import numbers

from franchise_games.config import Config
from .errors import ValidationError

DIFFICULTIES = ("Easy", "Medium", "Hard", "VeryHard")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class ScoringConfig:
    difficulty_points: Mapping[str, int] = field(
        default_factory=lambda: {"Easy": 10, "Medium": 20, "Hard": 30, "VeryHard": 50}
    )
    speed_floor: float = 0.3
    # (threshold, bonus) ascending by threshold
    streak_bonuses: Tuple[Tuple[int, int], ...] = ((3, 5), (5, 10), (10, 20))

    def __post_init__(self):
        if not 0 < self.speed_floor <= 1:
            raise ValueError(f"speed_floor must be in (0, 1], got {self.speed_floor}")
        # frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "streak_bonuses", tuple(sorted(self.streak_bonuses)))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScoringConfig":
        bonuses = sorted(
            (int(threshold), int(bonus))
            for threshold, bonus in (data.get("streak_bonuses") or {}).items()
        )
        return cls(
            difficulty_points={k: int(v) for k, v in data["difficulty_points"].items()},
            speed_floor=float(data.get("speed_floor", 0.3)),
            streak_bonuses=tuple(bonuses),
        )

    @classmethod
    def load(cls, path: Optional[str] = None) -> "ScoringConfig":
        return cls.from_dict(Config.load_scoring(path))


@dataclass(frozen=True)
class AnswerScore:
    points: int
    new_streak: int
    base_points: int = 0
    speed_points: int = 0
    streak_points: int = 0
    speed_multiplier: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scoreAwarded": self.points,
            "basePoints": self.base_points,
            "speedPoints": self.speed_points,
            "streakPoints": self.streak_points,
            "speedMultiplier": round(self.speed_multiplier, 4),
        }


def speed_multiplier(time_taken: float, time_limit: float, floor: float = 0.3) -> float:
    """Linear decay from 1.0 at t=0 to `floor` at t=time_limit, clamped."""
    if time_taken >= time_limit:
        return floor
    m = 1.0 - (1.0 - floor) * (time_taken / time_limit)
    return min(1.0, max(floor, m))


def streak_bonus(streak: int, bonuses: Tuple[Tuple[int, int], ...]) -> int:
    """Bonus of the highest threshold reached; thresholds may come in any order."""
    best = 0
    for threshold, bonus in sorted(bonuses):
        if streak >= threshold:
            best = bonus
    return best


def _is_number(value) -> bool:
    # NaN and infinities are Reals too, but they cannot be ordered or summed
    return isinstance(value, numbers.Real) and not isinstance(value, bool) and math.isfinite(value)


def _validate(difficulty, time_taken, time_limit, prior_streak, is_correct, max_score, config):
    if difficulty not in config.difficulty_points:
        raise ValidationError(f"unknown difficulty {difficulty!r}", allowed=sorted(config.difficulty_points))
    if not _is_number(time_taken) or time_taken < 0:
        raise ValidationError("timeTaken must be a non-negative number (seconds)")
    if not _is_number(time_limit) or time_limit <= 0:
        raise ValidationError("timeLimit must be a positive number (seconds)")
    if not isinstance(prior_streak, int) or isinstance(prior_streak, bool) or prior_streak < 0:
        raise ValidationError("streak must be a non-negative integer")
    if not isinstance(is_correct, bool):
        raise ValidationError("isCorrect must be a boolean")
    if max_score is not None and (not _is_number(max_score) or max_score < 0):
        raise ValidationError("maxScore must be a non-negative number")


def score(
    difficulty: str,
    time_taken: float,
    time_limit: float,
    prior_streak: int,
    is_correct: bool,
    max_score: Optional[float] = None,
    config: Optional[ScoringConfig] = None,
) -> AnswerScore:
    """Score one answer. Pure: same inputs, same AnswerScore."""
    config = config or ScoringConfig()
    _validate(difficulty, time_taken, time_limit, prior_streak, is_correct, max_score, config)

    if not is_correct:
        return AnswerScore(points=0, new_streak=0)

    new_streak = prior_streak + 1
    base = config.difficulty_points[difficulty]
    multiplier = speed_multiplier(time_taken, time_limit, config.speed_floor)

    scaled = _round_half_up(base * multiplier)
    base_part = min(scaled, _round_half_up(base * config.speed_floor))
    speed_part = scaled - base_part
    streak_part = streak_bonus(new_streak, config.streak_bonuses)

    if max_score is not None:
        excess = base_part + speed_part + streak_part - int(max_score)
        if excess > 0:
            cut = min(excess, streak_part)
            streak_part -= cut
            excess -= cut
            cut = min(excess, speed_part)
            speed_part -= cut
            excess -= cut
            base_part -= min(excess, base_part)

    return AnswerScore(
        points=base_part + speed_part + streak_part,
        new_streak=new_streak,
        base_points=base_part,
        speed_points=speed_part,
        streak_points=streak_part,
        speed_multiplier=multiplier,
    )
