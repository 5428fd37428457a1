"""
Quiz scoring and leaderboard engine.

Answers are scored as they arrive, sessions are ranked once at completion,
every player gets one XP ledger entry, and each entry is aggregated exactly
once into the local / national / franchisee leaderboards and player stats.
"""

from .errors import (
    AggregationFailure, DuplicateSubmissionError, GameError, NotFoundError,
    PrematureCompletionError, RuleLookupMiss, SessionStateError, ValidationError,
)
from .leaderboards import (
    apply, get_franchisee, get_local, get_national, get_player_stat,
    reconcile_unprocessed, top_franchisee, top_local, top_national,
)
from .sessions import close_session, complete_session, submit_answer
from .xp_rules import XpRuleTable
