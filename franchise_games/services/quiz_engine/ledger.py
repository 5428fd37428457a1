"""
XP ledger: one entry per (player, completed session).

An entry is computed once from the player's finalized answers and final rank,
stored with state "pending" (processed=false) in the same transaction that
completes the session, and later flipped to "applied" (processed=true) by the
leaderboard aggregator with a compare-and-set. Entries hold their own resolved
numbers and the rule table version, so later rule edits do not touch them.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional
import logging

from .errors import NotFoundError, SessionStateError
from .progression import calculate_level
from .utils import (
    get_store, ledger_id, ledger_path, normalize_quiz_type,
    player_path, player_stat_path, session_path, utcnow,
)
from .xp_rules import XpRuleTable, rank_name_for

logger = logging.getLogger(__name__)

LEDGER_COLLECTION = "xp_ledger"
STATE_PENDING = "pending"
STATE_APPLIED = "applied"


def is_applied(entry: Dict[str, Any]) -> bool:
    return entry.get("state") == STATE_APPLIED or bool(entry.get("processed"))


def build_entry(
    session_id: str,
    session: Dict[str, Any],
    player: Dict[str, Any],
    final_rank: int,
    rules: XpRuleTable,
    prior_xp: int = 0,
) -> Dict[str, Any]:
    """Compute a pending ledger entry. Raises RuleLookupMiss if the rank bonus rule is missing."""
    answers = player.get("answers") or []
    quiz_type = normalize_quiz_type(session.get("quizType"))

    base_xp = sum(int(a.get("basePoints") or 0) for a in answers)
    speed_xp = sum(int(a.get("speedPoints") or 0) for a in answers)
    streak_xp = sum(int(a.get("streakPoints") or 0) for a in answers)
    rank_xp = rules.lookup(rank_name_for(final_rank), quiz_type)
    total = base_xp + speed_xp + streak_xp + rank_xp

    correct = [a for a in answers if a.get("isCorrect")]
    question_count = max(len(answers), int(session.get("totalQuestions") or 0))
    accuracy = round(len(correct) / question_count * 100, 2) if question_count else 0.0
    multipliers = [float(a.get("speedMultiplier") or 0) for a in correct]
    multiplier_used = round(sum(multipliers) / len(multipliers), 4) if multipliers else 1.0

    return {
        "playerId": player.get("playerId"),
        "sessionId": session_id,
        "quizId": session.get("quizId"),
        "franchiseId": player.get("franchiseId") or session.get("franchiseId"),
        "categoryId": session.get("categoryId"),
        "quizType": quiz_type,
        "baseXP": base_xp,
        "speedBonusXP": speed_xp,
        "streakBonusXP": streak_xp,
        "rankBonusXP": rank_xp,
        "totalEarnedXP": total,
        "multiplierUsed": multiplier_used,
        "questionCount": question_count,
        "correctAnswers": len(correct),
        "accuracyRate": accuracy,
        "finalRank": final_rank,
        "highestStreak": int(player.get("highestStreak") or 0),
        "xpLevelBefore": calculate_level(prior_xp),
        "xpLevelAfter": calculate_level(prior_xp + total),
        "xpRuleVersion": rules.version,
        "state": STATE_PENDING,
        "processed": False,
        "dateEarned": utcnow(),
        "appliedAt": None,
    }


def record(session_id: str, player_id: str, rules: Optional[XpRuleTable] = None, store=None) -> Dict[str, Any]:
    """
    Create the ledger entry for one player of a completed session.

    complete_session() writes every entry itself; this is for a completed
    session whose entry for a player is missing. An existing entry is never
    recomputed.
    """
    store = store or get_store()
    rules = rules or XpRuleTable.load(store)
    entry_id = ledger_id(session_id, player_id)

    def _write(tx):
        session = tx.get(session_path(session_id))
        if session is None:
            raise NotFoundError("Quiz game session not found", sessionId=session_id)
        if session.get("status") != "Completed":
            raise SessionStateError("Ledger entries are only recorded for completed sessions",
                                    status=session.get("status"))
        player = tx.get(player_path(session_id, player_id))
        if player is None:
            raise NotFoundError("Player session not found", playerId=player_id)
        if player.get("finalRank") is None:
            raise SessionStateError("Player has no final rank", playerId=player_id)
        if tx.get(ledger_path(entry_id)) is not None:
            raise SessionStateError("Ledger entry already exists", entryId=entry_id)
        stat = tx.get(player_stat_path(player_id)) or {}

        entry = build_entry(session_id, session, player, int(player["finalRank"]), rules,
                            prior_xp=int(stat.get("totalXp", 0)))
        tx.create(ledger_path(entry_id), entry)
        return entry

    entry = store.transaction(_write)
    logger.info("Recorded XP entry %s: %s XP", entry_id, entry["totalEarnedXP"])
    return {"id": entry_id, **entry}


def get_entry(entry_id: str, store=None) -> Optional[Dict[str, Any]]:
    store = store or get_store()
    entry = store.get(ledger_path(entry_id))
    return {"id": entry_id, **entry} if entry is not None else None


def list_pending(limit: Optional[int] = None, store=None) -> List[str]:
    """Ids of entries not yet aggregated."""
    store = store or get_store()
    rows = store.query(LEDGER_COLLECTION, filters={"processed": False}, limit=limit)
    return [entry_id for entry_id, _ in rows]


def list_for_player(player_id: str, store=None) -> List[Dict[str, Any]]:
    store = store or get_store()
    rows = store.query(LEDGER_COLLECTION, filters={"playerId": player_id})
    return [{"id": entry_id, **data} for entry_id, data in rows]
