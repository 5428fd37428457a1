"""
Leaderboard aggregation.

apply() consumes one ledger entry inside a single transaction:

1. Local accumulator (per player, across franchises)
2. National accumulator, for national quizzes only
3. Franchisee accumulator (per player per franchise)
4. Player cumulative stats
5. Ledger entry pending -> applied (processed=true)

Counters only ever move through increment transforms. The entry state is
read in the same transaction, so a second apply of the same entry (retry,
duplicate delivery, concurrent reconcile) sees "applied" and does nothing.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional
import logging

from .errors import AggregationFailure, GameError, NotFoundError
from .ledger import STATE_APPLIED, is_applied, list_pending
from .progression import badges_crossed, calculate_level, level_name
from .utils import (
    franchisee_board_path, get_store, ledger_path, local_board_path,
    national_board_path, player_stat_path, utcnow,
)

logger = logging.getLogger(__name__)

LOCAL_COLLECTION = "leaderboards_local"
NATIONAL_COLLECTION = "leaderboards_national"
FRANCHISEE_COLLECTION = "leaderboards_franchisee"

PLACE_FIELDS = {1: "totalFirstPlaceWins", 2: "totalSecondPlaceWins", 3: "totalThirdPlaceWins"}
TOP_CATEGORIES = 3

# ============================================================================
# Delta helpers
# ============================================================================

def _board_deltas(entry: Dict[str, Any], prefix: str = "") -> Dict[str, int]:
    deltas = {
        f"{prefix}totalXp": int(entry.get("totalEarnedXP") or 0),
        f"{prefix}totalGamesPlayed": 1,
    }
    place = PLACE_FIELDS.get(entry.get("finalRank"))
    if place:
        deltas[f"{prefix}{place}"] = 1
    return deltas


def _bump_board(tx, path: str, existing: Optional[Dict[str, Any]], keys: Dict[str, Any], deltas: Dict[str, int]):
    now = utcnow()
    fields = {"updatedAt": now}
    if existing is None:
        fields.update(keys, isActive=True, isDeleted=False, createdAt=now)
    tx.increment(path, deltas, fields)


def _favorite_franchise(franchises: Dict[str, Dict[str, Any]]) -> Optional[str]:
    """Most games played; ties go to more XP, then to the lower id."""
    if not franchises:
        return None
    return min(
        franchises,
        key=lambda fid: (-int(franchises[fid].get("totalGamesPlayed", 0)),
                         -int(franchises[fid].get("totalXp", 0)), fid),
    )


def _top_categories(categories: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
    rows = []
    for cid, c in categories.items():
        questions = int(c.get("questions", 0))
        if questions <= 0:
            continue
        rows.append({
            "categoryId": cid,
            "accuracy": round(int(c.get("correct", 0)) / questions * 100, 2),
            "questions": questions,
        })
    rows.sort(key=lambda r: (-r["accuracy"], -r["questions"], r["categoryId"]))
    return rows[:TOP_CATEGORIES]


def _update_stat(tx, entry: Dict[str, Any], stat: Optional[Dict[str, Any]]):
    player_id = entry["playerId"]
    franchise_id = entry.get("franchiseId")
    category_id = entry.get("categoryId")
    earned = int(entry.get("totalEarnedXP") or 0)
    scope = entry.get("quizType") or "local"
    path = player_stat_path(player_id)
    now = utcnow()
    stat = stat or {}

    questions = int(entry.get("questionCount") or 0)
    correct = int(entry.get("correctAnswers") or 0)
    position = int(entry.get("finalRank") or 0)
    streak = int(entry.get("highestStreak") or 0)

    deltas = {
        "totalXp": earned,
        "totalGamesPlayed": 1,
        "totalGamesPlayedAllTypes": 1,
        "totalQuestions": questions,
        "totalCorrectAnswers": correct,
    }
    prefix = f"scopes.{scope}."
    deltas.update(_board_deltas(entry, prefix=prefix))
    deltas[f"{prefix}totalQuestions"] = questions
    deltas[f"{prefix}totalCorrectAnswers"] = correct
    if position:
        deltas[f"{prefix}positionSum"] = position
    if franchise_id:
        deltas[f"franchises.{franchise_id}.totalXp"] = earned
        deltas[f"franchises.{franchise_id}.totalGamesPlayed"] = 1
    if category_id:
        deltas[f"categories.{category_id}.questions"] = questions
        deltas[f"categories.{category_id}.correct"] = correct

    # Derived fields are computed from the snapshot read in this transaction
    # plus this entry's deltas.
    franchises = {k: dict(v) for k, v in (stat.get("franchises") or {}).items()}
    if franchise_id:
        row = franchises.setdefault(franchise_id, {})
        row["totalXp"] = int(row.get("totalXp", 0)) + earned
        row["totalGamesPlayed"] = int(row.get("totalGamesPlayed", 0)) + 1

    categories = {k: dict(v) for k, v in (stat.get("categories") or {}).items()}
    if category_id:
        row = categories.setdefault(category_id, {})
        row["questions"] = int(row.get("questions", 0)) + questions
        row["correct"] = int(row.get("correct", 0)) + correct

    old_xp = int(stat.get("totalXp", 0))
    new_xp = old_xp + earned
    badges = list(stat.get("badges") or [])
    owned = {b.get("key") for b in badges}
    for badge in badges_crossed(old_xp, new_xp):
        if badge["key"] not in owned:
            badges.append({**badge, "earnedAt": now})

    # Per-scope averages from the snapshot plus this entry
    prev = (stat.get("scopes") or {}).get(scope) or {}
    games = int(prev.get("totalGamesPlayed", 0)) + 1
    scope_questions = int(prev.get("totalQuestions", 0)) + questions
    scope_correct = int(prev.get("totalCorrectAnswers", 0)) + correct
    position_sum = int(prev.get("positionSum", 0)) + position
    scope_fields = {
        "totalAccuracyPercentage": (
            round(scope_correct / scope_questions * 100, 2) if scope_questions else 0.0
        ),
        "averagePosition": round(position_sum / games, 2),
        "worstPosition": max(int(prev.get("worstPosition", 0)), position),
        "maxStreak": max(int(prev.get("maxStreak", 0)), streak),
    }

    derived = {
        "playerId": player_id,
        "favoriteFranchiseId": _favorite_franchise(franchises),
        "topCategories": _top_categories(categories),
        "maxStreak": max(int(stat.get("maxStreak", 0)), streak),
        "scopes": {scope: scope_fields},
        "level": calculate_level(new_xp),
        "levelName": level_name(new_xp)["name"],
        "badges": badges,
        "updatedAt": now,
    }
    if not stat:
        derived["createdAt"] = now
        derived["isActive"] = True

    tx.increment(path, deltas, derived)

# ============================================================================
# Aggregation
# ============================================================================

def _apply_in_tx(tx, entry_id: str) -> bool:
    # All reads first; Firestore rejects reads after writes in a transaction.
    entry = tx.get(ledger_path(entry_id))
    if entry is None:
        raise NotFoundError("Ledger entry not found", entryId=entry_id)
    if is_applied(entry):
        return False

    player_id = entry["playerId"]
    franchise_id = entry.get("franchiseId")
    national = entry.get("quizType") == "national"

    local_path = local_board_path(player_id)
    national_path = national_board_path(player_id)
    franchisee_path = franchisee_board_path(player_id, franchise_id) if franchise_id else None

    local = tx.get(local_path)
    nat = tx.get(national_path) if national else None
    franchisee = tx.get(franchisee_path) if franchisee_path else None
    stat = tx.get(player_stat_path(player_id))

    deltas = _board_deltas(entry)
    _bump_board(tx, local_path, local, {"playerId": player_id}, deltas)
    if national:
        _bump_board(tx, national_path, nat, {"playerId": player_id}, deltas)
    if franchisee_path:
        _bump_board(tx, franchisee_path, franchisee,
                    {"playerId": player_id, "franchiseId": franchise_id}, deltas)
    _update_stat(tx, entry, stat)

    tx.set(ledger_path(entry_id), {"state": STATE_APPLIED, "processed": True, "appliedAt": utcnow()}, merge=True)
    return True


def apply(entry_id: str, store=None) -> bool:
    """
    Aggregate one ledger entry. Returns True if it was applied now, False if
    it had already been applied. Store failures raise AggregationFailure and
    leave the entry pending.
    """
    store = store or get_store()
    try:
        applied = store.transaction(lambda tx: _apply_in_tx(tx, entry_id))
    except GameError:
        raise
    except Exception as e:
        logger.warning("Aggregation of %s failed, entry left pending: %s", entry_id, e)
        raise AggregationFailure(f"Could not aggregate ledger entry {entry_id}", entryId=entry_id) from e

    if applied:
        logger.info("Applied ledger entry %s to leaderboards", entry_id)
    else:
        logger.debug("Ledger entry %s already applied; skipping", entry_id)
    return applied


def reconcile_unprocessed(store=None) -> int:
    """
    Replay every pending ledger entry. Safe to call repeatedly.
    Returns how many entries were applied by this call.
    """
    store = store or get_store()
    count = 0
    failed = 0
    for entry_id in list_pending(store=store):
        try:
            if apply(entry_id, store=store):
                count += 1
        except AggregationFailure:
            failed += 1
    if count or failed:
        logger.info("Reconciled %s pending ledger entries (%s still failing)", count, failed)
    return count

# ============================================================================
# Read queries
# ============================================================================

def get_local(player_id: str, store=None) -> Optional[Dict[str, Any]]:
    return (store or get_store()).get(local_board_path(player_id))


def get_national(player_id: str, store=None) -> Optional[Dict[str, Any]]:
    return (store or get_store()).get(national_board_path(player_id))


def get_franchisee(player_id: str, franchise_id: str, store=None) -> Optional[Dict[str, Any]]:
    return (store or get_store()).get(franchisee_board_path(player_id, franchise_id))


def get_player_stat(player_id: str, store=None) -> Optional[Dict[str, Any]]:
    return (store or get_store()).get(player_stat_path(player_id))


def _top(collection: str, filters: Dict[str, Any], limit: int, store) -> Dict[str, Any]:
    rows = (store or get_store()).query(
        collection, filters={**filters, "isActive": True},
        order_by="totalXp", descending=True, limit=limit,
    )
    leaderboard = [{"position": i + 1, **data} for i, (_, data) in enumerate(rows)]
    return {"ok": True, "leaderboard": leaderboard, "count": len(leaderboard)}


def top_local(limit: int = 10, store=None) -> Dict[str, Any]:
    return _top(LOCAL_COLLECTION, {}, limit, store)


def top_national(limit: int = 10, store=None) -> Dict[str, Any]:
    return _top(NATIONAL_COLLECTION, {}, limit, store)


def top_franchisee(franchise_id: str, limit: int = 10, store=None) -> Dict[str, Any]:
    return _top(FRANCHISEE_COLLECTION, {"franchiseId": franchise_id}, limit, store)
