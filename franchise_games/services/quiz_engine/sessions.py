"""
Live quiz session flow: answers, completion barrier, completion.

Status: Scheduled -> Lobby -> InProgress -> Closing -> Completed (or Cancelled)

- Answers are accepted only while InProgress. Each submission is a
  transaction that reads the session document, so it either commits before
  the barrier or sees Closing and is rejected.
- close_session() sets Closing (the barrier).
- finalize_session() ranks the players, writes one pending ledger entry per
  player and marks the session Completed, all in one transaction. It runs
  once; a Completed session is never re-ranked.
- complete_session() = barrier + finalize + best-effort aggregation. An
  aggregation failure leaves the entry pending for reconcile_unprocessed();
  the session itself is still complete.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional
import logging

from . import leaderboards, ranking
from .errors import (
    AggregationFailure, DuplicateSubmissionError, NotFoundError,
    PrematureCompletionError, SessionStateError, ValidationError,
)
from .ledger import build_entry
from .scoring import ScoringConfig, score
from .utils import (
    get_store, ledger_id, ledger_path, player_path, player_stat_path,
    now_ms, players_collection, question_path, session_path, utcnow,
)
from .xp_rules import XpRuleTable

logger = logging.getLogger(__name__)

STATUS_LOBBY = "Lobby"
STATUS_IN_PROGRESS = "InProgress"
STATUS_CLOSING = "Closing"
STATUS_COMPLETED = "Completed"

_scoring: Optional[ScoringConfig] = None


def scoring_config() -> ScoringConfig:
    global _scoring
    if _scoring is None:
        _scoring = ScoringConfig.load()
    return _scoring


def _require_session(tx, session_id: str) -> Dict[str, Any]:
    session = tx.get(session_path(session_id))
    if session is None:
        raise NotFoundError("Quiz game session not found", sessionId=session_id)
    return session


def _roster(rows) -> List[Dict[str, Any]]:
    """Player documents of a session, minus deleted ones."""
    return [
        {**data, "playerId": data.get("playerId") or pid}
        for pid, data in rows
        if not data.get("isDeleted")
    ]

# ============================================================================
# Answers
# ============================================================================

def submit_answer(
    session_id: str,
    player_id: str,
    question_id: str,
    answer: Any,
    time_taken: float,
    is_correct: bool,
    config: Optional[ScoringConfig] = None,
    store=None,
) -> Dict[str, Any]:
    """
    Score and store one answer.

    Returns:
    {
        "ok": true,
        "answer": {"questionId": "q1", "scoreAwarded": 10, ...},
        "totalScore": 45,
        "streak": 3
    }
    """
    if not question_id:
        raise ValidationError("questionId is required")
    config = config or scoring_config()
    store = store or get_store()

    def _submit(tx):
        session = _require_session(tx, session_id)
        if session.get("status") != STATUS_IN_PROGRESS:
            raise SessionStateError("Session is not accepting answers", status=session.get("status"))

        player = tx.get(player_path(session_id, player_id))
        if player is None or player.get("isDeleted"):
            raise NotFoundError("Player session not found", playerId=player_id)
        if player.get("isActive") is False:
            raise SessionStateError("Player has left this session", playerId=player_id)

        question = tx.get(question_path(session.get("quizId"), question_id))
        if question is None:
            raise NotFoundError("Question does not belong to this quiz session", questionId=question_id)

        answers = list(player.get("answers") or [])
        if any(a.get("questionId") == question_id for a in answers):
            raise DuplicateSubmissionError("Answer already submitted for this question", questionId=question_id)

        result = score(
            question.get("difficulty"),
            time_taken,
            question.get("timeLimit"),
            int(player.get("streak") or 0),
            is_correct,
            max_score=question.get("maxScore"),
            config=config,
        )
        record = {
            "questionId": question_id,
            "answer": answer,
            "timeTaken": time_taken,
            "isCorrect": is_correct,
            "submittedAt": utcnow(),
            **result.to_dict(),
        }
        answers.append(record)
        total = int(player.get("totalScore") or 0) + result.points
        highest = max(int(player.get("highestStreak") or 0), result.new_streak)

        tx.set(player_path(session_id, player_id), {
            "answers": answers,
            "totalScore": total,
            "streak": result.new_streak,
            "highestStreak": highest,
        }, merge=True)
        return {"ok": True, "answer": record, "totalScore": total, "streak": result.new_streak}

    return store.transaction(_submit)

# ============================================================================
# Lifecycle
# ============================================================================

def start_session(session_id: str, store=None) -> Dict[str, Any]:
    """Lobby -> InProgress."""
    store = store or get_store()

    def _start(tx):
        session = _require_session(tx, session_id)
        if session.get("status") not in ("Scheduled", STATUS_LOBBY):
            raise SessionStateError("Session cannot be started", status=session.get("status"))
        tx.set(session_path(session_id), {"status": STATUS_IN_PROGRESS, "startTime": utcnow()}, merge=True)
        return {"ok": True, "sessionId": session_id, "status": STATUS_IN_PROGRESS}

    return store.transaction(_start)


def close_session(session_id: str, store=None) -> Dict[str, Any]:
    """InProgress -> Closing. Further answer writes are rejected from here on."""
    store = store or get_store()

    def _close(tx):
        session = _require_session(tx, session_id)
        status = session.get("status")
        if status == STATUS_CLOSING:
            return {"ok": True, "sessionId": session_id, "status": status}
        if status != STATUS_IN_PROGRESS:
            raise SessionStateError(f"Cannot close a session in status {status}", status=status)
        tx.set(session_path(session_id), {"status": STATUS_CLOSING, "endTime": utcnow()}, merge=True)
        return {"ok": True, "sessionId": session_id, "status": STATUS_CLOSING}

    return store.transaction(_close)


def finalize_session(session_id: str, rules: XpRuleTable, store=None) -> Dict[str, Any]:
    """
    Rank a closed session and write its ledger entries.

    Raises PrematureCompletionError unless the session is Closing,
    SessionStateError if it is already Completed, RuleLookupMiss if a rank
    bonus rule is missing (nothing is written; the session stays Closing).
    """
    store = store or get_store()

    def _finalize(tx):
        session = _require_session(tx, session_id)
        status = session.get("status")
        if status == STATUS_COMPLETED:
            raise SessionStateError("Session already completed", sessionId=session_id)
        if status != STATUS_CLOSING:
            raise PrematureCompletionError(
                "Session must be closed before it is ranked", sessionId=session_id, status=status,
            )

        players = _roster(tx.list(players_collection(session_id)))

        stats = {p["playerId"]: tx.get(player_stat_path(p["playerId"])) or {} for p in players}
        for p in players:
            if tx.get(ledger_path(ledger_id(session_id, p["playerId"]))) is not None:
                raise SessionStateError("Ledger entry already exists", playerId=p["playerId"])

        resolved = ranking.resolve(players)
        by_id = {p["playerId"]: p for p in players}
        entries = {}
        for row in resolved["ranked"]:
            pid = row["playerId"]
            entries[pid] = build_entry(
                session_id, session, by_id[pid], row["rank"], rules,
                prior_xp=int(stats[pid].get("totalXp", 0)),
            )

        # writes
        entry_ids = []
        for row in resolved["ranked"]:
            pid = row["playerId"]
            eid = ledger_id(session_id, pid)
            tx.create(ledger_path(eid), entries[pid])
            tx.set(player_path(session_id, pid), {"finalRank": row["rank"]}, merge=True)
            entry_ids.append(eid)

        tx.set(session_path(session_id), {
            "status": STATUS_COMPLETED,
            "completedAt": utcnow(),
            "ranked": resolved["ranked"],
            "podium": resolved["podium"],
            "specialAwards": resolved["awards"],
            "totalPlayerCount": len(players),
            "xpRuleVersion": rules.version,
        }, merge=True)
        return {**resolved, "ledger": entry_ids}

    result = store.transaction(_finalize)
    logger.info("Session %s completed: %s players ranked", session_id, len(result["ranked"]))
    return result


def complete_session(session_id: str, rules: Optional[XpRuleTable] = None, store=None) -> Dict[str, Any]:
    """
    Close, rank and score a session, then aggregate its ledger entries.

    Returns:
    {
        "ok": true,
        "sessionId": "s1",
        "ranked": [...], "podium": [...], "awards": [...],
        "ledger": ["s1__p1", ...],
        "pending": []      # entries whose aggregation failed; reconcile later
    }
    """
    store = store or get_store()
    session = store.get(session_path(session_id))
    if session is None:
        raise NotFoundError("Quiz game session not found", sessionId=session_id)
    if session.get("status") == STATUS_IN_PROGRESS:
        close_session(session_id, store=store)

    rules = rules or XpRuleTable.load(store)
    result = finalize_session(session_id, rules, store=store)

    pending: List[str] = []
    for entry_id in result["ledger"]:
        try:
            leaderboards.apply(entry_id, store=store)
        except AggregationFailure as e:
            logger.warning("Session %s: %s", session_id, e)
            pending.append(entry_id)

    return {"ok": True, "sessionId": session_id, **result, "pending": pending}


def get_session_results(session_id: str, store=None) -> Dict[str, Any]:
    store = store or get_store()
    session = store.get(session_path(session_id))
    if session is None:
        raise NotFoundError("Quiz game session not found", sessionId=session_id)
    return {
        "ok": True,
        "sessionId": session_id,
        "status": session.get("status"),
        "ranked": session.get("ranked") or [],
        "podium": session.get("podium") or [],
        "awards": session.get("specialAwards") or [],
    }

# ============================================================================
# Live reads
# ============================================================================

def get_live_standings(session_id: str, store=None) -> Dict[str, Any]:
    """
    Current standings of a session, ordered the way completion ranks.

    Read-only: finalRank is only ever written by finalize_session().

    Returns:
    {
        "ok": true,
        "sessionId": "s1",
        "status": "InProgress",
        "standings": [{"playerId": "p1", "rank": 1, "totalScore": 45, "accuracy": 100.0, ...}],
        "count": 3
    }
    """
    store = store or get_store()
    session = store.get(session_path(session_id))
    if session is None:
        raise NotFoundError("Quiz game session not found", sessionId=session_id)
    standings = ranking.rank_players(_roster(store.query(players_collection(session_id))))
    return {
        "ok": True,
        "sessionId": session_id,
        "status": session.get("status"),
        "standings": standings,
        "count": len(standings),
    }


def get_player_session(session_id: str, player_id: str, store=None) -> Dict[str, Any]:
    """One player's answers and running stats in a session."""
    store = store or get_store()
    player = store.get(player_path(session_id, player_id))
    if player is None or player.get("isDeleted"):
        raise NotFoundError("Player session not found", sessionId=session_id, playerId=player_id)

    answers = player.get("answers") or []
    correct = sum(1 for a in answers if a.get("isCorrect"))
    joined = player.get("joinedAt")
    duration = None
    if joined is not None:
        # still playing: measure up to now
        duration = max(0, (int(player.get("leftAt") or now_ms()) - int(joined)) // 1000)

    return {
        "ok": True,
        "sessionId": session_id,
        "playerId": player_id,
        "answers": answers,
        "stats": {
            "totalScore": int(player.get("totalScore") or 0),
            "streak": int(player.get("streak") or 0),
            "highestStreak": int(player.get("highestStreak") or 0),
            "answersSubmitted": len(answers),
            "correctAnswers": correct,
            "accuracy": round(correct / len(answers) * 100, 2) if answers else 0.0,
            "finalRank": player.get("finalRank"),
            "sessionDurationSeconds": duration,
            "isActive": player.get("isActive", True),
        },
    }
