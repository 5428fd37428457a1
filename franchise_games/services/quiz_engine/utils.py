"""
Shared helpers for the quiz engine: store access, clocks and document paths.
Keeps the engine modules small and testable.
"""

from datetime import datetime, timezone
from typing import Optional
import logging
import time

from franchise_games.config import Config
from .errors import ValidationError
from .store import FirestoreStore, MemoryStore

logger = logging.getLogger(__name__)

_store = None

QUIZ_TYPES = ("local", "national")


def get_store():
    """Return the configured store, creating it on first use (safe for Cloud Run)."""
    global _store
    if _store is None:
        if Config.STORE_BACKEND == "memory":
            logger.warning("Using in-memory store; data is lost on restart")
            _store = MemoryStore()
        else:
            _store = FirestoreStore()
    return _store


def use_store(store) -> None:
    """Swap the process-wide store (app factory and tests)."""
    global _store
    _store = store


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def now_ms() -> int:
    """Epoch milliseconds, the unit joinedAt/leftAt are stored in."""
    return int(time.time() * 1000)


# ---- Document paths ----

def session_path(session_id: str) -> str:
    return f"quiz_sessions/{session_id}"

def players_collection(session_id: str) -> str:
    return f"quiz_sessions/{session_id}/players"

def player_path(session_id: str, player_id: str) -> str:
    return f"{players_collection(session_id)}/{player_id}"

def question_path(quiz_id: str, question_id: str) -> str:
    return f"quizzes/{quiz_id}/questions/{question_id}"

def ledger_id(session_id: str, player_id: str) -> str:
    return f"{session_id}__{player_id}"

def ledger_path(entry_id: str) -> str:
    return f"xp_ledger/{entry_id}"

def local_board_path(player_id: str) -> str:
    return f"leaderboards_local/{player_id}"

def national_board_path(player_id: str) -> str:
    return f"leaderboards_national/{player_id}"

def franchisee_board_path(player_id: str, franchise_id: str) -> str:
    return f"leaderboards_franchisee/{player_id}__{franchise_id}"

def player_stat_path(player_id: str) -> str:
    return f"player_stats/{player_id}"


def normalize_quiz_type(value: Optional[str]) -> str:
    """
    Sessions store "Local"/"National"; ledger and rules use lower case.

    A session without a quiz type counts as local. Any other value raises
    ValidationError rather than earning local XP by accident.
    """
    if value is None or not str(value).strip():
        logger.warning("Session has no quizType; treating it as local")
        return "local"
    quiz_type = str(value).strip().lower()
    if quiz_type not in QUIZ_TYPES:
        raise ValidationError(f"unknown quiz type {value!r}", allowed=list(QUIZ_TYPES))
    return quiz_type
