import pytest

from franchise_games.services.quiz_engine import utils
from franchise_games.services.quiz_engine.store import MemoryStore
from franchise_games.services.quiz_engine.xp_rules import DEFAULT_RULES, XpRuleTable

QUIZ_ID = "quiz-1"

QUESTIONS = {
    "q1": {"difficulty": "Easy", "timeLimit": 30},
    "q2": {"difficulty": "Medium", "timeLimit": 20},
    "q3": {"difficulty": "Hard", "timeLimit": 30},
    "q4": {"difficulty": "VeryHard", "timeLimit": 40},
    "q5": {"difficulty": "Hard", "timeLimit": 30, "maxScore": 35},
}


@pytest.fixture
def store():
    s = MemoryStore()
    utils.use_store(s)
    yield s
    utils.use_store(None)


@pytest.fixture
def rules():
    return XpRuleTable.from_rules(DEFAULT_RULES, version=1)


def seed_session(
    store,
    session_id="s1",
    players=("p1", "p2", "p3"),
    status="InProgress",
    quiz_type="Local",
    franchise_id="f1",
    category_id="cat-history",
    total_questions=0,
):
    store.set(utils.session_path(session_id), {
        "quizId": QUIZ_ID,
        "franchiseId": franchise_id,
        "quizType": quiz_type,
        "categoryId": category_id,
        "status": status,
        "totalQuestions": total_questions,
    })
    for qid, question in QUESTIONS.items():
        store.set(utils.question_path(QUIZ_ID, qid), dict(question))
    for i, pid in enumerate(players):
        seed_player(store, session_id, pid, franchise_id=franchise_id, joined_at=1_000 + i)


def seed_player(store, session_id, player_id, franchise_id="f1", joined_at=1_000,
                answers=None, streak=0, highest_streak=None):
    answers = answers or []
    store.set(utils.player_path(session_id, player_id), {
        "playerId": player_id,
        "franchiseId": franchise_id,
        "totalScore": sum(a.get("scoreAwarded", 0) for a in answers),
        "streak": streak,
        "highestStreak": streak if highest_streak is None else highest_streak,
        "answers": answers,
        "joinedAt": joined_at,
        "isActive": True,
        "isDeleted": False,
    })


def answer(question_id, score_awarded, time_taken, is_correct=True, base=None, speed=0, streak=0):
    """Pre-scored answer record, as submit_answer stores it."""
    return {
        "questionId": question_id,
        "timeTaken": time_taken,
        "isCorrect": is_correct,
        "scoreAwarded": score_awarded,
        "basePoints": score_awarded - speed - streak if base is None else base,
        "speedPoints": speed,
        "streakPoints": streak,
        "speedMultiplier": 1.0 if is_correct else 0.0,
    }
