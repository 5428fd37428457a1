import logging

from flask import Blueprint, request, jsonify
from franchise_games.auth_middleware import require_auth, require_admin
from franchise_games.config import Config

from . import leaderboards, ledger, progression, sessions, xp_rules
from .errors import GameError, ValidationError

logger = logging.getLogger(__name__)

quiz_bp = Blueprint("quiz_bp", __name__)


@quiz_bp.errorhandler(GameError)
def handle_game_error(err: GameError):
    if err.status_code >= 500:
        logger.error("%s: %s", type(err).__name__, err.message)
    return jsonify(err.to_dict()), err.status_code


def _limit() -> int:
    try:
        return max(1, min(100, int(request.args.get("limit", Config.LEADERBOARD_PAGE_SIZE))))
    except ValueError:
        raise ValidationError("limit must be an integer") from None

# -------------------- Live session --------------------

@quiz_bp.post("/sessions/<session_id>/answers")
@require_auth
def submit_answer(session_id):
    """
    Submit one answer for the calling player.

    Request body:
    {
        "question_id": "q1",
        "answer": "B",
        "time_taken": 4.2,
        "is_correct": true
    }
    """
    uid = request.user["uid"]
    data = request.get_json(silent=True) or {}
    question_id = data.get("question_id")
    if not question_id or "time_taken" not in data or "is_correct" not in data:
        return jsonify({"ok": False, "error": "question_id, time_taken and is_correct required"}), 400

    result = sessions.submit_answer(
        session_id, uid, question_id, data.get("answer"), data["time_taken"], data["is_correct"],
    )
    return jsonify(result), 200

@quiz_bp.post("/sessions/<session_id>/start")
@require_admin
def start_session(session_id):
    return jsonify(sessions.start_session(session_id)), 200

@quiz_bp.post("/sessions/<session_id>/close")
@require_admin
def close_session(session_id):
    return jsonify(sessions.close_session(session_id)), 200

@quiz_bp.post("/sessions/<session_id>/complete")
@require_admin
def complete_session(session_id):
    """
    Finalize a session: ranks, podium, awards and XP.

    Response:
    {
        "ok": true,
        "ranked": [{"playerId": "p1", "rank": 1, "totalScore": 120, ...}],
        "podium": [...],
        "awards": [{"award": "fastest_overall", "playerIds": ["p2"], "value": 3.1}],
        "ledger": ["s1__p1", ...],
        "pending": []
    }
    """
    return jsonify(sessions.complete_session(session_id)), 200

@quiz_bp.get("/sessions/<session_id>/results")
@require_auth
def session_results(session_id):
    return jsonify(sessions.get_session_results(session_id)), 200

@quiz_bp.get("/sessions/<session_id>/players")
@require_auth
def session_standings(session_id):
    """Live standings; finalRank is not touched."""
    return jsonify(sessions.get_live_standings(session_id)), 200

@quiz_bp.get("/sessions/<session_id>/players/<player_id>")
@require_auth
def player_session(session_id, player_id):
    if player_id == "me":
        player_id = request.user["uid"]
    return jsonify(sessions.get_player_session(session_id, player_id)), 200

# -------------------- XP ledger --------------------

@quiz_bp.post("/ledger/reconcile")
@require_admin
def reconcile():
    """Replay every pending ledger entry into the leaderboards."""
    count = leaderboards.reconcile_unprocessed()
    return jsonify({"ok": True, "applied": count, "pending": len(ledger.list_pending())}), 200

@quiz_bp.get("/ledger/me")
@require_auth
def my_ledger():
    uid = request.user["uid"]
    entries = ledger.list_for_player(uid)
    return jsonify({"ok": True, "entries": entries, "count": len(entries)}), 200

# -------------------- Leaderboards --------------------

@quiz_bp.get("/leaderboards/local")
def local_leaderboard():
    return jsonify(leaderboards.top_local(_limit())), 200

@quiz_bp.get("/leaderboards/national")
def national_leaderboard():
    return jsonify(leaderboards.top_national(_limit())), 200

@quiz_bp.get("/leaderboards/franchisee/<franchise_id>")
def franchisee_leaderboard(franchise_id):
    return jsonify(leaderboards.top_franchisee(franchise_id, _limit())), 200

@quiz_bp.get("/leaderboards/me")
@require_auth
def my_standing():
    """Local, national and (optionally) franchisee rows for the caller."""
    uid = request.user["uid"]
    franchise_id = request.args.get("franchise_id")
    return jsonify({
        "ok": True,
        "local": leaderboards.get_local(uid),
        "national": leaderboards.get_national(uid),
        "franchisee": leaderboards.get_franchisee(uid, franchise_id) if franchise_id else None,
    }), 200

# -------------------- Player stats --------------------

@quiz_bp.get("/profile")
@require_auth
def player_profile():
    uid = request.user["uid"]
    profile = progression.get_profile(uid)
    if profile is None:
        return jsonify({"ok": False, "error": "No games played yet"}), 404
    return jsonify({"ok": True, "profile": profile}), 200

# -------------------- XP rules (admin) --------------------

@quiz_bp.get("/xp-rules")
def list_xp_rules():
    locale = request.args.get("locale", Config.DEFAULT_LOCALE)
    rules = []
    for rule in xp_rules.list_rules():
        labels = rule.get("labels") or {}
        rules.append({**rule, "label": labels.get(locale) or rule.get("name")})
    return jsonify({"ok": True, "rules": rules}), 200

@quiz_bp.put("/xp-rules/<quiz_type>/<name>")
@require_admin
def put_xp_rule(quiz_type, name):
    data = request.get_json(silent=True) or {}
    rule = xp_rules.upsert_rule(
        name, quiz_type, data.get("xp_value"),
        labels=data.get("labels"), description=data.get("description"),
    )
    return jsonify({"ok": True, "rule": rule}), 200
