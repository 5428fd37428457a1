# app.py
"""
Main Flask application entrypoint.

- Loads env/config
- Initializes Firebase Admin (for token verification and Firestore)
- Enables CORS for /api/*
- Registers blueprints: Quiz engine (answers, completion, leaderboards, XP rules)
"""

from __future__ import annotations
import logging
import os
from datetime import datetime, timezone
from dotenv import load_dotenv
from flask import Flask, jsonify, request
from flask_cors import CORS

# ---- Load .env early ----
load_dotenv()

# ---- Config & blueprints ----
from franchise_games import __version__
from franchise_games.config import Config
from franchise_games.services.quiz_engine import xp_rules
from franchise_games.services.quiz_engine.routes import quiz_bp
from franchise_games.services.quiz_engine.utils import get_store, use_store

logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------
# App Factory
# ---------------------------------------------------------------------
def create_app(store=None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)

    if store is not None:
        use_store(store)
    elif Config.STORE_BACKEND != "memory":
        # require_auth runs before any Firestore call, so initialize here too
        from franchise_games.services.firebase import init_firebase
        init_firebase()
    store = get_store()

    # Make sure every rank has a rule before the first session completes
    added = xp_rules.seed_defaults(store)
    if added:
        logger.info("Seeded %s default XP rules", added)

    # CORS for mobile dev; lock down origins in production
    CORS(app, resources={r"/api/*": {"origins": "*"}})

    # --- Register blueprints ---
    app.register_blueprint(quiz_bp, url_prefix="/api/quiz")

    # --- Health (public) ---
    @app.get("/api/health")
    def health():
        return jsonify({"ok": True, "service": "flask", "version": __version__})

    @app.get("/api/test/ping")
    def test_ping():
        """Simple ping test"""
        return jsonify({
            "ok": True,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "message": "Pong! Backend is responding."
        }), 200

    # --- JSON error handlers ---
    @app.errorhandler(400)
    def handle_400(err):
        return jsonify({"ok": False, "error": str(err)}), 400

    @app.errorhandler(404)
    def handle_404(err):
        return jsonify({"ok": False, "error": "Not found"}), 404

    @app.errorhandler(500)
    def handle_500(err):
        logger.error("Unhandled error on %s: %s", request.path, err)
        return jsonify({"ok": False, "error": "Internal server error"}), 500

    return app


# ---------------------------------------------------------------------
# Dev Server Launcher
# ---------------------------------------------------------------------
if __name__ == "__main__":
    port = int(os.getenv("PORT", "5001"))
    create_app().run(host="0.0.0.0", port=port, debug=True)
