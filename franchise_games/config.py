# config.py
import os, json
from pathlib import Path
from typing import Any, Dict, Optional

# Defaults used when no scoring file is configured (or it is unreadable)
DEFAULT_SCORING = {
    "difficulty_points": {"Easy": 10, "Medium": 20, "Hard": 30, "VeryHard": 50},
    "speed_floor": 0.3,
    # streak length reached -> flat bonus; only the highest threshold met applies
    "streak_bonuses": {"3": 5, "5": 10, "10": 20},
}


class Config:
    STORE_BACKEND = os.getenv("STORE_BACKEND", "firestore").strip().lower()
    SCORING_CONFIG_PATH = os.getenv("SCORING_CONFIG_PATH")
    DEFAULT_LOCALE = os.getenv("DEFAULT_LOCALE", "en_us")
    LEADERBOARD_PAGE_SIZE = int(os.getenv("LEADERBOARD_PAGE_SIZE", "10"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    @staticmethod
    def _resolve_firebase_cred_path() -> str | None:
        """
        Tries multiple ways to get a valid credential:
          1) FIREBASE_SERVICE_ACCOUNT_JSON (env contains the full JSON blob)
          2) GOOGLE_APPLICATION_CREDENTIALS (absolute or relative file path)
             - If relative or not found, try <repo>/firebase/credentials/<basename>
          3) First *.json found under <repo>/firebase/credentials
        Returns a string path if a file exists, or None if using JSON blob.
        Raises on total failure.
        """
        json_blob = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON")
        if json_blob:
            try:
                json.loads(json_blob)
                return None
            except Exception as e:
                raise RuntimeError(f"Invalid FIREBASE_SERVICE_ACCOUNT_JSON: {e}") from e

        p = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
        repo_root = Path(__file__).resolve().parent.parent
        if p:
            p = p.strip().strip('"').strip("'")
            p = os.path.expanduser(os.path.expandvars(p))
            path = Path(p)

            if path.exists():
                return str(path)

            fallback = repo_root / "firebase" / "credentials" / path.name
            if fallback.exists():
                return str(fallback)

            rel_try = (repo_root / p).resolve()
            if rel_try.exists():
                return str(rel_try)

            raise FileNotFoundError(
                "Firebase credential file not found. Tried:\n"
                f" - {path}\n - {fallback}\n - {rel_try}\n"
                "Set FIREBASE_SERVICE_ACCOUNT_JSON or GOOGLE_APPLICATION_CREDENTIALS."
            )

        cred_dir = repo_root / "firebase" / "credentials"
        if cred_dir.exists():
            matches = list(cred_dir.glob("*.json"))
            if matches:
                return str(matches[0])

        raise FileNotFoundError(
            "No Firebase credentials found. Provide FIREBASE_SERVICE_ACCOUNT_JSON, "
            "or set GOOGLE_APPLICATION_CREDENTIALS, or put a JSON in firebase/credentials/."
        )

    @classmethod
    def load_scoring(cls, path: Optional[str] = None) -> Dict[str, Any]:
        """
        Scoring constants: per-difficulty points, speed floor and streak bonuses.

        Values from the JSON file at `path` (or SCORING_CONFIG_PATH) override the
        defaults key by key; a missing or invalid file falls back to defaults.
        """
        merged = json.loads(json.dumps(DEFAULT_SCORING))
        path = path or cls.SCORING_CONFIG_PATH
        if not path:
            return merged
        try:
            with open(path, "r", encoding="utf-8") as fh:
                overrides = json.load(fh)
        except (OSError, ValueError):
            return merged

        for key, value in (overrides or {}).items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key].update(value)
            else:
                merged[key] = value
        return merged
