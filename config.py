import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY") or os.urandom(24)

    # MongoDB setup
    MONGO_URI = os.environ.get("MONGO_URI", "mongodb://localhost:27017/")
    MONGO_DB_NAME = os.environ.get("MONGO_DB_NAME", "eco_rewards")

    GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY", "")
    GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-1.5-flash")
    GEMINI_API_URL = os.environ.get("GEMINI_API_URL", "https://generativelanguage.googleapis.com/v1beta")
    GEMINI_TIMEOUT = float(os.environ.get("GEMINI_TIMEOUT", "30"))

    GOOGLE_MAPS_API_KEY = os.environ.get("GOOGLE_MAPS_API_KEY", "")

    # "PNG, JPG, GIF up to 10MB"
    MAX_CONTENT_LENGTH = int(os.environ.get("MAX_CONTENT_LENGTH", 10 * 1024 * 1024))
    RECENT_REPORTS_LIMIT = int(os.environ.get("RECENT_REPORTS_LIMIT", "10"))

    # in-memory report page states, one per browser session
    REPORT_STATE_LIMIT = int(os.environ.get("REPORT_STATE_LIMIT", "500"))
    REPORT_STATE_TTL = int(os.environ.get("REPORT_STATE_TTL", "3600"))


def missing_keys(config):
    """Names of the API keys that are not set in ``config`` (a mapping)."""
    return [name for name in ("GEMINI_API_KEY", "GOOGLE_MAPS_API_KEY") if not (config.get(name) or "").strip()]
