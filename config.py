# config.py
import os
BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # --- Database ---
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", f"sqlite:///{os.path.join(BASE_DIR, 'weekly_tiers.db')}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # --- Flask-WTF CSRF / Sessions ---
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")  # change later

    # --- Uploads ---
    MAX_CONTENT_LENGTH = 10 * 1024 * 1024
    UPLOAD_EXTENSIONS = ("xlsx", "xlsm")

    # --- Logging ---
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Tier thresholds (lower edge of each band, inclusive)
    GREEN_MIN = 85.0
    ORANGE_MIN = 75.0
    RED_MIN = 65.0
    # < 65 → Gray

    TIER_THRESHOLDS = {"green": GREEN_MIN, "orange": ORANGE_MIN, "red": RED_MIN}


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    WTF_CSRF_ENABLED = False
    SECRET_KEY = "test"
