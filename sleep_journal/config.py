import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
TEMPLATES_DIR = Path(__file__).parent / "templates"
STATIC_DIR = Path(__file__).parent / "static"

# Database
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{PROJECT_ROOT / 'sleep_journal.db'}")
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Session cookie
SESSION_COOKIE_NAME = "sleep_journal_session"
SESSION_DURATION_DAYS = int(os.getenv("SESSION_DURATION_DAYS", "30"))
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "false").lower() == "true"

# Sign-in throttling (attempts per window, keyed by client + email)
SIGNIN_MAX_ATTEMPTS = int(os.getenv("SIGNIN_MAX_ATTEMPTS", "5"))
SIGNIN_WINDOW_SECONDS = int(os.getenv("SIGNIN_WINDOW_SECONDS", "900"))

# Password hashing cost
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
