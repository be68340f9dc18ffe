# core/config.py
"""
Process configuration for MailTrack Pro.

Values are read once from the environment (and a project-root .env file) at
import time. Modules import the constants they need from here.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Force-load .env from project root
ROOT_DIR = Path(__file__).resolve().parent.parent
load_dotenv(ROOT_DIR / ".env")

# ----------------------------------------------------------------------
# Credentials
# ----------------------------------------------------------------------
CREDENTIAL_PREFIX = os.getenv("CREDENTIAL_PREFIX", "GEMINI_API_KEY")
CREDENTIAL_LIST_VAR = os.getenv("CREDENTIAL_LIST_VAR", "GEMINI_API_KEYS")
CREDENTIAL_SLOTS = int(os.getenv("CREDENTIAL_SLOTS", "10"))

# ----------------------------------------------------------------------
# Inference service (Gemini via its OpenAI-compatible endpoint)
# ----------------------------------------------------------------------
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
GEMINI_BASE_URL = os.getenv(
    "GEMINI_BASE_URL",
    "https://generativelanguage.googleapis.com/v1beta/openai/",
)
GEMINI_TEMPERATURE = float(os.getenv("GEMINI_TEMPERATURE", "0.3"))
GEMINI_TIMEOUT = float(os.getenv("GEMINI_TIMEOUT", "20"))

# Upper bound for a single credential attempt inside the dispatcher
DISPATCH_ATTEMPT_TIMEOUT = float(os.getenv("DISPATCH_ATTEMPT_TIMEOUT", "30"))

# ----------------------------------------------------------------------
# Follow-up policy
# ----------------------------------------------------------------------
FOLLOW_UP_OFFSET_HOURS = int(os.getenv("FOLLOW_UP_OFFSET_HOURS", "36"))

# ----------------------------------------------------------------------
# Persistence / logging
# ----------------------------------------------------------------------
DATABASE_URL = os.getenv("DATABASE_URL") or "sqlite:///./mailtrack.db"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
