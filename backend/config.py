"""
Module: config.py
Description: Environment-driven configuration for the FinBot expense tracker.

All settings are read once at import time from the process environment,
after loading a local .env file if present.

Author: FinBot Team
"""

import os
from dotenv import load_dotenv

load_dotenv()


# =============================================================================
# Hosted Model
# =============================================================================

OPENAI_API_KEY = (os.getenv("OPENAI_API_KEY", "") or "").strip()
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o")

# Model calls are not retried unless explicitly configured
AI_MAX_RETRIES = int(os.getenv("AI_MAX_RETRIES", "0"))


# =============================================================================
# Storage
# =============================================================================

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./finbot.db")


# =============================================================================
# Request Handling
# =============================================================================

# The router and the per-user container fall back to different ids
DEFAULT_ROUTER_USER_ID = os.getenv("DEFAULT_ROUTER_USER_ID", "demo")
DEFAULT_AGENT_USER_ID = os.getenv("DEFAULT_AGENT_USER_ID", "default")

# Idle agents beyond this many are dropped from memory; state stays in storage
MAX_CACHED_AGENTS = int(os.getenv("MAX_CACHED_AGENTS", "1000"))

MAX_CONVERSATION_MESSAGES = 20

EXPENSE_CATEGORIES = ["Food", "Transport", "Shopping", "Bills", "Other"]
DEFAULT_CURRENCY = "USD"


# =============================================================================
# Logging
# =============================================================================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
