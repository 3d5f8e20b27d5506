"""
Centralised configuration constants and environment helpers.
"""

import os
import sys

from dotenv import load_dotenv

load_dotenv()

# ── Cache ────────────────────────────────────────────────────────────
CACHE_TTL_MINUTES = int(os.getenv("CACHE_TTL_MINUTES", "5"))
CACHE_MAX_ENTRIES = int(os.getenv("CACHE_MAX_ENTRIES", "100"))

# ── Sessions ─────────────────────────────────────────────────────────
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
SESSION_TIMEOUT_MIN_HOURS = 1
SESSION_TIMEOUT_MAX_HOURS = 168
SESSION_TIMEOUT_DEFAULT_HOURS = 24
# Abandoned sessions are swept at most once per interval.
SESSION_CLEANUP_INTERVAL_SECONDS = int(os.getenv("SESSION_CLEANUP_INTERVAL_SECONDS", "300"))

# ── Spreadsheet ──────────────────────────────────────────────────────
HELPERS_SHEET = "Helpers"
INCIDENTS_SHEET = "Incidents"
USERS_SHEET = "Users"
STAFF_SHEET = "Staff"

# Seeded when the Users sheet is empty; change the password after first login.
DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_EMAIL = "admin@company.com"
DEFAULT_ADMIN_PASSWORD = "admin123"

# ── Loans / employment ───────────────────────────────────────────────
LOAN_MINIMAL = 550
LOAN_LOW_VALUE = 1100
LOAN_MEDIUM_VALUE = 2200
LOAN_URGENT_FOLLOWUP = 3300

NEW_EMPLOYEE_MONTHS = 3


def get_env(name: str) -> str:
    """Return an environment variable or exit with an error message."""
    value = os.getenv(name)
    if not value:
        print(f"ERROR: env var {name} is not set", file=sys.stderr)
        sys.exit(1)
    return value
