"""Constants for Signup Scanner."""

import os
from pathlib import Path

# --- Config paths ---
CONFIG_DIR = Path(os.environ.get("SIGNUP_SCANNER_HOME", Path.home() / ".signup-scanner"))
CREDENTIALS_PATH = CONFIG_DIR / "credentials.json"
USER_DB_PATH = CONFIG_DIR / "users.db"

# --- Gmail API ---
SCOPES = ["https://www.googleapis.com/auth/gmail.readonly"]
TOKEN_URI = "https://oauth2.googleapis.com/token"
PAGE_SIZE = 50  # stubs per list page
DETAIL_CHUNK_SIZE = 10  # detail fetches in flight at once
METADATA_HEADERS = ["From", "Subject", "Date"]
DEFAULT_MAX_MESSAGES = 200
INCREMENTAL_MAX_MESSAGES = 500
INCREMENTAL_LOOKBACK_DAYS = 30

# --- Throttling and retries ---
PAGE_DELAY = 0.1  # seconds between list pages
CHUNK_DELAY = 0.2  # seconds between detail chunks
MAX_RETRIES = 3
RETRY_BASE_DELAY = 1.0  # seconds, doubled per attempt
RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)
RATE_LIMIT_REASONS = ("rateLimitExceeded", "userRateLimitExceeded", "quotaExceeded")

# --- Token lifecycle ---
REFRESH_WINDOW_MS = 10 * 60 * 1000

# --- Cache TTLs (seconds) ---
SCAN_TTL = 600
SERVICES_TTL = 1800
DEFAULT_TTL = 3600
SWEEP_INTERVAL = 5 * 60

# --- Classification ---
KEYWORD_MIN_SCORE = 30
GENERATED_CONFIDENCE = 40
FALLBACK_CONFIDENCE = 20
GENERIC_DOMAIN_PREFIXES = ("mail", "noreply", "no-reply", "support", "team")
SNIPPET_LIMIT = 100
SUBJECT_LIMIT = 100

# --- Personal webmail domains (never a signup service) ---
EXCLUDED_DOMAINS = frozenset(
    {
        "gmail.com",
        "googlemail.com",
        "outlook.com",
        "outlook.co.uk",
        "yahoo.com",
        "ymail.com",
        "hotmail.com",
        "icloud.com",
        "me.com",
        "aol.com",
        "protonmail.com",
        "live.com",
        "msn.com",
        "yandex.com",
        "mail.com",
        "btinternet.com",
    }
)

# --- Default search ---
SIGNUP_TERMS = [
    "welcome",
    "verify",
    "signup",
    '"sign up"',
    '"account created"',
    '"thank you"',
    "confirm",
    "activate",
    "registration",
    '"getting started"',
    '"new account"',
]
DEFAULT_SIGNUP_QUERY = " OR ".join(SIGNUP_TERMS)
