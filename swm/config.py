"""Runtime configuration for the ledger.

Values come from the environment with defaults suitable for a single-node
development setup. Import the module and read the constants directly.
"""

import os

import pytz

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///swm_ledger.db")
TZ_NAME = os.getenv("TZ", "Asia/Kolkata")
LOCAL_TZ = pytz.timezone(TZ_NAME)

TOKEN_SECRET = os.getenv("TOKEN_SECRET", "change-me").encode("utf-8")
TOKEN_TTL_DAYS = int(os.getenv("TOKEN_TTL_DAYS", "30"))

PENALTY_DUE_DAYS = int(os.getenv("PENALTY_DUE_DAYS", "30"))
LEDGER_MUTATE_RETRIES = int(os.getenv("LEDGER_MUTATE_RETRIES", "3"))
_timeout = os.getenv("LEDGER_REQUEST_TIMEOUT", "").strip()
LEDGER_REQUEST_TIMEOUT = float(_timeout) if _timeout else None

REJECTIONS_BEFORE_SUSPENSION = int(os.getenv("REJECTIONS_BEFORE_SUSPENSION", "3"))
OVERDUE_SWEEP_MINUTES = int(os.getenv("OVERDUE_SWEEP_MINUTES", "60"))
