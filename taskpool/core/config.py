import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./taskpool.db")
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"

# Estimation range (minutes) and assignment window, overridable per project
MIN_ESTIMATION = int(os.getenv("TASKPOOL_MIN_ESTIMATION", "60"))
MAX_ESTIMATION = int(os.getenv("TASKPOOL_MAX_ESTIMATION", "480"))
DEADLINE_DAYS = int(os.getenv("TASKPOOL_DEADLINE_DAYS", "10"))

# Retry / backoff for transient storage and upstream failures
MAX_RETRIES = int(os.getenv("TASKPOOL_MAX_RETRIES", "3"))
BACKOFF_BASE = float(os.getenv("TASKPOOL_BACKOFF_BASE", "0.2"))
MAX_BACKOFF = float(os.getenv("TASKPOOL_MAX_BACKOFF", "5.0"))

DEFAULT_CURRENCY = os.getenv("TASKPOOL_DEFAULT_CURRENCY", "EUR")
DEFAULT_COMMISSION_BP = int(os.getenv("TASKPOOL_DEFAULT_COMMISSION_BP", "1000"))

PAYMENT_WEBHOOK_SECRET = os.getenv("PAYMENT_WEBHOOK_SECRET", "")
