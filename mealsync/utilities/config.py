"""Configuration management for the mealsync engine."""
import os
from typing import Final, Optional
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file if it exists
env_path = Path(__file__).parent.parent.parent / '.env'
if env_path.exists():
    load_dotenv(env_path)

# Remote service
API_BASE_URL: Final[str] = os.getenv('MEALSYNC_API_BASE_URL', 'http://localhost:8080/api/v1')
API_TIMEOUT_SECONDS: Final[float] = float(os.getenv('MEALSYNC_API_TIMEOUT_SECONDS', '10'))
API_TOKEN: Final[Optional[str]] = os.getenv('MEALSYNC_API_TOKEN') or None

# Background reconciliation
SYNC_INTERVAL_SECONDS: Final[float] = float(os.getenv('MEALSYNC_SYNC_INTERVAL_SECONDS', '300'))
MAX_SYNC_RETRIES: Final[int] = int(os.getenv('MEALSYNC_MAX_SYNC_RETRIES', '3'))
SYNC_STATUS_BUFFER: Final[int] = int(os.getenv('MEALSYNC_SYNC_STATUS_BUFFER', '300'))

# Meal reminders
DEFAULT_PRE_ALERT_MINUTES: Final[int] = int(os.getenv('MEALSYNC_DEFAULT_PRE_ALERT_MINUTES', '15'))
# IANA zone (e.g. Europe/Berlin) for reminder times and time-of-day buckets; unset means the system zone
LOCAL_TIMEZONE: Final[Optional[str]] = os.getenv('MEALSYNC_TIMEZONE') or None

# AI breakdown seeding
OPENAI_API_KEY: Final[Optional[str]] = os.getenv('OPENAI_API_KEY') or None
AI_MODEL: Final[str] = os.getenv('MEALSYNC_AI_MODEL', 'gpt-4o-mini')
AI_MAX_TOKENS: Final[int] = int(os.getenv('MEALSYNC_AI_MAX_TOKENS', '1500'))

# File Paths
BASE_DIR: Final[Path] = Path(__file__).parent.parent
DATA_DIR: Final[Path] = Path(os.getenv('MEALSYNC_DATA_DIR', str(BASE_DIR / 'data')))
