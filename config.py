import os
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()

# App Information
APP_VERSION = "1.0.0"

# FACEIT API Configuration
FACEIT_API_KEY = os.getenv("FACEIT_API_KEY", "").strip()
FACEIT_API_BASE = "https://open.faceit.com/data/v4"
FACEIT_STATS_API_BASE = "https://api.faceit.com/stats/v1"
GAME_ID = "cs2"
REQUEST_TIMEOUT = 15
CONCURRENCY = int(os.getenv("CONCURRENCY", "5"))

# Discord Configuration
DISCORD_WEBHOOK_URL = os.getenv("DISCORD_WEBHOOK_URL", "").strip()
DISCORD_TOKEN = os.getenv("DISCORD_TOKEN", "").strip()
DISCORD_CHANNEL_ID = os.getenv("DISCORD_CHANNEL_ID", "").strip()

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "eloboard.log")

# Stats Settings
MAX_MATCHES = 30
RATING_HISTORY_SIZE = 100
PROFILE_LANG = os.getenv("PROFILE_LANG", "de")

# Snapshot periods, evaluated in this order every run
PERIODS = ["daily", "weekly", "monthly", "yearly"]
REFERENCE_TIMEZONE = os.getenv("REFERENCE_TIMEZONE", "Europe/Berlin")

# Matches newer than this many hours are announced when migrating old state
MIGRATION_LOOKBACK_HOURS = int(os.getenv("MIGRATION_LOOKBACK_HOURS", "24"))

# Match stats cache
MATCH_CACHE_TTL_DAYS = int(os.getenv("MATCH_CACHE_TTL_DAYS", "30"))
DB_TIMEOUT = 30.0

# File Paths
DATA_DIR = os.getenv("DATA_DIR", "data")
PLAYERS_FILE = os.getenv("PLAYERS_FILE", "players.txt")
TEMPLATE_FILE = os.getenv("TEMPLATE_FILE", "index.template.html")
OUTPUT_FILE = os.getenv("OUTPUT_FILE", "index.html")

RANGE_FILES = {
    "daily": "elo-daily.json",
    "weekly": "elo-weekly.json",
    "monthly": "elo-monthly.json",
    "yearly": "elo-yearly.json",
    "latest": "elo-latest.json",
}
NOTIFICATION_STATE_FILE = "notification_state.json"
MATCH_CACHE_FILE = "match_stats_cache.db"

# Placeholder shown when a value is unavailable
EMPTY_VALUE = "—"
