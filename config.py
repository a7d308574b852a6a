# config.py
import os
from dotenv import load_dotenv

load_dotenv()

# ---------- STORAGE ----------
REDIS_URL: str = os.environ.get("REDIS_URL", "redis://localhost:6379/0")
STORE_KEY_PREFIX: str = os.environ.get("STORE_KEY_PREFIX", "agriyield")

# Pre-populate an empty store with the default farms on first start
SEED_ON_FIRST_RUN = os.environ.get("SEED_ON_FIRST_RUN", "1") == "1"

# ---------- FORECASTING SERVICE ----------
FORECAST_URL: str = os.environ.get("FORECAST_URL", "")
FORECAST_API_KEY: str | None = os.environ.get("FORECAST_API_KEY")
FORECAST_TIMEOUT = int(os.environ.get("FORECAST_TIMEOUT", 60))
FORECAST_MAX_RETRIES = int(os.environ.get("FORECAST_MAX_RETRIES", 2))

# ---------- APP ----------
FLASK_DEBUG = os.environ.get("FLASK_DEBUG", "1") == "1"
LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "DEBUG" if FLASK_DEBUG else "INFO")
PORT = int(os.environ.get("PORT", 5000))
