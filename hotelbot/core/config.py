import os
from dotenv import load_dotenv

# Loads the .env at the project root
load_dotenv()

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in _TRUE_VALUES


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./hotelbot.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_TEST = ENV_NORMALIZED == "test"
IS_PROD = ENV_NORMALIZED in {"prod", "production"}

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Transport: "mock" keeps everything in memory, "cloud" talks to the Meta Cloud API
TRANSPORT = os.getenv("TRANSPORT", "mock").strip().lower()
META_API_VERSION = os.getenv("META_API_VERSION", "v19.0")
WHATSAPP_VERIFY_TOKEN = os.getenv("WHATSAPP_VERIFY_TOKEN", "").strip()

ADMIN_API_TOKEN = os.getenv("ADMIN_API_TOKEN", "").strip()

DEFAULT_HOTEL_NAME = os.getenv("DEFAULT_HOTEL_NAME", "Hotel")
DEFAULT_RECEPTION_EXTENSION = os.getenv("DEFAULT_RECEPTION_EXTENSION", "22")
CURRENCY_SYMBOL = os.getenv("CURRENCY_SYMBOL", "₹")

# Message dedup window
DEDUP_CAPACITY = int(os.getenv("DEDUP_CAPACITY", "1000"))
DEDUP_MAX_AGE_SECONDS = float(os.getenv("DEDUP_MAX_AGE_SECONDS", "0"))

# Guest conversations
CONVERSATION_IDLE_TTL_SECONDS = float(os.getenv("CONVERSATION_IDLE_TTL_SECONDS", "86400"))
RATING_PROMPT_DELAY_SECONDS = float(os.getenv("RATING_PROMPT_DELAY_SECONDS", "10"))
AUTO_CONFIRM_ON_ROOM = _env_flag("AUTO_CONFIRM_ON_ROOM")
EVICTION_INTERVAL_SECONDS = float(os.getenv("EVICTION_INTERVAL_SECONDS", "600"))

# Session lifecycle
RECONNECT_BACKOFF_THRESHOLD = int(os.getenv("RECONNECT_BACKOFF_THRESHOLD", "1"))
RECONNECT_MAX_BACKOFF_SECONDS = float(os.getenv("RECONNECT_MAX_BACKOFF_SECONDS", "30"))
MAX_RECONNECT_ATTEMPTS = int(os.getenv("MAX_RECONNECT_ATTEMPTS", "5"))
SEND_MAX_RETRIES = int(os.getenv("SEND_MAX_RETRIES", "3"))
SEND_CONNECT_WAIT_SECONDS = float(os.getenv("SEND_CONNECT_WAIT_SECONDS", "5"))

# Persistence
STORE_TIMEOUT_SECONDS = float(os.getenv("STORE_TIMEOUT_SECONDS", "10"))
STORE_MAX_RETRIES = int(os.getenv("STORE_MAX_RETRIES", "3"))

# Registers this tenant at startup when set (handy with TRANSPORT=mock)
BOOTSTRAP_TENANT_ID = os.getenv("BOOTSTRAP_TENANT_ID", "").strip()
BOOTSTRAP_ADMIN_TARGET = os.getenv("BOOTSTRAP_ADMIN_TARGET", "").strip() or None
