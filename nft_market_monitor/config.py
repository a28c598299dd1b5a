# =============================================================================
# NFT MARKET MONITOR - CONFIGURATION
# =============================================================================
# Every value can be overridden from the environment (or a .env file).

import json
import os
from typing import Dict, List

from dotenv import load_dotenv

from .errors import ConfigError

load_dotenv()


def get_str(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip()


def get_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"Env var {name} must be an integer, got {raw!r}")


def get_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"Env var {name} must be a number, got {raw!r}")


def get_str_list(name: str, default: List[str]) -> List[str]:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return list(default)
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        raise ConfigError(f"Env var {name} must be valid JSON")
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"Env var {name} must be a JSON array of strings")
    return [v.strip().lower() for v in value if v.strip()]


def get_bool_map(name: str, default: Dict[str, bool]) -> Dict[str, bool]:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return dict(default)
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        raise ConfigError(f"Env var {name} must be valid JSON")
    if not isinstance(value, dict) or not all(isinstance(v, bool) for v in value.values()):
        raise ConfigError(f"Env var {name} must be a JSON object of booleans")
    merged = dict(default)
    merged.update(value)
    return merged


# =============================================================================
# TELEGRAM BOT SETTINGS
# =============================================================================
# Get bot token from @BotFather on Telegram
BOT_TOKEN = get_str("BOT_TOKEN")

# Channels for each kind of alert (@username or numeric chat id)
MAIN_CHANNEL = get_str("MAIN_CHANNEL")          # floor price + top bid alerts
LISTINGS_CHANNEL = get_str("LISTINGS_CHANNEL")
SALES_CHANNEL = get_str("SALES_CHANNEL")

# =============================================================================
# RESERVOIR API SETTINGS
# =============================================================================
RESERVOIR_BASE_URL = get_str("RESERVOIR_BASE_URL", "https://api.reservoir.tools")
RESERVOIR_API_KEY = get_str("RESERVOIR_API_KEY")
MARKETPLACE_BASE_URL = get_str("MARKETPLACE_BASE_URL", "https://www.reservoir.market")
ETHERSCAN_BASE_URL = get_str("ETHERSCAN_BASE_URL", "https://etherscan.io")

# =============================================================================
# STATE STORE SETTINGS
# =============================================================================
REDIS_URL = get_str("REDIS_URL", "redis://127.0.0.1:6379/0")
CHAIN = get_str("CHAIN", "mainnet")   # namespaces every cursor key

# =============================================================================
# TRACKED COLLECTIONS
# =============================================================================
# Collection watched for floor price and top bid changes
ALERT_CONTRACT_ADDRESS = get_str("ALERT_CONTRACT_ADDRESS").lower()
# Collections watched for new listings and sales
TRACKED_CONTRACTS = get_str_list("TRACKED_CONTRACTS", [])

ALERTS_ENABLED = get_bool_map(
    "ALERTS_ENABLED",
    {"floor": True, "bid": True, "listings": True, "sales": True},
)

# =============================================================================
# COOLDOWN & POLLING SETTINGS
# =============================================================================
ALERT_COOL_DOWN_SECONDS = get_int("ALERT_COOL_DOWN_SECONDS", 60 * 30)  # 30 minutes
PRICE_CHANGE_OVERRIDE = get_float("PRICE_CHANGE_OVERRIDE", 0.1)       # 10% swing skips cooldown
POLL_SECONDS = get_int("POLL_SECONDS", 60)

LISTINGS_PAGE_SIZE = get_int("LISTINGS_PAGE_SIZE", 500)
SALES_PAGE_SIZE = get_int("SALES_PAGE_SIZE", 100)

# API request settings
REQUEST_TIMEOUT = get_int("REQUEST_TIMEOUT", 15)   # seconds
RETRY_ATTEMPTS = get_int("RETRY_ATTEMPTS", 2)

# Minimum gap between two Telegram messages (to avoid bans)
MESSAGE_DELAY = get_float("MESSAGE_DELAY", 1.0)

# =============================================================================
# LOGGING SETTINGS
# =============================================================================
LOG_LEVEL = get_str("LOG_LEVEL", "INFO").upper()
LOG_FILE = get_str("LOG_FILE", "nft_monitor.log")
LOG_MAX_SIZE_MB = get_int("LOG_MAX_SIZE_MB", 10)
LOG_BACKUP_COUNT = get_int("LOG_BACKUP_COUNT", 5)
