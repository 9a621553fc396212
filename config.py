# ─────────────────────────────────────────────────────────────────
# config.py — Application Settings
#
# Two sources:
#   1. Environment variables (optionally from a .env file)
#      → timings, secrets, ports
#   2. A JSON server list (servers.json by default)
#      → which hosts to ping and who may log in
#
# The server list is read ONCE at startup. Reloading it while the
# monitor runs is not supported.
# ─────────────────────────────────────────────────────────────────

import json
import logging
import os
from collections import OrderedDict
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

from errors import ConfigError, DuplicateHostError

BASE_DIR = Path(__file__).resolve().parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

logger = logging.getLogger("config")

DEFAULT_SESSION_SECRET = "servermon_dev_secret_change_me"

# Used when no servers.json exists — lets the app boot for a demo
SAMPLE_SERVERS = OrderedDict([
    ("Gateway", "192.168.0.1"),
    ("File Server", "192.168.0.2"),
    ("Mail Server", "192.168.0.3"),
])


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got '{raw}'") from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got '{raw}'") from None


def _reject_duplicates(pairs):
    """object_pairs_hook for json.load — a repeated key is a config error, not a silent overwrite."""
    result = OrderedDict()
    for key, value in pairs:
        if key in result:
            raise DuplicateHostError(key)
        result[key] = value
    return result


def parse_server_file(text: str):
    """
    Parses the JSON server list:
    {
        "servers": {"Gateway": "192.168.0.1", ...},
        "users":   {"admin": "$2b$12$..."}
    }
    Returns (servers, users) as ordered dicts.
    """
    try:
        data = json.loads(text, object_pairs_hook=_reject_duplicates)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Server list is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError("Server list must be a JSON object")

    servers = data.get("servers", OrderedDict())
    users = data.get("users", OrderedDict())

    if not isinstance(servers, dict) or not isinstance(users, dict):
        raise ConfigError("'servers' and 'users' must be JSON objects")

    for name, address in servers.items():
        if not isinstance(address, str) or not address.strip():
            raise ConfigError(f"Server '{name}' has an empty or invalid address")
        servers[name] = address.strip()

    for username, password_hash in users.items():
        if not isinstance(password_hash, str) or not password_hash:
            raise ConfigError(f"User '{username}' has no password hash")

    return servers, users


class Settings:
    """Runtime settings. Build with Settings.from_env(); tests pass values directly."""

    def __init__(
        self,
        servers: Optional[Dict[str, str]] = None,
        users: Optional[Dict[str, str]] = None,
        sweep_interval: float = 30.0,
        probe_timeout: float = 3.0,
        max_concurrent_probes: int = 32,
        subscriber_queue_size: int = 100,
        session_secret: str = DEFAULT_SESSION_SECRET,
        session_ttl: int = 24 * 60 * 60,
        https_only: bool = False,
        cors_origins: Optional[List[str]] = None,
        login_max_attempts: int = 5,
        login_window: float = 15 * 60,
        port: int = 3001,
        log_level: str = "INFO",
    ):
        if sweep_interval <= 0:
            raise ConfigError("Sweep interval must be greater than 0 seconds")
        if probe_timeout <= 0:
            raise ConfigError("Probe timeout must be greater than 0 seconds")
        if max_concurrent_probes < 1:
            raise ConfigError("At least one concurrent probe is required")
        if subscriber_queue_size < 1:
            raise ConfigError("Subscriber queue size must be at least 1")

        self.servers = OrderedDict(servers if servers is not None else SAMPLE_SERVERS)
        self.users = dict(users or {})
        self.sweep_interval = sweep_interval
        self.probe_timeout = probe_timeout
        self.max_concurrent_probes = max_concurrent_probes
        self.subscriber_queue_size = subscriber_queue_size
        self.session_secret = session_secret
        self.session_ttl = session_ttl
        self.https_only = https_only
        self.cors_origins = cors_origins if cors_origins is not None else ["http://localhost:3000"]
        self.login_max_attempts = login_max_attempts
        self.login_window = login_window
        self.port = port
        self.log_level = log_level

    @classmethod
    def from_env(cls, config_path: Optional[str] = None):
        path = Path(config_path or os.getenv("SERVERMON_CONFIG", BASE_DIR / "servers.json"))

        servers, users = None, None
        if path.exists():
            servers, users = parse_server_file(path.read_text(encoding="utf-8"))
            logger.info(f"Loaded {len(servers)} server(s) from {path}")
        else:
            logger.warning(f"No server list at {path} — using the built-in sample list")

        secret = os.getenv("SESSION_SECRET", DEFAULT_SESSION_SECRET)
        if secret == DEFAULT_SESSION_SECRET:
            logger.warning("SESSION_SECRET is not set — using the development default")

        environment = os.getenv("ENVIRONMENT", os.getenv("NODE_ENV", "development"))
        origins = os.getenv("CORS_ORIGINS")

        return cls(
            servers=servers,
            users=users,
            sweep_interval=_env_float("SWEEP_INTERVAL", 30.0),
            probe_timeout=_env_float("PROBE_TIMEOUT", 3.0),
            max_concurrent_probes=_env_int("MAX_CONCURRENT_PROBES", 32),
            subscriber_queue_size=_env_int("SUBSCRIBER_QUEUE_SIZE", 100),
            session_secret=secret,
            session_ttl=_env_int("SESSION_TTL", 24 * 60 * 60),
            https_only=environment == "production",
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()] if origins else None,
            login_max_attempts=_env_int("LOGIN_MAX_ATTEMPTS", 5),
            login_window=_env_float("LOGIN_WINDOW", 15 * 60),
            port=_env_int("PORT", 3001),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
