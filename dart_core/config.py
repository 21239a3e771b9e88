"""
Configuration for the DART offline sync core.

Values come from environment variables first and fall back to the Streamlit
secrets file (``.streamlit/secrets.toml``):

    [supabase]
    url = "https://your-project.supabase.co"
    key = "your-anon-key"

    [sync]
    db_path = "local_data/dart_local.db"
    interval = 60
    max_retries = 5
    log_dir = "logs"
"""

from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import toml

from dart_core.errors import ConfigurationError
from dart_core.logging import get_logger

logger = get_logger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_DB_PATH = PROJECT_ROOT / "local_data" / "dart_local.db"
DEFAULT_SECRETS_PATH = PROJECT_ROOT / ".streamlit" / "secrets.toml"


@dataclass
class SyncConfig:
    """Runtime settings for the local store, sync engine and connectivity monitor."""

    # ==================== REMOTE STORE ====================
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    # ==================== LOCAL STORE ====================
    db_path: Path = DEFAULT_DB_PATH

    # ==================== SYNC ====================
    sync_interval: float = 60.0         # Seconds between foreground sync ticks
    pull_page_size: int = 1000          # Supabase caps a select at 1000 rows
    protect_pending: bool = False       # Skip pulled rows that still have queued writes
    max_retries: int = 5                # Failed pushes before an entry is parked; 0 disables

    # ==================== CONNECTIVITY ====================
    check_interval_online: float = 30.0
    check_interval_offline: float = 10.0
    connection_timeout: float = 5.0

    # ==================== LOGGING ====================
    log_level: str = "INFO"
    log_dir: Optional[Path] = None      # Dated log files are written here when set

    @property
    def has_remote(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level.upper(), logging.INFO)


def _load_secrets(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        return toml.load(path)
    except (toml.TomlDecodeError, OSError) as e:
        logger.warning(f"Could not read secrets file {path}: {e}")
        return {}


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _as_path(value: Any) -> Optional[Path]:
    return Path(value) if value else None


def _as_float(key: str, value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"Invalid value for {key}: {value!r}",
            config_key=key,
            expected_type="float",
        )


def load_config(
    secrets_path: Optional[Path] = None,
    environ: Optional[Dict[str, str]] = None,
) -> SyncConfig:
    """
    Build a SyncConfig from the environment and the secrets file.

    Args:
        secrets_path: Override for the secrets.toml location
        environ: Mapping used instead of os.environ (tests)

    Returns:
        Populated SyncConfig
    """
    env = os.environ if environ is None else environ
    secrets = _load_secrets(secrets_path or DEFAULT_SECRETS_PATH)
    supabase_secrets = secrets.get("supabase", {})
    sync_secrets = secrets.get("sync", {})

    def pick(env_key: str, section: Dict[str, Any], secret_key: str, default: Any = None) -> Any:
        if env.get(env_key):
            return env[env_key]
        return section.get(secret_key, default)

    defaults = SyncConfig()
    config = SyncConfig(
        supabase_url=pick("SUPABASE_URL", supabase_secrets, "url"),
        supabase_key=pick("SUPABASE_KEY", supabase_secrets, "key"),
        db_path=Path(pick("DART_DB_PATH", sync_secrets, "db_path", defaults.db_path)),
        sync_interval=_as_float(
            "DART_SYNC_INTERVAL",
            pick("DART_SYNC_INTERVAL", sync_secrets, "interval", defaults.sync_interval),
        ),
        pull_page_size=int(_as_float(
            "DART_PULL_PAGE_SIZE",
            pick("DART_PULL_PAGE_SIZE", sync_secrets, "pull_page_size", defaults.pull_page_size),
        )),
        protect_pending=_as_bool(
            pick("DART_PROTECT_PENDING", sync_secrets, "protect_pending", defaults.protect_pending)
        ),
        max_retries=int(_as_float(
            "DART_MAX_RETRIES",
            pick("DART_MAX_RETRIES", sync_secrets, "max_retries", defaults.max_retries),
        )),
        check_interval_online=_as_float(
            "DART_CHECK_INTERVAL_ONLINE",
            pick("DART_CHECK_INTERVAL_ONLINE", sync_secrets, "check_interval_online",
                 defaults.check_interval_online),
        ),
        check_interval_offline=_as_float(
            "DART_CHECK_INTERVAL_OFFLINE",
            pick("DART_CHECK_INTERVAL_OFFLINE", sync_secrets, "check_interval_offline",
                 defaults.check_interval_offline),
        ),
        connection_timeout=_as_float(
            "DART_CONNECTION_TIMEOUT",
            pick("DART_CONNECTION_TIMEOUT", sync_secrets, "connection_timeout",
                 defaults.connection_timeout),
        ),
        log_level=str(pick("DART_LOG_LEVEL", sync_secrets, "log_level", defaults.log_level)),
        log_dir=_as_path(pick("DART_LOG_DIR", sync_secrets, "log_dir")),
    )

    if config.pull_page_size <= 0:
        raise ConfigurationError(
            "Pull page size must be positive",
            config_key="DART_PULL_PAGE_SIZE",
            expected_type="int > 0",
        )

    if config.max_retries < 0:
        raise ConfigurationError(
            "Max retries cannot be negative",
            config_key="DART_MAX_RETRIES",
            expected_type="int >= 0",
        )

    return config
