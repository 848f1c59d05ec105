"""Runtime settings and logging setup for squadlink."""
import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


DEFAULT_DATABASE_URL = 'sqlite:///squadlink.db'


def setup_logging(level: str = 'INFO') -> logging.Logger:
    """Configure the root squadlink logger.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Unknown values fall back to INFO.

    Returns:
        Configured logger instance.
    """
    numeric = getattr(logging, level.upper(), logging.INFO)
    logger = logging.getLogger('squadlink')
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('[%(levelname)s] %(name)s: %(message)s'))
        logger.addHandler(handler)
    logger.setLevel(numeric)
    return logger


def _env_bool(value: Optional[str]) -> bool:
    return (value or '').strip().lower() in ('1', 'true', 'yes', 'on')


def _env_int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value not in (None, '') else default
    except ValueError:
        logging.getLogger('squadlink.config').warning(
            "Ignoring non-integer setting %r, using %d", value, default)
        return default


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, read once from the environment."""

    database_url: str = DEFAULT_DATABASE_URL
    log_level: str = 'INFO'
    secret_key: Optional[str] = None
    online_threshold_minutes: int = 5
    search_limit: int = 10
    trust_user_header: bool = False

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> 'Settings':
        """Build settings from ``os.environ`` (and ``.env`` when present)."""
        if load_env_file:
            load_dotenv()
        env = os.environ
        return cls(
            database_url=env.get('DATABASE_URL', DEFAULT_DATABASE_URL),
            log_level=env.get('SQUADLINK_LOG_LEVEL', 'INFO'),
            secret_key=env.get('SQUADLINK_SECRET_KEY') or None,
            online_threshold_minutes=_env_int(
                env.get('SQUADLINK_ONLINE_THRESHOLD_MINUTES'), 5),
            search_limit=_env_int(env.get('SQUADLINK_SEARCH_LIMIT'), 10),
            trust_user_header=_env_bool(env.get('SQUADLINK_TRUST_USER_HEADER')),
        )
