"""
Engine-wide settings read from the environment (.env supported).
"""

import os

import dotenv
from loguru import logger

dotenv.load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class AccessConfig:
    """Configuration for grant lifecycle and gateway behaviour"""

    def __init__(self):
        # Upper bound accepted for requested_duration_days
        self.max_grant_duration_days = int(os.getenv("MAX_GRANT_DURATION_DAYS", "365"))

        # Supervisors bypass grant checks; set False to stop them reading record content
        self.supervisor_resource_access = _env_bool("SUPERVISOR_RESOURCE_ACCESS", "true")

        # Display-profile cache only, never consulted for decisions
        self.actor_cache_ttl = int(os.getenv("ACTOR_CACHE_TTL", "300"))

        self.audit_query_limit = int(os.getenv("AUDIT_QUERY_LIMIT", "500"))

        logger.debug(
            f"AccessConfig: max_grant_duration_days={self.max_grant_duration_days}, "
            f"supervisor_resource_access={self.supervisor_resource_access}"
        )


_config = None


def get_access_config() -> AccessConfig:
    """Return the process-wide AccessConfig, building it on first use."""
    global _config

    if _config is None:
        _config = AccessConfig()
    return _config


def reset_access_config():
    """Drop the cached config so the next call re-reads the environment."""
    global _config
    _config = None
