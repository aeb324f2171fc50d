# =============================================================================
# core/config.py  —  Process Configuration
# =============================================================================
#
# Read once at start-up from environment variables (main.py loads .env into
# the environment first with python-dotenv).  Settings is frozen; request
# handlers derive a fresh PermissionConfig from it instead of sharing one
# mutable object.
#
#   ITERABLE_API_KEY         default key when the caller brings none
#   ITERABLE_API_BASE_URL    region, e.g. https://api.eu.iterable.com
#   ITERABLE_USER_PII        "true" enables PII tools
#   ITERABLE_ENABLE_WRITES   "true" enables tools that modify data
#   ITERABLE_ENABLE_SENDS    "true" enables tools that can send messages
#   HOST / PORT              HTTP bind address
#
# Permission flags are off unless the value is exactly "true".
# =============================================================================

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from core.models import PermissionConfig


DEFAULT_BASE_URL = "https://api.iterable.com"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8000


def _flag(value: Optional[str]) -> bool:
    return value == "true"


@dataclass(frozen=True)
class Settings:
    """Deployment settings for the Iterable MCP server."""

    api_key: Optional[str] = field(default=None, repr=False)
    base_url: str = DEFAULT_BASE_URL
    allow_user_pii: bool = False
    allow_writes: bool = False
    allow_sends: bool = False
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    def permissions(self) -> PermissionConfig:
        """Build a new PermissionConfig from the flags."""
        return PermissionConfig(
            allow_user_pii=self.allow_user_pii,
            allow_writes=self.allow_writes,
            allow_sends=self.allow_sends,
        )


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Parse environment variables into Settings.

    Args:
        environ: Mapping to read from.  Defaults to os.environ.
    """
    env = os.environ if environ is None else environ

    return Settings(
        api_key=env.get("ITERABLE_API_KEY") or None,
        base_url=(env.get("ITERABLE_API_BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
        allow_user_pii=_flag(env.get("ITERABLE_USER_PII")),
        allow_writes=_flag(env.get("ITERABLE_ENABLE_WRITES")),
        allow_sends=_flag(env.get("ITERABLE_ENABLE_SENDS")),
        host=env.get("HOST", DEFAULT_HOST),
        port=int(env.get("PORT", DEFAULT_PORT)),
    )
