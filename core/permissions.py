# =============================================================================
# core/permissions.py  —  Permission Evaluator
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Decides whether a tool may be exposed or invoked under a PermissionConfig.
#
# THE RULES (checked in this order, first failure wins):
#   1. PII    — blocked unless allow_user_pii, or the tool is in NON_PII_TOOLS
#   2. Writes — blocked unless allow_writes, or the tool is in READ_ONLY_TOOLS
#   3. Sends  — blocked if the tool is in SEND_TOOLS and not allow_sends
#
#   4. Unknown — a name in none of the three lists is blocked even when every
#      flag is on
#
#   A tool that needs PII, writes AND sends reports the PII reason when all
#   three flags are off.  is_tool_allowed() is True exactly when
#   blocked_reason() is None; both are built on the same helper so they
#   cannot disagree.
#
# WHO CALLS THIS:
#   - tools/mcp_server.py, once at start-up, to decide which handlers to
#     register (what tools/list shows), and
#   - every handler, again, right before it calls the Iterable API.
# =============================================================================

from typing import Iterable

from core.capabilities import is_classified, is_non_pii, is_read_only, is_send
from core.models import PermissionConfig


PII_REASON = (
    "This tool exposes user PII and requires PII permission. "
    "Enable with ITERABLE_USER_PII=true"
)
WRITE_REASON = (
    "This tool modifies data and requires write permission. "
    "Enable with ITERABLE_ENABLE_WRITES=true"
)
SEND_REASON = (
    "This tool can send messages and requires send permission. "
    "Enable with ITERABLE_ENABLE_SENDS=true"
)
UNKNOWN_REASON = "This tool is not a recognized Iterable tool"


class PermissionDenied(Exception):
    """Raised when a tool is invoked that the current config does not allow."""

    def __init__(self, tool_name: str, reason: str):
        self.tool_name = tool_name
        self.reason = reason
        super().__init__(f"Tool '{tool_name}' is not available: {reason}")


def blocked_reason(tool_name: str, config: PermissionConfig) -> str | None:
    """Return the human-readable reason a tool is blocked, or None if allowed."""
    if not config.allow_user_pii and not is_non_pii(tool_name):
        return PII_REASON

    if not config.allow_writes and not is_read_only(tool_name):
        return WRITE_REASON

    if not config.allow_sends and is_send(tool_name):
        return SEND_REASON

    if not is_classified(tool_name):
        return UNKNOWN_REASON

    return None


def is_tool_allowed(tool_name: str, config: PermissionConfig) -> bool:
    """Check if a tool should be available based on configuration."""
    return blocked_reason(tool_name, config) is None


def allowed_tools(tool_names: Iterable[str], config: PermissionConfig) -> list[str]:
    """Filter tool names down to the ones the config allows, keeping order."""
    return [name for name in tool_names if is_tool_allowed(name, config)]


def ensure_tool_allowed(tool_name: str, config: PermissionConfig) -> None:
    """Raise PermissionDenied if the tool is blocked under this config."""
    reason = blocked_reason(tool_name, config)
    if reason is not None:
        raise PermissionDenied(tool_name, reason)
