# =============================================================================
# core/__init__.py
# =============================================================================
# This package contains the policy and API logic of the Iterable MCP server:
#
#   capabilities.py  which tools expose PII, only read, or can send
#   permissions.py   may this tool run under these ITERABLE_* flags?
#   credentials.py   which API key does this request use?
#   client.py        one Iterable API call in, one normalized value out
#   config.py        Settings read from the environment
#   models.py        the frozen per-request value types
#
# ARCHITECTURAL RULE:
#   Nothing in this package imports FastMCP or Starlette.  The only
#   third-party import is httpx, in client.py.
# =============================================================================
