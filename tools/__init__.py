# =============================================================================
# tools/__init__.py
# =============================================================================
# This package contains the FastMCP layer.
#
#   mcp_server.py  one tool function per Iterable operation, and
#                  create_server(), which registers the allowed ones
#   http_app.py    the Starlette app: /, /mcp, /sse/, and the API key gate
#
# WHAT TOOLS DO NOT DO:
#   - They do NOT decide permissions (core/permissions.py does)
#   - They do NOT build URLs or parse responses (core/client.py does)
#   - They do NOT keep state between calls: every invocation resolves its
#     own credential and opens its own client
# =============================================================================
