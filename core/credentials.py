# =============================================================================
# core/credentials.py  —  Credential Resolver
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Picks the Iterable API key for a single request.  One deployment can
#   serve many callers, each bringing their own key, and still fall back to
#   a deployment-wide key (ITERABLE_API_KEY) for single-tenant setups.
#
# PRECEDENCE (first non-empty value wins):
#   1. ?api_key=...              query parameter
#   2. X-Iterable-Api-Key: ...   request header
#   3. ITERABLE_API_KEY          process default
#
# RULES:
#   - Nothing is cached.  Every request resolves its own credential.
#   - A key never goes into a log line, an error message, or a response.
#   - On the MCP routes a missing key is rejected with 401 before any call
#     to Iterable is attempted.
# =============================================================================

from typing import Any, Mapping, Optional

from core.models import Credential, CredentialSource


API_KEY_QUERY_PARAM = "api_key"
API_KEY_HEADER = "X-Iterable-Api-Key"

# Routes that carry MCP traffic and therefore need a credential.
PROTECTED_PATHS = ("/mcp", "/sse")


class CredentialRequired(Exception):
    """No credential could be resolved for a request that needs one."""

    def __init__(self):
        super().__init__(
            "API key required. Provide your Iterable API key via the "
            f"{API_KEY_HEADER} header or the ?{API_KEY_QUERY_PARAM} query parameter"
        )


def _header_value(headers: Mapping[str, Any], name: str) -> Optional[str]:
    """Case-insensitive header lookup that works on plain dicts too."""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def resolve_credential(
    query_params: Mapping[str, Any],
    headers: Mapping[str, Any],
    default: Optional[str] = None,
) -> Optional[Credential]:
    """Resolve the credential for one request.

    Args:
        query_params: The request's query parameters.
        headers: The request's headers.
        default: The deployment-level key (ITERABLE_API_KEY), if any.

    Returns:
        A Credential tagged with its source, or None when no source holds a
        non-empty key.
    """
    candidates = (
        (query_params.get(API_KEY_QUERY_PARAM), CredentialSource.QUERY),
        (_header_value(headers, API_KEY_HEADER), CredentialSource.HEADER),
        (default, CredentialSource.ENVIRONMENT),
    )
    for secret, source in candidates:
        if secret:
            return Credential(secret=secret, source=source)
    return None


def require_credential(
    query_params: Mapping[str, Any],
    headers: Mapping[str, Any],
    default: Optional[str] = None,
) -> Credential:
    """Like resolve_credential(), but raise CredentialRequired on absence."""
    credential = resolve_credential(query_params, headers, default)
    if credential is None:
        raise CredentialRequired()
    return credential


def requires_credential(path: str) -> bool:
    """True if requests to this path must carry a credential."""
    return any(path == p or path.startswith(p + "/") for p in PROTECTED_PATHS)
