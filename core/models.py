# =============================================================================
# core/models.py  —  Data Models (the "nouns" of the system)
# =============================================================================
#
# These dataclasses define the shape of every value that flows between the
# HTTP layer, the tool handlers, and the Iterable API adapter.  All of them
# are frozen: a PermissionConfig, Credential or RequestSpec is built once per
# request and thrown away when the request ends.  Nothing here is stored in
# module-level state.
# =============================================================================

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Sequence, Union


# Scalars accepted as query parameter values.  Lists/tuples are sent as
# repeated keys; None means "leave the parameter out".
ParamScalar = Union[str, int, float, bool]
ParamValue = Union[ParamScalar, Sequence[ParamScalar], None]


# -----------------------------------------------------------------------------
# PermissionConfig — the three permission flags for one request
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class PermissionConfig:
    """Which tool categories the server may expose.

    All three flags default to False, so a bare PermissionConfig() is the
    most restrictive configuration: only read-only, non-PII tools pass.
    """

    allow_user_pii: bool = False       # ITERABLE_USER_PII
    allow_writes: bool = False         # ITERABLE_ENABLE_WRITES
    allow_sends: bool = False          # ITERABLE_ENABLE_SENDS


# -----------------------------------------------------------------------------
# Credential — the Iterable API key used for one upstream call
# -----------------------------------------------------------------------------
class CredentialSource(str, Enum):
    """Where a credential was found."""

    QUERY = "query"
    HEADER = "header"
    ENVIRONMENT = "environment"


@dataclass(frozen=True)
class Credential:
    """An Iterable API key plus the place it came from.

    The secret is excluded from repr() so the object can appear in log
    records and tracebacks without leaking the key.
    """

    secret: str = field(repr=False)
    source: CredentialSource


# -----------------------------------------------------------------------------
# RequestSpec — a uniform description of one upstream API call
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class RequestSpec:
    """Method, path, query parameters and optional JSON body of a call."""

    method: str                                       # "GET", "POST", "DELETE"
    path: str                                         # "/api/lists/42/size"
    params: Optional[Mapping[str, ParamValue]] = None
    body: Any = None                                  # JSON-serializable or None
