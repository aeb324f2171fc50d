# =============================================================================
# tools/mcp_server.py  —  FastMCP Tool Server (ALL tools in one place)
# =============================================================================
#
# WHAT THIS FILE DOES:
#   Defines every MCP tool the server can expose.  Each tool is a thin
#   wrapper around one IterableClient method in core/client.py: it checks
#   permission, picks the caller's API key, makes the call and returns the
#   result as text.
#
# HOW IT WORKS (the flow):
#   1. create_server() asks core/permissions.py which tools the current
#      ITERABLE_* flags allow, and registers only those.  A blocked tool
#      never shows up in tools/list.
#   2. An MCP client calls a tool by name (e.g. "get_lists").
#   3. FastMCP validates the arguments against the function signature and
#      routes the call to the function below.
#   4. _invoke() re-checks permission, resolves the credential for THIS
#      request, opens an IterableClient, and makes exactly one API call.
#   5. The result goes back as pretty-printed JSON, or as raw text for the
#      CSV-style endpoints.
#
# TOOL NAMING CONVENTIONS:
#   The tool names are the Iterable tool catalog names, which is what
#   core/capabilities.py classifies.  get_* tools are read-only; create_*,
#   delete_*, abort_* modify data; trigger_*, track_*, send_* can send.
#
# RUNNING THIS SERVER:
#   a) Over HTTP:   python main.py            (see tools/http_app.py)
#   b) Over stdio:  python main.py --transport stdio
#                   python -m tools.mcp_server
# =============================================================================

import json
import logging
import sys
from typing import Annotated, Any, Awaitable, Callable, Optional

import httpx
from fastmcp import Context, FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.server.dependencies import get_http_request
from pydantic import Field

from core.client import IterableApiError, IterableClient
from core.config import Settings, load_settings
from core.credentials import CredentialRequired, resolve_credential
from core.models import Credential
from core.permissions import PermissionDenied, allowed_tools, ensure_tool_allowed

# =============================================================================
# Logging Setup
# =============================================================================
# Logs go to STDERR because the stdio transport uses STDOUT for the MCP
# message stream.
#
#   CYAN   incoming tool calls (tool name + parameters)
#   GREEN  responses (size only: results can contain user PII)
#   YELLOW status/progress messages
#
# API keys never reach these helpers, and user identifiers are masked.
# =============================================================================

_CYAN = "\033[36m"     # Requests (tool calls with params)
_GREEN = "\033[32m"    # Responses
_YELLOW = "\033[33m"   # Status/progress messages
_RESET = "\033[0m"     # Reset to default terminal color

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [MCP] %(message)s",
    datefmt="%H:%M:%S",
    stream=sys.stderr,
)

logger = logging.getLogger(__name__)


# Parameters that identify a user.  Their values are masked in the log.
_PII_PARAMS = frozenset({"email", "user_id", "recipient_email"})


def _log_request(tool_name: str, **params) -> None:
    """Log an incoming tool call with its parameters in CYAN."""
    param_str = ", ".join(
        f"{k}='***'" if k in _PII_PARAMS and v is not None else f"{k}={v!r}"
        for k, v in params.items()
    )
    logger.info(f"{_CYAN}{tool_name} called with: {param_str}{_RESET}")


def _log_status(message: str) -> None:
    """Log an intermediate status message in YELLOW."""
    logger.info(f"{_YELLOW}  → {message}{_RESET}")


def _log_response(tool_name: str, text: str) -> str:
    """Log the size of a tool response in GREEN, then return it."""
    logger.info(f"{_GREEN}  ← {tool_name} response: {len(text)} chars{_RESET}")
    return text


# =============================================================================
# The server
# =============================================================================
class IterableMCP(FastMCP):
    """FastMCP server that carries the settings its tool handlers need."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(
            "iterable-mcp",
            instructions=(
                "Tools for the Iterable marketing platform: campaigns, templates, "
                "lists, users, events, journeys, catalogs and more."
            ),
        )
        self.iterable_settings = settings
        self.http_transport = transport


# Every tool function, keyed by tool name.  create_server() registers the
# subset the permission flags allow.
TOOLS: dict[str, Callable[..., Awaitable[str]]] = {}


def _tool(fn):
    TOOLS[fn.__name__] = fn
    return fn


def _current_credential(settings: Settings) -> Optional[Credential]:
    """Resolve the API key for the request being served right now.

    Over HTTP the query string and headers of the active request are used.
    Over stdio there is no request, so only ITERABLE_API_KEY applies.
    """
    try:
        request = get_http_request()
    except RuntimeError:
        return resolve_credential({}, {}, settings.api_key)
    return resolve_credential(request.query_params, request.headers, settings.api_key)


def _render(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, indent=2)


def _describe(exc: IterableApiError) -> str:
    if exc.body in (None, ""):
        return str(exc)
    return f"{exc}: {exc.body}"


async def _invoke(
    ctx: Context,
    tool_name: str,
    call: Callable[[IterableClient], Awaitable[Any]],
    **params,
) -> str:
    """Run one tool call: permission check, credential, API call, render."""
    _log_request(tool_name, **params)

    server: IterableMCP = ctx.fastmcp
    settings = server.iterable_settings

    try:
        ensure_tool_allowed(tool_name, settings.permissions())
    except PermissionDenied as exc:
        _log_status(exc.reason)
        raise ToolError(str(exc)) from exc

    credential = _current_credential(settings)
    if credential is None:
        _log_status("No API key for this request")
        raise ToolError(str(CredentialRequired()))
    _log_status(f"Using API key from {credential.source.value}")

    try:
        async with IterableClient(
            credential.secret,
            settings.base_url,
            transport=server.http_transport,
        ) as client:
            result = await call(client)
    except IterableApiError as exc:
        _log_status(f"Iterable API error: {exc.status} {exc.status_text}")
        raise ToolError(_describe(exc)) from exc

    return _log_response(tool_name, _render(result))


# Shared parameter types
Page = Annotated[int, Field(ge=1, description="Page number (starting at 1)")]
PageSize = Annotated[int, Field(ge=1, le=1000, description="Results per page (max 1000)")]
Locale = Annotated[Optional[str], Field(description="Locale for localized templates")]
Limit = Annotated[Optional[int], Field(ge=1, description="Max number of results to return")]
DateTime = Annotated[Optional[str], Field(description="Date/time (YYYY-MM-DD HH:MM:SS)")]


# =============================================================================
# CAMPAIGN TOOLS
# =============================================================================
@_tool
async def get_campaigns(
    ctx: Context,
    page: Page = 1,
    page_size: PageSize = 20,
    sort: Annotated[Optional[str], Field(
        description="Field to sort by with optional direction (e.g. 'id', 'name:desc')"
    )] = None,
) -> str:
    """Retrieve campaigns with optional filtering and pagination."""
    return await _invoke(
        ctx, "get_campaigns",
        lambda client: client.get_campaigns(page, page_size, sort),
        page=page, page_size=page_size, sort=sort,
    )


@_tool
async def get_campaign(
    ctx: Context,
    campaign_id: Annotated[int, Field(description="Campaign ID to retrieve")],
) -> str:
    """Get detailed information about a specific campaign by ID."""
    return await _invoke(
        ctx, "get_campaign",
        lambda client: client.get_campaign(campaign_id),
        campaign_id=campaign_id,
    )


@_tool
async def get_campaign_metrics(
    ctx: Context,
    campaign_id: Annotated[int, Field(description="Campaign ID to get metrics for")],
    start_date_time: DateTime = None,
    end_date_time: DateTime = None,
) -> str:
    """Get campaign performance metrics (CSV format)."""
    return await _invoke(
        ctx, "get_campaign_metrics",
        lambda client: client.get_campaign_metrics(campaign_id, start_date_time, end_date_time),
        campaign_id=campaign_id, start_date_time=start_date_time, end_date_time=end_date_time,
    )


@_tool
async def get_child_campaigns(
    ctx: Context,
    campaign_id: Annotated[int, Field(description="ID of the recurring campaign")],
    page: Page = 1,
    page_size: PageSize = 20,
) -> str:
    """Get child campaigns of a recurring campaign."""
    return await _invoke(
        ctx, "get_child_campaigns",
        lambda client: client.get_child_campaigns(campaign_id, page, page_size),
        campaign_id=campaign_id, page=page, page_size=page_size,
    )


@_tool
async def abort_campaign(
    ctx: Context,
    campaign_id: Annotated[int, Field(description="ID of the running campaign to abort")],
) -> str:
    """Abort a campaign that is currently sending."""
    return await _invoke(
        ctx, "abort_campaign",
        lambda client: client.abort_campaign(campaign_id),
        campaign_id=campaign_id,
    )


@_tool
async def trigger_campaign(
    ctx: Context,
    campaign_id: Annotated[int, Field(description="ID of the triggered campaign to send")],
    list_ids: Annotated[list[int], Field(min_length=1, description="Lists to send the campaign to")],
    suppression_list_ids: Annotated[Optional[list[int]], Field(
        description="Lists whose members should not receive the campaign"
    )] = None,
    data_fields: Annotated[Optional[dict[str, Any]], Field(
        description="Data fields available to the template"
    )] = None,
) -> str:
    """Trigger a campaign send to one or more lists.

    This sends real messages.  Requires write and send permission.
    """
    return await _invoke(
        ctx, "trigger_campaign",
        lambda client: client.trigger_campaign(campaign_id, list_ids, suppression_list_ids, data_fields),
        campaign_id=campaign_id, list_ids=list_ids, suppression_list_ids=suppression_list_ids,
    )


# =============================================================================
# TEMPLATE TOOLS
# =============================================================================
TemplateId = Annotated[int, Field(description="Template ID to retrieve")]


@_tool
async def get_templates(
    ctx: Context,
    template_type: Annotated[Optional[str], Field(description="Filter by template type")] = None,
    message_medium: Annotated[Optional[str], Field(description="Filter by message medium")] = None,
    start_date_time: DateTime = None,
    end_date_time: DateTime = None,
) -> str:
    """Retrieve templates with optional filtering."""
    return await _invoke(
        ctx, "get_templates",
        lambda client: client.get_templates(template_type, message_medium, start_date_time, end_date_time),
        template_type=template_type, message_medium=message_medium,
        start_date_time=start_date_time, end_date_time=end_date_time,
    )


@_tool
async def get_email_template(ctx: Context, template_id: TemplateId, locale: Locale = None) -> str:
    """Get details for a specific email template by ID."""
    return await _invoke(
        ctx, "get_email_template",
        lambda client: client.get_email_template(template_id, locale),
        template_id=template_id, locale=locale,
    )


@_tool
async def get_sms_template(ctx: Context, template_id: TemplateId, locale: Locale = None) -> str:
    """Get details for a specific SMS template by ID."""
    return await _invoke(
        ctx, "get_sms_template",
        lambda client: client.get_sms_template(template_id, locale),
        template_id=template_id, locale=locale,
    )


@_tool
async def get_push_template(ctx: Context, template_id: TemplateId, locale: Locale = None) -> str:
    """Get details for a specific push notification template by ID."""
    return await _invoke(
        ctx, "get_push_template",
        lambda client: client.get_push_template(template_id, locale),
        template_id=template_id, locale=locale,
    )


@_tool
async def get_inapp_template(ctx: Context, template_id: TemplateId, locale: Locale = None) -> str:
    """Get details for a specific in-app message template by ID."""
    return await _invoke(
        ctx, "get_inapp_template",
        lambda client: client.get_inapp_template(template_id, locale),
        template_id=template_id, locale=locale,
    )


@_tool
async def get_template_by_client_id(
    ctx: Context,
    client_template_id: Annotated[str, Field(description="Client template ID to look up")],
) -> str:
    """Get template by client template ID."""
    return await _invoke(
        ctx, "get_template_by_client_id",
        lambda client: client.get_template_by_client_id(client_template_id),
        client_template_id=client_template_id,
    )


# =============================================================================
# USER TOOLS (PII)
# =============================================================================
Email = Annotated[str, Field(description="User's email address")]
UserId = Annotated[str, Field(description="User's unique ID")]


@_tool
async def get_user_by_email(ctx: Context, email: Email) -> str:
    """Look up a user by email address."""
    return await _invoke(ctx, "get_user_by_email", lambda client: client.get_user_by_email(email), email=email)


@_tool
async def get_user_by_user_id(ctx: Context, user_id: UserId) -> str:
    """Look up a user by user ID."""
    return await _invoke(
        ctx, "get_user_by_user_id",
        lambda client: client.get_user_by_user_id(user_id),
        user_id=user_id,
    )


@_tool
async def get_user_fields(ctx: Context) -> str:
    """Get all available user data fields in the project."""
    return await _invoke(ctx, "get_user_fields", lambda client: client.get_user_fields())


@_tool
async def get_sent_messages(
    ctx: Context,
    email: Annotated[Optional[str], Field(description="User's email")] = None,
    user_id: Annotated[Optional[str], Field(description="User's ID")] = None,
    limit: Limit = None,
    campaign_ids: Annotated[Optional[list[int]], Field(description="Filter by campaign IDs")] = None,
    start_date_time: DateTime = None,
    end_date_time: DateTime = None,
    message_medium: Annotated[Optional[str], Field(
        description="Filter by message type (Email, SMS, etc.)"
    )] = None,
) -> str:
    """Get messages sent to a specific user."""
    return await _invoke(
        ctx, "get_sent_messages",
        lambda client: client.get_sent_messages(
            email=email,
            user_id=user_id,
            limit=limit,
            campaign_ids=campaign_ids,
            start_date_time=start_date_time,
            end_date_time=end_date_time,
            message_medium=message_medium,
        ),
        email=email, user_id=user_id, limit=limit, campaign_ids=campaign_ids,
        start_date_time=start_date_time, end_date_time=end_date_time,
        message_medium=message_medium,
    )


# =============================================================================
# LIST TOOLS
# =============================================================================
ListId = Annotated[int, Field(description="List ID")]


@_tool
async def get_lists(ctx: Context) -> str:
    """Get all subscriber lists in the project."""
    return await _invoke(ctx, "get_lists", lambda client: client.get_lists())


@_tool
async def get_list_size(ctx: Context, list_id: ListId) -> str:
    """Get the number of users in a list."""
    return await _invoke(ctx, "get_list_size", lambda client: client.get_list_size(list_id), list_id=list_id)


@_tool
async def get_list_users(ctx: Context, list_id: ListId, max_results: Limit = None) -> str:
    """Get users in a list (returns email addresses)."""
    return await _invoke(
        ctx, "get_list_users",
        lambda client: client.get_list_users(list_id, max_results),
        list_id=list_id, max_results=max_results,
    )


@_tool
async def create_list(
    ctx: Context,
    name: Annotated[str, Field(min_length=1, description="Name of the new list")],
) -> str:
    """Create a new static subscriber list."""
    return await _invoke(ctx, "create_list", lambda client: client.create_list(name), name=name)


@_tool
async def delete_list(ctx: Context, list_id: ListId) -> str:
    """Delete a subscriber list."""
    return await _invoke(ctx, "delete_list", lambda client: client.delete_list(list_id), list_id=list_id)


# =============================================================================
# CHANNEL TOOLS
# =============================================================================
@_tool
async def get_channels(ctx: Context) -> str:
    """Get all available message channels."""
    return await _invoke(ctx, "get_channels", lambda client: client.get_channels())


@_tool
async def get_message_types(ctx: Context) -> str:
    """Get all available message types."""
    return await _invoke(ctx, "get_message_types", lambda client: client.get_message_types())


# =============================================================================
# EVENT TOOLS
# =============================================================================
@_tool
async def get_user_events_by_email(ctx: Context, email: Email, limit: Limit = None) -> str:
    """Get events for a user by email."""
    return await _invoke(
        ctx, "get_user_events_by_email",
        lambda client: client.get_user_events_by_email(email, limit),
        email=email, limit=limit,
    )


@_tool
async def get_user_events_by_user_id(ctx: Context, user_id: UserId, limit: Limit = None) -> str:
    """Get events for a user by user ID."""
    return await _invoke(
        ctx, "get_user_events_by_user_id",
        lambda client: client.get_user_events_by_user_id(user_id, limit),
        user_id=user_id, limit=limit,
    )


@_tool
async def track_event(
    ctx: Context,
    event_name: Annotated[str, Field(min_length=1, description="Name of the custom event")],
    email: Annotated[Optional[str], Field(description="Email of the user the event belongs to")] = None,
    user_id: Annotated[Optional[str], Field(description="User ID the event belongs to")] = None,
    data_fields: Annotated[Optional[dict[str, Any]], Field(description="Event data fields")] = None,
    created_at: Annotated[Optional[int], Field(description="Event time (seconds since epoch)")] = None,
) -> str:
    """Track a custom event for a user.

    Events can start journeys and triggered campaigns, so this counts as a
    send-capable tool.
    """
    if email is None and user_id is None:
        raise ToolError("Either email or user_id is required")
    return await _invoke(
        ctx, "track_event",
        lambda client: client.track_event(event_name, email, user_id, data_fields, created_at),
        event_name=event_name, email=email, user_id=user_id,
    )


# =============================================================================
# MESSAGING TOOLS
# =============================================================================
@_tool
async def send_email(
    ctx: Context,
    campaign_id: Annotated[int, Field(description="Campaign whose template is sent")],
    recipient_email: Annotated[str, Field(description="Recipient's email address")],
    data_fields: Annotated[Optional[dict[str, Any]], Field(
        description="Data fields available to the template"
    )] = None,
    send_at: Annotated[Optional[str], Field(
        description="Schedule time (YYYY-MM-DD HH:MM:SS); omit to send now"
    )] = None,
) -> str:
    """Send a campaign email to a single recipient."""
    return await _invoke(
        ctx, "send_email",
        lambda client: client.send_email(campaign_id, recipient_email, data_fields, send_at),
        campaign_id=campaign_id, recipient_email=recipient_email, send_at=send_at,
    )


# =============================================================================
# JOURNEY / EXPERIMENT / WEBHOOK TOOLS
# =============================================================================
@_tool
async def get_journeys(ctx: Context) -> str:
    """Get all journeys in the project."""
    return await _invoke(ctx, "get_journeys", lambda client: client.get_journeys())


@_tool
async def get_experiment_metrics(
    ctx: Context,
    experiment_id: Annotated[int, Field(description="Experiment ID to get metrics for")],
) -> str:
    """Get metrics for a specific experiment."""
    return await _invoke(
        ctx, "get_experiment_metrics",
        lambda client: client.get_experiment_metrics(experiment_id),
        experiment_id=experiment_id,
    )


@_tool
async def get_webhooks(ctx: Context) -> str:
    """Get all webhooks configured in the project."""
    return await _invoke(ctx, "get_webhooks", lambda client: client.get_webhooks())


# =============================================================================
# SNIPPET TOOLS
# =============================================================================
@_tool
async def get_snippets(ctx: Context) -> str:
    """Get all code snippets in the project."""
    return await _invoke(ctx, "get_snippets", lambda client: client.get_snippets())


@_tool
async def get_snippet(
    ctx: Context,
    snippet_id: Annotated[int, Field(description="Snippet ID to retrieve")],
) -> str:
    """Get a specific code snippet by ID."""
    return await _invoke(
        ctx, "get_snippet",
        lambda client: client.get_snippet(snippet_id),
        snippet_id=snippet_id,
    )


# =============================================================================
# CATALOG TOOLS
# =============================================================================
CatalogName = Annotated[str, Field(description="Name of the catalog")]


@_tool
async def get_catalogs(ctx: Context) -> str:
    """Get all catalogs in the project."""
    return await _invoke(ctx, "get_catalogs", lambda client: client.get_catalogs())


@_tool
async def get_catalog_items(
    ctx: Context,
    catalog_name: CatalogName,
    page: Optional[Page] = None,
    page_size: Optional[PageSize] = None,
) -> str:
    """Get items from a specific catalog."""
    return await _invoke(
        ctx, "get_catalog_items",
        lambda client: client.get_catalog_items(catalog_name, page, page_size),
        catalog_name=catalog_name, page=page, page_size=page_size,
    )


@_tool
async def get_catalog_item(
    ctx: Context,
    catalog_name: CatalogName,
    item_id: Annotated[str, Field(description="ID of the item to retrieve")],
) -> str:
    """Get a specific item from a catalog."""
    return await _invoke(
        ctx, "get_catalog_item",
        lambda client: client.get_catalog_item(catalog_name, item_id),
        catalog_name=catalog_name, item_id=item_id,
    )


# =============================================================================
# Server factory
# =============================================================================
def create_server(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> IterableMCP:
    """Build a FastMCP server exposing the tools the settings allow.

    Args:
        settings: Deployment settings.  Read from the environment if omitted.
        transport: Optional httpx transport for the Iterable client (tests).
    """
    settings = settings or load_settings()
    server = IterableMCP(settings, transport)

    registered = allowed_tools(TOOLS, settings.permissions())
    for name in registered:
        server.tool(TOOLS[name])

    logger.info(
        f"Registered {len(registered)}/{len(TOOLS)} tools "
        f"(pii={settings.allow_user_pii}, writes={settings.allow_writes}, "
        f"sends={settings.allow_sends})"
    )
    return server


# =============================================================================
# Server entry point
# =============================================================================
# python -m tools.mcp_server starts the server on the stdio transport.
# =============================================================================
if __name__ == "__main__":
    from dotenv import load_dotenv

    load_dotenv()
    create_server().run()
