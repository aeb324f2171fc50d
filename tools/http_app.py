# =============================================================================
# tools/http_app.py  —  HTTP Entry Points
# =============================================================================
#
# WHAT THIS FILE DOES:
#   Wraps the FastMCP server in a Starlette app with three entry points:
#
#     GET  /              server info (no API key needed)
#     *    /mcp           streamable-HTTP MCP transport (recommended)
#     GET  /sse/          legacy SSE MCP transport
#     POST /sse/messages/ ...and its message endpoint
#
#   CredentialGate sits in front of all of them.  A request to /mcp or /sse
#   that carries no API key (and no ITERABLE_API_KEY default is set) is
#   answered with 401 before FastMCP ever sees it.
#
#   The SSE message POSTs are separate HTTP requests from the GET /sse/
#   stream.  When the stream was opened with ?api_key=, ForwardQueryKey
#   appends the same api_key to the message endpoint the stream announces,
#   so the client posts to a URL the gate accepts.  Nothing is stored
#   between requests.
# =============================================================================

import logging
import re
from typing import Optional
from urllib.parse import quote

import httpx
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from core.config import Settings, load_settings
from core.credentials import (
    API_KEY_HEADER,
    API_KEY_QUERY_PARAM,
    CredentialRequired,
    requires_credential,
    resolve_credential,
)
from tools.mcp_server import create_server


logger = logging.getLogger(__name__)

SERVER_NAME = "Iterable MCP Server"
SERVER_VERSION = "1.0.0"

# The first event of an SSE stream: "event: endpoint" + the message URL.
_ENDPOINT_EVENT = re.compile(rb"event: endpoint\r?\ndata: ([^\r\n]*)")


class CredentialGate:
    """ASGI middleware that rejects MCP requests without an API key."""

    def __init__(self, app: ASGIApp, default_api_key: Optional[str] = None):
        self.app = app
        self.default_api_key = default_api_key

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and requires_credential(scope["path"]):
            request = Request(scope)
            credential = resolve_credential(request.query_params, request.headers, self.default_api_key)
            if credential is None:
                logger.warning("Rejected %s %s: no API key", scope["method"], scope["path"])
                response = JSONResponse(
                    {
                        "error": "API key required",
                        "message": str(CredentialRequired()),
                        "example": f"/mcp?{API_KEY_QUERY_PARAM}=YOUR_KEY",
                    },
                    status_code=401,
                )
                await response(scope, receive, send)
                return
            logger.debug("API key for %s from %s", scope["path"], credential.source.value)

        await self.app(scope, receive, send)


class ForwardQueryKey:
    """ASGI wrapper for the SSE app that carries ?api_key= into the message endpoint.

    FastMCP announces where to POST messages (/sse/messages/?session_id=...)
    in the stream's "endpoint" event.  If the stream itself was opened with
    ?api_key=, the announced URL gets the same parameter.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        api_key = None
        if scope["type"] == "http" and scope["method"] == "GET":
            api_key = Request(scope).query_params.get(API_KEY_QUERY_PARAM)
        if not api_key:
            await self.app(scope, receive, send)
            return

        param = f"{API_KEY_QUERY_PARAM}={quote(api_key, safe='')}".encode()
        announced = False

        def add_key(match: re.Match) -> bytes:
            url = match.group(1)
            separator = b"&" if b"?" in url else b"?"
            return match.group(0) + separator + param

        async def send_with_key(message: Message) -> None:
            nonlocal announced
            if not announced and message["type"] == "http.response.body":
                body, count = _ENDPOINT_EVENT.subn(add_key, message.get("body", b""), count=1)
                if count:
                    announced = True
                    message = {**message, "body": body}
            await send(message)

        await self.app(scope, receive, send_with_key)


async def server_info(request: Request) -> JSONResponse:
    """Describe the MCP endpoints and how to authenticate."""
    return JSONResponse(
        {
            "name": SERVER_NAME,
            "version": SERVER_VERSION,
            "endpoints": {
                "mcp": f"/mcp?{API_KEY_QUERY_PARAM}=YOUR_KEY (recommended)",
                "sse": f"/sse/?{API_KEY_QUERY_PARAM}=YOUR_KEY (legacy)",
            },
            "authentication": {
                "methods": [
                    f"Query parameter ({API_KEY_QUERY_PARAM})",
                    f"Header ({API_KEY_HEADER})",
                ],
            },
        },
        headers={"Access-Control-Allow-Origin": "*"},
    )


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Starlette:
    """Build the ASGI app serving both MCP transports and the info route."""
    settings = settings or load_settings()
    server = create_server(settings, transport)

    mcp_app = server.http_app(path="/mcp")
    sse_app = server.http_app(path="/", transport="sse")

    return Starlette(
        routes=[
            Route("/", server_info, methods=["GET"]),
            Mount("/sse", app=ForwardQueryKey(sse_app)),
            Mount("", app=mcp_app),
        ],
        middleware=[Middleware(CredentialGate, default_api_key=settings.api_key)],
        lifespan=mcp_app.lifespan,
    )
