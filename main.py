# =============================================================================
# main.py  —  Entry Point for the Iterable MCP Server
# =============================================================================
#
# HOW TO RUN:
#   python main.py                       # HTTP: /mcp and /sse/ on HOST:PORT
#   python main.py --transport stdio     # stdio, for local MCP clients
#
# WHAT HAPPENS:
#   1. Loads .env into the environment (ITERABLE_API_KEY, ITERABLE_* flags)
#   2. Reads Settings once (core/config.py)
#   3. Builds the FastMCP server with the tools the flags allow
#   4. Serves it over HTTP with uvicorn, or over stdio
# =============================================================================

import argparse

from dotenv import load_dotenv

# Load environment variables from .env file BEFORE reading settings.
load_dotenv()

import uvicorn

from core.config import load_settings
from tools.http_app import create_app
from tools.mcp_server import create_server


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Iterable MCP server")
    parser.add_argument(
        "--transport",
        choices=("http", "stdio"),
        default="http",
        help="MCP transport to serve (default: http)",
    )
    parser.add_argument("--host", help="Bind address (default: $HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, help="Bind port (default: $PORT or 8000)")
    return parser.parse_args(argv)


def main(argv=None) -> None:
    args = parse_args(argv)
    settings = load_settings()

    if args.transport == "stdio":
        # Over stdio only ITERABLE_API_KEY can supply the credential.
        create_server(settings).run()
        return

    uvicorn.run(
        create_app(settings),
        host=args.host or settings.host,
        port=args.port or settings.port,
    )


# =============================================================================
# Script entry point
# =============================================================================
if __name__ == "__main__":
    main()
