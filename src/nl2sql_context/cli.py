"""Command-line entrypoint for the nl2sql-context FastMCP server.

Running `nl2sql-context` starts the server over stdio. Pass ``--transport http``
to serve streamable HTTP (the `/health` route is only reachable that way).
Metadata options override the matching ``NL2SQL_CONTEXT_*`` variables.
"""

from __future__ import annotations

import argparse
import os
import traceback

from fastmcp.utilities.logging import get_logger

from nl2sql_context.services.config_service import ENV_PREFIX

# Configure a module-level logger for local server logs.
_logger = get_logger(__name__)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="nl2sql-context", description="Schema context MCP server"
    )
    parser.add_argument("--transport", choices=["stdio", "http", "sse"], default="stdio")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--metadata-path", help="JSON business metadata document")
    parser.add_argument("--database-url", help="SQLAlchemy URL for catalog discovery")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Start the nl2sql-context FastMCP server via CLI."""
    args = _parse_args(argv)
    if args.metadata_path:
        os.environ[f"{ENV_PREFIX}METADATA_PATH"] = args.metadata_path
    if args.database_url:
        os.environ[f"{ENV_PREFIX}DATABASE_URL"] = args.database_url

    # Imported after the overrides so .env loading at import cannot shadow them
    from nl2sql_context.server import mcp  # noqa: PLC0415

    try:
        if args.transport == "stdio":
            mcp.run()
        else:
            mcp.run(transport=args.transport, host=args.host, port=args.port)
    except KeyboardInterrupt:
        _logger.info("Interrupted by user. Exiting cleanly.")
    except Exception:  # noqa: BLE001
        traceback.print_exc(limit=1)


if __name__ == "__main__":
    # Delegate to main() so behavior is consistent across execution paths.
    main()
