"""FastMCP server implementation for nl2sql-context."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import dotenv
from fastmcp import FastMCP
from fastmcp.utilities.logging import get_logger
from starlette.requests import Request
from starlette.responses import JSONResponse

from nl2sql_context.schema_tools.mcp_tools import register_context_tools
from nl2sql_context.services.engine_manager import EngineManager

# Load environment variables
dotenv.load_dotenv()

# Configure a module-level logger for local server logs.
_logger = get_logger(__name__)


# -- Context Manager for engine initialization ------------------------------
@asynccontextmanager
async def lifespan(_mcp_instance: FastMCP) -> AsyncGenerator[None]:
    """FastMCP lifespan context manager for context engine initialization."""
    manager = EngineManager.get_instance()
    try:
        _logger.info("Starting context engine initialization in background during lifespan startup")
        manager.start_background_initialization()
        yield
    except Exception:
        _logger.exception("Error during context engine initialization")
    finally:
        _logger.info("Shutting down context engine during lifespan shutdown")
        await manager.shutdown()


# Create the main MCP server instance with lifespan
mcp = FastMCP(
    instructions=(
        "This provides a schema context Model Context Protocol server that selects "
        "the tables, columns, join paths and business glossary terms relevant to a "
        "natural-language analytical question, so that SQL can be written against "
        "a large database without reading its whole schema."
    ),
    lifespan=lifespan,
)

# -- Tool Registration -------------------------------------------------------
register_context_tools(mcp)


# -- Health Check ----------------------------------------------------------
@mcp.custom_route("/health", methods=["GET"])
async def health_check(_request: Request) -> JSONResponse:
    manager = EngineManager.get_instance()
    state = manager.status()
    snapshot = manager.snapshot_status()
    return JSONResponse(
        {
            "status": "healthy" if manager.is_initialized else state.phase.name.lower(),
            "service": "nl2sql-context",
            "snapshot_version": snapshot.version if snapshot else None,
        }
    )


# -- Main Entrypoint -------------------------------------------------------

# Use fastmcp command to start the server
# fastmcp run
