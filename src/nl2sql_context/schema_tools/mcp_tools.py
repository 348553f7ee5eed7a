"""MCP tool registration for schema context features.

Exposes a `register_context_tools` function that attaches tools to a FastMCP
instance while delegating actual logic to the engine obtained via
`EngineManager`.
"""

from __future__ import annotations

import asyncio
from typing import Annotated

from fastmcp import Context, FastMCP
from fastmcp.utilities.logging import get_logger
from pydantic import Field

from nl2sql_context.builders import (
    JoinPathsResultBuilder,
    RelatedTablesBuilder,
    RelevantSchemaResultBuilder,
    StatusBuilder,
)
from nl2sql_context.models import (
    InitStatus,
    JoinPathsResult,
    RefreshResult,
    RelatedTable,
    RelevantSchemaResult,
)
from nl2sql_context.schema_tools.constants import Constants
from nl2sql_context.schema_tools.exceptions import ContextEngineError
from nl2sql_context.services.engine_manager import EngineManager

_logger = get_logger(__name__)
MAX_QUERY_DISPLAY = 100


def register_context_tools(mcp: FastMCP, manager: EngineManager | None = None) -> None:
    """Register schema relevance and join-path tools.

    Provides the tools an LLM agent needs to narrow a large schema to the
    context relevant to one question before writing SQL.
    """

    mgr = manager or EngineManager.get_instance()

    @mcp.tool
    async def get_relevant_schema(  # pyright: ignore[reportUnusedFunction]
        ctx: Context,
        query: Annotated[
            str,
            Field(
                description=(
                    "The user's analytical question in natural language, for example "
                    "'total deposits by country for UK players yesterday'."
                )
            ),
        ],
        relevance_threshold: Annotated[
            float | None,
            Field(
                ge=0.0,
                le=1.0,
                description="Minimum table relevance score (exclusive). Default 0.5.",
            ),
        ] = None,
        max_tables: Annotated[
            int | None,
            Field(
                ge=1,
                le=Constants.HARD_MAX_TABLES,
                description="Maximum number of tables to return. Default 5.",
            ),
        ] = None,
        max_columns_per_table: Annotated[
            int | None,
            Field(ge=1, description="Maximum columns per table. Default 15."),
        ] = None,
        token_budget: Annotated[
            int | None,
            Field(
                ge=1,
                description=(
                    "Approximate token budget for the returned context. Lowest scoring "
                    "columns and tables are dropped until the estimate fits."
                ),
            ),
        ] = None,
    ) -> RelevantSchemaResult:
        """Select the tables, columns, join paths and glossary terms relevant to a question.

        Returns scored tables with their most relevant columns, the shortest join paths
        between the selected tables (with ready-to-use JOIN clauses), table pairs that
        cannot be joined, and matching business glossary terms. When used_fallback is
        true no table was clearly relevant; ask the user to clarify before writing SQL.
        """
        preview = query[:MAX_QUERY_DISPLAY] + ("..." if len(query) > MAX_QUERY_DISPLAY else "")
        _logger.info("Selecting relevant schema for: %s", preview)
        try:
            engine = mgr.get_engine()
        except RuntimeError as exc:
            await ctx.error(f"Context engine not ready: {exc}")
            raise

        try:
            result = await asyncio.to_thread(
                engine.get_relevant_schema,
                query,
                relevance_threshold,
                max_tables,
                max_columns_per_table,
                token_budget=token_budget,
            )
        except ContextEngineError as exc:
            await ctx.error(f"Metadata snapshot unavailable: {exc}")
            raise
        return RelevantSchemaResultBuilder.build(result)

    @mcp.tool
    async def get_join_paths(  # pyright: ignore[reportUnusedFunction]
        ctx: Context,
        table_names: Annotated[
            list[str],
            Field(
                min_length=1,
                description=(
                    "Tables to connect, as 'schema.table' or bare table names. Bracketed or "
                    "quoted forms such as '[dbo].[Games]' are accepted."
                ),
            ),
        ],
    ) -> JoinPathsResult:
        """Shortest foreign-key join paths between every pair of the given tables.

        Pairs that cannot be connected, or that name unknown tables, are listed under
        unresolved rather than omitted.
        """
        try:
            engine = mgr.get_engine()
        except RuntimeError as exc:
            await ctx.error(f"Context engine not ready: {exc}")
            raise

        resolution = await asyncio.to_thread(engine.get_join_paths, table_names)
        _logger.info(
            "Resolved %d join paths (%d unresolved) for %d tables",
            len(resolution.paths),
            len(resolution.unresolved),
            len(table_names),
        )
        return JoinPathsResultBuilder.build(resolution)

    @mcp.tool
    async def get_related_tables(  # pyright: ignore[reportUnusedFunction]
        ctx: Context,
        table_name: Annotated[str, Field(description="Starting table as 'schema.table'")],
        max_depth: Annotated[
            int | None,
            Field(
                ge=1,
                le=Constants.MAX_RELATED_DEPTH,
                description="Maximum number of foreign-key hops to follow. Default 2.",
            ),
        ] = None,
    ) -> list[RelatedTable]:
        """Tables reachable from a table through foreign keys, nearest and strongest first."""
        try:
            engine = mgr.get_engine()
        except RuntimeError as exc:
            await ctx.error(f"Context engine not ready: {exc}")
            raise

        related = await asyncio.to_thread(engine.get_related_tables, table_name, max_depth)
        _logger.info("Found %d tables related to %s", len(related), table_name)
        return RelatedTablesBuilder.build(related)

    @mcp.tool
    async def get_init_status(_ctx: Context) -> InitStatus:  # pyright: ignore[reportUnusedFunction]
        """Initialization status for first-step readiness checks.

        Use this as your first action. If phase != READY, relay the description to the user and
        instruct them to retry later.
        """
        return StatusBuilder.build_init_status(mgr.status(), mgr.snapshot_status())

    @mcp.tool
    async def refresh_metadata(ctx: Context) -> RefreshResult:  # pyright: ignore[reportUnusedFunction]
        """Reload business metadata and the database catalog now.

        On failure the previous snapshot remains in service and the error is reported.
        """
        try:
            state = await asyncio.to_thread(mgr.refresh_metadata)
        except RuntimeError as exc:
            await ctx.error(f"Context engine not ready: {exc}")
            raise
        except ContextEngineError as exc:
            await ctx.warning(f"Metadata refresh failed: {exc}")
            snapshot_state = mgr.snapshot_status()
            if snapshot_state is None:
                raise
            return StatusBuilder.build_refresh_result(snapshot_state)
        return StatusBuilder.build_refresh_result(state)

    # Hint to static analyzers that nested functions are intentionally used
    _ = (
        get_relevant_schema,
        get_join_paths,
        get_related_tables,
        get_init_status,
        refresh_metadata,
    )
