"""Builders package for nl2sql-context.

This package contains builder classes responsible for constructing response
models from engine results. Builders transform the engine's frozen dataclasses
into pydantic models suitable for MCP tool responses.

Main Components:
- RelevantSchemaResultBuilder: Builds RelevantSchemaResult objects
- JoinPathsResultBuilder: Builds JoinPathsResult objects
- RelatedTablesBuilder: Builds RelatedTable lists
- StatusBuilder: Builds InitStatus and RefreshResult objects
"""

from .response_builders import (
    JoinPathsResultBuilder,
    RelatedTablesBuilder,
    RelevantSchemaResultBuilder,
    StatusBuilder,
)

__all__ = [
    "JoinPathsResultBuilder",
    "RelatedTablesBuilder",
    "RelevantSchemaResultBuilder",
    "StatusBuilder",
]
