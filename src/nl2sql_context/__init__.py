"""nl2sql-context package for schema relevance and join-path resolution.

Provides a Model Context Protocol (FastMCP) server that narrows a large
relational schema to the context relevant to a natural-language question.
"""

from nl2sql_context.models import (
    InitStatus,
    JoinPathsResult,
    RelatedTable,
    RelevantSchemaResult,
)
from nl2sql_context.schema_tools import SchemaContextEngine
from nl2sql_context.services import ConfigService, EngineManager

__all__ = [  # noqa: RUF022
    # Core models
    "InitStatus",
    "JoinPathsResult",
    "RelatedTable",
    "RelevantSchemaResult",
    # Engine and services
    "ConfigService",
    "EngineManager",
    "SchemaContextEngine",
]
