"""Harness for get_relevant_schema.

Initializes the context engine from the environment (.env is honoured) and
prints a concise summary of the context selected for a question: intent,
tables with their columns, join clauses, glossary terms and token estimate.

Usage:
    uv run python scripts/context_harness.py "total deposits by country for UK players yesterday"
"""

from __future__ import annotations

import argparse
import asyncio
from typing import Final

import dotenv

from nl2sql_context.builders import JoinPathsResultBuilder
from nl2sql_context.services.engine_manager import EngineManager

SEPARATOR: Final[str] = "=" * 72


def banner(title: str) -> None:
    print(f"\n{SEPARATOR}\n{title}\n{SEPARATOR}")


async def _ready_manager(wait_timeout: float | None) -> EngineManager:
    mgr = EngineManager.get_instance()
    mgr.start_background_initialization()
    if not await mgr.ensure_ready(wait_timeout=wait_timeout):
        state = mgr.status()
        msg = f"Context engine not ready (phase={state.phase.name}): {state.error_message}"
        raise RuntimeError(msg)
    return mgr


def main() -> None:
    dotenv.load_dotenv()
    parser = argparse.ArgumentParser(description="Show the schema context for a question")
    parser.add_argument(
        "question",
        nargs="?",
        default="total deposits by country for UK players yesterday",
        help="Natural language question",
    )
    parser.add_argument("--max-tables", type=int, default=None)
    parser.add_argument("--token-budget", type=int, default=None)
    parser.add_argument(
        "--wait-timeout",
        type=float,
        default=120.0,
        help="Seconds to wait for initialization. Use 0 to wait until ready. Default: 120s",
    )
    args = parser.parse_args()

    wait: float | None = None if args.wait_timeout <= 0 else args.wait_timeout
    mgr = asyncio.run(_ready_manager(wait))
    engine = mgr.get_engine()
    try:
        result = engine.get_relevant_schema(
            args.question, max_tables=args.max_tables, token_budget=args.token_budget
        )

        banner("get_relevant_schema result")
        analysis = result.analysis
        print(f"category: {analysis.category.value}  intent: {analysis.intent.value}")
        print("terms:", ", ".join(sorted(analysis.all_terms)) or "-")
        if analysis.entities:
            print("entities:", ", ".join(analysis.entities))
        if result.used_fallback:
            print("FALLBACK: no table cleared the relevance threshold")
        for selected in result.tables:
            table = selected.table
            print(f"- {table.key} ({table.score:.3f}) [{', '.join(table.reason_codes)}]")
            for col in selected.columns:
                print(f"    {col.name} ({col.score:.3f}) [{', '.join(col.reason_codes)}]")
        for path in result.join_paths:
            steps = JoinPathsResultBuilder.build_path(path).steps
            print("join:", " -> ".join(f"{s.left} = {s.right}" for s in steps))
        for unresolved in result.unresolved_joins:
            print(f"unresolved: {unresolved.from_table} -> {unresolved.to_table}")
        if result.glossary_terms:
            print("glossary:", ", ".join(g.term for g in result.glossary_terms))
        print(
            f"tokens: {result.token_estimate}/{result.token_budget}  "
            f"confidence: {result.confidence_score:.2f}  snapshot: {result.snapshot_version}"
        )
    finally:
        asyncio.run(mgr.shutdown())


if __name__ == "__main__":
    main()
