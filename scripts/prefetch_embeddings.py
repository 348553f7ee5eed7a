"""Prefetch and cache the embeddings model used for semantic similarity.

This build-time script downloads the embedding assets used by nl2sql-context
when ``NL2SQL_CONTEXT_USE_EMBEDDINGS`` is enabled, so the first snapshot build
does not pay the download. It avoids importing the ``nl2sql_context`` package
so that no database driver is needed during the image build.

Behavior:
- Respects ``NL2SQL_CONTEXT_EMBEDDING_MODEL``; falls back to the package default.
- Uses model2vec's ``StaticModel`` (CPU-only) and encodes one glossary-style
  phrase to fully materialize caches under ``HF_HOME`` or the default HF cache.
"""

from __future__ import annotations

import logging
import os

from model2vec import StaticModel

# Keep the default model here to avoid importing the package during build.
DEFAULT_MODEL = "minishlab/potion-retrieval-8M"


def main() -> None:
    """Download and cache the configured embedding model."""
    logging.basicConfig(level=logging.INFO)
    logger = logging.getLogger("prefetch_embeddings")

    model_name = os.getenv("NL2SQL_CONTEXT_EMBEDDING_MODEL", DEFAULT_MODEL)
    cache_dir = (
        os.getenv("HF_HOME") or os.getenv("HF_DATASETS_CACHE") or os.getenv("XDG_CACHE_HOME")
    )

    logger.info("Prefetching embedding model: %s", model_name)
    if cache_dir:
        logger.info("Using cache directory: %s", cache_dir)

    model = StaticModel.from_pretrained(model_name)
    dim = model.encode(["total deposits by country"]).shape[1]
    logger.info("Embedding model cached successfully (dim=%d)", dim)


if __name__ == "__main__":  # pragma: no cover - build-time utility
    main()
