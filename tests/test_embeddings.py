from __future__ import annotations

import asyncio
import json
from pathlib import Path

from _pytest.monkeypatch import MonkeyPatch
import numpy as np
import pytest

from nl2sql_context.schema_tools import embeddings as embeddings_mod
from nl2sql_context.schema_tools.embeddings import Embedder, PriorMappingIndex, SemanticIndex
from nl2sql_context.schema_tools.exceptions import EmbeddingError
from nl2sql_context.schema_tools.models import PriorMapping
from nl2sql_context.schema_tools.similarity import EmbeddingSimilarity, LexicalSimilarity
from nl2sql_context.schema_tools.utils import tokens_from_text
from nl2sql_context.services import engine_manager as engine_manager_mod
from nl2sql_context.services.engine_manager import EngineManager

VOCAB = ["deposit", "country", "game", "revenue", "total", "top", "player"]


class _VocabEncoder:
    """Bag-of-words encoder over a fixed vocabulary."""

    def __init__(self) -> None:
        self.calls = 0

    def encode(self, texts: list[str]) -> np.ndarray:
        self.calls += 1
        vectors = np.zeros((len(texts), len(VOCAB)), dtype=np.float32)
        for row, text in enumerate(texts):
            for token in tokens_from_text(text):
                if token in VOCAB:
                    vectors[row, VOCAB.index(token)] = 1.0
        return vectors


class _FakeStaticModel:
    def __init__(self, exc: Exception | None = None) -> None:
        self.exc = exc

    def encode(self, texts: list[str]) -> np.ndarray:
        if self.exc is not None:
            raise self.exc
        return np.ones((len(texts), 4), dtype=np.float64)


def _mappings() -> list[PriorMapping]:
    return [
        PriorMapping("total deposits by country", ("dbo.deposits", "dbo.countries"), 0.9),
        PriorMapping("top games by revenue", ("dbo.games",)),
        PriorMapping("   ", ("dbo.players",)),
        PriorMapping("players", ()),
    ]


def test_prior_index_skips_unusable_mappings() -> None:
    index = PriorMappingIndex.build(_mappings(), _VocabEncoder())
    assert len(index) == 2


def test_prior_index_finds_similar_queries() -> None:
    index = PriorMappingIndex.build(_mappings(), _VocabEncoder())

    hits = index.find_similar("total deposits per country", k=2, threshold=0.5)

    assert len(hits) == 1
    mapping, similarity = hits[0]
    assert mapping.tables == ("dbo.deposits", "dbo.countries")
    assert similarity == pytest.approx(1.0, abs=1e-3)


def test_prior_index_empty_inputs() -> None:
    encoder = _VocabEncoder()
    index = PriorMappingIndex.build([], encoder)

    assert index.find_similar("total deposits", 5, 0.0) == []
    assert encoder.calls == 0
    populated = PriorMappingIndex.build(_mappings(), encoder)
    assert populated.find_similar("  ", 5, 0.0) == []
    assert populated.find_similar("total deposits", 0, 0.0) == []


def test_semantic_index_without_vectors() -> None:
    index = SemanticIndex()
    index.build([], np.zeros((0, 3), dtype=np.float32))
    assert index.index is None
    assert index.search(np.ones(3, dtype=np.float32)) == []


def test_embedder_load_failure_propagates(monkeypatch: MonkeyPatch) -> None:
    def _raise(model_name: str) -> None:
        msg = f"no such model: {model_name}"
        raise OSError(msg)

    monkeypatch.setattr(embeddings_mod.StaticModel, "from_pretrained", _raise)

    with pytest.raises(OSError, match="no such model"):
        Embedder("missing/model")


def test_embedder_encodes_float32(monkeypatch: MonkeyPatch) -> None:
    monkeypatch.setattr(
        embeddings_mod.StaticModel, "from_pretrained", lambda name: _FakeStaticModel()
    )

    vectors = Embedder("fake/model").encode(["a", "b"])

    assert vectors.shape == (2, 4)
    assert vectors.dtype == np.float32


def test_embedder_wraps_backend_errors(monkeypatch: MonkeyPatch) -> None:
    monkeypatch.setattr(
        embeddings_mod.StaticModel,
        "from_pretrained",
        lambda name: _FakeStaticModel(ValueError("bad input")),
    )

    with pytest.raises(EmbeddingError, match="Failed to encode 1 texts"):
        Embedder("fake/model").encode(["a"])


def test_embedding_similarity_uses_cache() -> None:
    encoder = _VocabEncoder()
    similarity = EmbeddingSimilarity(encoder)

    assert similarity.similarity("total deposits", "deposit totals") == pytest.approx(1.0)
    assert similarity.similarity("total deposits", "top games") == pytest.approx(0.0)
    assert similarity.similarity("deposits", "nothing known") == pytest.approx(0.0)
    calls = encoder.calls
    similarity.similarity("total deposits", "top games")
    assert encoder.calls == calls


def test_manager_falls_back_to_lexical_similarity(
    monkeypatch: MonkeyPatch, tmp_path: Path
) -> None:
    class _Boom:
        def __init__(self, *args: object, **kwargs: object) -> None:
            msg = "model download failed"
            raise OSError(msg)

    metadata = tmp_path / "metadata.json"
    metadata.write_text(
        json.dumps({"tables": [{"schema": "dbo", "name": "players"}]}), encoding="utf-8"
    )
    for name in ("DATABASE_URL", "METADATA_SOURCE", "POLICY_PATH"):
        monkeypatch.delenv(f"NL2SQL_CONTEXT_{name}", raising=False)
    monkeypatch.setenv("NL2SQL_CONTEXT_METADATA_PATH", str(metadata))
    monkeypatch.setenv("NL2SQL_CONTEXT_USE_EMBEDDINGS", "true")
    monkeypatch.setattr(engine_manager_mod, "Embedder", _Boom)
    monkeypatch.setattr(EngineManager, "GLOBAL_EMBEDDER", None)

    EngineManager.reset_instance()
    manager = EngineManager.get_instance()
    try:
        asyncio.run(manager.initialize())

        assert manager.is_initialized
        engine = manager.get_engine()
        assert isinstance(engine.scorer.similarity, LexicalSimilarity)
    finally:
        asyncio.run(manager.shutdown())
        EngineManager.reset_instance()
