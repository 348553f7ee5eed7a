"""Semantic-similarity collaborators and timeout guarding.

The relevance scorer treats text similarity as an opaque collaborator. This
module defines the narrow capability interfaces it consumes, two in-process
implementations, and the guard that bounds every collaborator call with a
timeout and turns failures into missing values.

Classes:
- SimilarityService: Protocol for ``similarity(text_a, text_b) -> [0, 1]``
- PriorMappingSearch: Protocol for searching previously successful mappings
- LexicalSimilarity: Token-overlap cosine similarity, no model required
- EmbeddingSimilarity: Cosine similarity over Model2Vec embeddings
- SignalGuard: Runs collaborator calls with a timeout on a worker pool
"""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
import math
import threading
from typing import TYPE_CHECKING, Protocol, TypeVar, runtime_checkable

from fastmcp.utilities.logging import get_logger
import numpy as np

from .constants import Constants
from .utils import tokens_from_text

if TYPE_CHECKING:
    from .embeddings import TextEncoder
    from .models import PriorMapping

# Logger
_logger = get_logger("context_engine.similarity")

T = TypeVar("T")

MAX_CACHED_VECTORS = 4096


@runtime_checkable
class SimilarityService(Protocol):
    """Semantic similarity between two texts, in [0, 1]."""

    def similarity(self, text_a: str, text_b: str) -> float:  # pragma: no cover - protocol
        ...


@runtime_checkable
class PriorMappingSearch(Protocol):
    """Search over prior query-to-tables mappings."""

    def find_similar(
        self, query: str, k: int, threshold: float
    ) -> list[tuple[PriorMapping, float]]:  # pragma: no cover - protocol
        ...


class LexicalSimilarity:
    """Cosine similarity over binary bags of normalized tokens.

    Stop words are removed and simple plurals are folded, so
    "Player deposit transactions" and "total deposits for players" share
    the tokens ``player`` and ``deposit``.
    """

    def similarity(self, text_a: str, text_b: str) -> float:
        tokens_a = set(tokens_from_text(text_a))
        tokens_b = set(tokens_from_text(text_b))
        if not tokens_a or not tokens_b:
            return 0.0
        return len(tokens_a & tokens_b) / math.sqrt(len(tokens_a) * len(tokens_b))


class EmbeddingSimilarity:
    """Cosine similarity over sentence embeddings.

    Negative cosine values are floored at zero. Encoded vectors are cached per
    text because metadata texts repeat across requests.
    """

    def __init__(self, encoder: TextEncoder) -> None:
        self._encoder = encoder
        self._cache: dict[str, np.ndarray] = {}
        self._cache_lock = threading.Lock()

    def similarity(self, text_a: str, text_b: str) -> float:
        vec_a, vec_b = self._vectors([text_a, text_b])
        denom = float(np.linalg.norm(vec_a) * np.linalg.norm(vec_b))
        if denom <= 0.0:
            return 0.0
        return max(0.0, min(1.0, float(np.dot(vec_a, vec_b)) / denom))

    def _vectors(self, texts: list[str]) -> list[np.ndarray]:
        with self._cache_lock:
            found = {t: self._cache[t] for t in texts if t in self._cache}
        missing = [t for t in dict.fromkeys(texts) if t not in found]
        if missing:
            encoded = self._encoder.encode(missing)
            fresh = dict(zip(missing, encoded, strict=True))
            found.update(fresh)
            with self._cache_lock:
                if len(self._cache) + len(fresh) > MAX_CACHED_VECTORS:
                    self._cache.clear()
                self._cache.update(fresh)
        return [found[t] for t in texts]


class SignalGuard:
    """Bound collaborator calls with a timeout.

    Calls run on a small worker pool; a call that does not finish within the
    timeout, or that raises, yields ``None`` so the caller can omit the
    signal. Timed-out calls keep running in the background but their results
    are discarded.
    """

    def __init__(
        self,
        timeout_sec: float = Constants.DEFAULT_SIMILARITY_TIMEOUT_SEC,
        max_workers: int = Constants.DEFAULT_SIMILARITY_WORKERS,
    ) -> None:
        self.timeout_sec = timeout_sec
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, max_workers), thread_name_prefix="signal"
        )

    def run(
        self,
        label: str,
        fn: Callable[..., T],
        *args: object,
        on_timeout: Callable[[], None] | None = None,
    ) -> T | None:
        """Run ``fn(*args)`` with the guard timeout.

        Args:
            label: Short name of the signal, used in log messages
            fn: Collaborator callable
            *args: Positional arguments for ``fn``
            on_timeout: Called when the call is still running at the timeout

        Returns:
            The call result, or None on timeout or failure
        """
        future = self._executor.submit(fn, *args)
        try:
            return future.result(timeout=self.timeout_sec)
        except TimeoutError as exc:
            if future.done():
                # Raised by the collaborator itself
                _logger.warning("Signal %s failed; omitting: %s", label, exc)
                return None
            future.cancel()
            _logger.warning("Signal %s timed out after %.2fs; omitting", label, self.timeout_sec)
            if on_timeout is not None:
                on_timeout()
        except Exception as exc:  # noqa: BLE001 - collaborator failure degrades the signal
            _logger.warning("Signal %s failed; omitting: %s", label, exc)
        return None

    def similarity(
        self,
        service: SimilarityService,
        text_a: str,
        text_b: str,
        on_timeout: Callable[[], None] | None = None,
    ) -> float | None:
        """Guarded similarity call returning a value in [0, 1] or None."""
        value = self.run(
            "similarity", service.similarity, text_a, text_b, on_timeout=on_timeout
        )
        if value is None:
            return None
        try:
            score = float(value)
        except (TypeError, ValueError):
            _logger.warning("Similarity service returned a non-numeric value: %r", value)
            return None
        if not math.isfinite(score):
            return None
        return min(1.0, max(0.0, score))

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
