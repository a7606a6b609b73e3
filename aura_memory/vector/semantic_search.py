"""
Relevance-ranked semantic search over a VectorStore.

Candidates come from cosine similarity; the final score is the fraction of
query terms present in a record, boosted for context-aware and recent
records. Query terms are a heuristic split on spaces and punctuation, not
NLP tokenization.
"""

import dataclasses
import re
import threading
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from .errors import VectorStoreError
from .index import VectorStore
from .types import (
    AgentContext,
    RankedRecord,
    SearchSnippet,
    SemanticSearchOptions,
    SemanticSearchResult,
    VectorRecord,
    utc_now,
)
from ..core.events import EventChannel
from ..util.logging import logger

CONTEXT_AWARE_BOOST = 1.10
RECENT_BOOST = 1.05
RECENT_WINDOW = timedelta(days=7)
OBJECTIVE_BOOST = 1.15
STATE_BOOST = 1.10

# Advertised latency goal, not a measurement
PERFORMANCE_TARGET_MS = 200

_TERM_SEPARATORS = re.compile(r"[ ,.!?]+")
_SENTENCE_END = re.compile(r"[.!?]")


def extract_query_terms(query: str) -> List[str]:
    """Split on space , . ! ?, keep tokens longer than 2 characters, lower-case, de-duplicate."""
    terms = []
    for token in _TERM_SEPARATORS.split(query):
        if len(token) <= 2:
            continue
        term = token.strip().lower()
        if term and term not in terms:
            terms.append(term)
    return terms


def _find_terms(text: str, terms: List[str]) -> List[str]:
    lower = text.lower()
    return [term for term in terms if term in lower]


class SemanticSearchEngine:
    """
    Turns natural-language queries into ranked, explainable results.

    search() and search_with_context() never raise for store or embedding
    failures; they return a SemanticSearchResult with success=False.
    """

    def __init__(self, store: VectorStore, events: Optional[EventChannel] = None):
        self.store = store
        self.events = events
        self._metrics_lock = threading.Lock()
        self._total_searches = 0
        self._average_search_time_ms = 0.0

    def search(
        self,
        query: str,
        options: Optional[SemanticSearchOptions] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SemanticSearchResult:
        """
        Retrieve 2 x top_k candidates, score, filter by threshold and rank.

        Args:
            query: Natural-language query
            options: Search options, defaults from configuration
            cancel_event: Cancellation signal passed to the embedding call

        Returns:
            SemanticSearchResult with dense 1-based ranks
        """
        options = options or SemanticSearchOptions()
        start = time.monotonic()
        logger.debug(f"Starting semantic search for query: '{query}'")

        try:
            ranked, searched = self._rank(query, options, cancel_event)
        except (VectorStoreError, ValueError) as e:
            return self._failure(query, start, e, "semantic_search")

        if not options.include_metadata:
            ranked = self._without_metadata(ranked)

        elapsed_ms = (time.monotonic() - start) * 1000
        result = SemanticSearchResult(
            results=ranked,
            query=query,
            processing_time_ms=elapsed_ms,
            total_records_searched=searched,
            result_count=len(ranked),
            search_metadata={
                "search_type": "semantic_search",
                "consciousness_results": self._count_context_aware(ranked),
                "similarity_threshold": options.similarity_threshold,
                "performance_target_ms": PERFORMANCE_TARGET_MS,
            },
            response_summary=self._summarize(ranked, query),
        )

        self._update_metrics(elapsed_ms)
        logger.log_search("semantic", query, len(ranked), elapsed_ms)
        self._emit("semantic.search.complete", query, elapsed_ms, True, result_count=len(ranked))
        return result

    def search_with_context(
        self,
        query: str,
        agent_context: AgentContext,
        options: Optional[SemanticSearchOptions] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SemanticSearchResult:
        """
        Search with the caller's objectives and state appended to the query,
        then rerank: x1.15 per objective found in a record, x1.10 when the
        state text appears, capped at 1.0.
        """
        options = options or SemanticSearchOptions()
        start = time.monotonic()
        objectives = [o for o in agent_context.current_objectives if o and o.strip()]
        state = (agent_context.consciousness_state or "").strip()

        enhanced_query = " ".join([query] + objectives + ([state] if state else []))
        logger.debug(f"Starting context-aware search for agent '{agent_context.agent_id}' with query: '{enhanced_query}'")

        try:
            ranked, searched = self._rank(enhanced_query, options, cancel_event)
        except (VectorStoreError, ValueError) as e:
            return self._failure(query, start, e, "consciousness_aware_search")

        ranked = self._rerank(ranked, objectives, state)
        if not options.include_metadata:
            ranked = self._without_metadata(ranked)

        summary = self._summarize(ranked, query)
        objective_matches = 0
        if objectives:
            objective_matches = sum(1 for r in ranked if _find_terms(r.record.content, [o.lower() for o in objectives]))
            summary += f" {objective_matches} results align with agent objectives."

        elapsed_ms = (time.monotonic() - start) * 1000
        result = SemanticSearchResult(
            results=ranked,
            query=query,
            processing_time_ms=elapsed_ms,
            total_records_searched=searched,
            result_count=len(ranked),
            search_metadata={
                "search_type": "consciousness_aware_search",
                "agent_id": agent_context.agent_id,
                "consciousness_state": state,
                "enhanced_query": enhanced_query,
                "objective_matches": objective_matches,
                "consciousness_results": self._count_context_aware(ranked),
                "similarity_threshold": options.similarity_threshold,
                "performance_target_ms": PERFORMANCE_TARGET_MS,
            },
            response_summary=summary,
        )

        self._update_metrics(elapsed_ms)
        logger.log_search("agent_context", query, len(ranked), elapsed_ms, details={"agent_id": agent_context.agent_id})
        self._emit(
            "semantic.search.agent.complete",
            query,
            elapsed_ms,
            True,
            agent_id=agent_context.agent_id,
            result_count=len(ranked),
        )
        return result

    def generate_snippets(self, records: List[VectorRecord], query: str, snippet_length: int = 200) -> List[SearchSnippet]:
        """Build one query-focused snippet per record."""
        if snippet_length < 1:
            raise ValueError(f"snippet_length must be >= 1: {snippet_length}")

        start = time.monotonic()
        terms = extract_query_terms(query)
        snippets = [self._snippet(record, terms, snippet_length) for record in records]
        logger.debug(f"Generated {len(snippets)} snippets in {(time.monotonic() - start) * 1000:.2f}ms")
        return snippets

    def get_metrics(self) -> Dict[str, Any]:
        with self._metrics_lock:
            total = self._total_searches
            average = self._average_search_time_ms
        return {
            "total_searches": total,
            "average_search_time_ms": average,
            "performance_target_ms": PERFORMANCE_TARGET_MS,
            "service_type": "SemanticSearchEngine",
            "consciousness_aware": True,
            "natural_language_processing": True,
            "snippet_generation": True,
            "agent_context_support": True,
            "embedding_generator_available": self.store.embeddings.available,
        }

    # Ranking

    def _rank(
        self,
        query: str,
        options: SemanticSearchOptions,
        cancel_event: Optional[threading.Event],
    ) -> Tuple[List[RankedRecord], int]:
        if not query or not query.strip():
            raise ValueError("query cannot be empty")
        if options.top_k < 1:
            raise ValueError(f"top_k must be >= 1: {options.top_k}")
        if options.generate_snippets and options.snippet_length < 1:
            raise ValueError(f"snippet_length must be >= 1: {options.snippet_length}")

        candidates = self.store.search_text(query, options.top_k * 2, cancel_event)
        terms = extract_query_terms(query)
        now = utc_now()

        scored = []
        for candidate in candidates:
            score = self._relevance(candidate.record, terms, candidate.score, now)
            if score >= options.similarity_threshold:
                scored.append((score, candidate))
        scored.sort(key=lambda item: item[0], reverse=True)

        search_timestamp = now.isoformat()
        ranked = []
        for rank, (score, candidate) in enumerate(scored[:options.top_k], start=1):
            record = candidate.record
            ranked_record = RankedRecord(
                record=record,
                similarity_score=score,
                rank=rank,
                search_metadata={
                    "search_timestamp": search_timestamp,
                    "consciousness_aware": record.consciousness_aware,
                    "source_type": record.metadata.get("source_file", "unknown"),
                    "cosine_similarity": candidate.score,
                },
            )
            if options.generate_snippets:
                ranked_record.snippet = self._snippet(record, terms, options.snippet_length).text
            ranked.append(ranked_record)
        return ranked, len(candidates)

    @staticmethod
    def _relevance(record: VectorRecord, terms: List[str], cosine: float, now: datetime) -> float:
        if terms:
            score = len(_find_terms(record.content, terms)) / len(terms)
        else:
            score = min(1.0, max(0.0, cosine))

        if record.consciousness_aware:
            score *= CONTEXT_AWARE_BOOST
        if now - record.created_at < RECENT_WINDOW:
            score *= RECENT_BOOST
        return min(1.0, score)

    @staticmethod
    def _rerank(ranked: List[RankedRecord], objectives: List[str], state: str) -> List[RankedRecord]:
        state_lower = state.lower()
        for ranked_record in ranked:
            content = ranked_record.record.content.lower()
            score = ranked_record.similarity_score
            for objective in objectives:
                if objective.lower() in content:
                    score *= OBJECTIVE_BOOST
            if state_lower and state_lower in content:
                score *= STATE_BOOST
            ranked_record.similarity_score = min(1.0, score)

        ranked = sorted(ranked, key=lambda r: r.similarity_score, reverse=True)
        for rank, ranked_record in enumerate(ranked, start=1):
            ranked_record.rank = rank
        return ranked

    @staticmethod
    def _without_metadata(ranked: List[RankedRecord]) -> List[RankedRecord]:
        """Strip record metadata, and the search fields derived from it, from ranked results."""
        for ranked_record in ranked:
            ranked_record.record = dataclasses.replace(ranked_record.record, metadata={})
            ranked_record.search_metadata.pop("source_type", None)
        return ranked

    # Snippets

    def _snippet(self, record: VectorRecord, terms: List[str], length: int) -> SearchSnippet:
        content = record.content or ""
        if len(content) <= length:
            text, start = content, 0
        else:
            window_start = self._best_window(content, terms, length)
            text, offset = self._trim_boundaries(content, window_start, length, terms)
            start = window_start + offset

        found = _find_terms(text, terms)
        return SearchSnippet(
            text=text,
            source_record_id=record.id,
            relevance_score=len(found) / len(terms) if terms else 0.0,
            highlighted_terms=found,
            start_position=start,
            length=len(text),
        )

    @staticmethod
    def _best_window(content: str, terms: List[str], length: int) -> int:
        lower = content.lower()
        step = max(1, length // 4)
        last_start = len(content) - length
        starts = list(range(0, last_start, step)) + [last_start]

        best_start, best_score = 0, -1
        for start in starts:
            score = len(_find_terms(lower[start:start + length], terms))
            if score > best_score:
                best_start, best_score = start, score
        return best_start

    @staticmethod
    def _trim_boundaries(content: str, start: int, length: int, terms: List[str]) -> Tuple[str, int]:
        """
        Trim a window to sentence/word boundaries without losing matched terms.

        Returns:
            (snippet text, offset of the text within the window)
        """
        window = content[start:start + length]

        # Drop a partial leading word when that costs little of the window
        offset = 0
        if start > 0 and not content[start - 1].isspace() and not window[0].isspace():
            space = window.find(" ")
            if 0 <= space < length * 0.2:
                offset = space + 1
        elif window[0].isspace():
            offset = len(window) - len(window.lstrip())
        window = window[offset:]
        matched = len(_find_terms(window, terms))

        ends = [m.end() for m in _SENTENCE_END.finditer(window)]
        if ends and ends[-1] >= len(window) * 0.5:
            trimmed = window[:ends[-1]]
            if len(_find_terms(trimmed, terms)) == matched:
                return trimmed, offset

        space = window.rfind(" ")
        if space > len(window) * 0.8:
            trimmed = window[:space]
            if len(_find_terms(trimmed, terms)) == matched:
                return trimmed + "...", offset
        return window + "...", offset

    # Bookkeeping

    @staticmethod
    def _count_context_aware(ranked: List[RankedRecord]) -> int:
        return sum(1 for r in ranked if r.search_metadata.get("consciousness_aware"))

    def _summarize(self, ranked: List[RankedRecord], query: str) -> str:
        if not ranked:
            return f"No results found for query: '{query}'"
        return (
            f"Found {len(ranked)} relevant results for '{query}'. "
            f"Top result has {ranked[0].similarity_score:.0%} relevance. "
            f"{self._count_context_aware(ranked)} results are consciousness-aware."
        )

    def _update_metrics(self, elapsed_ms: float) -> None:
        with self._metrics_lock:
            self._total_searches += 1
            self._average_search_time_ms += (elapsed_ms - self._average_search_time_ms) / self._total_searches

    def _failure(self, query: str, start: float, error: Exception, search_type: str) -> SemanticSearchResult:
        elapsed_ms = (time.monotonic() - start) * 1000
        code = error.code if isinstance(error, VectorStoreError) else "INVALID_QUERY"
        message = error.message if isinstance(error, VectorStoreError) else str(error)

        logger.log_search(search_type, query or "", 0, elapsed_ms, status="failed", details={"error_code": code, "error": message})
        self._emit("semantic.search.error", query or "", elapsed_ms, False, error_code=code)
        return SemanticSearchResult(
            results=[],
            query=query,
            processing_time_ms=elapsed_ms,
            search_metadata={"search_type": search_type},
            response_summary=f"Search failed: {message}",
            success=False,
            message=message,
            error_code=code,
        )

    def _emit(self, operation: str, identifier: str, elapsed_ms: float, success: bool, **details) -> None:
        if self.events is None:
            return
        try:
            self.events.emit(operation, identifier, elapsed_ms, success, **details)
        except Exception as e:
            logger.warning(f"Event delivery failed for {operation}: {e}")
