"""
Semantic search: relevance scoring, ranking, snippets and agent-context reranking.
"""

from datetime import timedelta

import numpy as np
import pytest

from aura_memory.core.events import EventChannel
from aura_memory.vector.embeddings import DeterministicHashEmbedding, EmbeddingsService
from aura_memory.vector.index import VectorStore
from aura_memory.vector.semantic_search import SemanticSearchEngine, extract_query_terms
from aura_memory.vector.types import AgentContext, SemanticSearchOptions, VectorRecord, utc_now


@pytest.fixture
def events():
    return EventChannel()


@pytest.fixture
def store(events):
    return VectorStore(EmbeddingsService(DeterministicHashEmbedding(dimension=64)), events)


@pytest.fixture
def engine(store, events):
    return SemanticSearchEngine(store, events)


def _old_record(store, record_id, content, **metadata):
    """Store a record created well outside the recency window."""
    vector = store.embeddings.embed(content)
    return store.put(VectorRecord(
        id=record_id,
        vector=vector,
        content=content,
        metadata=metadata,
        created_at=utc_now() - timedelta(days=30),
    ))


class TestQueryTerms:

    def test_splits_filters_and_lowercases(self):
        assert extract_query_terms("The quick, brown fox! Is it ok?") == ["the", "quick", "brown", "fox"]

    def test_deduplicates_in_order(self):
        assert extract_query_terms("Recipe recipe RECIPE bread") == ["recipe", "bread"]

    def test_short_tokens_only(self):
        assert extract_query_terms("a b to") == []


class TestSearch:

    def test_recipe_scenario(self, store, engine):
        store.add_text("apple pie recipe", record_id="pie")
        store.add_text("banana bread recipe", record_id="bread")
        store.add_text("car engine repair", record_id="car")

        result = engine.search("recipe", SemanticSearchOptions(top_k=2, similarity_threshold=0.1))

        assert result.success
        assert sorted(r.record.id for r in result.results) == ["bread", "pie"]
        assert [r.rank for r in result.results] == [1, 2]
        assert result.total_records_searched == 3
        assert result.response_summary == (
            "Found 2 relevant results for 'recipe'. Top result has 100% relevance. "
            "0 results are consciousness-aware."
        )

    def test_term_fraction_score(self, store, engine):
        _old_record(store, "pie", "apple pie recipe")

        result = engine.search("apple recipe cake", SemanticSearchOptions(top_k=1, similarity_threshold=0.0))

        assert result.results[0].similarity_score == pytest.approx(2 / 3)

    def test_context_aware_and_recent_boosts(self, store, engine):
        _old_record(store, "aware", "apple pie recipe", consciousness_aware=True)
        store.add_text("apple tart recipe", record_id="recent")

        result = engine.search("apple recipe cake", SemanticSearchOptions(top_k=2, similarity_threshold=0.0))
        scores = {r.record.id: r.similarity_score for r in result.results}

        assert scores["aware"] == pytest.approx(2 / 3 * 1.10)
        assert scores["recent"] == pytest.approx(2 / 3 * 1.05)
        assert result.results[0].record.id == "aware"
        assert result.results[0].search_metadata["consciousness_aware"] is True
        assert result.search_metadata["consciousness_results"] == 1

    def test_scores_are_capped(self, store, engine):
        store.add_text("apple pie", record_id="pie", metadata={"consciousness_aware": True})

        result = engine.search("apple pie")
        assert result.results[0].similarity_score == 1.0

    def test_threshold_filters_and_ranks_are_dense(self, store, engine):
        _old_record(store, "one", "alpha beta gamma")
        _old_record(store, "two", "alpha beta")
        _old_record(store, "three", "alpha")
        _old_record(store, "none", "omega")

        result = engine.search("alpha beta gamma", SemanticSearchOptions(top_k=5, similarity_threshold=0.5))

        assert [r.record.id for r in result.results] == ["one", "two"]
        assert [r.rank for r in result.results] == [1, 2]
        assert all(0.0 <= r.similarity_score <= 1.0 for r in result.results)

    def test_no_results_summary(self, store, engine):
        store.add_text("apple pie recipe")

        result = engine.search("zebra", SemanticSearchOptions(similarity_threshold=0.1))

        assert result.success
        assert result.results == []
        assert result.response_summary == "No results found for query: 'zebra'"

    def test_query_without_terms_uses_cosine(self, store, engine):
        store.add_text("ab cd ef", record_id="short")

        result = engine.search("ab cd ef", SemanticSearchOptions(top_k=1, similarity_threshold=0.5))

        assert [r.record.id for r in result.results] == ["short"]
        assert result.results[0].similarity_score == pytest.approx(1.0)

    def test_snippets_can_be_disabled(self, store, engine):
        store.add_text("apple pie recipe")

        result = engine.search("apple", SemanticSearchOptions(generate_snippets=False, similarity_threshold=0.1))
        assert result.results[0].snippet == ""

    def test_metadata_can_be_excluded(self, store, engine):
        store.add_text("apple pie recipe", record_id="pie", metadata={"source_file": "book.txt", "consciousness_aware": True})

        result = engine.search("apple", SemanticSearchOptions(include_metadata=False, similarity_threshold=0.1))

        ranked = result.results[0]
        assert ranked.record.metadata == {}
        assert "source_type" not in ranked.search_metadata
        assert ranked.search_metadata["consciousness_aware"] is True
        assert result.search_metadata["consciousness_results"] == 1
        assert store.get_by_id("pie").metadata["source_file"] == "book.txt"

    def test_metadata_included_by_default(self, store, engine):
        store.add_text("apple pie recipe", metadata={"source_file": "book.txt"})

        result = engine.search("apple", SemanticSearchOptions(similarity_threshold=0.1))

        assert result.results[0].record.metadata == {"source_file": "book.txt"}
        assert result.results[0].search_metadata["source_type"] == "book.txt"

    def test_missing_embedding_provider_is_reported(self, events):
        engine = SemanticSearchEngine(VectorStore(EmbeddingsService(None), events), events)

        result = engine.search("anything")

        assert not result.success
        assert result.error_code == "EMBEDDING_UNAVAILABLE"
        assert result.results == []
        assert events.drain()[-1].operation == "semantic.search.error"

    def test_blank_query_is_reported(self, engine):
        result = engine.search("   ")

        assert not result.success
        assert result.error_code == "INVALID_QUERY"

    def test_completion_event(self, store, engine, events):
        store.add_text("apple pie recipe")
        events.drain()

        engine.search("apple")

        event = events.drain()[-1]
        assert event.operation == "semantic.search.complete"
        assert event.identifier == "apple"
        assert event.success is True


class TestSnippets:

    def test_short_content_returned_verbatim(self, engine):
        record = VectorRecord(id="r", vector=np.array([1.0]), content="Short content about bread.")

        snippet = engine.generate_snippets([record], "bread", snippet_length=200)[0]

        assert snippet.text == "Short content about bread."
        assert snippet.start_position == 0
        assert snippet.length == len(record.content)
        assert snippet.highlighted_terms == ["bread"]
        assert snippet.relevance_score == 1.0
        assert snippet.source_record_id == "r"

    def test_window_centres_on_query_terms(self, engine):
        content = (
            "Intro filler sentence. " * 10
            + "The banana bread recipe needs ripe bananas. "
            + "More filler text here. " * 10
        )
        record = VectorRecord(id="long", vector=np.array([1.0]), content=content)

        snippet = engine.generate_snippets([record], "banana bread", snippet_length=100)[0]

        assert snippet.highlighted_terms == ["banana", "bread"]
        assert len(snippet.text) <= 103
        body = snippet.text[:-3] if snippet.text.endswith("...") else snippet.text
        assert content[snippet.start_position:].startswith(body)

    def test_prefers_sentence_boundary(self, engine):
        content = "Bread is baked daily here. " + "x" * 20 + " " + "y" * 60
        record = VectorRecord(id="r", vector=np.array([1.0]), content=content)

        snippet = engine.generate_snippets([record], "unrelated", snippet_length=40)[0]

        assert snippet.text == "Bread is baked daily here."

    def test_hard_cut_marks_truncation(self, engine):
        content = "z" * 300
        record = VectorRecord(id="r", vector=np.array([1.0]), content=content)

        snippet = engine.generate_snippets([record], "zebra", snippet_length=50)[0]

        assert snippet.text == "z" * 50 + "..."
        assert snippet.highlighted_terms == []
        assert snippet.relevance_score == 0.0

    def test_invalid_length(self, engine):
        with pytest.raises(ValueError):
            engine.generate_snippets([], "query", snippet_length=0)


class TestContextSearch:

    def test_objective_rerank(self, store, engine):
        _old_record(store, "plain", "alpha delta omega")
        _old_record(store, "aligned", "alpha gamma")

        context = AgentContext(agent_id="agent-1", current_objectives=["gamma"])
        result = engine.search_with_context(
            "alpha delta", context, SemanticSearchOptions(top_k=5, similarity_threshold=0.1)
        )

        assert result.success
        assert [r.record.id for r in result.results] == ["aligned", "plain"]
        assert [r.rank for r in result.results] == [1, 2]
        assert result.results[0].similarity_score == pytest.approx(2 / 3 * 1.15)
        assert result.results[1].similarity_score == pytest.approx(2 / 3)
        assert result.response_summary.endswith("1 results align with agent objectives.")
        assert result.query == "alpha delta"
        assert result.search_metadata["enhanced_query"] == "alpha delta gamma"

    def test_state_text_boost(self, store, engine):
        _old_record(store, "focused", "alpha beta focused")
        _old_record(store, "scattered", "alpha beta scattered")

        context = AgentContext(agent_id="agent-2", consciousness_state="focused")
        result = engine.search_with_context(
            "alpha beta gamma", context, SemanticSearchOptions(top_k=5, similarity_threshold=0.1)
        )

        scores = {r.record.id: r.similarity_score for r in result.results}
        assert scores["focused"] == pytest.approx(3 / 4 * 1.10)
        assert scores["scattered"] == pytest.approx(2 / 4)
        assert result.results[0].record.id == "focused"
        assert result.search_metadata["consciousness_state"] == "focused"

    def test_agent_completion_event(self, store, engine, events):
        store.add_text("alpha gamma")
        events.drain()

        engine.search_with_context("alpha", AgentContext(agent_id="agent-3", current_objectives=["gamma"]))

        event = events.drain()[-1]
        assert event.operation == "semantic.search.agent.complete"
        assert event.details["agent_id"] == "agent-3"


def test_metrics(store, engine):
    store.add_text("apple pie recipe")
    engine.search("apple")
    engine.search("recipe")

    metrics = engine.get_metrics()

    assert metrics["total_searches"] == 2
    assert metrics["average_search_time_ms"] >= 0.0
    assert metrics["performance_target_ms"] == 200
    assert metrics["embedding_generator_available"] is True
    assert metrics["snippet_generation"] is True
