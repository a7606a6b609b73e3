#!/usr/bin/env python3
"""
Vector memory admin utility.

Loads the snapshot from PERSISTENCE_DIR, then ingests files, runs a
semantic search or prints store statistics.
"""

import argparse
import json
import sys

import dotenv
dotenv.load_dotenv()

from aura_memory.core import config
from aura_memory.core.events import EventChannel
from aura_memory.core.persistence import PersistenceManager
from aura_memory.api.main import build_store
from aura_memory.vector.semantic_search import SemanticSearchEngine
from aura_memory.vector.types import SemanticSearchOptions


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Manage the persisted vector memory store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s ingest notes.md report.json     # Chunk, embed and store files
  %(prog)s search "banana bread recipe"    # Ranked semantic search
  %(prog)s stats                           # Record count and cache statistics

Environment variables:
- PERSISTENCE_DIR=./data/vector_store (snapshot location)
- EMBED_PROVIDER=hash|sentence_transformer|ollama
- FILE_CHUNK_SIZE=1000
        """
    )
    parser.add_argument(
        "--dir",
        default=None,
        help="Snapshot directory (default: PERSISTENCE_DIR)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest = subparsers.add_parser("ingest", help="Ingest files into the store")
    ingest.add_argument("files", nargs="+", help="Files to ingest")
    ingest.add_argument("--chunk-size", type=int, default=None, help="Maximum chunk length in characters")

    search = subparsers.add_parser("search", help="Run a semantic search")
    search.add_argument("query", help="Natural-language query")
    search.add_argument("--top-k", type=int, default=config.VECTOR_TOP_K)
    search.add_argument("--threshold", type=float, default=config.VECTOR_SIMILARITY_THRESHOLD)
    search.add_argument("--no-snippets", action="store_true", help="Disable snippet generation")

    subparsers.add_parser("stats", help="Print store statistics as JSON")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    events = EventChannel(config.EVENT_QUEUE_MAXSIZE)
    store = build_store(events)
    persistence = PersistenceManager(store, base_dir=args.dir, events=events)

    if persistence.has_snapshot():
        result = persistence.load()
        if not result.success:
            print(f"ERROR: {result.message}")
            return 1
        if result.skipped_ids:
            print(f"WARNING: skipped {len(result.skipped_ids)} unreadable records")

    if args.command == "ingest":
        batch = store.process_files(args.files, args.chunk_size)
        for file_result in batch.results:
            marker = "✓" if file_result.success else "✗"
            print(f"{marker} {file_result.file_path}: {file_result.chunk_count} chunks {file_result.message}")

        saved = persistence.save()
        if not saved.success:
            print(f"ERROR: {saved.message}")
            return 1
        print(f"Saved {saved.record_count} records to {saved.path}")
        return 0 if batch.failure_count == 0 else 2

    if args.command == "search":
        options = SemanticSearchOptions(
            top_k=args.top_k,
            similarity_threshold=args.threshold,
            generate_snippets=not args.no_snippets,
        )
        result = SemanticSearchEngine(store, events).search(args.query, options)
        if not result.success:
            print(f"ERROR: {result.message}")
            return 1

        print(result.response_summary)
        for ranked in result.results:
            print(f"{ranked.rank}. [{ranked.similarity_score:.2f}] {ranked.record.id}")
            if ranked.snippet:
                print(f"   {ranked.snippet}")
        return 0

    print(json.dumps(store.get_stats(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
