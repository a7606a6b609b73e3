"""
Aura memory layer - consciousness-aware vector store and semantic search engine.
"""

VERSION = "1.0.0"
