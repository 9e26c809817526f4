"""Indexers that embed documents and write them to vector stores."""

from .base import BaseIndexer
from .registry import IndexerRegistry, get_indexer, register_indexer

# Trigger adapter registration side effects
from . import adapters  # noqa: F401

__all__ = ["BaseIndexer", "IndexerRegistry", "get_indexer", "register_indexer"]
