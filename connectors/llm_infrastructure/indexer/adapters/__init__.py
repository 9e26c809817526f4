"""Indexer adapters registered to the registry."""

# Import adapters to trigger @register_indexer side effects
from .milvus import MilvusIndexer
from .milvus_new import MilvusBinaryIndexer
from .pgvector import PGVectorIndexer
from .qdrant import QdrantIndexer
from .es8 import ES8Indexer
from .pinecone import PineconeIndexer

__all__ = [
    "MilvusIndexer",
    "MilvusBinaryIndexer",
    "PGVectorIndexer",
    "QdrantIndexer",
    "ES8Indexer",
    "PineconeIndexer",
]
