"""Retriever adapters registered to the registry."""

# Import adapters to trigger @register_retriever side effects
from .milvus import MilvusRetriever
from .pgvector import PGVectorRetriever
from .qdrant import QdrantRetriever
from .es8 import ES8Retriever
from .pinecone import PineconeRetriever

__all__ = [
    "MilvusRetriever",
    "PGVectorRetriever",
    "QdrantRetriever",
    "ES8Retriever",
    "PineconeRetriever",
]
