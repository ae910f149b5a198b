"""Retrieval adapters."""

from chatmind.infrastructure.retrieval.cosine_retrieval import CosineRetrieval, cosine_distance

__all__ = ["CosineRetrieval", "cosine_distance"]
