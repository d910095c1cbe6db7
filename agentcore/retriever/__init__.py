from .base import BaseRetriever

__all__ = ["BaseRetriever"]
