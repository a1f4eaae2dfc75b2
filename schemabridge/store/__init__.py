"""Document-store clients."""

from .base import DocumentStore, TxOp, build_shape
from .memory import InMemoryDocumentStore
from .http_store import HTTPDocumentStore, DocumentStoreError

__all__ = [
    "DocumentStore",
    "TxOp",
    "build_shape",
    "InMemoryDocumentStore",
    "HTTPDocumentStore",
    "DocumentStoreError",
]
