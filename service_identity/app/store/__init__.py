"""
Document store package.

- codec: native values <-> typed wire values
- client: CRUD and structured queries over REST
- collections: application collection names
"""

from .client import Document, DocumentStoreClient, FieldFilter, OrderBy, QuerySpec
from .codec import decode_value, encode_value

__all__ = [
    "Document",
    "DocumentStoreClient",
    "FieldFilter",
    "OrderBy",
    "QuerySpec",
    "decode_value",
    "encode_value",
]
