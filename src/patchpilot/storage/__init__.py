"""Review persistence backends.

- inmemory: dict-backed store (for testing/development)
- anything implementing DataStore (the hosted CMS in production)
"""

from .base import DataStore
from .inmemory import InMemoryDataStore, ReviewRecord

__all__ = [
    "DataStore",
    "InMemoryDataStore",
    "ReviewRecord",
]
