from __future__ import annotations

from ..config import SuggestboxConfig
from .base import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    IdentityProvider,
    LiveCollectionStore,
    suggestions_path,
)

__all__ = [
    "SERVER_TIMESTAMP",
    "DocumentSnapshot",
    "IdentityProvider",
    "LiveCollectionStore",
    "build_backend",
    "suggestions_path",
]


def build_backend(config: SuggestboxConfig) -> tuple[IdentityProvider, LiveCollectionStore]:
    if config.backend == "memory":
        from .memory import MemoryCollectionStore, MemoryIdentityProvider

        return MemoryIdentityProvider(), MemoryCollectionStore()
    from .firebase import FirebaseIdentityProvider, FirestoreCollectionStore

    identity = FirebaseIdentityProvider(config)
    return identity, FirestoreCollectionStore(config, identity)
