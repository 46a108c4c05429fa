from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..types import Principal

SUGGESTIONS_PATH_TEMPLATE = "artifacts/{namespace}/public/data/suggestions"


class _ServerTimestamp:
    """Sentinel replaced by the store with its commit time."""

    _instance: _ServerTimestamp | None = None

    def __new__(cls) -> _ServerTimestamp:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class DocumentSnapshot:
    id: str
    data: Mapping[str, Any] = field(default_factory=dict)


IdentityListener = Callable[[Principal | None], None]
SnapshotListener = Callable[[Sequence[DocumentSnapshot]], None]
ErrorListener = Callable[[BaseException], None]
Unsubscribe = Callable[[], None]


def suggestions_path(namespace: str) -> str:
    return SUGGESTIONS_PATH_TEMPLATE.format(namespace=namespace.strip().strip("/"))


class IdentityProvider(Protocol):
    def sign_in_anonymously(self) -> Future[Principal]: ...

    def on_identity_change(self, listener: IdentityListener) -> Unsubscribe: ...


class LiveCollectionStore(Protocol):
    def subscribe(
        self,
        path: str,
        on_snapshot: SnapshotListener,
        on_error: ErrorListener,
    ) -> Unsubscribe: ...

    def append(self, path: str, fields: Mapping[str, Any]) -> Future[str]: ...
