from __future__ import annotations

import datetime as dt
import itertools
import threading
from collections.abc import Callable, Mapping
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from ..types import CREATED_AT_FIELD, Principal
from .base import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    ErrorListener,
    IdentityListener,
    SnapshotListener,
    Unsubscribe,
)


class MemoryIdentityProvider:
    """In-process anonymous identity provider.

    With ``auto_resolve`` off, sign-in stays pending until ``resolve`` or
    ``fail`` is called, which lets callers observe the pending window.
    """

    def __init__(self, uid: str | None = None, *, auto_resolve: bool = True) -> None:
        self.uid = uid
        self.auto_resolve = auto_resolve
        self.sign_in_calls = 0
        self._principal: Principal | None = None
        self._pending: list[Future[Principal]] = []
        self._listeners: list[IdentityListener] = []
        self._lock = threading.Lock()

    @property
    def principal(self) -> Principal | None:
        return self._principal

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def sign_in_anonymously(self) -> Future[Principal]:
        future: Future[Principal] = Future()
        with self._lock:
            self.sign_in_calls += 1
            self._pending.append(future)
        if self.auto_resolve:
            self.resolve()
        return future

    def resolve(self, uid: str | None = None) -> Principal:
        principal = self._principal or Principal(uid or self.uid or uuid4().hex)
        with self._lock:
            pending, self._pending = self._pending, []
        self._set_principal(principal)
        for future in pending:
            future.set_result(principal)
        return principal

    def fail(self, exc: BaseException) -> None:
        with self._lock:
            pending, self._pending = self._pending, []
        for future in pending:
            future.set_exception(exc)

    def sign_out(self) -> None:
        self._set_principal(None)

    def on_identity_change(self, listener: IdentityListener) -> Unsubscribe:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _set_principal(self, principal: Principal | None) -> None:
        with self._lock:
            self._principal = principal
            listeners = list(self._listeners)
        for listener in listeners:
            listener(principal)


@dataclass
class MemorySubscription:
    path: str
    on_snapshot: SnapshotListener
    on_error: ErrorListener
    active: bool = True


@dataclass
class _PendingWrite:
    path: str
    doc_id: str
    fields: dict[str, Any]
    future: Future[str] = field(default_factory=Future)


class MemoryCollectionStore:
    """In-process live collection store.

    Every change re-delivers the full document set of the affected path to
    each active subscriber, as a live query does. ``SERVER_TIMESTAMP`` values
    are replaced with a strictly increasing commit time when a write is
    acknowledged. With ``echo_pending`` on, unacknowledged writes are visible
    to subscribers with their timestamp still unresolved.
    """

    def __init__(
        self,
        *,
        auto_ack: bool = True,
        echo_pending: bool = False,
        clock: Callable[[], dt.datetime] | None = None,
    ) -> None:
        self.auto_ack = auto_ack
        self.echo_pending = echo_pending
        self.appends: list[tuple[str, dict[str, Any]]] = []
        self.subscriptions: list[MemorySubscription] = []
        self._clock = clock or (lambda: dt.datetime.now(dt.UTC))
        self._last_commit: dt.datetime | None = None
        self._documents: dict[str, dict[str, dict[str, Any]]] = {}
        self._pending: list[_PendingWrite] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def listener_count(self, path: str | None = None) -> int:
        with self._lock:
            return sum(
                1 for sub in self.subscriptions if sub.active and (path is None or sub.path == path)
            )

    def documents(self, path: str) -> list[DocumentSnapshot]:
        with self._lock:
            return self._materialize(path)

    def subscribe(
        self,
        path: str,
        on_snapshot: SnapshotListener,
        on_error: ErrorListener,
    ) -> Unsubscribe:
        subscription = MemorySubscription(path, on_snapshot, on_error)
        with self._lock:
            self.subscriptions.append(subscription)
            docs = self._materialize(path)
        on_snapshot(docs)

        def _unsubscribe() -> None:
            with self._lock:
                subscription.active = False

        return _unsubscribe

    def append(self, path: str, fields: Mapping[str, Any]) -> Future[str]:
        write = _PendingWrite(path, f"doc-{next(self._ids)}", dict(fields))
        with self._lock:
            self.appends.append((path, dict(fields)))
            self._pending.append(write)
            if self.echo_pending:
                self._documents.setdefault(path, {})[write.doc_id] = self._unresolved(write.fields)
        if self.echo_pending:
            self._notify(path)
        if self.auto_ack:
            self.ack()
        return write.future

    def ack(self) -> str:
        """Commit the oldest pending write."""
        with self._lock:
            write = self._pending.pop(0)
            committed = self._commit_time()
            data = {
                key: committed if value is SERVER_TIMESTAMP else value
                for key, value in write.fields.items()
            }
            self._documents.setdefault(write.path, {})[write.doc_id] = data
        self._notify(write.path)
        write.future.set_result(write.doc_id)
        return write.doc_id

    def reject(self, exc: BaseException) -> None:
        """Fail the oldest pending write."""
        with self._lock:
            write = self._pending.pop(0)
            echoed = self._documents.get(write.path, {}).pop(write.doc_id, None)
        if echoed is not None:
            self._notify(write.path)
        write.future.set_exception(exc)

    def put(self, path: str, doc_id: str, data: Mapping[str, Any]) -> None:
        """Write a document as another client would."""
        with self._lock:
            self._documents.setdefault(path, {})[doc_id] = dict(data)
        self._notify(path)

    def fail_subscriptions(self, path: str, exc: BaseException) -> None:
        with self._lock:
            targets = [sub for sub in self.subscriptions if sub.active and sub.path == path]
            for sub in targets:
                sub.active = False
        for sub in targets:
            sub.on_error(exc)

    def _commit_time(self) -> dt.datetime:
        now = self._clock()
        if self._last_commit is not None and now <= self._last_commit:
            now = self._last_commit + dt.timedelta(microseconds=1)
        self._last_commit = now
        return now

    def _unresolved(self, fields: dict[str, Any]) -> dict[str, Any]:
        data = {key: value for key, value in fields.items() if value is not SERVER_TIMESTAMP}
        data.setdefault(CREATED_AT_FIELD, None)
        return data

    def _materialize(self, path: str) -> list[DocumentSnapshot]:
        return [
            DocumentSnapshot(doc_id, dict(data))
            for doc_id, data in self._documents.get(path, {}).items()
        ]

    def _notify(self, path: str) -> None:
        with self._lock:
            targets = [sub for sub in self.subscriptions if sub.active and sub.path == path]
            docs = self._materialize(path)
        for sub in targets:
            sub.on_snapshot(docs)
