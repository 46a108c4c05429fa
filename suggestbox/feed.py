from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence

from .backends.base import DocumentSnapshot, LiveCollectionStore, Unsubscribe, suggestions_path
from .errors import FeedSubscriptionError
from .types import FeedSnapshot, Principal, Suggestion, sort_feed
from .utils import PublishedSlot

logger = logging.getLogger(__name__)


class SubscriptionHandle:
    """Owns one live subscription. ``release`` is idempotent.

    Callbacks routed through ``guard`` run under the handle lock and are
    dropped once the handle has been released, even if the store still
    delivers them. ``release`` waits for a callback already running on
    another thread, so nothing is published after it returns.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._unsubscribe: Unsubscribe | None = None
        self._released = False
        self._lock = threading.RLock()

    @property
    def active(self) -> bool:
        with self._lock:
            return not self._released

    def attach(self, unsubscribe: Unsubscribe) -> None:
        with self._lock:
            if not self._released:
                self._unsubscribe = unsubscribe
                return
        # Released while the store was still opening the subscription.
        unsubscribe()

    def guard(self, callback: Callable[..., None]) -> Callable[..., None]:
        def _guarded(*args: object) -> None:
            with self._lock:
                if self._released:
                    logger.debug("dropping callback on released subscription %s", self.path)
                    return
                callback(*args)

        return _guarded

    def release(self) -> bool:
        with self._lock:
            if self._released:
                return False
            self._released = True
            unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()
        logger.debug("released subscription %s", self.path)
        return True

    def __enter__(self) -> SubscriptionHandle:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


def build_feed(docs: Sequence[DocumentSnapshot]) -> tuple[Suggestion, ...]:
    suggestions: list[Suggestion] = []
    for doc in docs:
        try:
            suggestions.append(Suggestion.from_document(doc.id, doc.data))
        except ValueError as exc:
            logger.warning("skipping suggestion %s: %s", doc.id, exc)
    return sort_feed(suggestions)


class LiveFeedSynchronizer:
    def __init__(self, store: LiveCollectionStore | None, namespace: str) -> None:
        self._store = store
        self.path = suggestions_path(namespace)
        self._slot: PublishedSlot[FeedSnapshot] = PublishedSlot(FeedSnapshot())
        self._handle: SubscriptionHandle | None = None
        self._lock = threading.Lock()

    @property
    def snapshot(self) -> FeedSnapshot:
        return self._slot.value

    @property
    def active(self) -> bool:
        with self._lock:
            return self._handle is not None and self._handle.active

    def subscribe(self, listener: Callable[[FeedSnapshot], None]) -> Callable[[], None]:
        return self._slot.subscribe(listener)

    def activate(self, principal: Principal | None) -> SubscriptionHandle | None:
        if self._store is None or principal is None:
            return None
        store = self._store
        self.deactivate()
        handle = SubscriptionHandle(self.path)
        with self._lock:
            self._handle = handle
        logger.info("opening feed subscription on %s for %s", self.path, principal.uid)
        try:
            unsubscribe = store.subscribe(
                self.path,
                handle.guard(self._on_snapshot),
                handle.guard(self._on_error),
            )
        except Exception as exc:
            handle.release()
            self._on_error(exc)
            return None
        handle.attach(unsubscribe)
        return handle

    def deactivate(self) -> None:
        with self._lock:
            handle, self._handle = self._handle, None
        if handle is not None:
            handle.release()

    def _on_snapshot(self, docs: Sequence[DocumentSnapshot]) -> None:
        suggestions = build_feed(docs)
        self._slot.update(
            lambda prev: FeedSnapshot(suggestions=suggestions, version=prev.version + 1)
        )

    def _on_error(self, exc: BaseException) -> None:
        logger.error("feed subscription on %s failed: %s", self.path, exc)
        error = FeedSubscriptionError(f"could not load suggestions: {exc}")
        error.__cause__ = exc
        self._slot.update(
            lambda prev: FeedSnapshot(
                suggestions=prev.suggestions, error=error, version=prev.version + 1
            )
        )
        # No automatic retry; a fresh activation is needed.
        self.deactivate()
