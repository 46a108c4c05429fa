from __future__ import annotations

import dataclasses
import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future

from .backends.base import IdentityProvider, LiveCollectionStore
from .config import SuggestboxConfig
from .errors import FeedSubscriptionError
from .feed import LiveFeedSynchronizer
from .identity import IdentityBootstrapper, IdentityState
from .submission import DraftBuffer, SubmissionCoordinator
from .types import FeedSnapshot, Principal, SessionState, SubmitState, ViewState
from .utils import PublishedSlot

logger = logging.getLogger(__name__)


class SuggestionBoxSession:
    """Wires identity, feed and submission together for one client session.

    The feed subscription is only opened once a principal is present and is
    released whenever the principal goes away.
    """

    def __init__(
        self,
        config: SuggestboxConfig,
        identity_provider: IdentityProvider,
        store: LiveCollectionStore | None,
    ) -> None:
        self.config = config
        self.bootstrapper = IdentityBootstrapper(config, identity_provider)
        self.synchronizer = LiveFeedSynchronizer(store, config.namespace)
        self.draft = DraftBuffer()
        self.coordinator = SubmissionCoordinator(
            store, config.namespace, self._current_principal, self.draft
        )
        self._state: PublishedSlot[SessionState] = PublishedSlot(SessionState())
        self._view_listeners: list[Callable[[ViewState], None]] = []
        self._lock = threading.Lock()
        self._closed = False
        self._unsubscribers = [
            self.bootstrapper.subscribe(self._on_identity),
            self.synchronizer.subscribe(self._on_feed),
            self._state.subscribe(self._emit_view),
            self.coordinator.subscribe(self._emit_view),
            self.draft.subscribe(self._emit_view),
        ]

    @property
    def state(self) -> SessionState:
        return self._state.value

    def start(self) -> None:
        self.bootstrapper.start()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._view_listeners.clear()
        self.synchronizer.deactivate()
        self.bootstrapper.close()
        for unsubscribe in self._unsubscribers:
            unsubscribe()

    def __enter__(self) -> SuggestionBoxSession:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def submit(self, text: str | None = None) -> Future[str] | None:
        text = self.draft.text if text is None else text
        if not self.draft.accepts(text):
            return None
        return self.coordinator.submit(text)

    def update_draft(self, text: str) -> bool:
        return self.draft.update(text)

    def view(self) -> ViewState:
        state = self._state.value
        return ViewState(
            loading=state.loading,
            error=state.connection_error,
            principal_id=state.principal.uid if state.principal else None,
            feed=state.feed,
            submit_state=self.coordinator.state,
            draft=self.draft.text,
        )

    def subscribe_view(self, listener: Callable[[ViewState], None]) -> Callable[[], None]:
        with self._lock:
            self._view_listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._view_listeners:
                    self._view_listeners.remove(listener)

        return _unsubscribe

    def _current_principal(self) -> Principal | None:
        return self._state.value.principal

    def _on_identity(self, identity: IdentityState) -> None:
        if identity.error is not None:
            self.synchronizer.deactivate()
            self._state.update(
                lambda prev: dataclasses.replace(
                    prev, principal=None, connection_error=identity.error, loading=False
                )
            )
            return
        principal = identity.principal
        previous = self._state.value.principal
        if principal != previous or principal is None:
            # The old subscription must be gone before a new one opens.
            self.synchronizer.deactivate()
        self._state.update(
            lambda prev: dataclasses.replace(prev, principal=principal, loading=False)
        )
        if principal is not None and (principal != previous or not self.synchronizer.active):
            self.synchronizer.activate(principal)

    def _on_feed(self, snapshot: FeedSnapshot) -> None:
        def _apply(prev: SessionState) -> SessionState:
            error = snapshot.error
            if error is None and not isinstance(prev.connection_error, FeedSubscriptionError):
                error = prev.connection_error
            return dataclasses.replace(prev, feed=snapshot.suggestions, connection_error=error)

        self._state.update(_apply)

    def _emit_view(self, _changed: SessionState | SubmitState | str) -> None:
        with self._lock:
            if self._closed:
                return
            listeners = list(self._view_listeners)
        view = self.view()
        for listener in listeners:
            listener(view)
