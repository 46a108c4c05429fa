from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass

from .backends.base import IdentityProvider, Unsubscribe
from .config import SuggestboxConfig
from .errors import ConfigurationError, IdentityError, SuggestboxError
from .types import Principal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdentityState:
    principal: Principal | None = None
    error: SuggestboxError | None = None


IdentityStateListener = Callable[[IdentityState], None]


class IdentityBootstrapper:
    """Acquires the anonymous principal once and relays identity transitions.

    ``start`` never waits for the provider; subscribers hear about the
    principal (or its loss) through notifications.
    """

    def __init__(self, config: SuggestboxConfig, provider: IdentityProvider) -> None:
        self._config = config
        self._provider = provider
        self._listeners: list[IdentityStateListener] = []
        self._state: IdentityState | None = None
        self._unsubscribe: Unsubscribe | None = None
        self._started = False
        self._closed = False
        self._lock = threading.Lock()

    @property
    def state(self) -> IdentityState | None:
        with self._lock:
            return self._state

    def subscribe(self, listener: IdentityStateListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def start(self) -> None:
        with self._lock:
            if self._started or self._closed:
                return
            self._started = True
        try:
            self._config.validate()
        except ConfigurationError as exc:
            logger.error("identity bootstrap halted: %s", exc)
            self._publish(IdentityState(error=exc))
            return
        unsubscribe = self._provider.on_identity_change(self._on_identity_change)
        with self._lock:
            self._unsubscribe = unsubscribe
        logger.debug("requesting anonymous principal")
        future = self._provider.sign_in_anonymously()
        future.add_done_callback(self._on_sign_in_done)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            self._listeners.clear()
        if unsubscribe is not None:
            unsubscribe()

    def _on_identity_change(self, principal: Principal | None) -> None:
        if not self._publish(IdentityState(principal=principal), collapse=True):
            return
        if principal is None:
            logger.info("anonymous principal lost")
        else:
            logger.info("anonymous principal available: %s", principal.uid)

    def _on_sign_in_done(self, future: Future[Principal]) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            error = exc if isinstance(exc, IdentityError) else IdentityError(str(exc))
            logger.error("anonymous sign-in failed: %s", error)
            self._publish(IdentityState(error=error))
            return
        # Providers normally announce the principal themselves; this covers
        # ones that only resolve the future.
        self._on_identity_change(future.result())

    def _publish(self, state: IdentityState, *, collapse: bool = False) -> bool:
        with self._lock:
            if self._closed:
                return False
            if collapse and state == self._state:
                return False
            self._state = state
            listeners = list(self._listeners)
        for listener in listeners:
            listener(state)
        return True
