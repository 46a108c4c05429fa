from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future

from .backends.base import SERVER_TIMESTAMP, LiveCollectionStore, suggestions_path
from .errors import SubmissionError
from .types import (
    AUTHOR_FIELD,
    CREATED_AT_FIELD,
    MAX_TEXT_CHARS,
    TEXT_FIELD,
    Principal,
    SubmitState,
)
from .utils import PublishedSlot

logger = logging.getLogger(__name__)


class DraftBuffer:
    """The text being composed. Over-limit updates are refused, like a
    ``maxlength`` input."""

    def __init__(self, text: str = "", *, max_chars: int = MAX_TEXT_CHARS) -> None:
        self.max_chars = max_chars
        self._slot: PublishedSlot[str] = PublishedSlot("")
        if text:
            self.update(text)

    @property
    def text(self) -> str:
        return self._slot.value

    def accepts(self, text: str) -> bool:
        return len(text) <= self.max_chars

    def update(self, text: str) -> bool:
        if not self.accepts(text):
            return False
        self._slot.swap(text)
        return True

    def clear(self) -> None:
        self._slot.swap("")

    def subscribe(self, listener: Callable[[str], None]) -> Callable[[], None]:
        return self._slot.subscribe(listener)


class SubmissionCoordinator:
    def __init__(
        self,
        store: LiveCollectionStore | None,
        namespace: str,
        principal: Callable[[], Principal | None],
        draft: DraftBuffer | None = None,
    ) -> None:
        self._store = store
        self.path = suggestions_path(namespace)
        self._principal = principal
        self.draft = draft or DraftBuffer()
        self._slot: PublishedSlot[SubmitState] = PublishedSlot(SubmitState())
        self._in_flight = False
        self._lock = threading.Lock()

    @property
    def state(self) -> SubmitState:
        return self._slot.value

    def subscribe(self, listener: Callable[[SubmitState], None]) -> Callable[[], None]:
        return self._slot.subscribe(listener)

    def submit(self, text: str) -> Future[str] | None:
        """Append one suggestion. Returns None when the guard turns the call into a no-op."""
        trimmed = text.strip()
        principal = self._principal()
        store = self._store
        if not trimmed or len(trimmed) > MAX_TEXT_CHARS or store is None or principal is None:
            return None
        with self._lock:
            if self._in_flight:
                return None
            self._in_flight = True
        self._slot.swap(SubmitState(in_flight=True))
        fields = {
            TEXT_FIELD: trimmed,
            AUTHOR_FIELD: principal.uid,
            CREATED_AT_FIELD: SERVER_TIMESTAMP,
        }
        logger.debug("submitting suggestion as %s", principal.uid)
        try:
            future = store.append(self.path, fields)
        except Exception as exc:
            future = Future()
            future.set_exception(exc)
        future.add_done_callback(self._on_done)
        return future

    def _on_done(self, future: Future[str]) -> None:
        if future.cancelled():
            exc: BaseException | None = SubmissionError("submission cancelled")
        else:
            exc = future.exception()
        try:
            if exc is None:
                logger.info("suggestion %s stored", future.result())
                self.draft.clear()
                self._slot.swap(SubmitState())
                return
            logger.warning("suggestion upload failed: %s", exc)
            if isinstance(exc, SubmissionError):
                error = exc
            else:
                error = SubmissionError(f"could not upload the suggestion: {exc}")
                error.__cause__ = exc
            self._slot.swap(SubmitState(error=error))
        finally:
            # Cleared only once the draft and state have settled.
            with self._lock:
                self._in_flight = False
