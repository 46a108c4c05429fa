from __future__ import annotations

import datetime as dt
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .errors import SubmissionError, SuggestboxError

MAX_TEXT_CHARS = 300

# Document field names as written to the shared collection.
TEXT_FIELD = "text"
AUTHOR_FIELD = "authorId"
CREATED_AT_FIELD = "createdAt"

_EPOCH = dt.datetime(1970, 1, 1, tzinfo=dt.UTC)


@dataclass(frozen=True)
class Principal:
    uid: str


@dataclass(frozen=True)
class Suggestion:
    id: str
    text: str
    author_id: str | None
    # None while the store has not yet committed the write.
    created_at: dt.datetime | None
    extra: Mapping[str, Any] = field(default_factory=dict)

    @property
    def pending(self) -> bool:
        return self.created_at is None

    def sort_key(self) -> tuple[bool, float]:
        created = self.created_at
        if created is None:
            return False, _EPOCH.timestamp()
        if created.tzinfo is None:
            created = created.replace(tzinfo=dt.UTC)
        return True, created.timestamp()

    @classmethod
    def from_document(cls, doc_id: str, data: Mapping[str, Any]) -> Suggestion:
        text = data.get(TEXT_FIELD)
        if not isinstance(text, str) or not text.strip():
            raise ValueError("missing suggestion text")
        if len(text) > MAX_TEXT_CHARS:
            raise ValueError(f"suggestion text exceeds {MAX_TEXT_CHARS} characters")
        author = data.get(AUTHOR_FIELD)
        created = data.get(CREATED_AT_FIELD)
        extra = {
            key: value
            for key, value in data.items()
            if key not in {TEXT_FIELD, AUTHOR_FIELD, CREATED_AT_FIELD}
        }
        return cls(
            id=str(doc_id),
            text=text,
            author_id=str(author) if author is not None else None,
            created_at=created if isinstance(created, dt.datetime) else None,
            extra=extra,
        )


def sort_feed(suggestions: list[Suggestion]) -> tuple[Suggestion, ...]:
    """Newest first; pending entries sort as epoch zero, after every resolved one."""
    return tuple(sorted(suggestions, key=Suggestion.sort_key, reverse=True))


@dataclass(frozen=True)
class FeedSnapshot:
    suggestions: tuple[Suggestion, ...] = ()
    error: SuggestboxError | None = None
    version: int = 0


@dataclass(frozen=True)
class SubmitState:
    in_flight: bool = False
    error: SubmissionError | None = None


@dataclass(frozen=True)
class SessionState:
    principal: Principal | None = None
    feed: tuple[Suggestion, ...] = ()
    connection_error: SuggestboxError | None = None
    loading: bool = True


@dataclass(frozen=True)
class ViewState:
    loading: bool
    error: SuggestboxError | None
    principal_id: str | None
    feed: tuple[Suggestion, ...]
    submit_state: SubmitState
    draft: str
