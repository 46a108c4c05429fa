from __future__ import annotations


class SuggestboxError(Exception):
    """Base class for errors surfaced to the presentation layer."""

    kind = "error"


class ConfigurationError(SuggestboxError):
    kind = "configuration"


class IdentityError(SuggestboxError):
    kind = "identity"


class FeedSubscriptionError(SuggestboxError):
    kind = "feed_subscription"


class SubmissionError(SuggestboxError):
    kind = "submission"
