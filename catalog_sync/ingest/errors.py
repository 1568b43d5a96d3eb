"""Vendor feed error taxonomy."""


class FeedError(RuntimeError):
    """Base class for vendor feed failures."""

    kind = "internal"


class TransientFeedError(FeedError):
    """Timeout, connection reset, 5xx or 429 that survived all retries."""

    kind = "transient"


class AuthenticationError(FeedError):
    """Vendor rejected the credentials. Never retried."""

    kind = "authentication"


class MalformedFeedError(FeedError):
    """Top-level response could not be parsed."""

    kind = "malformed_feed"


class CandidateError(FeedError):
    """One row could not be turned into a candidate."""

    kind = "candidate"
