"""Error taxonomy shared by the matching, conversation and notification services.

Services raise these; ``matchbox.main`` maps them onto HTTP responses using
``status_code``.
"""

from __future__ import annotations


class MatchboxError(Exception):
    """Base exception for every expected failure of a core operation."""

    status_code: int = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class InvalidArgument(MatchboxError):
    """Missing or malformed input, e.g. an empty message body or a self-swipe."""

    status_code = 400


class Forbidden(MatchboxError):
    """The acting user is not a participant of the referenced match."""

    status_code = 403


class NotFound(MatchboxError):
    """Unknown profile, match or notification."""

    status_code = 404


class Conflict(MatchboxError):
    """Lost the race to create a match. Absorbed by the match engine."""

    status_code = 409


class Unavailable(MatchboxError):
    """Storage transaction failed and was rolled back; safe to retry."""

    status_code = 503


__all__ = [
    "Conflict",
    "Forbidden",
    "InvalidArgument",
    "MatchboxError",
    "NotFound",
    "Unavailable",
]
