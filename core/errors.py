"""Error taxonomy for StudyTrack.

Lifecycle errors subclass ValueError so callers that only care about
"the request was rejected" can catch them together.
"""

from __future__ import annotations


class SessionError(ValueError):
    """Base class for rejected session operations."""


class ConflictError(SessionError):
    """The owner already holds an open session (or the email is taken)."""


class NotFoundError(SessionError):
    """No such session for this owner. Never says which of the two it was."""


class BadRequestError(SessionError):
    """Invalid input: rating outside 1-5, negative durations, bad status."""


class AuthenticationError(Exception):
    """Credentials were missing or wrong."""


class TransientNetworkError(Exception):
    """Client side: the server could not be reached or failed with a 5xx."""


class AdviceError(Exception):
    """The advice backend failed for a reason other than missing access."""
