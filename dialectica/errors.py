"""Exception hierarchy.

Every error carries a message that can be shown to the user as-is.
Degraded-but-recoverable failures (query standardization, relevance
assessment, a single bibliographic source) never raise; they fall back
locally and are logged instead.
"""


class DialecticaError(Exception):
    """Base class for all user-facing errors."""

    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(DialecticaError):
    """Missing or invalid credential for the language service."""


class NoResultsError(DialecticaError):
    """The retrieval loop exhausted its attempts without a single paper."""


class MalformedResponseError(DialecticaError):
    """The language service returned a payload that does not fit the schema."""

    retryable = True


class ServiceUnavailableError(DialecticaError):
    """The language service is temporarily unavailable (HTTP 503 and friends)."""

    retryable = True


class SynthesisError(DialecticaError):
    """Any other failure of a synthesis or follow-up call."""

    retryable = True


class InvalidTransitionError(DialecticaError):
    """A pipeline operation was requested from a stage that does not allow it."""


class SearchSupersededError(DialecticaError):
    """A response arrived for a search that a newer search has replaced."""
