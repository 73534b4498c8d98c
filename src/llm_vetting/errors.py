"""Error taxonomy for the LLM vetting system.

Job-level errors never escape the scheduler: adapters turn them into a
``Failed`` stream event and the engine records the message on the response.
"""

from typing import Optional

CANCELED_MESSAGE = "Request was canceled"


class VettingError(Exception):
    """Base class for all llm-vetting errors."""


class ConfigError(VettingError):
    """Missing or invalid configuration (e.g. no API key for a provider).

    Terminal for a job; no network attempt is made.
    """


class TransportError(VettingError):
    """Non-success upstream status or network failure.

    Terminal for a job, retryable by the caller.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ProtocolError(VettingError):
    """A malformed stream frame. Swallowed by the decoder."""


class CancellationError(VettingError):
    """User-initiated cancellation. Never retried automatically."""

    def __init__(self, message: str = CANCELED_MESSAGE):
        super().__init__(message)
