"""Enumerations for the LLM vetting system."""

from enum import Enum


class ProviderName(str, Enum):
    """Supported text-generation backends."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    DEEPSEEK = "deepseek"
    OPENAI_COMPATIBLE = "openai_compatible"


class Transport(str, Enum):
    """How a request reaches its provider."""

    DIRECT = "direct"
    RELAY = "relay"


class ResponseStatus(str, Enum):
    """Lifecycle state of a job and its response record."""

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    ERROR = "error"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition happens without an explicit retry."""
        return self in (ResponseStatus.DONE, ResponseStatus.ERROR, ResponseStatus.CANCELED)


class ClassificationLabel(str, Enum):
    """Bucket assigned to a reference text."""

    RED = "red"  # likely generated
    YELLOW = "yellow"  # suspicious
    GREEN = "green"  # likely human

    @property
    def display_name(self) -> str:
        """Human-readable label."""
        return {
            ClassificationLabel.RED: "AI Generated",
            ClassificationLabel.YELLOW: "Suspicious",
            ClassificationLabel.GREEN: "Likely Human",
        }[self]
