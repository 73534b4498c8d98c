"""LLM Vetting.

Fans one question out to many LLM providers concurrently, streams every
answer back, and flags answers that look templated or machine-generated.
Reference answers supplied by humans can be scored against the generated set.
"""

__version__ = "0.1.0"

from llm_vetting.models.enums import ClassificationLabel, ProviderName, ResponseStatus, Transport

__all__ = [
    "__version__",
    "ClassificationLabel",
    "ProviderName",
    "ResponseStatus",
    "Transport",
]
