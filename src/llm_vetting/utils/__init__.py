"""Utility modules."""

from llm_vetting.utils.logging import setup_logging

__all__ = ["setup_logging"]
