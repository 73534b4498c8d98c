"""Run progress display."""

from llm_vetting.orchestration.progress import RunProgress

__all__ = ["RunProgress"]
