"""Entry point for running llm-vetting as a module.

Usage:
    python -m llm_vetting [command] [options]
"""

from llm_vetting.cli.main import app

if __name__ == "__main__":
    app()
