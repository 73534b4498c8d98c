"""Default configuration values for the LLM vetting system."""

from pathlib import Path

# Default configuration file names
DEFAULT_CONFIG_FILENAME = "llm-vetting.config.json"
DEFAULT_YAML_CONFIG_FILENAME = "llm-vetting.config.yaml"

# Search paths for configuration file (in order of priority)
CONFIG_SEARCH_PATHS = [
    Path.cwd() / DEFAULT_CONFIG_FILENAME,
    Path.cwd() / DEFAULT_YAML_CONFIG_FILENAME,
    Path.home() / ".config" / "llm-vetting" / "config.json",
]

# Simultaneously open provider connections
DEFAULT_CONCURRENCY = 3

# Upper bound on repetitions per model
DEFAULT_LOOP_CAP = 5

DEFAULT_SIMILARITY_THRESHOLD = 0.9
DEFAULT_RED_THRESHOLD = 0.8
DEFAULT_YELLOW_THRESHOLD = 0.6

# Completed runs kept in memory
DEFAULT_HISTORY_LIMIT = 50

DEFAULT_RELAY_HOST = "127.0.0.1"
DEFAULT_RELAY_PORT = 8787

# Environment variables that fill empty provider credentials
API_KEY_ENV_VARS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "openai_compatible": "OPENAI_COMPATIBLE_API_KEY",
}
BASE_URL_ENV_VAR = "OPENAI_COMPATIBLE_BASE_URL"
