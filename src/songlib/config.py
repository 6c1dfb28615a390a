"""Configuration settings for songlib."""

import os
from pathlib import Path

from .exceptions import ConfigError

# Library location (can be overridden via environment variables)
DEFAULT_LIBRARY_DIR = Path.home() / ".songlib" / "songs"

# Reserved library subdirectories and file names
INDEX_DIR = "_index"
INDEX_FILENAME = "songs.db"
INDEX_SCHEMA_VERSION = 1
METADATA_DIR = "_metadata"
METADATA_SUFFIX = "_metadata.json"

# Internal song format
SONG_EXTENSION = ".json"
FORMAT_NAME = "songlib"
FORMAT_VERSION = 3
FORMAT_SONG_TYPE = "song"

# Searching
DEFAULT_MAX_RESULTS = int(os.getenv("SONGLIB_MAX_RESULTS", "25"))
SNIPPET_TOKENS = int(os.getenv("SONGLIB_SNIPPET_TOKENS", "24"))
HIGHLIGHT_START = "<b>"
HIGHLIGHT_END = "</b>"
SNIPPET_ELLIPSIS = "..."

# Logging
LOG_LEVEL = os.getenv("SONGLIB_LOG_LEVEL", "WARNING")

# ChurchView stores font sizes in its own units
LEGACY_FONT_SIZE_SCALE = 1.5


def validate_config() -> None:
    """Validate configuration values."""
    if DEFAULT_MAX_RESULTS <= 0:
        raise ConfigError("SONGLIB_MAX_RESULTS must be positive")

    # FTS5 refuses snippets longer than 64 tokens
    if not (1 <= SNIPPET_TOKENS <= 64):
        raise ConfigError("SONGLIB_SNIPPET_TOKENS must be between 1 and 64")

    if LOG_LEVEL.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ConfigError(f"Invalid log level: {LOG_LEVEL}")


def get_library_dir() -> Path:
    """Get library directory from environment or default."""
    library_dir = os.getenv("SONGLIB_LIBRARY_DIR")
    if library_dir:
        return Path(library_dir)
    return DEFAULT_LIBRARY_DIR


# Validate config on import
validate_config()
