class SongLibError(Exception):
    """Base exception for songlib."""


class UnknownFormatError(SongLibError):
    """Raised when no detection strategy recognises a file's format."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"The file '{name}' was not in a recognized song file format")


class InvalidFormatError(SongLibError):
    """Raised when a file's format was identified but its content is malformed."""

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid song file '{name}': {reason}")


class ConfigError(SongLibError):
    """Raised when a configuration value is out of range."""


class IndexCorruptionWarning(UserWarning):
    """Issued when a stale or unreadable index document or index file is found."""
