"""Exceptions for WhisperKey."""


class WhisperKeyError(Exception):
    """Base exception for all WhisperKey errors."""
    pass


class ConfigurationError(WhisperKeyError):
    """Configuration is invalid or missing."""
    pass


class StorageError(WhisperKeyError):
    """Sample database unavailable or write rejected."""
    pass


class InitializationError(WhisperKeyError):
    """The shared sample store could not be constructed."""
    pass


class AdaptationError(WhisperKeyError):
    """Adaptation engine failed while consuming a batch."""
    pass
