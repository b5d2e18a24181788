"""
Exception types for tickbrain.

Errors raised from inside a TrainablePolicy hook are not wrapped:
they propagate to the host loop unchanged.
"""


class TickbrainError(Exception):
    """Base class for all tickbrain errors."""


class ConfigurationError(TickbrainError, ValueError):
    """A required collaborator is missing or a config value is invalid."""


class CheckpointNotFoundError(TickbrainError, FileNotFoundError):
    """Checkpoint file does not exist (callers treat this as a cold start)."""


class CorruptCheckpointError(TickbrainError, ValueError):
    """Checkpoint file could not be deserialized into a named tensor map."""
