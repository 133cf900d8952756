"""
Module: exceptions
Purpose: Custom exception hierarchy for dupegraph.
"""


class DupegraphError(Exception):
    """Base exception for dupegraph."""

    pass


class ConfigError(DupegraphError):
    pass


class ScanError(DupegraphError):
    pass


class DecodeError(DupegraphError):
    pass


class MetadataError(DupegraphError):
    pass


class SourceReadError(DupegraphError):
    pass


class CheckpointError(DupegraphError):
    pass


class IndexCorruptionError(CheckpointError):
    pass


class SimilarityIndexError(DupegraphError):
    pass


class DuplicateDetectionError(DupegraphError):
    pass


class ActionPlanError(DupegraphError):
    pass


class RunAborted(DupegraphError):
    """Raised when a run is stopped between files."""

    def __init__(self, message: str, completed: int = 0):
        super().__init__(message)
        self.completed = completed
