"""Exceptions for pipeline operations."""


class PipelineError(Exception):
    """Base exception for all pipeline operations."""


class GraphBuildError(PipelineError):
    """Raised when graph construction fails."""


class MessageFormatError(PipelineError):
    """Raised when a transport message cannot be decoded into a result model."""
