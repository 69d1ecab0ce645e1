"""
Error types raised by the transcription pipeline stages.
"""

from typing import Optional


class TranscriptorError(Exception):
    """Base class for all pipeline failures."""

    stage: str = "pipeline"

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class ConfigurationError(TranscriptorError):
    """Missing credential, unknown option value, or missing external tool."""

    stage = "config"


class AcquisitionError(TranscriptorError):
    """Download or copy of the source media failed."""

    stage = "acquire"


class TranscodeError(TranscriptorError):
    """The transcoding tool failed or produced no output."""

    stage = "transcode"

    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr


class SizeLimitExceededError(TranscriptorError):
    """Audio payload is still over the upload ceiling after recompression."""

    stage = "size"

    def __init__(self, size_bytes: int, limit_bytes: int):
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes
        super().__init__(
            f"Audio still exceeds size limit after recompression: "
            f"{size_bytes / (1024 * 1024):.2f} MB (limit {limit_bytes / (1024 * 1024):.2f} MB). "
            "Consider a shorter clip."
        )


class TranscriptionError(TranscriptorError):
    """The transcription service rejected the request."""

    stage = "transcribe"


class EmptyTranscriptionError(TranscriptionError):
    """The transcription service returned no usable text."""


class SummarizationError(TranscriptorError):
    """A summarization call failed or returned unusable content."""

    stage = "summarize"


class OutputExistsError(TranscriptorError):
    """Destination already exists and continue mode is off."""

    stage = "output"

    def __init__(self, path: str):
        self.path = path
        super().__init__(
            f"File {path} already exists. Use --continue to append another transcription, "
            "or remove/move the existing file."
        )


class OutputWriteError(TranscriptorError):
    """Destination cannot be written."""

    stage = "output"
