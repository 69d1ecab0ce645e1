"""
Transcription module for hosted and local Whisper speech-to-text.
"""

__version__ = "1.0.0"

from .openai_client import ConnectivityRetryPolicy, Transcript, TranscriptionClient
from .whisper_client import WhisperClient

__all__ = [
    "ConnectivityRetryPolicy",
    "Transcript",
    "TranscriptionClient",
    "WhisperClient",
]
