"""
Summary module for LLM-based transcript formatting and summarization.
"""

__version__ = "1.0.0"

from .summary_client import SummaryClient, SummaryDocument, Summarizer, TranscriptFormatter, chunk_text

__all__ = [
    "SummaryClient",
    "SummaryDocument",
    "Summarizer",
    "TranscriptFormatter",
    "chunk_text",
]
