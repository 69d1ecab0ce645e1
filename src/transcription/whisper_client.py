"""
Faster-whisper client for offline audio transcription.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

try:
    from faster_whisper import WhisperModel
except ImportError:
    WhisperModel = None

from pipeline.errors import EmptyTranscriptionError, TranscriptionError
from .openai_client import Transcript

logger = logging.getLogger(__name__)


class WhisperClient:
    """Client for local faster-whisper transcription."""

    def __init__(self, model_size: str = "base", device: str = "cpu", compute_type: str = "int8", language: Optional[str] = None):
        """
        Initialize the whisper client.

        Args:
            model_size: Whisper model size (tiny, base, small, medium, large)
            device: Device to run on (cpu, cuda)
            compute_type: CTranslate2 compute type (int8, float16, float32)
            language: Language code for transcription (None for auto-detect)
        """
        if WhisperModel is None:
            raise ImportError("faster-whisper not installed. Install with: pip install 'video-transcriptor[local]'")

        self.model_size = model_size
        self.compute_type = compute_type
        self.device = device
        self.model = None
        self.language = language
        self.download_root = Path(os.environ.get("MODEL_DIR", Path.home() / ".cache" / "transcriptor" / "models"))
        self.download_root.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    async def initialize(self):
        """Load the whisper model in a worker thread."""
        async with self._lock:
            if self.model is None:
                logger.info(f"Loading whisper model: {self.model_size} on {self.device}")
                loop = asyncio.get_running_loop()
                self.model = await loop.run_in_executor(
                    None,
                    lambda: WhisperModel(
                        self.model_size,
                        device=self.device,
                        compute_type=self.compute_type,
                        download_root=str(self.download_root),
                    ),
                )
                logger.info("Whisper model loaded successfully")

    def _transcribe_sync(self, audio_path: str) -> str:
        segments, info = self.model.transcribe(  # type: ignore[union-attr]
            audio_path,
            language=self.language,
            temperature=0.0,
            vad_filter=False,
        )
        logger.debug(f"Detected language {info.language} (p={info.language_probability:.3f})")
        # segments is a lazy generator; decoding happens while iterating
        return " ".join(segment.text.strip() for segment in segments if segment.text.strip())

    async def transcribe(self, audio_path: str) -> Transcript:
        logger.info("3/5 Transcription (faster-whisper)...")
        if self.model is None:
            await self.initialize()

        loop = asyncio.get_running_loop()
        try:
            text = await loop.run_in_executor(None, self._transcribe_sync, audio_path)
        except Exception as e:
            raise TranscriptionError(f"Local transcription failed for {audio_path}: {e}") from e

        text = text.strip()
        if not text:
            raise EmptyTranscriptionError("Received empty transcription.")
        return Transcript(text=text)

