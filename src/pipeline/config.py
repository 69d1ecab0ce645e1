"""
Configuration management for the video transcription pipeline.
"""

import importlib.util
import os
import shutil
import tempfile
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .errors import ConfigurationError


class SectionOrder(Enum):
    """Order of the labeled sections inside an output block."""
    TRANSCRIPT_FIRST = "transcript,summary"
    SUMMARY_FIRST = "summary,transcript"

    @classmethod
    def parse(cls, value: "str | SectionOrder") -> "SectionOrder":
        if isinstance(value, SectionOrder):
            return value
        normalized = ",".join(part.strip().lower() for part in str(value).split(","))
        for order in cls:
            if order.value == normalized:
                return order
        raise ConfigurationError(
            f"Unknown section order {value!r}; expected 'transcript,summary' or 'summary,transcript'"
        )


def _module_available(name: str) -> bool:
    return importlib.util.find_spec(name) is not None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_extensions(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return default
    exts = []
    for part in raw.split(","):
        part = part.strip().lower()
        if not part:
            continue
        exts.append(part if part.startswith(".") else f".{part}")
    return tuple(exts)


@dataclass
class PipelineConfig:
    """Configuration for the video transcription pipeline."""

    # Hosted service credentials
    api_key: str = ""
    api_base_url: str = "https://api.openai.com/v1"
    request_timeout: float = 600.0

    # Transcription settings
    transcription_backend: str = "openai"  # openai, local
    transcription_model: str = "whisper-1"
    transcribe_max_attempts: int = 3
    transcribe_retry_delay: float = 2.0  # seconds, multiplied by attempt number

    # Local faster-whisper backend
    whisper_model: str = "base"  # tiny, base, small, medium, large
    whisper_device: str = "cpu"  # cpu, cuda
    compute_type: str = "int8"

    # Summary settings
    summary_model: str = "gpt-4o-mini"
    summary_language: str = "Polish"
    summary_temperature: float = 0.3
    format_temperature: float = 0.0
    format_transcript: bool = False
    chunk_threshold: int = 15000  # characters per summarization call

    # Audio settings
    size_limit_bytes: int = 26214400  # 25 MiB upload ceiling
    default_bitrate_kbps: int = 24
    fallback_bitrate_kbps: int = 16
    audio_sample_rate: int = 16000  # Hz, required for whisper

    # Output settings
    section_order: SectionOrder = SectionOrder.TRANSCRIPT_FIRST
    output_name: str = "transcript.txt"
    scratch_root: str = os.path.join(tempfile.gettempdir(), "transcriptor-cli")
    batch_extensions: Tuple[str, ...] = (".mp4", ".mkv", ".mov", ".avi", ".webm", ".m4v")

    def __post_init__(self):
        self.section_order = SectionOrder.parse(self.section_order)

    @property
    def language_directive(self) -> str:
        return f"in {self.summary_language}"

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Create configuration from environment variables."""
        return cls(
            api_key=os.getenv("OPENAI_API_KEY", cls.api_key),
            api_base_url=os.getenv("OPENAI_BASE_URL", cls.api_base_url),
            request_timeout=float(os.getenv("REQUEST_TIMEOUT", cls.request_timeout)),
            transcription_backend=os.getenv("TRANSCRIPTION_BACKEND", cls.transcription_backend).lower(),
            transcription_model=os.getenv("TRANSCRIPTION_MODEL", cls.transcription_model),
            transcribe_max_attempts=int(os.getenv("TRANSCRIBE_MAX_ATTEMPTS", cls.transcribe_max_attempts)),
            transcribe_retry_delay=float(os.getenv("TRANSCRIBE_RETRY_DELAY", cls.transcribe_retry_delay)),
            whisper_model=os.getenv("WHISPER_MODEL", cls.whisper_model),
            whisper_device=os.getenv("WHISPER_DEVICE", cls.whisper_device),
            compute_type=os.getenv("COMPUTE_TYPE", cls.compute_type),
            summary_model=os.getenv("SUMMARY_MODEL", cls.summary_model),
            summary_language=os.getenv("SUMMARY_LANGUAGE", cls.summary_language),
            summary_temperature=float(os.getenv("SUMMARY_TEMPERATURE", cls.summary_temperature)),
            format_temperature=float(os.getenv("FORMAT_TEMPERATURE", cls.format_temperature)),
            format_transcript=_env_bool("FORMAT_TRANSCRIPT", cls.format_transcript),
            chunk_threshold=int(os.getenv("SUMMARY_CHUNK_CHARS", cls.chunk_threshold)),
            size_limit_bytes=int(os.getenv("AUDIO_SIZE_LIMIT_BYTES", cls.size_limit_bytes)),
            default_bitrate_kbps=int(os.getenv("AUDIO_BITRATE_KBPS", cls.default_bitrate_kbps)),
            fallback_bitrate_kbps=int(os.getenv("AUDIO_FALLBACK_BITRATE_KBPS", cls.fallback_bitrate_kbps)),
            audio_sample_rate=int(os.getenv("AUDIO_SAMPLE_RATE", cls.audio_sample_rate)),
            section_order=SectionOrder.parse(os.getenv("SECTION_ORDER", cls.section_order.value)),
            output_name=os.getenv("OUTPUT_FILE", cls.output_name),
            scratch_root=os.getenv("SCRATCH_ROOT", cls.scratch_root),
            batch_extensions=_env_extensions("BATCH_EXTENSIONS", cls.batch_extensions),
        )

    def validate(self, require_ffmpeg: bool = True) -> None:
        """Startup checks that must pass before any pipeline work begins."""
        if self.transcription_backend not in ("openai", "local"):
            raise ConfigurationError(
                f"Unknown transcription backend {self.transcription_backend!r}; expected 'openai' or 'local'"
            )
        if self.transcription_backend == "local" and not _module_available("faster_whisper"):
            raise ConfigurationError(
                "TRANSCRIPTION_BACKEND=local needs faster-whisper. "
                "Install with: pip install 'video-transcriptor[local]'"
            )
        # Summarization always goes through the hosted chat service
        if not self.api_key:
            raise ConfigurationError(
                "Missing OPENAI_API_KEY. Set the environment variable before running.\n"
                "Example:\n  OPENAI_API_KEY=<YOUR_KEY> transcriptor \"<video_url>\""
            )
        if self.chunk_threshold <= 0:
            raise ConfigurationError("SUMMARY_CHUNK_CHARS must be positive")
        if self.fallback_bitrate_kbps >= self.default_bitrate_kbps:
            raise ConfigurationError("AUDIO_FALLBACK_BITRATE_KBPS must be lower than AUDIO_BITRATE_KBPS")
        if require_ffmpeg and shutil.which("ffmpeg") is None:
            raise ConfigurationError('Could not find tool "ffmpeg" in PATH. Please install it and try again.')

    def with_overrides(self, **overrides: Optional[object]) -> "PipelineConfig":
        """Return a copy with every non-None override applied."""
        values = {k: v for k, v in overrides.items() if v is not None}
        unknown = set(values) - set(self.__dataclass_fields__)
        if unknown:
            raise ConfigurationError(f"Unknown config fields: {sorted(unknown)}")
        merged = {name: getattr(self, name) for name in self.__dataclass_fields__}
        merged.update(values)
        return PipelineConfig(**merged)
