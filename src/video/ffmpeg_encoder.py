"""
FFmpeg-based audio extraction sized for the transcription upload limit.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from pipeline.errors import SizeLimitExceededError, TranscodeError

logger = logging.getLogger(__name__)


@dataclass
class AudioPayload:
    """Encoded audio file ready for upload."""
    path: str
    bitrate_kbps: int
    size_bytes: int


class ProcessError(Exception):
    """Non-zero exit or spawn failure of an external tool."""

    def __init__(self, message: str, returncode: Optional[int] = None, stdout: str = "", stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


async def run_process(cmd: Sequence[str]) -> Tuple[str, str]:
    """
    Run an external command to completion and capture its output.

    The child is always reaped before returning, whether it exited cleanly,
    failed, or the awaiting task was interrupted.

    Returns:
        Tuple of (stdout, stderr) decoded as UTF-8

    Raises:
        ProcessError: spawn failure or non-zero exit status
    """
    logger.debug(f"exec: {' '.join(cmd)}")
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise ProcessError(f"Problem launching {cmd[0]!r}: {e}") from e

    try:
        stdout_b, stderr_b = await process.communicate()
    finally:
        if process.returncode is None:
            process.kill()
            await process.wait()

    stdout = stdout_b.decode("utf-8", errors="replace")
    stderr = stderr_b.decode("utf-8", errors="replace")
    if process.returncode != 0:
        raise ProcessError(
            f"{cmd[0]} exited with code {process.returncode}",
            returncode=process.returncode,
            stdout=stdout,
            stderr=stderr,
        )
    return stdout, stderr


class AudioNormalizer:
    """Transcodes media into mono Opus audio at a fixed sample rate."""

    def __init__(self, audio_sample_rate: int = 16000, codec: str = "libopus", ffmpeg: str = "ffmpeg"):
        self.audio_sample_rate = audio_sample_rate
        self.codec = codec
        self.ffmpeg = ffmpeg

    def build_command(self, input_file: str, output_file: str, bitrate_kbps: int) -> List[str]:
        return [
            self.ffmpeg, '-y',
            '-i', input_file,
            '-ac', '1',  # Mono audio
            '-ar', str(self.audio_sample_rate),
            '-vn',  # No video
            '-c:a', self.codec,
            '-b:a', f"{bitrate_kbps}k",
            output_file,
        ]

    async def normalize(self, input_file: str, output_file: str, bitrate_kbps: int) -> AudioPayload:
        """
        Encode the audio track of input_file into output_file.

        Raises:
            TranscodeError: ffmpeg failed or wrote nothing
        """
        cmd = self.build_command(input_file, output_file, bitrate_kbps)
        try:
            _, stderr = await run_process(cmd)
        except ProcessError as e:
            logger.debug(f"ffmpeg stderr: {e.stderr}")
            raise TranscodeError(f"Audio extraction failed: {e}\n{e.stderr.strip()}", stderr=e.stderr) from e

        if not os.path.exists(output_file) or os.path.getsize(output_file) == 0:
            raise TranscodeError(
                f"ffmpeg reported success, but output audio is missing/empty: {output_file}",
                stderr=stderr,
            )

        size = os.path.getsize(output_file)
        logger.debug(f"Encoded {output_file} at {bitrate_kbps}k: {size} bytes")
        return AudioPayload(path=output_file, bitrate_kbps=bitrate_kbps, size_bytes=size)


class SizeEnforcer:
    """
    Two-attempt size policy around AudioNormalizer.

    Encodes at the default bitrate; if the result is over the limit, encodes
    once more at the fallback bitrate into a separate file. If that is still
    too large the run fails with SizeLimitExceededError.
    """

    def __init__(
        self,
        normalizer: AudioNormalizer,
        size_limit_bytes: int = 26214400,
        default_bitrate_kbps: int = 24,
        fallback_bitrate_kbps: int = 16,
    ):
        self.normalizer = normalizer
        self.size_limit_bytes = size_limit_bytes
        self.default_bitrate_kbps = default_bitrate_kbps
        self.fallback_bitrate_kbps = fallback_bitrate_kbps

    async def enforce(self, video_path: str, output_dir: Optional[str] = None) -> AudioPayload:
        output_dir = output_dir or os.path.dirname(video_path)

        logger.info("2/5 Extracting audio (ffmpeg)...")
        payload = await self.normalizer.normalize(
            video_path, os.path.join(output_dir, "audio.ogg"), self.default_bitrate_kbps
        )
        if payload.size_bytes <= self.size_limit_bytes:
            return payload

        logger.warning(
            f"Audio exceeds API size limit ({payload.size_bytes} > {self.size_limit_bytes} bytes). "
            f"Recompressing at {self.fallback_bitrate_kbps} kbps..."
        )
        payload = await self.normalizer.normalize(
            video_path, os.path.join(output_dir, "audio.recompressed.ogg"), self.fallback_bitrate_kbps
        )
        if payload.size_bytes <= self.size_limit_bytes:
            return payload

        raise SizeLimitExceededError(payload.size_bytes, self.size_limit_bytes)
