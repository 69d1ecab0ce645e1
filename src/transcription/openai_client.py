"""
Client for a hosted, OpenAI-compatible speech-to-text endpoint.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import aiohttp

from pipeline.errors import EmptyTranscriptionError, TranscriptionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Timeouts, DNS failures and connection resets
CONNECTIVITY_ERRORS = (aiohttp.ClientConnectionError, asyncio.TimeoutError)


@dataclass
class Transcript:
    """Plain transcript text; never empty once returned by a client."""
    text: str


class ConnectivityRetryPolicy:
    """
    Retries an operation only when it fails with a connectivity error.

    Attempt n (1-based) that fails is followed by a sleep of n * base_delay
    seconds. Any other exception propagates on first occurrence.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self._sleep = sleep

    @staticmethod
    def is_retryable(exc: BaseException) -> bool:
        return isinstance(exc, CONNECTIVITY_ERRORS)

    def delay_for(self, attempt: int) -> float:
        return attempt * self.base_delay

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except CONNECTIVITY_ERRORS as e:
                if attempt >= self.max_attempts:
                    logger.error(f"Giving up after {attempt} attempt(s): {e!r}")
                    raise
                wait = self.delay_for(attempt)
                logger.warning(f"Connection problem on attempt {attempt}/{self.max_attempts}: {e!r}. Retrying in {wait:.1f}s")
                await self._sleep(wait)


class TranscriptionClient:
    """Uploads an audio payload and returns its transcript."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "whisper-1",
        timeout: float = 600.0,
        retry_policy: Optional[ConnectivityRetryPolicy] = None,
    ):
        """
        Initialize the transcription client.

        Args:
            api_key: Bearer credential for the service
            base_url: Base URL of the OpenAI-compatible API
            model: Transcription model name
            timeout: Total request timeout in seconds
            retry_policy: Connectivity retry policy; None sends a single attempt
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.retry_policy = retry_policy or ConnectivityRetryPolicy(max_attempts=1)

    async def transcribe(self, audio_path: str) -> Transcript:
        logger.info("3/5 Transcription (OpenAI Whisper)...")
        try:
            result = await self.retry_policy.run(lambda: self._request(audio_path))
        except CONNECTIVITY_ERRORS as e:
            raise TranscriptionError(f"Could not reach the transcription service: {e!r}") from e
        except aiohttp.ClientError as e:
            raise TranscriptionError(
                f"Transcription request failed: {e}. Check that the input is a supported audio/video format."
            ) from e

        if not isinstance(result, dict) or not isinstance(result.get("text") or "", str):
            raise TranscriptionError(f"Transcription service returned unusable content: {str(result)[:200]}")
        text = (result.get("text") or "").strip()
        if not text:
            raise EmptyTranscriptionError("Received empty transcription.")
        logger.info(f"Transcription received, length={len(text)}")
        return Transcript(text=text)

    async def _request(self, audio_path: str) -> Dict[str, Any]:
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

        async with aiohttp.ClientSession(timeout=timeout) as client:
            with open(audio_path, "rb") as fh:
                form = aiohttp.FormData()
                form.add_field("model", self.model)
                form.add_field("temperature", "0")
                form.add_field("response_format", "json")
                form.add_field(
                    "file", fh,
                    filename=os.path.basename(audio_path),
                    content_type="audio/ogg",
                )
                async with client.post(
                    f"{self.base_url}/audio/transcriptions",
                    data=form,
                    headers=headers,
                ) as response:
                    if response.status >= 400:
                        body = await response.text()
                        logger.error(f"HTTP error from transcription API: {response.status} - {body}")
                        hint = " The audio is too large, consider a shorter clip." if response.status == 413 else \
                            " Check that the input is a supported audio/video format."
                        raise TranscriptionError(
                            f"Transcription service returned HTTP {response.status}: {body.strip()[:500]}.{hint}"
                        )
                    try:
                        return await response.json(content_type=None)
                    except ValueError as e:
                        body = await response.text()
                        raise TranscriptionError(
                            f"Transcription service returned unusable content: {body.strip()[:200]!r}"
                        ) from e
