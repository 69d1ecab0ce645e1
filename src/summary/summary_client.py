"""
Summary client for LLM-based transcript formatting and summarization.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp

from pipeline.errors import SummarizationError

logger = logging.getLogger(__name__)

BULLET = "- "


@dataclass
class SummaryDocument:
    """Bullet digest exactly as returned by the final summarization call."""
    text: str
    bullets: List[str] = field(default_factory=list)

    @classmethod
    def from_text(cls, text: str) -> "SummaryDocument":
        text = text.strip()
        return cls(text=text, bullets=[line.strip() for line in text.splitlines() if line.strip()])


def chunk_text(text: str, size: int) -> List[str]:
    """Split text into contiguous character windows of at most size chars."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    return [text[i:i + size] for i in range(0, len(text), size)]


def _clean_response(content: str) -> str:
    # Reasoning models prepend their thoughts before </think>
    parts = content.split("</think>")
    if len(parts) > 1:
        content = parts[-1]
    content = content.replace("```markdown", "").replace("```", "")
    return content.strip()


def _extract_content(result: Any) -> str:
    """Assistant text from a chat completion body; raises on an unexpected shape."""
    try:
        choices = result.get("choices") or []
        if not choices:
            return ""
        content = (choices[0].get("message") or {}).get("content") or ""
    except (AttributeError, TypeError, KeyError, IndexError) as e:
        raise SummarizationError(f"Chat completion returned unusable content: {str(result)[:200]}") from e
    if not isinstance(content, str):
        raise SummarizationError(f"Chat completion returned unusable content: {str(content)[:200]}")
    return content


class SummaryClient:
    """Client for an OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        max_tokens: Optional[int] = None,
        timeout: float = 600.0,
    ):
        """
        Initialize the summary client.

        Args:
            api_key: API key for authentication
            base_url: Base URL for the OpenAI-compatible API
            model: Model name used for every call
            max_tokens: Maximum tokens to generate (None leaves it to the server)
            timeout: Total request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout

    async def complete(self, messages: List[Dict[str, str]], temperature: float) -> str:
        """
        Send role-tagged messages and return the assistant reply.

        Raises:
            SummarizationError: transport failure, HTTP error or empty reply
        """
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        logger.debug(f"Sending to LLM: {self.base_url}/chat/completions ({len(messages)} messages)")
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as client:
                async with client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers=headers,
                ) as response:
                    response.raise_for_status()
                    try:
                        result = await response.json(content_type=None)
                    except ValueError as e:
                        body = await response.text()
                        raise SummarizationError(
                            f"Chat completion returned unusable content: {body.strip()[:200]!r}"
                        ) from e
        except aiohttp.ClientResponseError as e:
            logger.error(f"HTTP error from LLM API: {e.status} - {e.message}")
            raise SummarizationError(f"Chat completion failed with HTTP {e.status}: {e.message}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Error calling LLM API: {e!r}")
            raise SummarizationError(f"Chat completion request failed: {e!r}") from e

        content = _extract_content(result)
        content = _clean_response(content)
        if not content:
            raise SummarizationError("Chat completion returned an empty response")
        logger.debug(f"LLM response received, length={len(content)}")
        return content


class Summarizer:
    """
    Length-robust bullet summaries.

    Text up to chunk_threshold characters is summarized in one call. Longer
    text is cut into chunk_threshold-sized pieces, each summarized on its own,
    and the partial summaries are merged by a final call.
    """

    def __init__(self, client: SummaryClient, chunk_threshold: int = 15000, temperature: float = 0.3):
        self.client = client
        self.chunk_threshold = chunk_threshold
        self.temperature = temperature

    async def summarize(self, text: str, language_directive: str = "in Polish") -> SummaryDocument:
        logger.info("4/5 Summarizing...")
        if len(text) <= self.chunk_threshold:
            content = await self.client.complete(
                [
                    {"role": "system", "content": f"You are a helpful assistant creating concise summaries {language_directive} as a bullet list. Return only bullets starting with '{BULLET}', with no preface or conclusion."},
                    {"role": "user", "content": f"List the most important points from the transcript as a bullet list (each bullet starts with '{BULLET}'):\n\n{text}"},
                ],
                temperature=self.temperature,
            )
            return SummaryDocument.from_text(content)

        chunks = chunk_text(text, self.chunk_threshold)
        logger.info(f"Transcript has {len(text)} chars, summarizing in {len(chunks)} parts")
        partials = []
        for i, chunk in enumerate(chunks, start=1):
            partial = await self.client.complete(
                [
                    {"role": "system", "content": f"Summarize content {language_directive} as a bullet list. Return only bullets starting with '{BULLET}'."},
                    {"role": "user", "content": f"Summarize part {i}/{len(chunks)} as a bullet list (each bullet starts with '{BULLET}'):\n\n{chunk}"},
                ],
                temperature=self.temperature,
            )
            partials.append(partial.strip())

        merged = await self.client.complete(
            [
                {"role": "system", "content": f"Combine the partial summaries {language_directive} into one concise, logically ordered bullet list. Deduplicate. Return only bullets, each line starting with '{BULLET}'."},
                {"role": "user", "content": "\n\n".join(partials)},
            ],
            temperature=self.temperature,
        )
        return SummaryDocument.from_text(merged)


class TranscriptFormatter:
    """Reflows raw transcript text into paragraphs without changing wording."""

    def __init__(self, client: SummaryClient, chunk_threshold: int = 15000, temperature: float = 0.0):
        self.client = client
        self.chunk_threshold = chunk_threshold
        self.temperature = temperature

    async def format(self, text: str) -> str:
        parts = []
        for chunk in chunk_text(text, self.chunk_threshold):
            formatted = await self.client.complete(
                [
                    {"role": "system", "content": "You format speech-to-text transcripts. Split the text into readable paragraphs separated by blank lines. Do not add, remove, translate or reword anything. Return only the formatted text."},
                    {"role": "user", "content": chunk},
                ],
                temperature=self.temperature,
            )
            parts.append(formatted.strip())
        return "\n\n".join(parts)
