"""
Pytest configuration and fixtures for the transcription pipeline tests.

External tools and services are replaced with in-process fakes so the suite
runs without ffmpeg, network access, or API credentials.
"""

import os
from typing import Dict, List

import pytest

from pipeline.config import PipelineConfig
from pipeline.main import TranscriptionPipeline
from summary.summary_client import Summarizer
from transcription.openai_client import Transcript
from video.downloader import MediaSource, SourceKind
from video.ffmpeg_encoder import AudioPayload


class FakeAcquirer:
    """Writes a dummy media file instead of downloading or copying."""

    def __init__(self, title: str = "talk"):
        self.title = title
        self.acquired: List[MediaSource] = []

    async def lookup_title(self, source: MediaSource):
        return self.title

    async def acquire(self, source: MediaSource, scratch_dir: str) -> str:
        self.acquired.append(source)
        os.makedirs(scratch_dir, exist_ok=True)
        path = os.path.join(scratch_dir, "video.mp4")
        with open(path, "wb") as fh:
            fh.write(b"\x00" * 64)
        return path


class FakeSizeEnforcer:
    def __init__(self):
        self.calls: List[str] = []

    async def enforce(self, video_path: str, output_dir: str = None) -> AudioPayload:
        self.calls.append(video_path)
        path = os.path.join(output_dir or os.path.dirname(video_path), "audio.ogg")
        with open(path, "wb") as fh:
            fh.write(b"\x01" * 32)
        return AudioPayload(path=path, bitrate_kbps=24, size_bytes=32)


class FakeTranscriber:
    def __init__(self, texts: List[str] = None):
        self.texts = list(texts or ["Hello everyone and welcome to the talk."])
        self.calls: List[str] = []

    async def transcribe(self, audio_path: str) -> Transcript:
        self.calls.append(audio_path)
        text = self.texts[min(len(self.calls), len(self.texts)) - 1]
        return Transcript(text=text)


class FakeChatClient:
    """Stands in for SummaryClient; returns scripted replies in order."""

    def __init__(self, replies: List[str] = None, default: str = "- point one\n- point two"):
        self.replies = list(replies or [])
        self.default = default
        self.calls: List[Dict] = []

    async def complete(self, messages, temperature):
        self.calls.append({"messages": messages, "temperature": temperature})
        if self.replies:
            return self.replies.pop(0)
        return self.default


@pytest.fixture
def config(tmp_path) -> PipelineConfig:
    return PipelineConfig(
        api_key="test-key",
        scratch_root=str(tmp_path / "scratch"),
        chunk_threshold=100,
    )


@pytest.fixture
def chat_client() -> FakeChatClient:
    return FakeChatClient()


@pytest.fixture
def fake_pipeline(config, chat_client):
    def _build(**overrides):
        parts = dict(
            acquirer=FakeAcquirer(),
            size_enforcer=FakeSizeEnforcer(),
            transcriber=FakeTranscriber(),
            summarizer=Summarizer(chat_client, chunk_threshold=config.chunk_threshold),
        )
        parts.update(overrides)
        return TranscriptionPipeline(config, **parts)
    return _build


@pytest.fixture
def local_source(tmp_path) -> MediaSource:
    path = tmp_path / "talk.mp4"
    path.write_bytes(b"\x00" * 16)
    return MediaSource(locator=str(path), kind=SourceKind.LOCAL)
