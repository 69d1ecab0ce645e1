"""
Video Transcription Pipeline Module

This module orchestrates the media-to-text pipeline that:
1. Downloads a remote video or copies a local one into a scratch directory
2. Extracts mono 16 kHz Opus audio under the upload size ceiling
3. Transcribes the audio with a hosted (or local) Whisper model
4. Summarizes the transcript into a bullet list, chunking long text
5. Writes or appends the transcript and summary to a text file
"""

__version__ = "1.0.0"
