"""
Media-to-text pipeline controller and command line entry point.

Stages run strictly in sequence for a single item:
acquire -> extract audio under the size ceiling -> transcribe -> summarize
-> commit the output block.
"""

import argparse
import asyncio
import logging
import os
import re
import sys
import time
import unicodedata
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from summary.summary_client import SummaryClient, SummaryDocument, Summarizer, TranscriptFormatter
from transcription.openai_client import ConnectivityRetryPolicy, Transcript, TranscriptionClient
from transcription.whisper_client import WhisperClient
from video.downloader import MediaAcquirer, MediaSource, SourceKind, WorkItem
from video.ffmpeg_encoder import AudioNormalizer, AudioPayload, SizeEnforcer

from .batch import BatchScheduler
from .config import PipelineConfig, SectionOrder
from .errors import TranscriptorError
from .output import OutputAssembler, OutputBlock

logger = logging.getLogger(__name__)


def slugify(value: str, max_length: int = 80) -> str:
    """Filesystem-safe name derived from a title."""
    normalized = unicodedata.normalize("NFKD", str(value))
    ascii_only = "".join(ch for ch in normalized if not unicodedata.combining(ch))
    slug = re.sub(r"[^a-zA-Z0-9._-]+", "-", ascii_only)
    slug = re.sub(r"-+", "-", slug)
    slug = re.sub(r"^[-.]+|[-.]+$", "", slug)
    return slug[:max_length] or f"job-{int(time.time() * 1000)}"


def make_scratch_dir(root: str, title: str) -> str:
    """Create a unique per-run directory under root; it is kept after the run."""
    path = os.path.join(root, f"{slugify(title)}-{int(time.time() * 1000)}")
    os.makedirs(path, exist_ok=True)
    return path


def fallback_title() -> str:
    return f"Transcription {datetime.now().isoformat(timespec='seconds')}"


@dataclass
class PipelineResult:
    """Everything a finished run produced."""
    output_path: str
    outcome: str  # created, appended
    work_item: WorkItem
    audio: AudioPayload
    transcript: Transcript
    summary: SummaryDocument


class TranscriptionPipeline:
    """Runs one media source through every stage and writes the result."""

    def __init__(
        self,
        config: PipelineConfig,
        acquirer: Optional[MediaAcquirer] = None,
        size_enforcer: Optional[SizeEnforcer] = None,
        transcriber=None,
        summarizer: Optional[Summarizer] = None,
        formatter: Optional[TranscriptFormatter] = None,
        assembler: Optional[OutputAssembler] = None,
    ):
        self.config = config
        self.acquirer = acquirer or MediaAcquirer()
        self.size_enforcer = size_enforcer or SizeEnforcer(
            AudioNormalizer(audio_sample_rate=config.audio_sample_rate),
            size_limit_bytes=config.size_limit_bytes,
            default_bitrate_kbps=config.default_bitrate_kbps,
            fallback_bitrate_kbps=config.fallback_bitrate_kbps,
        )
        # None means: pick per source kind at run time
        self.transcriber = transcriber

        chat_client = SummaryClient(
            api_key=config.api_key,
            base_url=config.api_base_url,
            model=config.summary_model,
            timeout=config.request_timeout,
        )
        self.summarizer = summarizer or Summarizer(
            chat_client,
            chunk_threshold=config.chunk_threshold,
            temperature=config.summary_temperature,
        )
        if formatter is None and config.format_transcript:
            formatter = TranscriptFormatter(
                chat_client,
                chunk_threshold=config.chunk_threshold,
                temperature=config.format_temperature,
            )
        self.formatter = formatter
        self.assembler = assembler or OutputAssembler(order=config.section_order)
        self._local_whisper = None

    def transcriber_for(self, kind: SourceKind):
        """Local sources retry on connectivity failures, remote ones do not."""
        if self.transcriber is not None:
            return self.transcriber

        if self.config.transcription_backend == "local":
            if self._local_whisper is None:
                self._local_whisper = WhisperClient(
                    model_size=self.config.whisper_model,
                    device=self.config.whisper_device,
                    compute_type=self.config.compute_type,
                )
            return self._local_whisper

        attempts = self.config.transcribe_max_attempts if kind is SourceKind.LOCAL else 1
        return TranscriptionClient(
            api_key=self.config.api_key,
            base_url=self.config.api_base_url,
            model=self.config.transcription_model,
            timeout=self.config.request_timeout,
            retry_policy=ConnectivityRetryPolicy(
                max_attempts=attempts,
                base_delay=self.config.transcribe_retry_delay,
            ),
        )

    async def run(
        self,
        source: MediaSource,
        output_path: str,
        continue_mode: bool = False,
        title: Optional[str] = None,
    ) -> PipelineResult:
        """
        Process one source and commit its block to output_path.

        Args:
            source: Media to process
            output_path: Destination artifact
            continue_mode: Append instead of failing when output_path exists
            title: Heading for the block; also names the scratch directory

        Raises:
            TranscriptorError: any stage failure; nothing is written in that case
        """
        self.assembler.check_destination(output_path, continue_mode)

        display_title = title or await self.acquirer.lookup_title(source) or fallback_title()
        scratch_dir = make_scratch_dir(self.config.scratch_root, display_title)
        logger.info(f"Working directory: {scratch_dir}")

        video_path = await self.acquirer.acquire(source, scratch_dir)
        work_item = WorkItem(
            source_path=video_path,
            title=display_title,
            output_name=os.path.basename(output_path),
            scratch_dir=scratch_dir,
        )

        audio = await self.size_enforcer.enforce(video_path, scratch_dir)
        logger.info(f"Audio ready: {audio.size_bytes} bytes at {audio.bitrate_kbps} kbps")

        transcript = await self.transcriber_for(source.kind).transcribe(audio.path)

        transcript_text = transcript.text
        if self.formatter is not None:
            logger.info("Formatting transcript into paragraphs...")
            transcript_text = await self.formatter.format(transcript.text)

        summary = await self.summarizer.summarize(transcript.text, self.config.language_directive)

        logger.info(f"5/5 Writing to {os.path.basename(output_path)}...")
        outcome = self.assembler.commit(
            OutputBlock(transcript=transcript_text, summary=summary.text, title=title),
            output_path,
            continue_mode=continue_mode,
        )
        return PipelineResult(
            output_path=output_path,
            outcome=outcome,
            work_item=work_item,
            audio=audio,
            transcript=transcript,
            summary=summary,
        )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="transcriptor",
        description="Transcribe a video (URL or local file) and append a bullet summary to a text file.",
    )
    p.add_argument("source", nargs="?", help="Video URL or path to a local video file.")
    p.add_argument("-c", "--continue", dest="continue_mode", action="store_true",
                   help="Append to the output file instead of failing when it exists.")
    p.add_argument("-t", "--title", help="Heading written above the block.")
    p.add_argument("-o", "--output", help="Output file (default: transcript.txt in the current directory).")
    p.add_argument("--language", help="Summary language, e.g. English (default: SUMMARY_LANGUAGE or Polish).")
    p.add_argument("--summary-first", action="store_true", help="Write the summary section before the transcript.")
    p.add_argument("--format-transcript", action="store_true", help="Reflow the transcript into paragraphs.")
    p.add_argument("--batch", metavar="DIR", help="Process every video in DIR, writing <name>.txt next to each.")
    p.add_argument("-v", "--verbose", action="store_true")
    return p


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if bool(args.source) == bool(args.batch):
        parser.error("give exactly one of SOURCE or --batch DIR")
    if args.batch and (args.continue_mode or args.output):
        parser.error("--continue and --output apply to single-source runs only")

    configure_logging(args.verbose)

    try:
        config = PipelineConfig.from_env().with_overrides(
            summary_language=args.language,
            section_order=SectionOrder.SUMMARY_FIRST if args.summary_first else None,
            format_transcript=True if args.format_transcript else None,
        )
        config.validate()
        pipeline = TranscriptionPipeline(config)

        if args.batch:
            report = asyncio.run(BatchScheduler(pipeline, config.batch_extensions).run(args.batch))
            print(f"Batch finished: {report.succeeded}/{report.attempted} succeeded, {report.skipped} skipped.")
            return 0 if report.failed == 0 else 1

        output_path = os.path.abspath(args.output or config.output_name)
        result = asyncio.run(pipeline.run(
            MediaSource.from_input(args.source),
            output_path,
            continue_mode=args.continue_mode,
            title=args.title,
        ))
    except TranscriptorError as e:
        print(f"Error [{e.stage}]: {e}", file=sys.stderr)
        return 1

    if args.title:
        print(f"Done! Output with title '{args.title}' saved to: {result.output_path}")
    else:
        print(f"Done! Output saved to: {result.output_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
