"""
Sequential batch processing of a directory of recordings.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, List, Sequence, Tuple

from video.downloader import MediaSource, SourceKind

from .config import PipelineConfig
from .errors import AcquisitionError

if TYPE_CHECKING:
    from .main import TranscriptionPipeline

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = PipelineConfig.batch_extensions


@dataclass(frozen=True)
class QueueEntry:
    source: MediaSource
    output_path: str
    already_done: bool

    @property
    def title(self) -> str:
        return os.path.splitext(os.path.basename(self.source.locator))[0]


@dataclass
class BatchReport:
    attempted: int = 0
    succeeded: int = 0
    skipped: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)


def expected_output_path(media_path: str) -> str:
    """<dir>/<stem>.txt next to the media file."""
    return os.path.splitext(media_path)[0] + ".txt"


def discover_candidates(directory: str, extensions: Sequence[str] = DEFAULT_EXTENSIONS) -> List[str]:
    """Media files directly inside directory, sorted by filename."""
    if not os.path.isdir(directory):
        raise AcquisitionError(f"Batch directory not found: {directory}")
    wanted = {ext.lower() for ext in extensions}
    names = sorted(
        name for name in os.listdir(directory)
        if os.path.splitext(name)[1].lower() in wanted
        and os.path.isfile(os.path.join(directory, name))
    )
    return [os.path.join(directory, name) for name in names]


def build_queue(candidates: Iterable[str]) -> List[QueueEntry]:
    queue = []
    for path in candidates:
        output_path = expected_output_path(path)
        queue.append(QueueEntry(
            source=MediaSource(locator=path, kind=SourceKind.LOCAL),
            output_path=output_path,
            already_done=os.path.exists(output_path),
        ))
    return queue


def pending(queue: Iterable[QueueEntry]) -> List[QueueEntry]:
    return [entry for entry in queue if not entry.already_done]


class BatchScheduler:
    """Runs the pipeline over a directory, one item at a time."""

    def __init__(self, pipeline: "TranscriptionPipeline", extensions: Sequence[str] = DEFAULT_EXTENSIONS):
        self.pipeline = pipeline
        self.extensions = tuple(extensions)

    def plan(self, directory: str) -> List[QueueEntry]:
        return build_queue(discover_candidates(os.path.abspath(directory), self.extensions))

    async def run(self, directory: str) -> BatchReport:
        queue = self.plan(directory)
        report = BatchReport()
        report.skipped = len(queue) - len(pending(queue))

        for entry in queue:
            if entry.already_done:
                logger.info(f"Skipping {os.path.basename(entry.source.locator)}: {os.path.basename(entry.output_path)} already exists")

        to_run = pending(queue)
        for index, entry in enumerate(to_run, start=1):
            name = os.path.basename(entry.source.locator)
            logger.info(f"[{index}/{len(to_run)}] Processing {name}")
            report.attempted += 1
            try:
                await self.pipeline.run(entry.source, entry.output_path, continue_mode=False, title=entry.title)
            except Exception as e:
                # One bad recording must not stop the rest of the batch
                logger.error(f"Failed {name}: {e}")
                report.failures.append((entry.source.locator, str(e)))
                continue
            report.succeeded += 1
            logger.info(f"Wrote {entry.output_path}")

        logger.info(f"Batch complete: {report.succeeded}/{report.attempted} succeeded, {report.skipped} skipped")
        return report
