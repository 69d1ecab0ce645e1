"""
Media acquisition: fetch remote videos with yt-dlp or copy local files into
the run's scratch directory.
"""

import asyncio
import logging
import os
import re
import shutil
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import yt_dlp

from pipeline.errors import AcquisitionError

logger = logging.getLogger(__name__)

# Downloads and copies land as video.<ext> inside the scratch directory
MEDIA_BASENAME = "video"

_URL_RE = re.compile(r"^https?://", re.IGNORECASE)


class SourceKind(Enum):
    REMOTE = "remote"
    LOCAL = "local"


@dataclass(frozen=True)
class MediaSource:
    """A validated media locator."""
    locator: str
    kind: SourceKind

    @classmethod
    def from_input(cls, value: str) -> "MediaSource":
        value = value.strip()
        kind = SourceKind.REMOTE if _URL_RE.match(value) else SourceKind.LOCAL
        return cls(locator=value, kind=kind)


@dataclass
class WorkItem:
    """Media copied into a scratch directory for one pipeline run."""
    source_path: str
    title: str
    output_name: str
    scratch_dir: str


class MediaAcquirer:
    """Obtains a local media file for a MediaSource."""

    def __init__(self, quiet: bool = True):
        self.quiet = quiet

    def _ydl_options(self, **extra) -> dict:
        opts = {
            "quiet": self.quiet,
            "no_warnings": self.quiet,
            "noprogress": True,
            "noplaylist": True,
        }
        opts.update(extra)
        return opts

    async def acquire(self, source: MediaSource, scratch_dir: str) -> str:
        """
        Place the source media inside scratch_dir.

        Args:
            source: Remote URL or local path to fetch
            scratch_dir: Per-run directory, created if missing

        Returns:
            Path of the media file inside scratch_dir
        """
        os.makedirs(scratch_dir, exist_ok=True)
        if source.kind is SourceKind.REMOTE:
            return await self._download(source.locator, scratch_dir)
        return self._copy_local(source.locator, scratch_dir)

    async def _download(self, url: str, scratch_dir: str) -> str:
        logger.info("1/5 Downloading video (yt-dlp)...")
        opts = self._ydl_options(
            outtmpl=os.path.join(scratch_dir, f"{MEDIA_BASENAME}.%(ext)s"),
            restrictfilenames=True,
        )

        def _run():
            with yt_dlp.YoutubeDL(opts) as ydl:
                return ydl.download([url])

        loop = asyncio.get_running_loop()
        try:
            retcode = await loop.run_in_executor(None, _run)
        except yt_dlp.utils.DownloadError as e:
            raise AcquisitionError(f"Download failed for {url}: {e}") from e
        if retcode:
            raise AcquisitionError(f"yt-dlp exited with code {retcode} for {url}")

        return self._locate_download(scratch_dir)

    def _locate_download(self, scratch_dir: str) -> str:
        # Partial downloads (.part, .ytdl) are not media
        matches = sorted(
            name for name in os.listdir(scratch_dir)
            if name.startswith(f"{MEDIA_BASENAME}.")
            and not name.endswith((".part", ".ytdl"))
        )
        if not matches:
            raise AcquisitionError("Failed to identify the downloaded video file.")
        if len(matches) > 1:
            raise AcquisitionError(f"Ambiguous download output, found several files: {matches}")
        return os.path.join(scratch_dir, matches[0])

    def _copy_local(self, path: str, scratch_dir: str) -> str:
        logger.info("1/5 Preparing local video file...")
        absolute = os.path.abspath(os.path.expanduser(path))
        if not os.path.isfile(absolute):
            raise AcquisitionError(f"Local video file not found: {absolute}")

        ext = os.path.splitext(absolute)[1]
        dest = os.path.join(scratch_dir, f"{MEDIA_BASENAME}{ext}")
        try:
            shutil.copyfile(absolute, dest)
        except OSError as e:
            raise AcquisitionError(f"Could not copy {absolute} to {dest}: {e}") from e
        return dest

    async def lookup_title(self, source: MediaSource) -> Optional[str]:
        """Best-effort display title; None when it cannot be determined."""
        if source.kind is SourceKind.LOCAL:
            stem = os.path.splitext(os.path.basename(source.locator))[0]
            return stem or None

        def _run():
            with yt_dlp.YoutubeDL(self._ydl_options(skip_download=True)) as ydl:
                return ydl.extract_info(source.locator, download=False)

        loop = asyncio.get_running_loop()
        try:
            info = await loop.run_in_executor(None, _run)
        except Exception as e:
            logger.warning(f"Could not fetch title for {source.locator}: {e}")
            return None
        title = (info or {}).get("title") or ""
        title = title.strip().splitlines()[0] if title.strip() else ""
        return title or None
