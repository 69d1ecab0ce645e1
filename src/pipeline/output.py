"""
Rendering and committing output blocks to the transcript artifact.

The artifact only ever grows: a fresh run creates it and refuses to touch an
existing file, a continue run appends a separator and a new block.
"""

import logging
import os
from dataclasses import dataclass
from typing import List, Optional

from .config import SectionOrder
from .errors import OutputExistsError, OutputWriteError

logger = logging.getLogger(__name__)

TRANSCRIPT_HEADING = "### \U0001F4D6 Transcript"
SUMMARY_HEADING = "### \U0001F4CB Summary"
SEPARATOR = "---\n\n"


@dataclass
class OutputBlock:
    """One run's result as written to the artifact."""
    transcript: str
    summary: str
    title: Optional[str] = None


def render_block(block: OutputBlock, order: SectionOrder = SectionOrder.TRANSCRIPT_FIRST) -> str:
    """Render a block as Markdown sections; the result ends with a newline."""
    sections = {
        "transcript": [TRANSCRIPT_HEADING, block.transcript, ""],
        "summary": [SUMMARY_HEADING, block.summary, ""],
    }
    lines: List[str] = []
    if block.title:
        lines.append(f"## {block.title}")
    for name in order.value.split(","):
        lines.extend(sections[name])
    return "\n".join(lines)


class OutputAssembler:
    """Writes rendered blocks to a destination file."""

    def __init__(self, order: SectionOrder = SectionOrder.TRANSCRIPT_FIRST, encoding: str = "utf-8"):
        self.order = order
        self.encoding = encoding

    def check_destination(self, path: str, continue_mode: bool) -> None:
        """Fail early when a fresh run would collide with an existing file or the directory is missing."""
        parent = os.path.dirname(os.path.abspath(path))
        if not os.path.isdir(parent):
            raise OutputWriteError(f"Output directory {parent} does not exist.")
        if not continue_mode and os.path.exists(path):
            raise OutputExistsError(os.path.basename(path))

    def commit(self, block: OutputBlock, path: str, continue_mode: bool = False) -> str:
        """
        Write block to path.

        Args:
            block: Rendered content for this run
            path: Destination artifact
            continue_mode: Append to an existing file instead of failing

        Returns:
            "created" or "appended"
        """
        rendered = render_block(block, self.order) + "\n"

        if continue_mode and os.path.exists(path):
            try:
                needs_newline = not self._ends_with_newline(path)
                with open(path, "a", encoding=self.encoding) as fh:
                    fh.write(("\n" if needs_newline else "") + SEPARATOR + rendered)
            except OSError as e:
                raise OutputWriteError(f"Could not append to {path}: {e.strerror or e}") from e
            logger.info(f"Appended block to {path}")
            return "appended"

        # Exclusive create: never truncate a file that appeared after the preflight check
        try:
            with open(path, "x", encoding=self.encoding) as fh:
                fh.write(rendered)
        except FileExistsError:
            raise OutputExistsError(os.path.basename(path)) from None
        except OSError as e:
            raise OutputWriteError(f"Could not write {path}: {e.strerror or e}") from e
        logger.info(f"Created {path}")
        return "created"

    @staticmethod
    def _ends_with_newline(path: str) -> bool:
        # An empty file needs no leading newline either
        with open(path, "rb") as fh:
            fh.seek(0, os.SEEK_END)
            if fh.tell() == 0:
                return True
            fh.seek(-1, os.SEEK_END)
            return fh.read(1) == b"\n"
