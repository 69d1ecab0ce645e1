"""FastAPI server exposing an HTTP endpoint to queue transcription runs.

Run with:
uvicorn server.app:app --host 0.0.0.0 --port 8000

The endpoint accepts a JSON payload of the following form:
POST /transcribe
Content-Type: application/json
{
    "source": "https://example.com/video",
    "output": "transcript.txt",       # optional, resolved under OUTPUT_ROOT
    "continue_mode": true,            # optional, append instead of failing
    "title": "Weekly sync"            # optional heading
}

The server responds immediately with 202 and a task_id. Runs execute one at
a time; poll GET /tasks/{task_id} for the outcome.
Only the most recent MAX_TRACKED_TASKS finished tasks are remembered.
"""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field, field_validator

from pipeline.config import PipelineConfig
from pipeline.errors import ConfigurationError, TranscriptorError
from pipeline.main import TranscriptionPipeline
from video.downloader import MediaSource

logger = logging.getLogger(__name__)

app = FastAPI(title="Video Transcriptor API")


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------
class TranscribeRequest(BaseModel):
    source: str = Field(..., description="Video URL or local path on the server")
    output: Optional[str] = Field(None, description="Destination file (default from OUTPUT_FILE)")
    continue_mode: bool = Field(False, description="Append when the destination exists")
    title: Optional[str] = Field(None, description="Heading written above the block")

    @field_validator("source")
    def _strip_source(cls, v):  # noqa: D401
        v = v.strip()
        if not v:
            raise ValueError("source must not be empty")
        return v


class TranscribeResponse(BaseModel):
    task_id: str
    status: str = "queued"


class TaskStatus(BaseModel):
    task_id: str
    status: str  # queued, running, succeeded, failed
    output: Optional[str] = None
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Task registry; runs are serialized so only one pipeline is active at a time
# ---------------------------------------------------------------------------
OUTPUT_ROOT = os.path.realpath(os.getenv("OUTPUT_ROOT", os.getcwd()))
MAX_TRACKED_TASKS = int(os.getenv("MAX_TRACKED_TASKS", "500"))

_tasks: dict[str, TaskStatus] = {}
_background: set[asyncio.Task] = set()
_run_lock = asyncio.Lock()


@lru_cache(maxsize=1)
def get_pipeline() -> TranscriptionPipeline:
    config = PipelineConfig.from_env()
    config.validate()
    return TranscriptionPipeline(config)


def _pipeline_dependency() -> TranscriptionPipeline:
    try:
        return get_pipeline()
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=str(e))


def resolve_output(requested: Optional[str], default_name: str, root: Optional[str] = None) -> str:
    """Destination path under root; anything escaping it is rejected."""
    root = os.path.realpath(root or OUTPUT_ROOT)
    path = os.path.realpath(os.path.join(root, requested or default_name))
    if os.path.commonpath([root, path]) != root or path == root:
        raise HTTPException(status_code=400, detail=f"Output must be a file under {root}")
    return path


def _remember(status: TaskStatus) -> None:
    """Register a task, forgetting the oldest finished ones beyond the cap."""
    finished = [tid for tid, s in _tasks.items() if s.status in ("succeeded", "failed")]
    while finished and len(_tasks) >= MAX_TRACKED_TASKS:
        del _tasks[finished.pop(0)]
    _tasks[status.task_id] = status


async def run_task(
    task_id: str,
    pipeline: TranscriptionPipeline,
    request: TranscribeRequest,
    output_path: str,
) -> None:
    """Run one queued request and record its outcome in the registry."""
    status = _tasks[task_id]
    async with _run_lock:
        status.status = "running"
        logger.info("Task %s running for %s", task_id, request.source)
        try:
            await pipeline.run(
                MediaSource.from_input(request.source),
                output_path,
                continue_mode=request.continue_mode,
                title=request.title,
            )
        except TranscriptorError as exc:
            logger.error("Task %s failed at %s: %s", task_id, exc.stage, exc)
            status.status = "failed"
            status.error = f"[{exc.stage}] {exc}"
            return
        except Exception as exc:  # pragma: no cover
            logger.exception("Task %s crashed", task_id)
            status.status = "failed"
            status.error = str(exc)
            return
    status.status = "succeeded"
    status.output = output_path
    logger.info("Task %s finished", task_id)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.post("/transcribe", response_model=TranscribeResponse, status_code=202)
async def transcribe(
    request: TranscribeRequest,
    pipeline: TranscriptionPipeline = Depends(_pipeline_dependency),
):
    output_path = resolve_output(request.output, pipeline.config.output_name)
    task_id = uuid.uuid4().hex
    _remember(TaskStatus(task_id=task_id, status="queued"))
    task = asyncio.create_task(run_task(task_id, pipeline, request, output_path))
    _background.add(task)
    task.add_done_callback(_background.discard)
    logger.info("Queued task %s", task_id)
    return TranscribeResponse(task_id=task_id)


@app.get("/tasks/{task_id}", response_model=TaskStatus)
async def task_status(task_id: str):
    status = _tasks.get(task_id)
    if status is None:
        raise HTTPException(status_code=404, detail=f"Unknown task {task_id}")
    return status


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
