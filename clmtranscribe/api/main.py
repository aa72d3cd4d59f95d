from __future__ import annotations

"""
HTTP surface for the transcription service.

Design intent:
- One upload in, one transcript out; every failure class maps to a distinct status.
- Run the blocking pipeline off the event loop and kill the child if the request is cancelled.
- Never leak internal paths or tracebacks in responses.
"""

import asyncio
import functools
import logging
import threading
import time
from typing import Any, Callable, Literal, TypeVar

from fastapi import FastAPI, File, HTTPException, Query, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field

from clmtranscribe.internal_core import TranscribeConfig, load_config
from clmtranscribe.internal_core.transcription import (
    SUPPORTED_EXTENSIONS,
    TranscriptionError,
    UploadedAudio,
    check_health,
    transcribe_upload,
)
from clmtranscribe.internal_core.transcription.validator import (
    ALLOWED_EXACT_CONTENT_TYPES,
    format_megabytes,
)

T = TypeVar("T")

ERROR_HEADER = "X-Transcription-Error"

_STATUS_BY_CODE = {
    "UPLOAD_REJECTED": 400,
    "TIMEOUT": 408,
    "LAUNCH_FAILED": 500,
    "PROCESS_FAILED": 500,
    "OUTPUT_MISSING": 500,
    "OUTPUT_EMPTY": 500,
    "CANCELLED": 500,
    "INTERNAL_ERROR": 500,
}


class TranscriptResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transcript: str
    filename: str
    original_filename: str = Field(alias="originalFilename")
    file_size: int = Field(alias="fileSize", ge=0)
    no_speech_detected: bool = Field(default=False, alias="noSpeechDetected")
    duration_sec: float = Field(default=0.0, alias="durationSec", ge=0.0)


class HealthResponse(BaseModel):
    status: Literal["healthy", "unavailable"]
    executable: str
    problems: list[str] = Field(default_factory=list)
    timestamp: int


class FormatsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    supported_formats: list[str] = Field(alias="supportedFormats")
    content_types: list[str] = Field(alias="contentTypes")
    max_file_size_bytes: int = Field(alias="maxFileSizeBytes")
    max_file_size: str = Field(alias="maxFileSize")
    timeout_seconds: float = Field(alias="timeoutSeconds")


app = FastAPI(title="clmtranscribe service")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_config() -> TranscribeConfig:
    existing = getattr(app.state, "transcribe_config", None)
    if isinstance(existing, TranscribeConfig):
        return existing
    created = load_config()
    setattr(app.state, "transcribe_config", created)
    return created


def _declared_size(upload: UploadFile) -> int:
    if upload.size is not None:
        return int(upload.size)
    stream = upload.file
    position = stream.tell()
    try:
        stream.seek(0, 2)
        return int(stream.tell())
    finally:
        stream.seek(position)


def _http_error(exc: TranscriptionError) -> HTTPException:
    return HTTPException(
        status_code=_STATUS_BY_CODE.get(exc.code, 500),
        detail=exc.message,
        headers={ERROR_HEADER: exc.code},
    )


async def _run_cancellable(func: Callable[[], T], cancel_event: threading.Event) -> T:
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(None, func)
    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        cancel_event.set()
        # The worker kills the child and removes staged files before it returns.
        await asyncio.wait({future})
        if not future.cancelled() and future.exception() is not None:
            logger.debug("cancelled transcription ended with %r", future.exception())
        raise


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/api/transcribe", response_model=TranscriptResponse)
async def transcribe(
    file: UploadFile = File(...),
    response_format: Literal["json", "text"] = Query(default="json", alias="format"),
) -> Any:
    cfg = _get_config()
    started = time.monotonic()
    upload = UploadedAudio(
        stream=file.file,
        filename=file.filename or "",
        content_type=file.content_type or "",
        size_bytes=_declared_size(file),
    )
    cancel_event = threading.Event()

    try:
        result = await _run_cancellable(
            functools.partial(transcribe_upload, cfg, upload, cancel_event=cancel_event),
            cancel_event,
        )
    except TranscriptionError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:
        logger.exception("unexpected failure transcribing %r", upload.filename)
        raise HTTPException(
            status_code=500,
            detail="Transcription failed due to an internal error.",
            headers={ERROR_HEADER: "INTERNAL_ERROR"},
        ) from exc
    finally:
        await file.close()

    logger.info(
        "transcribed %r (%d bytes) in %.1fs",
        result.original_filename,
        result.file_size,
        time.monotonic() - started,
    )

    if response_format == "text":
        return PlainTextResponse(
            result.transcript,
            headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
        )
    return TranscriptResponse(
        transcript=result.transcript,
        filename=result.filename,
        original_filename=result.original_filename,
        file_size=result.file_size,
        no_speech_detected=result.no_speech_detected,
        duration_sec=result.duration_sec,
    )


@app.get("/api/transcribe/health", response_model=HealthResponse)
async def transcribe_health(response: Response) -> HealthResponse:
    cfg = _get_config()
    problems = check_health(cfg)
    if problems:
        response.status_code = 503
        logger.warning("health check failed: %s", "; ".join(problems))
    return HealthResponse(
        status="unavailable" if problems else "healthy",
        executable=cfg.TRANSCRIBE_EXECUTABLE,
        problems=problems,
        timestamp=int(time.time() * 1000),
    )


@app.get("/api/transcribe/formats", response_model=FormatsResponse)
async def transcribe_formats() -> FormatsResponse:
    cfg = _get_config()
    return FormatsResponse(
        supported_formats=list(SUPPORTED_EXTENSIONS),
        content_types=["audio/*", *sorted(ALLOWED_EXACT_CONTENT_TYPES)],
        max_file_size_bytes=cfg.TRANSCRIBE_MAX_UPLOAD_BYTES,
        max_file_size=format_megabytes(cfg.TRANSCRIBE_MAX_UPLOAD_BYTES),
        timeout_seconds=cfg.TRANSCRIBE_TIMEOUT_SECONDS,
    )
