from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Tuple

from ..config import TranscribeConfig
from .base import TranscriptionError
from .collector import TranscriptResult, collect_result
from .staging import StagedFile, StagingArea
from .supervisor import ProcessSupervisor, TranscriptionJob
from .validator import validate_upload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadedAudio:
    stream: BinaryIO
    filename: str
    content_type: str
    size_bytes: Optional[int]


def child_env(cfg: TranscribeConfig, env: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    env_out = dict(os.environ) if env is None else dict(env)
    env_out["TMPDIR"] = str(cfg.output_dir_path())
    return env_out


def redaction_targets(cfg: TranscribeConfig) -> Tuple[List[Path], List[Path]]:
    """Paths of the deployment that must not show up in client-facing diagnostics."""
    files: List[Path] = []
    if cfg.TRANSCRIBE_EXECUTABLE:
        executable = Path(cfg.TRANSCRIBE_EXECUTABLE)
        files.extend([executable, executable.resolve()])
    files.extend(Path(arg) for arg in cfg.interpreter_argv()[:1])
    dirs: List[Path] = [cfg.upload_dir_path(), cfg.output_dir_path()]
    work_dir = cfg.work_dir_path()
    if work_dir is not None:
        dirs.extend([Path(cfg.TRANSCRIBE_WORK_DIR), work_dir])
    return files, dirs


def build_job(cfg: TranscribeConfig, staged: StagedFile) -> TranscriptionJob:
    command = [
        *cfg.interpreter_argv(),
        cfg.TRANSCRIBE_EXECUTABLE,
        str(staged.input_path.resolve()),
    ]
    return TranscriptionJob(
        input_path=staged.input_path,
        artifact_path=staged.artifact_path,
        command=tuple(command),
        timeout_sec=cfg.TRANSCRIBE_TIMEOUT_SECONDS,
        work_dir=cfg.work_dir_path(),
        env=child_env(cfg),
    )


def transcribe_upload(
    cfg: TranscribeConfig,
    upload: UploadedAudio,
    *,
    cancel_event: Optional[threading.Event] = None,
    supervisor: Optional[ProcessSupervisor] = None,
) -> TranscriptResult:
    verdict = validate_upload(
        size_bytes=upload.size_bytes,
        content_type=upload.content_type,
        max_bytes=cfg.TRANSCRIBE_MAX_UPLOAD_BYTES,
    )
    if not verdict.accepted:
        logger.warning("rejected upload %r: %s", upload.filename, verdict.reason)
        raise TranscriptionError("UPLOAD_REJECTED", verdict.reason)

    supervisor = supervisor or ProcessSupervisor.from_config(cfg)
    staging = StagingArea.from_config(cfg)
    try:
        staged = staging.stage(upload.stream, upload.filename)
        if staged.size_bytes > cfg.TRANSCRIBE_MAX_UPLOAD_BYTES:
            # Declared size lied; never hand an oversized file to the program.
            raise TranscriptionError(
                "UPLOAD_REJECTED",
                validate_upload(
                    size_bytes=staged.size_bytes,
                    content_type=upload.content_type,
                    max_bytes=cfg.TRANSCRIBE_MAX_UPLOAD_BYTES,
                ).reason,
            )
        if cancel_event is not None and cancel_event.is_set():
            raise TranscriptionError("CANCELLED", "Transcription was interrupted.")

        outcome = supervisor.run(build_job(cfg, staged), cancel_event=cancel_event)
        hidden_files, hidden_dirs = redaction_targets(cfg)
        return collect_result(
            outcome,
            staged,
            timeout_sec=cfg.TRANSCRIBE_TIMEOUT_SECONDS,
            empty_policy=cfg.TRANSCRIBE_EMPTY_POLICY,
            empty_message=cfg.TRANSCRIBE_EMPTY_MESSAGE,
            error_detail_max_chars=cfg.TRANSCRIBE_ERROR_DETAIL_MAX_CHARS,
            hidden_files=hidden_files,
            hidden_dirs=hidden_dirs,
        )
    finally:
        staging.cleanup()
