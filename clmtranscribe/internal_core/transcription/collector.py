from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from ..contracts import EmptyTranscriptPolicy
from .base import TranscriptionError
from .staging import StagedFile
from .supervisor import ProcessOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TranscriptResult:
    transcript: str
    filename: str
    original_filename: str
    file_size: int
    no_speech_detected: bool = False
    duration_sec: float = 0.0


def sanitize_filename_stem(filename: str, default: str = "transcript") -> str:
    raw_stem = Path(str(filename or "").replace("\\", "/")).stem.strip()
    # ASCII only: the name also travels in a latin-1 encoded Content-Disposition header.
    safe = "".join(ch if ((ch.isascii() and ch.isalnum()) or ch in {"_", "-"}) else "_" for ch in raw_stem)
    safe = safe.strip("_")
    return (safe or default)[:64]


def response_filename(original_filename: str) -> str:
    return f"{sanitize_filename_stem(original_filename)}_transcript.txt"


def format_timeout(seconds: float) -> str:
    whole = int(round(seconds))
    if whole >= 60 and whole % 60 == 0:
        minutes = whole // 60
        return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"
    return f"{whole} second" if whole == 1 else f"{whole} seconds"


def redact_paths(
    text: str,
    staged: StagedFile,
    *,
    hidden_files: Sequence[Path] = (),
    hidden_dirs: Sequence[Path] = (),
) -> str:
    """Replace internal file paths in `text` with bare names and drop directory prefixes."""
    out = text or ""
    files = {str(p): p.name for p in (staged.input_path, staged.artifact_path, *hidden_files)}
    for raw in sorted(files, key=len, reverse=True):
        out = out.replace(raw, files[raw])
    directories = {staged.input_path.parent, staged.artifact_path.parent, *hidden_dirs}
    for raw in sorted((str(d) for d in directories), key=len, reverse=True):
        if raw.rstrip(os.sep):
            out = out.replace(raw.rstrip(os.sep) + os.sep, "")
    return out


def _tail(text: str, max_chars: int) -> str:
    text = text.strip()
    if max_chars > 0 and len(text) > max_chars:
        return "…" + text[-max_chars:]
    return text


def _raise_for_outcome(
    outcome: ProcessOutcome,
    staged: StagedFile,
    *,
    timeout_sec: float,
    error_detail_max_chars: int,
    hidden_files: Sequence[Path],
    hidden_dirs: Sequence[Path],
) -> None:
    if outcome.state == "launch_failed":
        raise TranscriptionError(
            "LAUNCH_FAILED",
            f"Transcription program could not be started ({outcome.launch_error}).",
        )
    if outcome.state == "killed_timeout":
        raise TranscriptionError(
            "TIMEOUT",
            f"Transcription timed out after {format_timeout(timeout_sec)}.",
        )
    if outcome.state == "killed_cancelled":
        raise TranscriptionError("CANCELLED", "Transcription was interrupted.")
    if outcome.exit_code != 0:
        diagnostics = redact_paths(
            outcome.stderr.strip() or outcome.stdout.strip(),
            staged,
            hidden_files=hidden_files,
            hidden_dirs=hidden_dirs,
        )
        diagnostics = _tail(diagnostics, error_detail_max_chars)
        message = f"Transcription failed with exit code {outcome.exit_code}"
        raise TranscriptionError(
            "PROCESS_FAILED",
            f"{message}: {diagnostics}" if diagnostics else f"{message}.",
            detail=diagnostics,
        )


def collect_result(
    outcome: ProcessOutcome,
    staged: StagedFile,
    *,
    timeout_sec: float,
    empty_policy: EmptyTranscriptPolicy = "sentinel",
    empty_message: str = "No speech detected in the audio file.",
    error_detail_max_chars: int = 2000,
    hidden_files: Sequence[Path] = (),
    hidden_dirs: Sequence[Path] = (),
) -> TranscriptResult:
    """
    Turn a finished job into a transcript, or raise the matching TranscriptionError.

    A missing artifact after a clean exit is an infrastructure fault. An empty
    one means the program found nothing to transcribe, and `empty_policy`
    decides how that surfaces. `hidden_files` and `hidden_dirs` are redacted from
    process diagnostics along with the staged paths.
    """
    _raise_for_outcome(
        outcome,
        staged,
        timeout_sec=timeout_sec,
        error_detail_max_chars=error_detail_max_chars,
        hidden_files=hidden_files,
        hidden_dirs=hidden_dirs,
    )

    artifact = staged.artifact_path
    if not artifact.is_file():
        logger.error("exit 0 but no transcript at %s", artifact.name)
        raise TranscriptionError(
            "OUTPUT_MISSING",
            "Transcription completed but the output file was not found.",
        )
    try:
        transcript = artifact.read_bytes().decode("utf-8", errors="replace").strip()
    except OSError as exc:
        logger.error("could not read transcript %s: %s", artifact.name, exc)
        raise TranscriptionError(
            "OUTPUT_MISSING",
            "Transcription completed but the output file could not be read.",
        ) from exc

    no_speech = not transcript
    if no_speech:
        if empty_policy == "error":
            raise TranscriptionError("OUTPUT_EMPTY", "Transcription produced an empty transcript.")
        if empty_policy == "sentinel":
            transcript = empty_message

    return TranscriptResult(
        transcript=transcript,
        filename=response_filename(staged.original_filename),
        original_filename=staged.original_filename,
        file_size=staged.size_bytes,
        no_speech_detected=no_speech,
        duration_sec=round(outcome.duration_sec, 3),
    )
