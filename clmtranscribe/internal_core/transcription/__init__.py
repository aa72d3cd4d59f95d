from __future__ import annotations

from .base import TranscriptionError
from .collector import TranscriptResult, collect_result, response_filename
from .controller import UploadedAudio, build_job, redaction_targets, transcribe_upload
from .health import check_health, executable_available
from .staging import StagedFile, StagingArea, artifact_path_for, derive_extension
from .supervisor import ProcessOutcome, ProcessSupervisor, TranscriptionJob, kill_job
from .validator import SUPPORTED_EXTENSIONS, UploadVerdict, validate_upload

__all__ = [
    "TranscriptionError",
    "TranscriptResult",
    "collect_result",
    "response_filename",
    "UploadedAudio",
    "build_job",
    "redaction_targets",
    "transcribe_upload",
    "check_health",
    "executable_available",
    "StagedFile",
    "StagingArea",
    "artifact_path_for",
    "derive_extension",
    "ProcessOutcome",
    "ProcessSupervisor",
    "TranscriptionJob",
    "kill_job",
    "SUPPORTED_EXTENSIONS",
    "UploadVerdict",
    "validate_upload",
]
