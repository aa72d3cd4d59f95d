from __future__ import annotations

from typing import Literal

JobState = Literal[
    "not_started",
    "running",
    "exited",
    "killed_timeout",
    "killed_cancelled",
    "launch_failed",
]

TERMINAL_JOB_STATES: frozenset[str] = frozenset(
    {"exited", "killed_timeout", "killed_cancelled", "launch_failed"}
)

TranscriptionErrorCode = Literal[
    "UPLOAD_REJECTED",
    "LAUNCH_FAILED",
    "TIMEOUT",
    "PROCESS_FAILED",
    "OUTPUT_MISSING",
    "OUTPUT_EMPTY",
    "CANCELLED",
    "INTERNAL_ERROR",
]

EmptyTranscriptPolicy = Literal["sentinel", "empty", "error"]
