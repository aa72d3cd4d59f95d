from __future__ import annotations

import os
import shlex
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

EMPTY_POLICIES = {"sentinel", "empty", "error"}


def _default_work_dir() -> str:
    candidate = Path("/app")
    return str(candidate) if candidate.is_dir() else ""


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _getenv_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


def _getenv_path(name: str, default: Path) -> str:
    raw = os.getenv(name, "").strip()
    if not raw:
        return str(default)
    return str(Path(raw).expanduser())


@dataclass(frozen=True)
class TranscribeConfig:
    TRANSCRIBE_EXECUTABLE: str
    TRANSCRIBE_INTERPRETER: str
    TRANSCRIBE_WORK_DIR: str
    TRANSCRIBE_UPLOAD_DIR: str
    TRANSCRIBE_OUTPUT_DIR: str
    TRANSCRIBE_MAX_UPLOAD_BYTES: int
    TRANSCRIBE_TIMEOUT_SECONDS: float
    TRANSCRIBE_KILL_GRACE_SECONDS: float
    TRANSCRIBE_CAPTURE_MAX_CHARS: int
    TRANSCRIBE_ERROR_DETAIL_MAX_CHARS: int
    TRANSCRIBE_UPLOAD_CHUNK_BYTES: int
    TRANSCRIBE_FILE_PREFIX: str
    TRANSCRIBE_DEFAULT_EXTENSION: str
    TRANSCRIBE_EMPTY_POLICY: str
    TRANSCRIBE_EMPTY_MESSAGE: str
    TRANSCRIBE_LOG_LEVEL: str

    def upload_dir_path(self) -> Path:
        return Path(self.TRANSCRIBE_UPLOAD_DIR).resolve()

    def output_dir_path(self) -> Path:
        return Path(self.TRANSCRIBE_OUTPUT_DIR).resolve()

    def work_dir_path(self) -> Optional[Path]:
        if not self.TRANSCRIBE_WORK_DIR:
            return None
        return Path(self.TRANSCRIBE_WORK_DIR).resolve()

    def interpreter_argv(self) -> list[str]:
        return shlex.split(self.TRANSCRIBE_INTERPRETER)


def validate_config(cfg: TranscribeConfig) -> TranscribeConfig:
    if cfg.TRANSCRIBE_MAX_UPLOAD_BYTES <= 0:
        raise ValueError("TRANSCRIBE_MAX_UPLOAD_BYTES must be positive")
    if cfg.TRANSCRIBE_TIMEOUT_SECONDS <= 0:
        raise ValueError("TRANSCRIBE_TIMEOUT_SECONDS must be positive")
    if cfg.TRANSCRIBE_KILL_GRACE_SECONDS < 0:
        raise ValueError("TRANSCRIBE_KILL_GRACE_SECONDS must not be negative")
    if cfg.TRANSCRIBE_CAPTURE_MAX_CHARS <= 0:
        raise ValueError("TRANSCRIBE_CAPTURE_MAX_CHARS must be positive")
    if cfg.TRANSCRIBE_UPLOAD_CHUNK_BYTES <= 0:
        raise ValueError("TRANSCRIBE_UPLOAD_CHUNK_BYTES must be positive")
    if cfg.TRANSCRIBE_EMPTY_POLICY not in EMPTY_POLICIES:
        raise ValueError(
            f"TRANSCRIBE_EMPTY_POLICY must be one of {sorted(EMPTY_POLICIES)}, "
            f"got {cfg.TRANSCRIBE_EMPTY_POLICY!r}"
        )
    if not cfg.TRANSCRIBE_DEFAULT_EXTENSION.startswith("."):
        raise ValueError("TRANSCRIBE_DEFAULT_EXTENSION must start with '.'")
    return cfg


def load_config() -> TranscribeConfig:
    system_tmp = Path(tempfile.gettempdir())

    return validate_config(
        TranscribeConfig(
            TRANSCRIBE_EXECUTABLE=_getenv_str("TRANSCRIBE_EXECUTABLE", "/app/whisper-wrapper.sh"),
            TRANSCRIBE_INTERPRETER=_getenv_str("TRANSCRIBE_INTERPRETER", ""),
            TRANSCRIBE_WORK_DIR=_getenv_str("TRANSCRIBE_WORK_DIR", _default_work_dir()),
            TRANSCRIBE_UPLOAD_DIR=_getenv_path(
                "TRANSCRIBE_UPLOAD_DIR", system_tmp / "clmtranscribe_uploads"
            ),
            TRANSCRIBE_OUTPUT_DIR=_getenv_path("TRANSCRIBE_OUTPUT_DIR", system_tmp),
            TRANSCRIBE_MAX_UPLOAD_BYTES=_getenv_int("TRANSCRIBE_MAX_UPLOAD_BYTES", 25 * 1024 * 1024),
            TRANSCRIBE_TIMEOUT_SECONDS=_getenv_float("TRANSCRIBE_TIMEOUT_SECONDS", 300.0),
            TRANSCRIBE_KILL_GRACE_SECONDS=_getenv_float("TRANSCRIBE_KILL_GRACE_SECONDS", 5.0),
            TRANSCRIBE_CAPTURE_MAX_CHARS=_getenv_int("TRANSCRIBE_CAPTURE_MAX_CHARS", 65536),
            TRANSCRIBE_ERROR_DETAIL_MAX_CHARS=_getenv_int("TRANSCRIBE_ERROR_DETAIL_MAX_CHARS", 2000),
            TRANSCRIBE_UPLOAD_CHUNK_BYTES=_getenv_int("TRANSCRIBE_UPLOAD_CHUNK_BYTES", 1024 * 1024),
            TRANSCRIBE_FILE_PREFIX=_getenv_str("TRANSCRIBE_FILE_PREFIX", "audio-"),
            TRANSCRIBE_DEFAULT_EXTENSION=_getenv_str("TRANSCRIBE_DEFAULT_EXTENSION", ".mp3").lower(),
            TRANSCRIBE_EMPTY_POLICY=_getenv_str("TRANSCRIBE_EMPTY_POLICY", "sentinel").strip().lower(),
            TRANSCRIBE_EMPTY_MESSAGE=_getenv_str(
                "TRANSCRIBE_EMPTY_MESSAGE", "No speech detected in the audio file."
            ),
            TRANSCRIBE_LOG_LEVEL=_getenv_str("TRANSCRIBE_LOG_LEVEL", "INFO"),
        )
    )
