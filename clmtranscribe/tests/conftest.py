import os
import stat
import sys
from dataclasses import replace
from pathlib import Path
from typing import Callable

import pytest

from clmtranscribe.internal_core.config import TranscribeConfig

posix_only = pytest.mark.skipif(sys.platform.startswith("win"), reason="fake programs are POSIX shell scripts")


def write_program(path: Path, body: str, *, executable: bool = True) -> Path:
    path.write_text("#!/bin/sh\n" + body.strip() + "\n", encoding="utf-8")
    if executable:
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    # An unreaped zombie still answers kill(0) but is no longer running.
    stat_path = Path(f"/proc/{pid}/stat")
    try:
        fields = stat_path.read_text(encoding="utf-8").rsplit(")", 1)[1].split()
    except (OSError, IndexError):
        return True
    return fields[0] not in {"Z", "X"}


def make_config(tmp_path: Path, executable: Path, **overrides) -> TranscribeConfig:
    base = TranscribeConfig(
        TRANSCRIBE_EXECUTABLE=str(executable),
        TRANSCRIBE_INTERPRETER="",
        TRANSCRIBE_WORK_DIR=str(tmp_path),
        TRANSCRIBE_UPLOAD_DIR=str(tmp_path / "uploads"),
        TRANSCRIBE_OUTPUT_DIR=str(tmp_path / "out"),
        TRANSCRIBE_MAX_UPLOAD_BYTES=25 * 1024 * 1024,
        TRANSCRIBE_TIMEOUT_SECONDS=10.0,
        TRANSCRIBE_KILL_GRACE_SECONDS=2.0,
        TRANSCRIBE_CAPTURE_MAX_CHARS=65536,
        TRANSCRIBE_ERROR_DETAIL_MAX_CHARS=2000,
        TRANSCRIBE_UPLOAD_CHUNK_BYTES=64 * 1024,
        TRANSCRIBE_FILE_PREFIX="audio-",
        TRANSCRIBE_DEFAULT_EXTENSION=".mp3",
        TRANSCRIBE_EMPTY_POLICY="sentinel",
        TRANSCRIBE_EMPTY_MESSAGE="No speech detected in the audio file.",
        TRANSCRIBE_LOG_LEVEL="INFO",
    )
    return replace(base, **overrides)


# Writes "hello world" next to where the service expects it and records the argument it got.
HELLO_PROGRAM = """
base=$(basename "$1")
printf '%s\\n' "$1" > "$RECORD_FILE"
printf 'hello world\\n' > "$TMPDIR/${base%.*}.txt"
"""


@pytest.fixture
def program_factory(tmp_path: Path) -> Callable[..., Path]:
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()

    def _make(body: str, name: str = "wrapper.sh", *, executable: bool = True) -> Path:
        return write_program(bin_dir / name, body, executable=executable)

    return _make


@pytest.fixture
def record_file(tmp_path: Path, monkeypatch) -> Path:
    path = tmp_path / "record.txt"
    monkeypatch.setenv("RECORD_FILE", str(path))
    return path
