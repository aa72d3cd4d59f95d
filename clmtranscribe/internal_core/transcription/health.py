from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import List, Tuple

from ..config import TranscribeConfig


def executable_available(cfg: TranscribeConfig) -> Tuple[bool, str]:
    bin_path = cfg.TRANSCRIBE_EXECUTABLE
    if not bin_path:
        return False, "missing TRANSCRIBE_EXECUTABLE"
    target = Path(bin_path)
    if not target.is_file():
        return False, f"transcription program not found: {target.name}"

    interpreter = cfg.interpreter_argv()
    if interpreter:
        if shutil.which(interpreter[0]) is None:
            return False, f"interpreter not found: {Path(interpreter[0]).name}"
        if not os.access(target, os.R_OK):
            return False, f"transcription program is not readable: {target.name}"
        return True, ""

    if not os.access(target, os.X_OK):
        return False, f"transcription program is not executable: {target.name}"
    return True, ""


def ensure_directory(path: Path) -> Tuple[bool, str]:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        return False, f"cannot create {path.name or str(path)}: {exc.strerror or exc}"
    if not os.access(path, os.W_OK):
        return False, f"directory is not writable: {path.name or str(path)}"
    return True, ""


def check_health(cfg: TranscribeConfig) -> List[str]:
    problems: List[str] = []
    ok, reason = executable_available(cfg)
    if not ok:
        problems.append(reason)
    for label, directory in (
        ("upload", cfg.upload_dir_path()),
        ("output", cfg.output_dir_path()),
    ):
        ok, reason = ensure_directory(directory)
        if not ok:
            problems.append(f"{label} directory: {reason}")
    return problems
