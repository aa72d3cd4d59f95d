from __future__ import annotations

import logging
import re
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, List

from ..config import TranscribeConfig

logger = logging.getLogger(__name__)

_EXTENSION_RE = re.compile(r"^\.[a-z0-9]{1,10}$")


@dataclass(frozen=True)
class StagedFile:
    input_path: Path
    artifact_path: Path
    original_filename: str
    size_bytes: int

    @property
    def base_name(self) -> str:
        return self.input_path.stem


def derive_extension(filename: str, default: str = ".mp3") -> str:
    # Path().suffix is "" for dotfiles such as ".mp3", which falls back below.
    name = Path(str(filename or "").replace("\\", "/")).name
    suffix = Path(name).suffix.lower()
    if not _EXTENSION_RE.match(suffix):
        return default
    return suffix


def artifact_path_for(input_path: Path, output_dir: Path) -> Path:
    return output_dir / f"{input_path.stem}.txt"


def _safe_unlink(path: Path) -> bool:
    try:
        existed = path.exists()
        path.unlink(missing_ok=True)
        return existed
    except OSError as exc:
        logger.warning("failed to delete temporary file %s: %s", path.name, exc)
        return False


class StagingArea:
    """
    Request-scoped owner of the transient files of one transcription.

    Every path handed out is remembered, and `cleanup()` removes exactly those
    paths and nothing else, so concurrent requests sharing a directory never
    touch each other's files.
    """

    def __init__(
        self,
        upload_dir: Path,
        output_dir: Path,
        *,
        prefix: str = "audio-",
        default_extension: str = ".mp3",
        chunk_size: int = 1024 * 1024,
    ):
        self._upload_dir = upload_dir
        self._output_dir = output_dir
        self._prefix = prefix
        self._default_extension = default_extension
        self._chunk_size = chunk_size
        self._tracked: List[Path] = []

    @classmethod
    def from_config(cls, cfg: TranscribeConfig) -> "StagingArea":
        return cls(
            cfg.upload_dir_path(),
            cfg.output_dir_path(),
            prefix=cfg.TRANSCRIBE_FILE_PREFIX,
            default_extension=cfg.TRANSCRIBE_DEFAULT_EXTENSION,
            chunk_size=cfg.TRANSCRIBE_UPLOAD_CHUNK_BYTES,
        )

    @property
    def tracked_paths(self) -> List[Path]:
        return list(self._tracked)

    def stage(self, source: BinaryIO, original_filename: str) -> StagedFile:
        self._upload_dir.mkdir(parents=True, exist_ok=True)
        self._output_dir.mkdir(parents=True, exist_ok=True)
        extension = derive_extension(original_filename, self._default_extension)
        input_path = self._upload_dir / f"{self._prefix}{uuid.uuid4()}{extension}"
        artifact_path = artifact_path_for(input_path, self._output_dir)

        # Track both before any I/O so a failed copy still gets cleaned up.
        self._tracked.extend([input_path, artifact_path])

        if hasattr(source, "seek"):
            try:
                source.seek(0)
            except (OSError, ValueError):
                pass
        with open(input_path, "xb") as target:
            shutil.copyfileobj(source, target, length=self._chunk_size)
        size = input_path.stat().st_size
        logger.info("staged upload as %s (%d bytes)", input_path.name, size)

        return StagedFile(
            input_path=input_path.resolve(),
            artifact_path=artifact_path,
            original_filename=str(original_filename or ""),
            size_bytes=size,
        )

    def cleanup(self) -> List[Path]:
        removed: List[Path] = []
        for path in self._tracked:
            if _safe_unlink(path):
                removed.append(path)
        if removed:
            logger.debug("cleaned up %d temporary file(s)", len(removed))
        return removed
