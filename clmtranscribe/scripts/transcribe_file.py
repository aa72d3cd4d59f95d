from __future__ import annotations

import argparse
import mimetypes
import sys
from pathlib import Path

from clmtranscribe.internal_core import load_config
from clmtranscribe.internal_core.transcription import (
    TranscriptionError,
    UploadedAudio,
    transcribe_upload,
)
from clmtranscribe.scripts.serve import configure_logging


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run one local audio file through the transcription pipeline (no HTTP)"
    )
    parser.add_argument("audio_path", help="Audio file to transcribe")
    parser.add_argument(
        "--content-type",
        default="",
        help="Content type to declare (default: guessed from the file extension)",
    )
    args = parser.parse_args()

    cfg = load_config()
    configure_logging(cfg.TRANSCRIBE_LOG_LEVEL)

    path = Path(args.audio_path).expanduser()
    if not path.is_file():
        raise SystemExit(f"audio file not found: {path}")

    content_type = args.content_type or mimetypes.guess_type(path.name)[0] or ""
    with open(path, "rb") as stream:
        upload = UploadedAudio(
            stream=stream,
            filename=path.name,
            content_type=content_type,
            size_bytes=path.stat().st_size,
        )
        try:
            result = transcribe_upload(cfg, upload)
        except TranscriptionError as exc:
            print(f"{exc.code}: {exc.message}", file=sys.stderr)
            raise SystemExit(1) from exc

    print(f"# {result.filename} ({result.duration_sec:.1f}s)", file=sys.stderr)
    print(result.transcript)


if __name__ == "__main__":
    main()
