from pathlib import Path

import pytest

from clmtranscribe.internal_core.config import load_config

_ENV_NAMES = [
    "TRANSCRIBE_EXECUTABLE",
    "TRANSCRIBE_INTERPRETER",
    "TRANSCRIBE_WORK_DIR",
    "TRANSCRIBE_UPLOAD_DIR",
    "TRANSCRIBE_OUTPUT_DIR",
    "TRANSCRIBE_MAX_UPLOAD_BYTES",
    "TRANSCRIBE_TIMEOUT_SECONDS",
    "TRANSCRIBE_KILL_GRACE_SECONDS",
    "TRANSCRIBE_CAPTURE_MAX_CHARS",
    "TRANSCRIBE_ERROR_DETAIL_MAX_CHARS",
    "TRANSCRIBE_UPLOAD_CHUNK_BYTES",
    "TRANSCRIBE_FILE_PREFIX",
    "TRANSCRIBE_DEFAULT_EXTENSION",
    "TRANSCRIBE_EMPTY_POLICY",
    "TRANSCRIBE_EMPTY_MESSAGE",
    "TRANSCRIBE_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def test_load_config_defaults() -> None:
    cfg = load_config()
    assert cfg.TRANSCRIBE_EXECUTABLE == "/app/whisper-wrapper.sh"
    assert cfg.TRANSCRIBE_MAX_UPLOAD_BYTES == 25 * 1024 * 1024
    assert cfg.TRANSCRIBE_TIMEOUT_SECONDS == 300.0
    assert cfg.TRANSCRIBE_DEFAULT_EXTENSION == ".mp3"
    assert cfg.TRANSCRIBE_FILE_PREFIX == "audio-"
    assert cfg.TRANSCRIBE_EMPTY_POLICY == "sentinel"
    assert cfg.TRANSCRIBE_EMPTY_MESSAGE == "No speech detected in the audio file."
    assert cfg.interpreter_argv() == []


def test_load_config_reads_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("TRANSCRIBE_EXECUTABLE", "/opt/whisper/run.sh")
    monkeypatch.setenv("TRANSCRIBE_INTERPRETER", "/bin/bash -e")
    monkeypatch.setenv("TRANSCRIBE_WORK_DIR", str(tmp_path))
    monkeypatch.setenv("TRANSCRIBE_UPLOAD_DIR", str(tmp_path / "in"))
    monkeypatch.setenv("TRANSCRIBE_OUTPUT_DIR", str(tmp_path / "out"))
    monkeypatch.setenv("TRANSCRIBE_MAX_UPLOAD_BYTES", "1048576")
    monkeypatch.setenv("TRANSCRIBE_TIMEOUT_SECONDS", "12.5")
    monkeypatch.setenv("TRANSCRIBE_EMPTY_POLICY", "ERROR")
    monkeypatch.setenv("TRANSCRIBE_DEFAULT_EXTENSION", ".WAV")

    cfg = load_config()

    assert cfg.TRANSCRIBE_EXECUTABLE == "/opt/whisper/run.sh"
    assert cfg.interpreter_argv() == ["/bin/bash", "-e"]
    assert cfg.work_dir_path() == tmp_path.resolve()
    assert cfg.upload_dir_path() == (tmp_path / "in").resolve()
    assert cfg.output_dir_path() == (tmp_path / "out").resolve()
    assert cfg.TRANSCRIBE_MAX_UPLOAD_BYTES == 1048576
    assert cfg.TRANSCRIBE_TIMEOUT_SECONDS == 12.5
    assert cfg.TRANSCRIBE_EMPTY_POLICY == "error"
    assert cfg.TRANSCRIBE_DEFAULT_EXTENSION == ".wav"


def test_empty_work_dir_inherits_cwd(monkeypatch) -> None:
    monkeypatch.setenv("TRANSCRIBE_WORK_DIR", "")
    assert load_config().work_dir_path() is None


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("TRANSCRIBE_MAX_UPLOAD_BYTES", "lots"),
        ("TRANSCRIBE_MAX_UPLOAD_BYTES", "0"),
        ("TRANSCRIBE_TIMEOUT_SECONDS", "-1"),
        ("TRANSCRIBE_EMPTY_POLICY", "ignore"),
        ("TRANSCRIBE_DEFAULT_EXTENSION", "mp3"),
    ],
)
def test_load_config_rejects_invalid_values(monkeypatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError):
        load_config()
