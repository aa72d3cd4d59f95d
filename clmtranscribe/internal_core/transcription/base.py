from __future__ import annotations

from ..contracts import TranscriptionErrorCode


class TranscriptionError(RuntimeError):
    def __init__(self, code: TranscriptionErrorCode, message: str, detail: str = ""):
        super().__init__(message)
        self.code = code
        self.message = message
        self.detail = detail

    def __repr__(self) -> str:
        return f"TranscriptionError(code={self.code!r}, message={self.message!r})"
