"""
HTTP boundary for the transcription service.

Design intent:
- Expose a thin endpoint that validates, delegates, and maps failures to status codes.
- Keep subprocess and filesystem handling out of route functions.
"""
