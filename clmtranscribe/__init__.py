"""
clmtranscribe service package.

Design intent:
- Accept one audio upload per request and hand it to an external transcription program.
- Keep every transient file and child process scoped to the request that created it.
"""
