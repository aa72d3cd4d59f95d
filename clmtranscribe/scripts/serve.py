from __future__ import annotations

import argparse
import logging

import uvicorn

from clmtranscribe.internal_core import load_config


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.strip().upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the clmtranscribe HTTP service")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Bind port (default: 8080)")
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of uvicorn worker processes (default: 1)",
    )
    args = parser.parse_args()

    # Fail fast on bad configuration before binding the port.
    cfg = load_config()
    configure_logging(cfg.TRANSCRIBE_LOG_LEVEL)

    uvicorn.run(
        "clmtranscribe.api.main:app",
        host=args.host,
        port=args.port,
        workers=args.workers,
        log_config=None,
    )


if __name__ == "__main__":
    main()
