#!/usr/bin/env python3
"""CLI: Run the Skribe API server."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Ensure the package is importable when running as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

import uvicorn

from skribe import config


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the Skribe API server")
    parser.add_argument("--host", default=config.HOST, help=f"Bind address (default: {config.HOST})")
    parser.add_argument("--port", type=int, default=config.PORT, help=f"Port (default: {config.PORT})")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    args = parser.parse_args()

    uvicorn.run(
        "skribe.api.server:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
