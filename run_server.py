#!/usr/bin/env python3
"""
Run the swap feed API.

Usage:
    python run_server.py
    python run_server.py --host 0.0.0.0 --port 8080 --reload
"""

import argparse

import uvicorn
from loguru import logger

from swapfeed.config import get_settings


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the swap feed API")
    parser.add_argument("--host", type=str, default="0.0.0.0", help="Host to bind to (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to (default: 8000)")
    parser.add_argument("--reload", action="store_true", help="Auto-reload on code changes (development only)")
    parser.add_argument(
        "--log-level",
        type=str,
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="uvicorn log level (default: info)",
    )
    args = parser.parse_args()

    settings = get_settings()
    logger.info("Starting swapfeed on {}:{} (platform: {})", args.host, args.port, settings.supabase_url or "<unset>")
    logger.info("Feed endpoint: http://{}:{}/items", args.host, args.port)

    uvicorn.run(
        "swapfeed.api:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
