"""
Run the API under uvicorn.
"""

from __future__ import annotations

import argparse

import uvicorn

from portfolio_api.config import get_settings


def main() -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Portfolio API server")
    parser.add_argument("--host", default=settings.host, help="Bind address")
    parser.add_argument("--port", type=int, default=settings.port, help="Bind port")
    parser.add_argument(
        "--reload", action="store_true", help="Restart on code changes (development)"
    )
    args = parser.parse_args()

    uvicorn.run(
        "portfolio_api.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
