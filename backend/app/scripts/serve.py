from __future__ import annotations

import argparse

import uvicorn

from backend.app.config import load_settings


def _parse_args(default_host: str, default_port: int) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Serve the Channel Feed API (recent YouTube videos for one channel).",
    )
    parser.add_argument("--host", default=default_host, help=f"Bind address (default: {default_host}).")
    parser.add_argument(
        "--port",
        type=int,
        default=default_port,
        help=f"Bind port (default: {default_port}, from PORT / CHANNEL_FEED_PORT).",
    )
    return parser.parse_args()


def main() -> None:
    settings = load_settings()
    args = _parse_args(settings.host, settings.port)
    # Logging is configured by the app lifespan; keep uvicorn from replacing it.
    uvicorn.run("backend.app.main:app", host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
