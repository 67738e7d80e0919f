from __future__ import annotations

import argparse

import uvicorn
from dotenv import load_dotenv

from .config import get_settings
from .logs import configure_logging


def serve(host: str, port: int | None = None) -> None:
    """
    Run the webhook server.

    Reads .env from the working directory first so local runs pick up the
    Airtable and Twilio secrets without exporting them.
    """
    load_dotenv()
    get_settings.cache_clear()
    settings = get_settings()
    configure_logging(settings.log_level)

    uvicorn.run(
        "missed_call_router.main:app",
        host=host,
        port=port or settings.port,
        log_config=None,
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Missed-call SMS router")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=None, help="defaults to $PORT or 3000")
    args = parser.parse_args()
    serve(args.host, args.port)


if __name__ == "__main__":
    main()
