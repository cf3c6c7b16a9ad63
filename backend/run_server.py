"""Run the Casebook Reports API with uvicorn.

Host and port come from HOST / PORT (defaults 127.0.0.1:8000); the log level
follows LOG_LEVEL from casebook.core.config.
"""
import os
import signal
import sys

import uvicorn

from casebook.core.config import settings


def handle_signal(sig, frame):
    print(f"\nReceived signal {sig}, shutting down...")
    sys.exit(0)


def main():
    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8000"))

    print("=" * 50)
    print(f"  Casebook Reports API on http://{host}:{port}")
    print(f"  Database: {settings.SQL_DIALECT}  Environment: {settings.ENVIRONMENT}")
    print("=" * 50)
    uvicorn.run(
        "casebook.main:app",
        host=host,
        port=port,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
