"""Credential gate entrypoint.

Run with:
  python -m credgate
"""

import logging
import os

import uvicorn


def main() -> None:
    logging.basicConfig(
        level=os.getenv("CREDGATE_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    host = os.getenv("CREDGATE_HOST", "127.0.0.1")
    port = int(os.getenv("CREDGATE_PORT", "8000"))
    reload = os.getenv("CREDGATE_RELOAD", "false").lower() in {"1", "true", "yes", "y"}
    uvicorn.run("credgate.app:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    main()
