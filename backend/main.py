"""Backend entrypoint: serve the HTTP API with uvicorn."""

from __future__ import annotations

import logging

import uvicorn

from shared import config


def main() -> None:
    logging.basicConfig(
        level=(config.get_env("LOG_LEVEL", "INFO") or "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    uvicorn.run(
        "backend.api:app",
        host=config.get_env("HOST", "0.0.0.0") or "0.0.0.0",
        port=int(config.get_env("PORT", "8000") or "8000"),
    )


if __name__ == "__main__":
    main()
