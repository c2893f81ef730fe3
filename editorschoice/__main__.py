"""Module executed when running ``python -m editorschoice``."""

from __future__ import annotations

import logging

import uvicorn

from app.config import settings

logger = logging.getLogger("editorschoice")


def _integration_label() -> str:
    if settings.do_script_inject:
        return "script injection"
    if settings.file_transformation:
        return "file transformation"
    return "none"


def main() -> None:
    """Start the uvicorn server using the configured settings."""

    logging.basicConfig(level=logging.INFO)
    logger.info(
        "Starting EditorsChoice in %s mode (client integration: %s)",
        settings.mode.value if settings.mode else "unset",
        _integration_label(),
    )
    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    main()
