"""Run the settlement API under uvicorn: ``python -m settlement_engine``."""

import uvicorn

from settlement_engine.config import configure_logging, get_settings


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(
        "settlement_engine.api.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
