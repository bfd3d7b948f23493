"""Process entry point: ``bookgate`` console script or ``python -m bookgate.server``."""

import uvicorn

from bookgate.config.settings import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "bookgate.main:app",
        host=settings.host,
        port=settings.port,
        log_config=None,
        proxy_headers=True,
    )


if __name__ == "__main__":
    main()
