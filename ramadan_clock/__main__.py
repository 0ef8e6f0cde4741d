from __future__ import annotations

import uvicorn

from ramadan_clock.config import load_settings


def main() -> None:
    """Serve the API on APP_HOST/APP_PORT; the app is built fresh from the same settings."""
    settings = load_settings()
    uvicorn.run(
        "ramadan_clock.main:create_app",
        factory=True,
        host=settings.app_host,
        port=settings.app_port,
        log_level=settings.log_level.lower(),
        reload=False,
    )


if __name__ == "__main__":
    main()
