"""One Scheduler entrypoint."""

import uvicorn

from onescheduler.config.settings import get_settings


def cli() -> None:
    """Serve the dashboard; reloads on code changes when DEBUG is set."""
    settings = get_settings()
    uvicorn.run(
        "onescheduler.web.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    cli()
