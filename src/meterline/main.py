"""Service entry point."""

import os

import uvicorn

from meterline.config import get_settings
from meterline.observability import SentryConfig, configure_logging, init_sentry


def main() -> None:
    """Initialize error reporting and logging, then serve the metering API."""
    settings = get_settings()

    init_sentry(
        SentryConfig(
            service_name="meterline",
            dsn=settings.SENTRY_DSN,
            environment=settings.ENVIRONMENT,
            release=f"meterline@{settings.VERSION}",
            traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        )
    )
    configure_logging("meterline", settings.LOG_LEVEL, settings.LOG_JSON)

    # Get host from environment, default to localhost for security
    host = os.environ.get("HOST", "127.0.0.1")
    uvicorn.run(
        "meterline.api.app:create_app",
        factory=True,
        host=host,
        port=settings.PORT,
        reload=settings.ENVIRONMENT == "development",
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
