import uvicorn

from slot_scheduler.config import load_settings, setup_logging


def main():
    """Run the FastAPI application with uvicorn server."""
    settings = load_settings()
    setup_logging(settings.log_level)
    uvicorn.run(
        "slot_scheduler.app:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
