"""Uvicorn entrypoint for the chat sync service."""

from shared.config.settings import get_settings

from .app import create_app

app = create_app()


def get_app():
    """Return the FastAPI app instance."""
    return app


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "services.chat_sync.main:app",
        host=settings.app.host,
        port=settings.app.port,
    )
