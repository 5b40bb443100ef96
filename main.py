"""Main entry point for running the FastAPI application with auto-reload."""
import uvicorn

from kepegawaian.config import get_settings
from kepegawaian.db import safe_url

if __name__ == "__main__":
    settings = get_settings()
    print(f"Starting {settings.app_name} v{settings.version}")
    print(f"Environment: {settings.environment.value}")
    print(f"Database: {safe_url(settings.db.url)}")
    print(f"Uploads: {settings.uploads.dir.resolve()}")
    print(f"Auto-reload: {'Enabled' if settings.debug else 'Disabled'}")
    print("-" * 50)

    uvicorn.run(
        "kepegawaian.api:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        reload_dirs=["kepegawaian"] if settings.debug else None,
        log_level=settings.logging.level.lower(),
    )
