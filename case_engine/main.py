"""Uvicorn entry point for the case engine API.

Run directly:        python -m case_engine.main
Run via uvicorn:     uvicorn case_engine.main:app --reload
"""

import uvicorn

from case_engine.api.app import create_app
from case_engine.api.dependencies import get_settings

app = create_app()


def main() -> None:
    """Start the API server with uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "case_engine.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
