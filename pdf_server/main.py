"""
PDF server entrypoint - runs uvicorn.
"""

import uvicorn

from .app import create_app
from .config import get_settings


def main() -> None:
    """Run the PDF server."""
    settings = get_settings()
    app = create_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
