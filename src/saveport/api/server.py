"""
ASGI Entry Point for the SavePort API.

This module exposes the `app` object required by ASGI servers (Uvicorn/Gunicorn).
It loads environment variables from `.env` before the application factory
runs, so the cached settings see them.

Usage
-----
Run via the module entry point:
    $ uv run python -m saveport.api.server

Or via uvicorn directly:
    $ uv run uvicorn saveport.api.server:app --reload
"""

from pathlib import Path

import uvicorn
from dotenv import load_dotenv

# Load .env BEFORE the factory reads settings.
env_path = Path(".env")
load_dotenv(dotenv_path=env_path)

from saveport.api.app import create_app  # noqa: E402
from saveport.core.settings import load_settings  # noqa: E402

app = create_app()


def main() -> None:
    """Run the API server locally for development."""
    cfg = load_settings()
    print(f"{'[ Store ]':=^60}")
    print(f"{'database':<16} : {cfg.db_name} (v{cfg.db_version})")
    print(f"{'object store':<16} : {cfg.object_store}")
    print(f"{'snapshot':<16} : {cfg.store_path or '(memory only)'}")
    print(f"{'='*60}\n")

    uvicorn.run(
        "saveport.api.server:app",
        host="0.0.0.0",
        port=8000,
        reload=cfg.is_dev,
        log_level=cfg.log_level.lower(),
    )


if __name__ == "__main__":
    main()
