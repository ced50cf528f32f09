"""Thin API launcher.

Production entrypoint (full lifecycle: telemetry, signal handling, drain):
    python apps/api/main.py        or        stencil-server

Development entrypoint (uvicorn manages the process, no telemetry):
    uvicorn main:app --reload

Note: The app instance is created here (not in stencil.app) to avoid import-time
side effects. This allows tests to import create_app without building settings.
"""

from stencil.app import create_app
from stencil.lifecycle import main

app = create_app()

__all__ = ["app", "main"]

if __name__ == "__main__":
    raise SystemExit(main())
