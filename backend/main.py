"""Deployment entrypoint.

Process managers default to `uvicorn main:app`; the FastAPI application
lives in `server.py`.
"""

from server import app  # noqa: F401
