"""API Package.

FastAPI server for the DIA approval dashboard.
"""

from api.server import create_app, app

__all__ = [
    "create_app",
    "app",
]
