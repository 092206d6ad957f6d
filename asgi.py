"""
asgi.py -- ASGI entry point for the RBAC API.

Run with:  uvicorn asgi:app --host 0.0.0.0 --port 8000

Bootstrap the database first with `python main.py init-db` and
`python main.py create-admin <email>`; the app itself only seeds roles.
"""

from api.main import app

__all__ = ["app"]
