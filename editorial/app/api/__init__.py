"""API package exports."""
from . import routes_admin, routes_chunks

__all__ = [
    "routes_admin",
    "routes_chunks",
]
