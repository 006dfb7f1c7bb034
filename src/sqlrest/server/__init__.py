"""HTTP and MCP surfaces of the SQL REST API."""

from .app import create_app
from .main import main

__all__ = ["create_app", "main"]
