"""Main entry point for the SQL REST API server.

It's configured as the entry point in pyproject.toml, so you can run the
server using the command: sqlrest-server

The server uses uvicorn (an ASGI server) to serve the FastAPI application,
with the MCP endpoint mounted alongside the REST routes when enabled.
"""

import argparse
import os

import uvicorn


def main() -> None:
    """Start the API server using uvicorn.

    Configuration:
        - host: Configurable via --host (default: "0.0.0.0", all interfaces)
        - port: Configurable via --port (default: 8000)
        - config: Configurable via --config; otherwise SQLREST_CONFIG or config.example.yml

    Usage:
        Run with defaults: sqlrest-server
        Run with a config file: sqlrest-server --config config.yml --port 8080
    """
    parser = argparse.ArgumentParser(description="Start the SQL REST API server")
    parser.add_argument(
        "--port", type=int, default=8000, help="Port to run the server on (default: 8000)"
    )
    parser.add_argument(
        "--host", default="0.0.0.0", help="Interface to bind (default: 0.0.0.0)"
    )
    parser.add_argument("--config", help="Path to the YAML config file")
    args = parser.parse_args()

    if args.config:
        os.environ["SQLREST_CONFIG"] = args.config

    uvicorn.run(
        "sqlrest.server.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
    )


if __name__ == "__main__":
    main()
