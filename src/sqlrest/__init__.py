"""Generic REST API over the tables of a relational database."""

# Note: Modules are available via submodule imports to avoid circular dependencies
# and module-level initialization issues:
# from sqlrest.catalog import SchemaCatalog
# from sqlrest.service import TableService
# from sqlrest.server import create_app, main

__all__ = [
    "catalog",
    "config",
    "policy",
    "query_builder",
    "responses",
    "server",
    "service",
]
