from __future__ import annotations

import logging
import uuid
from typing import Any


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def log_extra(**kwargs: Any) -> dict[str, Any]:
    return {k: v for k, v in kwargs.items() if v is not None}


def new_request_id(value: str | None = None) -> str:
    """Return ``value`` or a fresh request ID for tracing."""
    return value or str(uuid.uuid4())
