from __future__ import annotations

from typing import Any

from .data_model import DataModel


class Context(DataModel):
    """Operation context."""

    id: str | None = None
    data: dict[str, Any] | None = None
