"""Text processing helpers."""

from __future__ import annotations


def preview(text: str | None, limit: int = 300) -> str:
    """First ``limit`` characters, with an ellipsis when anything was cut."""
    if not text:
        return ""
    return text[:limit] + ("..." if len(text) > limit else "")
