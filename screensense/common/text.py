"""Text helpers for captured OCR and audio snippets."""

from __future__ import annotations

import re


def normalize_capture_text(text: str | None) -> str:
    """Lowercase and trim a capture's text for duplicate comparison."""
    if not text:
        return ""
    return text.lower().strip()


def clean_ocr_text(text: str, max_length: int = 2000) -> str:
    """Clean up raw OCR text: remove excessive whitespace, truncate if huge."""
    if not text:
        return ""
    # Collapse whitespace
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = text.strip()
    if len(text) > max_length:
        text = text[:max_length] + "\n[...truncated]"
    return text
