"""
Mirror Utility Module
"""

import json
from http import HTTPStatus
from typing import Any


def to_json_bytes(data: Any) -> bytes:
    """
    Serialize ``data`` deterministically (sorted keys, two space indent).

    Raises:
        TypeError: when ``data`` holds values JSON cannot represent
    """
    return (json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False) + "\n").encode("utf-8")


def status_text(status_code: int) -> str:
    """Standard reason phrase for ``status_code``, empty when unknown."""
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return ""


def canonical_header_name(name: str) -> str:
    """
    Canonical MIME header form.

    Example: "x-mirror-forwarded-for" → "X-Mirror-Forwarded-For"
    """
    return "-".join(part[:1].upper() + part[1:].lower() for part in name.split("-"))
