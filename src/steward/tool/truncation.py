"""Output truncation — bound tool results before they reach the LLM."""

from __future__ import annotations

import json
from typing import Any

MAX_LINES = 400
MAX_BYTES = 16 * 1024  # 16KB


def truncate_output(
    text: str,
    max_lines: int = MAX_LINES,
    max_bytes: int = MAX_BYTES,
) -> str:
    """Truncate a tool result to fit within the per-loop context budget.

    Keeps the head of the output (query results are ordered most relevant
    first) and prefixes a notice describing what was dropped.
    """
    if not text:
        return text

    lines = text.split("\n")
    byte_count = len(text.encode("utf-8", errors="replace"))

    if len(lines) <= max_lines and byte_count <= max_bytes:
        return text

    kept = lines[:max_lines]
    skipped = max(len(lines) - max_lines, 0)

    result = "\n".join(kept)
    result_bytes = result.encode("utf-8", errors="replace")
    if len(result_bytes) > max_bytes:
        # Cut at a safe UTF-8 boundary
        result = result_bytes[:max_bytes].decode("utf-8", errors="ignore")
        skipped_bytes = byte_count - max_bytes
    else:
        skipped_bytes = 0

    notice_parts = []
    if skipped > 0:
        notice_parts.append(f"{skipped} lines skipped")
    if skipped_bytes > 0:
        notice_parts.append(f"{skipped_bytes} bytes skipped")

    notice = (
        f"[Output truncated: {', '.join(notice_parts)}. "
        f"Total: {len(lines)} lines, {byte_count} bytes]"
    )
    return f"{notice}\n{result}"


def serialize_result(payload: dict[str, Any]) -> str:
    """JSON-encode a tool result for the conversation, truncated."""
    return truncate_output(json.dumps(payload, ensure_ascii=False, default=str))
