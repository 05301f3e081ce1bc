"""Cursor helpers for the landing sensor.

The cursor records which landing objects have already been handed to the
orchestrator. Objects are identified by key and etag, so a corrected file
re-uploaded under the same key is seen as new.
"""

import json

__all__ = [
    "CURSOR_VERSION",
    "MAX_CURSOR_ENTRIES",
    "build_cursor",
    "merge_seen",
    "object_token",
    "parse_cursor",
]

CURSOR_VERSION = 1
MAX_CURSOR_ENTRIES = 1000


def object_token(key: str, etag: str) -> str:
    """Cursor entry for one landing object version."""
    return f"{key}@{etag}" if etag else key


def merge_seen(existing: list[str], new: list[str]) -> list[str]:
    """
    Merge newly seen tokens into the existing ones, preserving order.

    Tokens present in both move to the end (most recently seen last).
    """
    result = existing[:]
    for token in new:
        if token in result:
            result.remove(token)
        result.append(token)
    return result


def parse_cursor(cursor: str | None) -> list[str]:
    """
    Parse a cursor into the ordered list of seen tokens.

    Unreadable or foreign cursors yield an empty list; the orchestrator
    deduplicates triggers, so re-seeing objects is harmless.
    """
    if not cursor:
        return []

    try:
        cursor_data = json.loads(cursor)
    except (json.JSONDecodeError, TypeError):
        return []

    if not isinstance(cursor_data, dict) or cursor_data.get("v") != CURSOR_VERSION:
        return []

    seen = set()
    result = []
    for token in cursor_data.get("seen", []):
        if isinstance(token, str) and token.strip() and token not in seen:
            result.append(token)
            seen.add(token)
    return result


def build_cursor(seen: list[str]) -> str:
    """
    Build the JSON cursor, keeping the MAX_CURSOR_ENTRIES most recent tokens.
    """
    if len(seen) > MAX_CURSOR_ENTRIES:
        seen = seen[-MAX_CURSOR_ENTRIES:]
    return json.dumps({"v": CURSOR_VERSION, "seen": seen})
