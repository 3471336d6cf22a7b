"""Hidden description markers that make synchronized work discoverable in Linear.

Linear issue descriptions are the only durable record gitlin keeps. Every issue
created from a pull request carries one thread marker and one marker per
comment that fed the extraction run. Markers are HTML comments so they stay
hidden in rendered markdown and remain plain-substring searchable.
"""

from __future__ import annotations

from collections.abc import Iterable
import re

from gitlin.models import ThreadRef


MARKER_PREFIX = "gitlin"
STATUS_MARKER = f"<!-- {MARKER_PREFIX}:status -->"
COMMENT_MARKER_PATTERN = re.compile(rf"{MARKER_PREFIX}:comment:(\d+)")


def thread_marker_text(thread: ThreadRef) -> str:
    return f"{MARKER_PREFIX}:pr:{thread.owner}/{thread.repo}/pull/{thread.number}"


def comment_marker_text(comment_id: int) -> str:
    return f"{MARKER_PREFIX}:comment:{comment_id}"


def render_marker(text: str) -> str:
    return f"<!-- {text} -->"


def render_thread_markers(thread: ThreadRef, comment_ids: Iterable[int]) -> str:
    lines = [render_marker(thread_marker_text(thread))]
    for comment_id in sorted(set(comment_ids)):
        lines.append(render_marker(comment_marker_text(comment_id)))
    return "\n".join(lines)


def has_thread_marker(text: str, thread: ThreadRef) -> bool:
    # Substring search on "pull/1" also matches "pull/12"; require a non-digit after the number.
    pattern = re.escape(thread_marker_text(thread)) + r"(?!\d)"
    return re.search(pattern, text) is not None


def extract_comment_ids(text: str) -> frozenset[int]:
    return frozenset(int(match.group(1)) for match in COMMENT_MARKER_PATTERN.finditer(text))


def has_status_marker(text: str) -> bool:
    return STATUS_MARKER in text


def append_status_marker(body: str) -> str:
    stripped = body.strip()
    if STATUS_MARKER in stripped:
        return stripped
    if not stripped:
        return STATUS_MARKER
    return f"{stripped}\n\n{STATUS_MARKER}"
