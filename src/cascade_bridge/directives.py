"""In-band directive markers emitted by the model.

``<discord_reply>...</discord_reply>`` wraps the text meant for the chat user;
everything outside it is reasoning trace and stays hidden.
``<discord_review file="/abs/path">`` asks the user to approve a file.
"""

from __future__ import annotations

from pathlib import Path
from typing import List

REPLY_OPEN = "<discord_reply>"
REPLY_CLOSE = "</discord_reply>"
REVIEW_OPEN = "<discord_review"
_FILE_ATTR = "file="


def extract_reply(raw: str, *, terminal: bool) -> str:
    """Return the user-visible part of ``raw``.

    An empty result on a non-terminal cycle means "nothing to show yet"; the
    caller renders a placeholder instead. On the terminal cycle a response
    with no reply tags falls back to the whole text.
    """

    start = raw.find(REPLY_OPEN)
    if start == -1:
        return raw.strip() if terminal else ""
    content_start = start + len(REPLY_OPEN)
    end = raw.find(REPLY_CLOSE, content_start)
    if end == -1:
        return raw[content_start:].strip()
    return raw[content_start:end].strip()


def find_review_paths(raw: str) -> List[str]:
    """Collect file paths from review markers in order, without duplicates."""

    paths: List[str] = []
    pos = 0
    while True:
        start = raw.find(REVIEW_OPEN, pos)
        if start == -1:
            return paths
        pos = start + len(REVIEW_OPEN)
        attr = _skip_space(raw, pos)
        if attr == pos or not raw.startswith(_FILE_ATTR + '"', attr):
            # "<discord_reviewer" or a marker without a quoted file attribute.
            continue
        value_start = attr + len(_FILE_ATTR) + 1
        value_end = raw.find('"', value_start)
        if value_end == -1:
            # Unterminated marker: the model is still writing it.
            return paths
        close = _skip_space(raw, value_end + 1)
        if not raw.startswith(">", close):
            pos = value_end + 1
            continue
        path = raw[value_start:value_end]
        if path and path not in paths:
            paths.append(path)
        pos = close + 1


def _skip_space(text: str, pos: int) -> int:
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return pos


def reviewable_files(raw: str) -> List[Path]:
    """Review paths that are absolute and point at an existing file."""

    files: List[Path] = []
    for text in find_review_paths(raw):
        path = Path(text)
        if path.is_absolute() and path.is_file():
            files.append(path)
    return files


def processing_placeholder(status_label: str) -> str:
    return f"🤔 Processing task... ({status_label})"


def display_text(raw: str, *, terminal: bool, status_label: str) -> str:
    """Text to render for this cycle, placeholder included."""
    text = extract_reply(raw, terminal=terminal)
    if not text:
        return processing_placeholder(status_label)
    return text
