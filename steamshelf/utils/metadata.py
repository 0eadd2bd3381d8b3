"""Metadata utilities for game information formatting.

Provides helpers for:
- Formatting playtime minutes into a display label
- Sanitizing Steam store short descriptions for display
"""

import html
import logging

logger = logging.getLogger(__name__)

NOT_PLAYED_LABEL = "Not played"

# Inline markup the store puts into short descriptions
_STRIPPED_TAGS = ("<b>", "</b>")
_LINE_BREAK_TAG = "<br>"


def format_playtime(minutes) -> str:
    """Format total playtime in minutes as a label.

    Examples:
        0 -> "Not played"
        90 -> "1.5 hours"
        61 -> "1.0 hours"
    """
    try:
        minutes = int(minutes or 0)
    except (TypeError, ValueError):
        minutes = 0

    if minutes <= 0:
        return NOT_PLAYED_LABEL
    return f"{round(minutes / 60.0, 1):.1f} hours"


def sanitize_description(text: str) -> str:
    """Clean up a Steam short description for display.

    HTML entities are decoded first, then bold tags are dropped and
    <br> becomes a newline. Other markup is left alone.
    """
    if not text:
        return ""

    text = html.unescape(text)
    for tag in _STRIPPED_TAGS:
        text = text.replace(tag, "")
    return text.replace(_LINE_BREAK_TAG, "\n")
