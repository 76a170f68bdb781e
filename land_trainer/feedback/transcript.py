"""
Transcript normalization: ordered turns -> one text blob.

Each turn renders as `<Role>: <text>`, turns are separated by a blank line,
and every turn is emitted even when its role or text is missing, so the
number of blank-line separated segments equals the number of turns.
"""

import re
from typing import Any

UNKNOWN_ROLE = "Unknown"
TURN_SEPARATOR = "\n\n"

_BLANK_LINES = re.compile(r"\n\s*\n+")


def _field(turn: Any, *names: str):
    if not isinstance(turn, dict):
        return None
    for name in names:
        value = turn.get(name)
        if value is not None:
            return value
    return None


def _role(turn: Any) -> str:
    role = _field(turn, "role", "speaker")
    role = str(role).strip() if role is not None else ""
    return _BLANK_LINES.sub(" ", role).capitalize() if role else UNKNOWN_ROLE


def _text(turn: Any) -> str:
    text = _field(turn, "text", "message")
    if text is None:
        return ""
    # Blank lines inside a turn would read as a turn boundary.
    return _BLANK_LINES.sub("\n", str(text).strip())


def normalize_transcript(turns: Any) -> str:
    """
    Render transcript turns as text.

    Args:
        turns: List of `{role, text}` dicts (`message` is accepted for text)

    Returns:
        The transcript text; empty string for an empty or non-list payload
    """
    if not isinstance(turns, list):
        return ""
    return TURN_SEPARATOR.join(f"{_role(turn)}: {_text(turn)}" for turn in turns)


def count_turns(transcript: str) -> int:
    """Number of turns in a normalized transcript."""
    if not transcript:
        return 0
    return len(transcript.split(TURN_SEPARATOR))
