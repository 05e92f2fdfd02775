"""Normalisation of the chat message shapes the gateway emits.

The ``message`` field of a chat event arrives in one of several shapes:
a plain string, an object with a direct ``text`` field, or an object with an
ordered ``content`` list (OpenAI/Anthropic-like). Each shape is classified
into a tagged variant once, then rendered to display text.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class PlainText:
    text: str
    kind: str = "plain"


@dataclass(frozen=True)
class TextField:
    text: str
    kind: str = "text_field"


@dataclass(frozen=True)
class ContentParts:
    parts: tuple[str, ...]
    kind: str = "content_parts"


@dataclass(frozen=True)
class Unrecognized:
    kind: str = "unrecognized"


MessageShape = Union[PlainText, TextField, ContentParts, Unrecognized]


def _part_text(part: Any) -> str:
    if isinstance(part, str):
        return part
    if isinstance(part, dict):
        if isinstance(part.get("text"), str):
            return part["text"]
        if isinstance(part.get("value"), str):
            return part["value"]
    return ""


def normalize_message(message: Any) -> MessageShape:
    """Classify a raw ``message`` value into one of the known shapes."""
    if isinstance(message, str):
        return PlainText(message)
    if not isinstance(message, dict):
        return Unrecognized()
    if isinstance(message.get("text"), str):
        return TextField(message["text"])
    content = message.get("content")
    if isinstance(content, list):
        return ContentParts(tuple(_part_text(part) for part in content))
    return Unrecognized()


def render_text(shape: MessageShape) -> str:
    if isinstance(shape, (PlainText, TextField)):
        return shape.text
    if isinstance(shape, ContentParts):
        return "".join(shape.parts)
    return ""


def extract_text(message: Any) -> str:
    """Return the display text of a chat message; "" for unknown shapes.

    Content parts are concatenated in order with no separator; a part that is
    neither a string nor an object with a string ``text``/``value`` adds "".
    """
    return render_text(normalize_message(message))


__all__ = [
    "ContentParts",
    "MessageShape",
    "PlainText",
    "TextField",
    "Unrecognized",
    "extract_text",
    "normalize_message",
    "render_text",
]
