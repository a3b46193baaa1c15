"""Text cleanup for spoken output and user-supplied names."""

from __future__ import annotations

import re
import unicodedata

_BRACKETED = re.compile(r"\[.*?\]")
_MARKDOWN = re.compile(r"[*_#`>]+")
_SECTION_LABEL = re.compile(r"^[ \t]*(weather|news|sports|stocks|quote|calendar)\s*:\s*", re.IGNORECASE | re.MULTILINE)
_WHITESPACE = re.compile(r"\s+")
_REPEATED_GREETING = re.compile(r"^((good morning[^.!]*[.!]\s*))(good morning[^.!]*[.!]\s*)+", re.IGNORECASE)

MAX_NAME_LENGTH = 50


def sanitize_for_tts(raw: str) -> str:
  """Strip stage directions, markdown and section labels so the text reads naturally aloud."""
  text = raw.strip()
  text = _BRACKETED.sub("", text)
  text = _MARKDOWN.sub("", text)
  # Labels are anchored to line starts, so they go before whitespace is collapsed.
  text = _SECTION_LABEL.sub("", text)
  text = _WHITESPACE.sub(" ", text).strip()
  return _REPEATED_GREETING.sub(lambda match: match.group(1), text).strip()


def _is_symbol_or_control(char: str) -> bool:
  category = unicodedata.category(char)
  return category.startswith("C") or category in {"So", "Sk", "Cs"}


def sanitize_name(raw: str | None) -> str | None:
  """Drop emoji and control characters; None when nothing speakable is left."""
  if raw is None:
    return None
  cleaned = "".join(char for char in raw if not _is_symbol_or_control(char))
  cleaned = _WHITESPACE.sub(" ", cleaned).strip()[:MAX_NAME_LENGTH].strip()
  return cleaned or None


def word_count(text: str) -> int:
  return len(text.split())
