"""Deterministic daily quote selection."""

from __future__ import annotations

from datetime import date

_LIBRARY: dict[str, tuple[str, ...]] = {
  "inspirational": (
    "Well done is better than well said. Benjamin Franklin.",
    "Act as if what you do makes a difference. It does. William James.",
    "It always seems impossible until it's done. Nelson Mandela.",
    "The secret of getting ahead is getting started. Mark Twain.",
  ),
  "stoic": (
    "We suffer more often in imagination than in reality. Seneca.",
    "You have power over your mind, not outside events. Realize this, and you will find strength. Marcus Aurelius.",
    "No man is free who is not master of himself. Epictetus.",
    "Waste no more time arguing about what a good man should be. Be one. Marcus Aurelius.",
  ),
  "mindfulness": (
    "The present moment is filled with joy and happiness. If you are attentive, you will see it. Thich Nhat Hanh.",
    "Before enlightenment, chop wood, carry water. After enlightenment, chop wood, carry water. A Zen proverb.",
    "The mind is everything. What you think, you become. Attributed to the Buddha.",
  ),
  "philosophical": (
    "The unexamined life is not worth living. Socrates.",
    "Happiness depends upon ourselves. Aristotle.",
    "We are what we repeatedly do. Excellence, then, is not an act, but a habit. Will Durant.",
  ),
  "success": (
    "Whether you think you can, or you think you can't, you're right. Henry Ford.",
    "Success is not final, failure is not fatal: it is the courage to continue that counts. Winston Churchill.",
    "Opportunity is missed by most people because it is dressed in overalls and looks like work. Thomas Edison.",
  ),
  "good_feelings": (
    "Keep your face always toward the sunshine, and shadows will fall behind you. Walt Whitman.",
    "Peace begins with a smile. Mother Teresa.",
  ),
  "scripture": (
    "This is the day which the Lord hath made; we will rejoice and be glad in it. Psalm 118, verse 24.",
    "Be strong and of good courage. Joshua 1, verse 9.",
  ),
  "hindu": ("You have a right to your actions, but never to the fruits of your actions. The Bhagavad Gita.",),
  "muslim": ("Verily, with hardship comes ease. The Quran, 94:6.",),
}

_ALIASES = {
  "buddhist": "mindfulness",
  "zen": "mindfulness",
  "christian": "scripture",
  "jewish": "scripture",
  "good feelings": "good_feelings",
}


def resolve_category(style: str | None) -> str:
  normalized = (style or "inspirational").strip().lower()
  normalized = _ALIASES.get(normalized, normalized).replace(" ", "_")
  return normalized if normalized in _LIBRARY else "inspirational"


def daily_quote(style: str | None, local_date: date) -> str:
  """Pick the same quote for every listener of a style on a given local date."""
  quotes = _LIBRARY[resolve_category(style)]
  return quotes[local_date.toordinal() % len(quotes)]
