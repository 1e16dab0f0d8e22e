"""Slug generation utilities.

Slugs are the human-readable tail of an entity identifier: lowercase ASCII
letters and digits separated by single hyphens, at most 50 characters.
"""

import re
from collections.abc import Collection
from typing import Final

MAX_SLUG_LENGTH: Final = 50
MAX_TITLE_WORDS: Final = 5
DEFAULT_SLUG: Final = "untitled"

STOP_WORDS: Final = frozenset(
    {
        "a",
        "an",
        "and",
        "are",
        "as",
        "at",
        "be",
        "by",
        "for",
        "from",
        "has",
        "he",
        "in",
        "is",
        "it",
        "its",
        "of",
        "on",
        "that",
        "the",
        "to",
        "was",
        "were",
        "will",
        "with",
        "would",
    }
)

SLUG_RE: Final = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

_SEPARATOR_RE: Final = re.compile(r"[\s_]+")
_INVALID_RE: Final = re.compile(r"[^a-z0-9-]")
_HYPHEN_RUN_RE: Final = re.compile(r"-+")
_WORD_SPLIT_RE: Final = re.compile(r"\W+")


def slugify(text: str) -> str:
    """Normalize free text into a slug.

    Lowercases, turns whitespace and underscores into hyphens, drops any
    other character outside ``[a-z0-9-]``, collapses hyphen runs and trims
    hyphens. The result is cut to 50 characters and trimmed again, since the
    cut can land right after a hyphen.

    Args:
        text: The text to normalize.

    Returns:
        The slug, which may be empty if the text has no usable characters.
    """
    slug = text.lower().strip()
    slug = _SEPARATOR_RE.sub("-", slug)
    slug = _INVALID_RE.sub("", slug)
    slug = _HYPHEN_RUN_RE.sub("-", slug)
    slug = slug.strip("-")
    return slug[:MAX_SLUG_LENGTH].strip("-")


def slug_from_title(title: str) -> str:
    """Build a short slug from the significant words of a title.

    Stop-words and words shorter than two characters are dropped and at most
    the first five remaining words are kept.
    """
    words = [
        word
        for word in _WORD_SPLIT_RE.split(title.lower())
        if len(word) >= 2 and word not in STOP_WORDS  # noqa: PLR2004
    ]
    return slugify("-".join(words[:MAX_TITLE_WORDS]))


def unique_slug(base: str, existing_slugs: Collection[str]) -> str:
    """Return ``base`` or the first free ``base-N`` not in ``existing_slugs``."""
    if base not in existing_slugs:
        return base
    counter = 1
    while f"{base}-{counter}" in existing_slugs:
        counter += 1
    return f"{base}-{counter}"


def is_valid_slug(slug: str) -> bool:
    """Check whether a string is a canonical slug."""
    return 0 < len(slug) <= MAX_SLUG_LENGTH and SLUG_RE.match(slug) is not None


__all__ = [
    "DEFAULT_SLUG",
    "MAX_SLUG_LENGTH",
    "STOP_WORDS",
    "is_valid_slug",
    "slug_from_title",
    "slugify",
    "unique_slug",
]
