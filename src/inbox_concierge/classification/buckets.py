"""Bucket identity: a stable comparison key separate from the display label."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

# Category vocabulary offered to the classifier, with the decorated folder
# label each category is filed under.
DEFAULT_BUCKET_LABELS: Mapping[str, str] = MappingProxyType(
    {
        "urgent": "🔴 Urgent",
        "professional": "💼 Professional",
        "shopping": "🛒 Shopping",
        "newsletter": "📰 Newsletter",
        "finance": "🏦 Finance",
        "social": "🤝 Social",
    }
)

DEFAULT_CATEGORIES: tuple[str, ...] = tuple(DEFAULT_BUCKET_LABELS)


def canonical_key(name: str | None) -> str:
    """Return the comparison key for a bucket name.

    Glyphs, punctuation and whitespace are cosmetic; only letters and digits
    identify a bucket, compared case-insensitively.
    """
    if not name:
        return ""
    return "".join(char for char in name.casefold() if char.isalnum())


@dataclass(frozen=True, slots=True)
class BucketIdentity:
    """A bucket as a stable ``key`` plus the ``label`` shown in the mailbox."""

    key: str
    label: str

    @classmethod
    def from_name(
        cls,
        name: str,
        labels: Mapping[str, str] = DEFAULT_BUCKET_LABELS,
    ) -> BucketIdentity:
        """Build an identity from a category, folder label or rule folder.

        Known categories take their decorated label; anything else is a
        custom bucket whose label is the name as given.
        """
        key = canonical_key(name)
        for category, label in labels.items():
            if key in (canonical_key(category), canonical_key(label)):
                return cls(key=canonical_key(label), label=label)
        return cls(key=key, label=name.strip())

    def same_as(self, other: BucketIdentity | str | None) -> bool:
        """Return whether ``other`` names this bucket."""
        if other is None:
            return False
        other_key = other.key if isinstance(other, BucketIdentity) else canonical_key(other)
        return bool(self.key) and self.key == other_key


__all__ = [
    "BucketIdentity",
    "DEFAULT_BUCKET_LABELS",
    "DEFAULT_CATEGORIES",
    "canonical_key",
]
