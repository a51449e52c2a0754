"""
Slug derivation.

Turns a human-entered name into a URL-safe identifier. Uniqueness is not
checked here; the category store rejects duplicates at write time.
"""
import re
from typing import Optional

from .category import SLUG_MAX_LENGTH, SLUG_PATTERN
from .errors import DomainValidationError


_DISALLOWED = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")


class SlugAllocator:
    """Derives and validates category slugs."""

    def derive(self, name: str) -> str:
        """
        Derive a slug from a display name.

        Lowercases, drops everything outside ``[a-z0-9\\s-]``, turns whitespace
        runs into single hyphens, collapses repeated hyphens and trims
        hyphens from both ends.

        Args:
            name: Human-entered category name.

        Returns:
            Slug matching ``[a-z0-9-]+``.

        Raises:
            DomainValidationError: If nothing usable is left.
        """
        slug = _DISALLOWED.sub("", (name or "").lower())
        slug = _WHITESPACE.sub("-", slug.strip())
        slug = _HYPHENS.sub("-", slug).strip("-")

        if not slug:
            raise DomainValidationError(
                f"Cannot derive a slug from name {name!r}; use latin letters or digits"
            )
        return slug[:SLUG_MAX_LENGTH].rstrip("-")

    def validate(self, slug: str) -> str:
        """
        Validate an explicitly supplied slug.

        Args:
            slug: Candidate slug.

        Returns:
            The slug, trimmed.

        Raises:
            DomainValidationError: If the slug is malformed.
        """
        candidate = (slug or "").strip()
        if not candidate or not SLUG_PATTERN.match(candidate):
            raise DomainValidationError(
                "Slug can only contain lowercase letters, numbers, hyphens and underscores"
            )
        if len(candidate) > SLUG_MAX_LENGTH:
            raise DomainValidationError(f"Slug cannot exceed {SLUG_MAX_LENGTH} characters")
        return candidate

    def allocate(self, name: str, slug: Optional[str] = None) -> str:
        """Use the explicit slug when given, otherwise derive one from the name."""
        if slug:
            return self.validate(slug)
        return self.derive(name)
