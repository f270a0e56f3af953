"""URL slug generation."""

import re
import unicodedata
from collections.abc import Container

_NON_ALNUM = re.compile(r"[^a-z0-9]+")

FALLBACK_SLUG = "product"


def slugify(name: str) -> str:
    """Turn a display name into a lowercase, hyphen-joined slug.

    Accented characters are folded to their ASCII base, every run of
    other characters collapses into a single hyphen.

    Args:
        name: Display name.

    Returns:
        Slug, empty if the name has no letters or digits.
    """
    folded = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    return _NON_ALNUM.sub("-", folded.lower()).strip("-")


def unique_slug(base: str, taken: Container[str]) -> str:
    """Pick the first free slug for ``base``.

    Returns ``base`` itself when free, else ``base-2``, ``base-3``, ...

    Args:
        base: Slug derived from the name.
        taken: Slugs already in use.

    Returns:
        A slug not contained in ``taken``.
    """
    base = base or FALLBACK_SLUG
    if base not in taken:
        return base
    n = 2
    while f"{base}-{n}" in taken:
        n += 1
    return f"{base}-{n}"
