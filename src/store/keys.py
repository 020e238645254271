"""Key normalization and validation.

Record keys and namespace child names share one canonical form:
trimmed, lower-cased, restricted to word characters and hyphens.
"""

from __future__ import annotations

import re

from core.constants import KEY_PATTERN, RESERVED_KEYS
from core.errors import InvalidKeyError

_KEY_RE = re.compile(KEY_PATTERN)


def is_valid_key(key: object) -> bool:
    """Return whether a raw key normalizes to a usable, non-reserved key."""
    if not isinstance(key, str):
        return False
    trimmed = key.strip()
    return bool(_KEY_RE.match(trimmed)) and trimmed.lower() not in RESERVED_KEYS


def normalize_key(key: object) -> str:
    """Normalize a raw key into its canonical form.

    Args:
        key: Caller-supplied key.

    Returns:
        Trimmed, lower-cased key.

    Raises:
        InvalidKeyError: If the key is not a string, contains characters outside
            ``[A-Za-z0-9_-]`` after trimming, or is a reserved word.
    """
    if not is_valid_key(key):
        raise InvalidKeyError(
            f"Invalid key: {key!r}. Keys must match {KEY_PATTERN} after trimming "
            f"and must not be one of {', '.join(sorted(RESERVED_KEYS))}."
        )
    return str(key).strip().lower()
