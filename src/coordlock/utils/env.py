"""Environment helpers with masking support."""

from __future__ import annotations


def mask(secret: str | None, *, show: int = 4) -> str | None:
    """Mask all but the first `show` characters of a secret."""
    if secret is None:
        return None
    show = max(show, 0)
    if len(secret) <= show:
        return "*" * len(secret)
    return secret[:show] + "*" * (len(secret) - show)
