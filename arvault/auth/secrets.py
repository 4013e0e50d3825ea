"""Candidate signing secrets.

Two secrets may be configured at once: the current one and the previous
one kept during a rotation window. Values copied from dashboards often
carry a trailing newline, so each secret is offered both as configured
and with surrounding whitespace removed.
"""

from __future__ import annotations

from collections.abc import Iterable


def candidate_secrets(primary: str | None, rotation: str | None = None) -> list[str]:
    """Return the secrets to try, in order, without duplicates or empties.

    Order is: primary raw, primary trimmed, rotation raw, rotation trimmed.
    """
    return _unique(_variants(primary) + _variants(rotation))


def signing_secret(primary: str | None) -> str:
    """The secret new tokens are signed with."""
    secrets = _variants(primary)
    if not secrets:
        raise ValueError("SECRET_KEY is not configured")
    return secrets[-1]


def _variants(secret: str | None) -> list[str]:
    if not secret or not secret.strip():
        return []
    trimmed = secret.strip()
    if trimmed == secret:
        return [secret]
    return [secret, trimmed]


def _unique(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result
