"""DNS-safe resource identifier policy.

Identifiers become part of DNS names and Kubernetes object names for the
provisioned resource, so they must be 1-63 characters, start with a lowercase
letter, contain only ``[a-z0-9-]``, not end with a hyphen and not contain
consecutive hyphens. ``validate_identifier`` is authoritative: any identifier
it flags is rejected, whether generated or typed by the operator.
"""

from __future__ import annotations

import random
import re
import secrets
import string
from dataclasses import dataclass

MAX_IDENTIFIER_LENGTH = 63
DEFAULT_SUFFIX_LENGTH = 4
SENTINEL_PREFIX = 'r'
SUFFIX_ALPHABET = string.ascii_lowercase + string.digits

_SEPARATOR_RUN_RE = re.compile(r'[\s_]+')
_DISALLOWED_RE = re.compile(r'[^a-z0-9-]')
_DASH_RUN_RE = re.compile(r'-+')
_ALLOWED_RE = re.compile(r'[a-z0-9-]+')


@dataclass(frozen=True, slots=True)
class IdentifierIssue:
    """Structured reason an identifier was rejected."""

    reason: str
    message: str


_EMPTY = IdentifierIssue('empty', 'ID is required')
_TOO_LONG = IdentifierIssue(
    'too_long',
    f'ID cannot be longer than {MAX_IDENTIFIER_LENGTH} characters',
)
_BAD_START = IdentifierIssue(
    'invalid_start', 'ID must start with a lowercase letter'
)
_BAD_CHARS = IdentifierIssue(
    'invalid_characters',
    'ID can only contain lowercase letters, numbers, and hyphens',
)
_TRAILING_HYPHEN = IdentifierIssue(
    'trailing_hyphen', 'ID cannot end with a hyphen'
)
_CONSECUTIVE_HYPHENS = IdentifierIssue(
    'consecutive_hyphens', 'ID cannot contain consecutive hyphens'
)


def slugify(name: str) -> str:
    """Normalize a display name into a DNS-safe slug (possibly empty)."""
    lowered = name.lower()
    dashed = _SEPARATOR_RUN_RE.sub('-', lowered)
    cleaned = _DISALLOWED_RE.sub('', dashed)
    return _DASH_RUN_RE.sub('-', cleaned).strip('-')


def generate_identifier(
    name: str,
    *,
    suffix_length: int = DEFAULT_SUFFIX_LENGTH,
    rng: random.Random | None = None,
) -> str:
    """Derive a unique-ish identifier from a display name.

    The slug is prefixed with ``SENTINEL_PREFIX`` when it is empty or does not
    start with a letter, and is truncated so that ``{base}-{suffix}`` always
    fits in ``MAX_IDENTIFIER_LENGTH`` characters.

    Args:
        name: Human-readable resource name.
        suffix_length: Number of random characters appended.
        rng: Optional random source (tests); defaults to ``secrets``.
    """
    if suffix_length < 1:
        raise ValueError('suffix_length must be >= 1')

    slug = slugify(name)
    base = slug if slug[:1].isalpha() else f'{SENTINEL_PREFIX}{slug}'
    base = base[: MAX_IDENTIFIER_LENGTH - suffix_length - 1].rstrip('-')
    return f'{base}-{_random_suffix(suffix_length, rng)}'


def check_identifier(identifier: str) -> IdentifierIssue | None:
    """Return the first rule the identifier breaks, or ``None`` if valid."""
    if not identifier:
        return _EMPTY
    if len(identifier) > MAX_IDENTIFIER_LENGTH:
        return _TOO_LONG
    if not ('a' <= identifier[0] <= 'z'):
        return _BAD_START
    if not _ALLOWED_RE.fullmatch(identifier):
        return _BAD_CHARS
    if identifier.endswith('-'):
        return _TRAILING_HYPHEN
    if '--' in identifier:
        return _CONSECUTIVE_HYPHENS
    return None


def validate_identifier(identifier: str) -> str | None:
    """Return an operator-facing error message, or ``None`` if valid."""
    issue = check_identifier(identifier)
    return issue.message if issue is not None else None


def _random_suffix(length: int, rng: random.Random | None) -> str:
    if rng is not None:
        return ''.join(rng.choice(SUFFIX_ALPHABET) for _ in range(length))
    return ''.join(secrets.choice(SUFFIX_ALPHABET) for _ in range(length))
