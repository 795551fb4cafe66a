"""Random password generation for newly provisioned accounts."""
from __future__ import annotations

import base64
import logging
import random
import secrets
import string
from collections.abc import Callable
from dataclasses import dataclass

LOGGER = logging.getLogger(__name__)

ALPHABET = string.ascii_letters + string.digits
DEFAULT_LENGTH = 16
_ALPHABET_SET = frozenset(ALPHABET)

StrongSource = Callable[[int], bytes]
FallbackSource = Callable[[int], str]


def generate_password(
    length: int = DEFAULT_LENGTH,
    *,
    strong_source: StrongSource | None = None,
    fallback_source: FallbackSource | None = None,
) -> str:
    """Return a *length*-character password drawn from ``[A-Za-z0-9]``.

    The strong path base64-encodes CSPRNG bytes and keeps only alphanumeric
    characters. When the strong source is unavailable the secondary source is
    used instead; its output is filtered and truncated/padded the same way.
    """
    if length <= 0:
        raise ValueError("Password length must be a positive integer.")
    strong = strong_source or secrets.token_bytes
    try:
        return _from_bytes(strong, length)
    except (NotImplementedError, OSError) as exc:
        LOGGER.warning("Strong random source unavailable (%s); using fallback source.", exc)
    fallback = fallback_source or _fallback_text
    return _pad(_filter(fallback(length))[:length], length)


def _from_bytes(source: StrongSource, length: int) -> str:
    collected = ""
    while len(collected) < length:
        chunk = base64.b64encode(source(length)).decode("ascii")
        collected += _filter(chunk)
    return collected[:length]


def _fallback_text(length: int) -> str:
    # SystemRandom shares the OS entropy source with ``secrets``.
    try:
        return _choose(random.SystemRandom(), length)
    except (NotImplementedError, OSError) as exc:
        LOGGER.warning("System random source unavailable (%s); using seeded PRNG.", exc)
    return _choose(random.Random(), length)


def _choose(rng: random.Random, length: int) -> str:
    return "".join(rng.choice(ALPHABET) for _ in range(length))


def _filter(text: str) -> str:
    return "".join(char for char in text if char in _ALPHABET_SET)


def _pad(text: str, length: int) -> str:
    if len(text) >= length:
        return text
    return text + _choose(random.Random(), length - len(text))


@dataclass(frozen=True, slots=True)
class CredentialGenerator:
    """Callable producing fixed-length passwords."""

    length: int = DEFAULT_LENGTH

    def __call__(self) -> str:
        """Return a fresh password."""
        return generate_password(self.length)


__all__ = [
    "ALPHABET",
    "DEFAULT_LENGTH",
    "CredentialGenerator",
    "generate_password",
]
