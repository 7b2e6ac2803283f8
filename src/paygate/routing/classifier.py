"""Destination classification: which network does a destination string belong to.

Rules are evaluated in order and the first match wins:

1. ``ln`` prefix (any case): Lightning invoice.
2. ``user@domain.tld``: Lightning address.
3. Bitcoin on-chain address shapes.
4. Liquid sidechain address shapes.
5. Anything else is ``unknown``.

The declared network of a payment request is never consulted here.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from paygate.models.enums import AddressKind

_BASE58 = "1-9A-HJ-NP-Za-km-z"
_BECH32 = "02-9ac-hj-np-z"

BITCOIN_PATTERNS: tuple[str, ...] = (
    rf"^1[{_BASE58}]{{25,34}}$",  # P2PKH
    rf"^3[{_BASE58}]{{25,34}}$",  # P2SH
    rf"^(?:bc1|BC1)[{_BECH32}{_BECH32.upper()}]{{39,59}}$",  # segwit / taproot
)

LIQUID_PATTERNS: tuple[str, ...] = (
    rf"^(?:lq1|ex1)[{_BECH32}]{{39,110}}$",  # blech32 confidential / bech32
    rf"^V[JT][{_BASE58}]{{78}}$",  # base58 confidential
    rf"^[2-9A-HJ-NP-Z][{_BASE58}]{{25,39}}$",  # base58 unconfidential (Q..., G..., H...)
)


def _compile(patterns: Iterable[str]) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p) for p in patterns)


@dataclass(frozen=True)
class AddressPatterns:
    """Compiled on-chain and sidechain address shape tables."""

    bitcoin: tuple[re.Pattern[str], ...]
    liquid: tuple[re.Pattern[str], ...]

    @classmethod
    def from_strings(
        cls,
        bitcoin: Iterable[str] = BITCOIN_PATTERNS,
        liquid: Iterable[str] | None = None,
    ) -> AddressPatterns:
        return cls(
            bitcoin=_compile(bitcoin),
            liquid=_compile(LIQUID_PATTERNS if liquid is None else liquid),
        )


DEFAULT_PATTERNS = AddressPatterns.from_strings()


def is_lightning_address(destination: str) -> bool:
    """True for ``user@domain.tld`` shaped strings."""
    if destination.count("@") != 1:
        return False
    user, domain = destination.split("@")
    return bool(user) and "." in domain


class AddressClassifier:
    """Maps a destination string to an :class:`AddressKind`."""

    def __init__(self, patterns: AddressPatterns = DEFAULT_PATTERNS) -> None:
        self._patterns = patterns

    def classify(self, destination: str) -> AddressKind:
        candidate = destination.strip()

        if candidate.lower().startswith("ln"):
            return AddressKind.LIGHTNING

        if is_lightning_address(candidate):
            return AddressKind.LIGHTNING

        if any(p.match(candidate) for p in self._patterns.bitcoin):
            return AddressKind.BITCOIN

        if any(p.match(candidate) for p in self._patterns.liquid):
            return AddressKind.LIQUID

        return AddressKind.UNKNOWN

    __call__ = classify


_default_classifier = AddressClassifier()


def classify(destination: str) -> AddressKind:
    """Classify with the built-in pattern tables."""
    return _default_classifier.classify(destination)
