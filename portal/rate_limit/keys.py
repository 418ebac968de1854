"""
Typed rate-limit counter keys.

A key is a (dimension, identifier) pair whose string form is
``"<dimension>:<identifier>"``, e.g. ``ip:127.0.0.1``, ``burst:::1`` or
``phone:081911290961``.  Identifiers are kept verbatim: ``phone:0819…`` and
``phone:62819…`` are different keys, and so are ``ip:unknown`` and
``ip:127.0.0.1``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Dimension(str, Enum):
    IP = "ip"
    PHONE = "phone"
    BURST = "burst"


@dataclass(frozen=True)
class CounterKey:
    dimension: Dimension
    identifier: str

    def __post_init__(self) -> None:
        if not self.identifier:
            raise ValueError(f"Empty identifier for {self.dimension.value} key")

    def __str__(self) -> str:
        return f"{self.dimension.value}:{self.identifier}"

    @classmethod
    def ip(cls, address: str) -> CounterKey:
        return cls(Dimension.IP, address)

    @classmethod
    def burst(cls, address: str) -> CounterKey:
        return cls(Dimension.BURST, address)

    @classmethod
    def phone(cls, number: str) -> CounterKey:
        return cls(Dimension.PHONE, number)

    @classmethod
    def parse(cls, raw: str) -> CounterKey:
        """Parse ``"<dimension>:<identifier>"``.

        Only the first colon separates the dimension, so IPv6 identifiers
        such as ``ip:::1`` keep their colons.
        """
        dimension, sep, identifier = raw.strip().partition(":")
        if not sep or not identifier:
            raise ValueError(f"Malformed rate limit key: {raw!r}")
        try:
            dim = Dimension(dimension.lower())
        except ValueError:
            raise ValueError(
                f"Unknown rate limit dimension {dimension!r} in key {raw!r}"
            ) from None
        return cls(dim, identifier)
