"""Exceptions raised by the kanjidojo engine."""

from __future__ import annotations


class UnknownTierError(KeyError):
    """Raised when a tier id is not part of the curriculum's closed tier set."""

    def __init__(self, tier_id: object) -> None:
        super().__init__(tier_id)
        self.tier_id = tier_id

    def __str__(self) -> str:
        return f"Unknown tier: {self.tier_id!r}"
