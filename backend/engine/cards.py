"""
Tactical card inventory.
Per-player remaining counts of catalog cards. Counts never go below zero and
a card is consumed exactly once per resolved round.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Iterable

from backend.engine import MAX_ADVANCED_CARD_TYPES
from backend.engine.definitions import CardCategory, TacticalCardDefinition

logger = logging.getLogger(__name__)

# Contextual relevance weights
RELEVANCE_UNIT_REQUIREMENT = 20
RELEVANCE_TERRAIN_MATCH = 15
RELEVANCE_UNIT_BONUS = 10


@dataclass
class AvailableCard:
    """A catalog card together with how many copies the player has left."""
    card: TacticalCardDefinition
    count: int
    relevance: int | None = None  # set by rank_contextual_cards

    @property
    def id(self) -> str:
        return self.card.id

    def to_dict(self) -> dict[str, Any]:
        out = self.card.to_dict()
        out["count"] = self.count
        if self.relevance is not None:
            out["relevance"] = self.relevance
        return out


class CardInventory:
    """
    Remaining card counts per player: player_id -> card_id -> count.
    Unknown card ids are refused everywhere so the catalog stays the single source of cards.
    """

    def __init__(
        self,
        card_types: dict[str, TacticalCardDefinition],
        counts: dict[str, dict[str, int]] | None = None,
    ):
        self.card_types = card_types
        self.counts: dict[str, dict[str, int]] = {}
        for player_id, cards in (counts or {}).items():
            for card_id, amount in cards.items():
                self.add(card_id, player_id, amount)

    def count(self, card_id: str, player_id: str) -> int:
        return self.counts.get(player_id, {}).get(card_id, 0)

    def is_available(self, card_id: str, player_id: str) -> bool:
        return card_id in self.card_types and self.count(card_id, player_id) > 0

    def list_available(self, player_id: str) -> list[AvailableCard]:
        """Catalog entries the player still holds, in catalog order. Read-only."""
        held = self.counts.get(player_id, {})
        return [
            AvailableCard(card=card, count=held[card_id])
            for card_id, card in self.card_types.items()
            if held.get(card_id, 0) > 0
        ]

    def consume(self, card_id: str, player_id: str) -> bool:
        """Use one copy of a card. False if the card is unknown or none are left."""
        if not self.is_available(card_id, player_id):
            return False
        self.counts[player_id][card_id] -= 1
        return True

    def add(self, card_id: str, player_id: str, amount: int = 1) -> bool:
        """
        Give a player more copies of a card.
        A player may hold at most MAX_ADVANCED_CARD_TYPES distinct advanced card types;
        adding a new advanced type beyond that is refused. Returns whether anything changed.
        """
        card = self.card_types.get(card_id)
        if card is None or amount <= 0:
            return False
        held = self.counts.setdefault(player_id, {})
        if card.category is CardCategory.ADVANCED and card_id not in held:
            advanced_types = sum(
                1 for cid in held if self.card_types[cid].category is CardCategory.ADVANCED
            )
            if advanced_types >= MAX_ADVANCED_CARD_TYPES:
                logger.info("Player %s already holds %d advanced card types", player_id, advanced_types)
                return False
        held[card_id] = held.get(card_id, 0) + amount
        return True

    def to_dict(self) -> dict[str, dict[str, int]]:
        return {player_id: dict(cards) for player_id, cards in self.counts.items()}


def card_relevance(
    card: TacticalCardDefinition,
    unit_types_present: set[str],
    terrain: str | None,
) -> int:
    """How well a card fits the units on hand and the terrain being fought over."""
    relevance = 0
    if card.unit_requirement:
        if any(t in unit_types_present for t in card.unit_requirement):
            relevance += RELEVANCE_UNIT_REQUIREMENT
        else:
            relevance -= RELEVANCE_UNIT_REQUIREMENT
    if card.has_terrain_affinity(terrain):
        relevance += RELEVANCE_TERRAIN_MATCH
    for unit_type, _bonus in card.unit_bonus:
        if unit_type in unit_types_present:
            relevance += RELEVANCE_UNIT_BONUS
    return relevance


def rank_contextual_cards(
    available: Iterable[AvailableCard],
    unit_types_present: set[str],
    terrain: str | None,
) -> list[AvailableCard]:
    """Available cards sorted by relevance, highest first (stable for equal relevance)."""
    ranked = [
        replace(entry, relevance=card_relevance(entry.card, unit_types_present, terrain))
        for entry in available
    ]
    ranked.sort(key=lambda entry: -entry.relevance)
    return ranked
