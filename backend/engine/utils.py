"""
Utility functions for the combat engine.
Setup initialisation, unit creation and console output for the demo.
"""

from collections import Counter

from backend.engine.cards import CardInventory
from backend.engine.definitions import TacticalCardDefinition, UnitTypeDefinition
from backend.engine.state import CombatLogEntry, CombatOutcome, TerritoryState, Unit
from backend.engine.stores import TerritoryRegistry, UnitRoster


class UnitIdGenerator:
    """Generates readable unique unit ids: <owner>_<type>_<nnn>."""

    def __init__(self):
        self.counters: Counter = Counter()

    def next_id(self, owner: str | None, unit_type: str) -> str:
        key = f"{owner or 'neutral'}_{unit_type}"
        self.counters[key] += 1
        return f"{key}_{self.counters[key]:03d}"


def create_unit(
    unit_type: str,
    territory_id: str,
    unit_types: dict[str, UnitTypeDefinition],
    ids: UnitIdGenerator,
    owner: str | None = None,
    level: int = 1,
    health: float = 100.0,
) -> Unit:
    """
    Create a fresh unit of a catalog type.

    Raises:
        KeyError: unit_type is not in the catalog
    """
    unit_def = unit_types[unit_type]
    return Unit(
        id=ids.next_id(owner, unit_type),
        type=unit_type,
        level=level,
        experience=0,
        health=health,
        moves_left=unit_def.movement,
        territory_id=territory_id,
    )


def initialize_from_setup(
    setup: dict,
    unit_types: dict[str, UnitTypeDefinition],
    card_types: dict[str, TacticalCardDefinition],
) -> tuple[TerritoryRegistry, UnitRoster, CardInventory]:
    """
    Build the in-memory stores from a loaded setup (see definitions.load_setup).

    Args:
        setup: {"territories": {...}, "starting_setup": {"units": {...}, "cards": {...}}}
        unit_types: Unit type catalog (unknown unit types in the setup are skipped)
        card_types: Card catalog (unknown cards in the setup are skipped)

    Returns:
        (territories, roster, inventory)
    """
    territories = TerritoryRegistry(
        TerritoryState.from_dict(data, territory_id)
        for territory_id, data in (setup.get("territories") or {}).items()
    )

    starting = setup.get("starting_setup") or {}
    ids = UnitIdGenerator()
    roster = UnitRoster()
    for territory_id, unit_list in (starting.get("units") or {}).items():
        territory = territories.get_territory(territory_id)
        if territory is None:
            continue
        for entry in unit_list:
            unit_type = entry.get("type")
            if unit_type not in unit_types:
                continue
            for _ in range(entry.get("count", 1)):
                roster.add_unit(create_unit(
                    unit_type,
                    territory_id,
                    unit_types,
                    ids,
                    owner=territory.owner,
                    level=entry.get("level", 1),
                ))

    counts = {
        player_id: {card_id: n for card_id, n in cards.items() if card_id in card_types}
        for player_id, cards in (starting.get("cards") or {}).items()
    }
    inventory = CardInventory(card_types, counts)
    return territories, roster, inventory


def format_log_entry(entry: CombatLogEntry) -> str:
    if entry.round == 0:
        return f"[Start] {entry.message}"
    if isinstance(entry.round, str):
        return f"[{entry.round}] {entry.message}"
    return f"[Round {entry.round}] {entry.message}"


def print_combat_log(outcome: CombatOutcome, attacker: str | None, defender: str | None) -> None:
    """
    Pretty-print a finished combat.

    Args:
        outcome: CombatOutcome returned by CombatEngine.end_combat
        attacker: Name of the attacking side
        defender: Name of the defending side (None for unowned territory)
    """
    print(f"\n{'='*70}")
    print(
        f"COMBAT LOG: {attacker} attacks {defender or 'neutral forces'} "
        f"in {outcome.defending_territory_id} from {outcome.attacking_territory_id}")
    print(f"{'='*70}")

    if not outcome.battle_log:
        print("No combat log available")
        return

    for entry in outcome.battle_log:
        print(f"\n{format_log_entry(entry)}")
        if entry.player_card is not None:
            print(f"  Cards: {entry.player_card} vs {entry.opponent_card}")
            print(f"  Scores: {entry.player_score:g} vs {entry.opponent_score:g} -> {entry.winner}")

    print(f"\n{'='*70}")
    print(f"Result: {outcome.result.upper()}")
    print(
        f"Casualties: attacker {outcome.casualties['attacker']:g}%, "
        f"defender {outcome.casualties['defender']:g}%")
    if outcome.full_conquest:
        print(f"✓ Territory CAPTURED by {attacker}")
    elif outcome.territory_control:
        print(f"~ Control of {outcome.defending_territory_id} now {outcome.control_value}%")
    else:
        print(f"✗ Territory HELD by {defender or 'neutral forces'}")
    for unit_id in outcome.destroyed_unit_ids:
        print(f"  Lost: {unit_id}")
    print(f"{'='*70}\n")
