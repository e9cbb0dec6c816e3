"""
Shared fixtures: a small in-code catalog and in-memory stores.

Territories:
    home    plains     player   3 infantry
    outpost plains     player   (empty)
    field   plains     rival    2 infantry
    keep    mountains  rival    6 legion, fortification 1
    wilds   forest     unowned  (empty)

Player cards: strike 3, guard 2, flank 2, wall 1, champion 1, weather 1.
"""

import pytest

from backend.engine.cards import CardInventory
from backend.engine.combat_session import CombatEngine
from backend.engine.definitions import card_type_from_dict, unit_type_from_dict
from backend.engine.state import SIDE_OPPONENT, TerritoryState, Unit
from backend.engine.stores import TerritoryRegistry, UnitRoster

UNIT_TYPES = [
    {"id": "infantry", "display_name": "Infantry", "strength": 5, "disadvantage_against": ["rider"]},
    {"id": "rider", "display_name": "Rider", "strength": 7, "movement": 2, "cavalry": True,
     "advantage_against": ["infantry"]},
    {"id": "spear", "display_name": "Spear", "strength": 6, "special_ability": "anti_cavalry",
     "advantage_against": ["rider"]},
    {"id": "pike", "display_name": "Pike", "strength": 9, "special_ability": "anti_cavalry", "ability_bonus": 4},
    {"id": "legion", "display_name": "Legion", "strength": 10, "special_ability": "formation_fighting"},
    {"id": "lancer", "display_name": "Lancer", "strength": 8, "cavalry": True, "special_ability": "charge"},
    {"id": "bowman", "display_name": "Bowman", "strength": 4, "special_ability": "volley_fire"},
    {"id": "chariot", "display_name": "Chariot", "strength": 6, "cavalry": True,
     "terrain_effectiveness": {"plains": 2, "forest": -1, "mountains": -2}},
]

CARD_TYPES = [
    {"id": "strike", "display_name": "Strike", "category": "basic", "strength": 2},
    {"id": "guard", "display_name": "Guard", "category": "basic", "strength": 2, "defensive": True,
     "counters": ["flank"]},
    {"id": "flank", "display_name": "Flank", "category": "basic", "strength": 3, "counters": ["guard"]},
    {"id": "wall", "display_name": "Wall", "category": "intermediate", "strength": 3, "defensive": True,
     "counters": ["strike", "flank"]},
    {"id": "ambush", "display_name": "Ambush", "category": "intermediate", "strength": 4,
     "counters": ["strike"], "terrain_affinity": ["forest"]},
    {"id": "rush", "display_name": "Rush", "category": "intermediate", "strength": 3, "effect": "initiative"},
    {"id": "weather", "display_name": "Weather", "category": "intermediate", "strength": 3, "effect": "random"},
    {"id": "charge", "display_name": "Charge", "category": "intermediate", "strength": 5,
     "terrain_affinity": ["plains"], "unit_requirement": ["rider", "lancer"]},
    {"id": "volley", "display_name": "Volley", "category": "basic", "strength": 2,
     "unit_bonus": {"bowman": 2}},
    {"id": "siege", "display_name": "Siege", "category": "intermediate", "strength": 4,
     "unit_requirement": "ram"},
    {"id": "mirror_a", "display_name": "Mirror A", "category": "basic", "strength": 2, "counters": ["mirror_b"]},
    {"id": "mirror_b", "display_name": "Mirror B", "category": "basic", "strength": 2, "counters": ["mirror_a"]},
    {"id": "reserves", "display_name": "Reserves", "category": "advanced", "strength": 6, "effect": "surprise"},
    {"id": "champion", "display_name": "Champion", "category": "advanced", "strength": 5, "effect": "hero_unit"},
]

PLAYER_CARDS = {"strike": 3, "guard": 2, "flank": 2, "wall": 1, "champion": 1, "weather": 1}


@pytest.fixture
def unit_types():
    return {d["id"]: unit_type_from_dict(d) for d in UNIT_TYPES}


@pytest.fixture
def card_types():
    return {d["id"]: card_type_from_dict(d) for d in CARD_TYPES}


@pytest.fixture
def territories():
    return TerritoryRegistry([
        TerritoryState(id="home", terrain="plains", owner="player", is_capital=True),
        TerritoryState(id="outpost", terrain="plains", owner="player"),
        TerritoryState(id="field", terrain="plains", owner="rival"),
        TerritoryState(id="keep", terrain="mountains", owner="rival", fortification_level=1),
        TerritoryState(id="wilds", terrain="forest", owner=None),
    ])


def make_units(territory_id: str, unit_type: str, count: int, prefix: str) -> list[Unit]:
    return [
        Unit(id=f"{prefix}_{unit_type}_{i:03d}", type=unit_type, territory_id=territory_id)
        for i in range(1, count + 1)
    ]


@pytest.fixture
def roster():
    return UnitRoster(
        make_units("home", "infantry", 3, "player")
        + make_units("field", "infantry", 2, "rival")
        + make_units("keep", "legion", 6, "rival")
    )


@pytest.fixture
def inventory(card_types):
    return CardInventory(card_types, {"player": dict(PLAYER_CARDS)})


@pytest.fixture
def make_engine(unit_types, card_types, territories, roster, inventory):
    def _make(total_rounds: int = 3) -> CombatEngine:
        return CombatEngine(
            unit_types, card_types, territories, roster, inventory,
            player_id="player", total_rounds=total_rounds,
        )
    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()


def play_round(engine: CombatEngine, player_card: str, opponent_card: str, effect_rolls=None) -> bool:
    """Select both cards and resolve; asserts both selections were accepted."""
    assert engine.select_card(player_card)
    assert engine.select_card(opponent_card, SIDE_OPPONENT)
    return engine.next_combat_round(effect_rolls)


@pytest.fixture
def play():
    return play_round
