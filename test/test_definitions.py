"""
Catalog and setup loading against the shipped data files.
"""

import json

import pytest

from backend.engine.definitions import (
    CardCategory,
    card_type_from_dict,
    list_setups,
    load_setup,
    load_static_definitions,
    unit_type_from_dict,
)
from backend.engine.utils import UnitIdGenerator, create_unit, initialize_from_setup


@pytest.fixture(scope="module")
def catalog():
    return load_static_definitions()


def test_catalog_sizes(catalog):
    unit_types, card_types = catalog
    assert len(unit_types) == 14
    assert len(card_types) == 23


def test_unit_type_fields(catalog):
    unit_types, _ = catalog
    pikeman = unit_types["pikeman"]
    assert pikeman.strength == 9
    assert pikeman.special_ability == "anti_cavalry"
    assert pikeman.ability_bonus == 4


def test_unit_type_from_dict_ignores_unknown_keys():
    archer = unit_type_from_dict({
        "id": "archer", "display_name": "Archer", "strength": 4, "ranged": True, "upgrade_to": "crossbowman",
    })
    assert archer.strength == 4
    assert not hasattr(archer, "upgrade_to")


def test_every_counter_points_at_a_card(catalog):
    _, card_types = catalog
    for card in card_types.values():
        assert card.counters <= set(card_types)
        assert isinstance(card.category, CardCategory)


def test_card_type_from_dict_normalises_requirement():
    card = card_type_from_dict({
        "id": "ram-rush", "display_name": "Ram Rush", "category": "basic", "strength": 3,
        "unit_requirement": "battering_ram", "unit_bonus": {"warrior": 1},
    })
    assert card.unit_requirement == ("battering_ram",)
    assert card.unit_bonus == (("warrior", 1),)
    assert card.to_dict()["unit_bonus"] == {"warrior": 1}


def test_unknown_category_is_rejected():
    with pytest.raises(ValueError):
        card_type_from_dict({"id": "x", "display_name": "X", "category": "mythic", "strength": 1})


def test_counter_to_unknown_card_is_rejected(tmp_path):
    (tmp_path / "unit_types.json").write_text(json.dumps({}))
    (tmp_path / "tactical_cards.json").write_text(json.dumps({
        "lonely": {"id": "lonely", "display_name": "Lonely", "category": "basic", "strength": 1,
                   "counters": ["phantom"]},
    }))
    with pytest.raises(ValueError, match="phantom"):
        load_static_definitions(tmp_path)


def test_list_and_load_setup():
    assert {"id": "0.1", "display_name": "Border Skirmish"} in list_setups()

    setup = load_setup("0.1")
    assert setup["total_rounds"] == 3
    assert setup["territories"]["stonepeak"]["fortification_level"] == 1
    assert load_setup()["id"] == "0.1"


def test_missing_setup():
    with pytest.raises(FileNotFoundError):
        load_setup("no-such-setup")


def test_initialize_from_setup(catalog):
    unit_types, card_types = catalog

    territories, roster, inventory = initialize_from_setup(load_setup("0.1"), unit_types, card_types)

    assert territories.get_territory("riverlands").is_capital
    assert territories.get_territory("dunmarsh").owner is None
    riverlands = roster.get_units_in_territory("riverlands")
    assert len(riverlands) == 5
    assert riverlands[0].id == "player_warrior_001"
    assert {u.type for u in riverlands} == {"warrior", "horseman", "archer"}
    assert inventory.count("frontal-assault", "player") == 3
    assert inventory.count("shield-wall", "rival") == 2


def test_setup_skips_unknown_entries(catalog):
    unit_types, card_types = catalog
    setup = {
        "territories": {"camp": {"terrain": "desert", "owner": "player"}},
        "starting_setup": {
            "units": {"camp": [{"type": "dragon"}, {"type": "scout", "count": 2}], "void": [{"type": "warrior"}]},
            "cards": {"player": {"frontal-assault": 1, "dragon-fire": 4}},
        },
    }

    territories, roster, inventory = initialize_from_setup(setup, unit_types, card_types)

    assert territories.get_territory("camp").terrain == "desert"
    assert [u.type for u in roster.get_units_in_territory("camp")] == ["scout", "scout"]
    assert roster.count("void") == 0
    assert [c.id for c in inventory.list_available("player")] == ["frontal-assault"]


def test_create_unit_ids_and_moves(catalog):
    unit_types, _ = catalog
    ids = UnitIdGenerator()

    first = create_unit("horseman", "camp", unit_types, ids, owner="player")
    second = create_unit("horseman", "camp", unit_types, ids, owner="player")
    neutral = create_unit("warrior", "camp", unit_types, ids)

    assert (first.id, second.id, neutral.id) == ("player_horseman_001", "player_horseman_002", "neutral_warrior_001")
    assert first.moves_left == unit_types["horseman"].movement
    with pytest.raises(KeyError):
        create_unit("dragon", "camp", unit_types, ids)
