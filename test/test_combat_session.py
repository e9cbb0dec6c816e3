"""
Combat session state machine: start, card selection, rounds, conclusion, end and abandon.

Fixture forces on plains: home has 3 infantry (unit score 3), field has 2 infantry (unit score 2).
"""

import pytest

from backend.engine import events
from backend.engine.conquest import make_territory_applier
from backend.engine.queries import CombatError, CombatPhase
from backend.engine.state import SIDE_OPPONENT, TerritoryState, Unit

# Player wins rounds 1 and 2, loses round 3.
# Casualties: attacker 7 + 10 + 20 = 37, defender 30 + 20 + 10 = 60 -> control 30 + 23 // 5 = 34
VICTORY_PLAN = [("wall", "strike"), ("flank", "strike"), ("strike", "wall")]
# Player loses rounds 1 and 2, wins round 3.
# Casualties: attacker 20 + 20 + 10 = 50, defender 10 + 10 + 20 = 40
DEFEAT_PLAN = [("strike", "wall"), ("strike", "wall"), ("flank", "strike")]


def run_plan(engine, play, plan):
    results = [play(engine, player_card, opponent_card) for player_card, opponent_card in plan]
    return results


def event_types(engine):
    return [e.type for e in engine.drain_events()]


# ===== Start =====

def test_start_combat_creates_session(engine):
    assert engine.start_combat("home", "field")

    combat = engine.combat
    assert combat["current_round"] == 1
    assert combat["active"] is True
    assert combat["result"] is None
    assert combat["total_rounds"] == 3
    assert combat["terrain"] == "plains"
    assert len(combat["attacking_units"]) == 3
    assert len(combat["defending_units"]) == 2
    assert combat["battle_log"][0]["round"] == 0
    assert combat["casualties"] == {"attacker": 0.0, "defender": 0.0}
    assert engine.phase is CombatPhase.PREPARATION
    assert event_types(engine) == [events.COMBAT_STARTED]


def test_start_with_empty_attacker_creates_nothing(engine):
    assert not engine.start_combat("outpost", "field")

    assert engine.combat is None
    assert engine.phase is CombatPhase.IDLE
    assert engine.last_rejection.code is CombatError.INVALID_TARGET
    assert event_types(engine) == [events.ACTION_REJECTED]


@pytest.mark.parametrize("attacking,defending", [
    ("nowhere", "field"),
    ("home", "nowhere"),
    ("home", "home"),
    ("home", "outpost"),  # own territory
])
def test_start_rejects_invalid_targets(engine, attacking, defending):
    assert not engine.start_combat(attacking, defending)
    assert engine.combat is None
    assert engine.last_rejection.code is CombatError.INVALID_TARGET


def test_start_uses_supplied_territory_lookup(engine, territories):
    def hide_field(territory_id):
        return None if territory_id == "field" else territories.get_territory(territory_id)

    assert not engine.start_combat("home", "field", hide_field)
    assert engine.last_rejection.code is CombatError.INVALID_TARGET


def test_second_session_is_rejected(engine):
    assert engine.start_combat("home", "field")
    before = engine.combat

    assert not engine.start_combat("home", "wilds")
    assert engine.last_rejection.code is CombatError.ALREADY_ACTIVE
    assert engine.combat == before


def test_session_snapshots_units(engine, roster):
    engine.start_combat("home", "field")
    roster.add_unit(Unit(id="late_arrival", type="infantry", territory_id="home"))

    assert len(engine.combat["attacking_units"]) == 3


def test_unowned_territory_can_be_attacked(engine):
    assert engine.start_combat("home", "wilds")
    combat = engine.combat
    assert combat["defender_id"] is None
    assert combat["defending_units"] == []


# ===== Card selection =====

def test_select_unavailable_card_leaves_selection_unchanged(engine):
    engine.start_combat("home", "field")
    assert "reserves" not in [c.id for c in engine.get_available_cards()]

    assert not engine.select_card("reserves")
    assert engine.last_rejection.code is CombatError.CARD_UNAVAILABLE
    assert engine.combat["selected_cards"]["player"] == [None, None, None]


@pytest.mark.parametrize("card_id,side,code", [
    ("dragon-fire", "player", CombatError.CARD_UNAVAILABLE),
    ("dragon-fire", "opponent", CombatError.CARD_UNAVAILABLE),
    ("strike", "spectator", CombatError.INVALID_SIDE),
])
def test_select_card_rejections(engine, card_id, side, code):
    engine.start_combat("home", "field")
    assert not engine.select_card(card_id, side)
    assert engine.last_rejection.code is code


def test_select_card_without_session(engine):
    assert not engine.select_card("strike")
    assert engine.last_rejection.code is CombatError.NO_ACTIVE_COMBAT


def test_opponent_card_is_not_checked_against_player_inventory(engine):
    engine.start_combat("home", "field")
    assert engine.select_card("reserves", SIDE_OPPONENT)


def test_selecting_does_not_consume_and_can_be_replaced(engine, inventory):
    engine.start_combat("home", "field")
    assert engine.select_card("strike")
    assert engine.select_card("guard")

    assert engine.combat["selected_cards"]["player"][0] == "guard"
    assert inventory.count("strike", "player") == 3
    assert inventory.count("guard", "player") == 2


def test_phases_follow_selection(engine):
    assert engine.phase is CombatPhase.IDLE
    engine.start_combat("home", "field")
    assert engine.phase is CombatPhase.PREPARATION

    engine.select_card("strike", SIDE_OPPONENT)
    assert engine.phase is CombatPhase.PREPARATION
    engine.select_card("strike")
    assert engine.phase is CombatPhase.ROUND_READY


def test_awaiting_opponent_card(engine):
    engine.start_combat("home", "field")
    engine.select_card("strike")
    assert engine.phase is CombatPhase.AWAITING_OPPONENT_CARD


# ===== Rounds =====

def test_next_round_requires_both_cards(engine):
    engine.start_combat("home", "field")
    assert not engine.next_combat_round()
    assert engine.last_rejection.code is CombatError.ROUND_NOT_READY

    engine.select_card("strike")
    assert not engine.next_combat_round()
    assert engine.last_rejection.code is CombatError.ROUND_NOT_READY
    assert engine.combat["current_round"] == 1
    assert len(engine.combat["battle_log"]) == 1


def test_next_round_without_session(engine):
    assert not engine.next_combat_round()
    assert engine.last_rejection.code is CombatError.NO_ACTIVE_COMBAT


def test_counter_wins_round_against_stronger_defender(engine, play):
    # keep: 6 legion in the mountains behind a fortification
    engine.start_combat("home", "keep")
    assert play(engine, "wall", "strike")

    entry = engine.combat["battle_log"][1]
    assert entry["round"] == 1
    assert entry["winner"] == "player"
    assert entry["player_score"] < entry["opponent_score"]
    assert entry["attacker_casualties"] < entry["defender_casualties"]


def test_result_is_only_set_after_final_round(engine, play):
    engine.start_combat("home", "field")

    assert play(engine, *VICTORY_PLAN[0])
    assert play(engine, *VICTORY_PLAN[1])
    # Majority is already decided but round 3 has not been played
    assert engine.combat["result"] is None
    assert engine.combat["active"] is True
    assert engine.phase is CombatPhase.PREPARATION

    assert play(engine, *VICTORY_PLAN[2]) is False
    combat = engine.combat
    assert combat["active"] is False
    assert combat["result"] == "victory"
    assert combat["battle_log"][-1]["round"] == "Final"
    assert engine.phase is CombatPhase.CONCLUDED

    # Further calls are rejected and do not conclude again
    assert engine.next_combat_round() is False
    assert engine.last_rejection.code is CombatError.NO_ACTIVE_COMBAT
    assert event_types(engine).count(events.COMBAT_CONCLUDED) == 1


def test_round_log_and_casualties(engine, play):
    engine.start_combat("home", "field")
    run_plan(engine, play, VICTORY_PLAN)

    combat = engine.combat
    assert [e["winner"] for e in combat["battle_log"][1:4]] == ["player", "player", "opponent"]
    assert combat["battle_log"][1]["player_score"] == 8
    assert combat["battle_log"][1]["opponent_score"] == 4
    assert combat["casualties"] == {"attacker": 37.0, "defender": 60.0}
    assert combat["territory_control_delta"] == 34


def test_player_cards_consumed_once_per_resolved_round(engine, play, inventory):
    engine.start_combat("home", "field")
    play(engine, "wall", "strike")
    assert inventory.count("wall", "player") == 0
    play(engine, "flank", "strike")
    assert inventory.count("flank", "player") == 1
    play(engine, "strike", "wall")
    assert inventory.count("strike", "player") == 2
    assert inventory.count("guard", "player") == 2


def test_exhausted_card_cannot_be_selected_again(engine, play):
    engine.start_combat("home", "field")
    play(engine, "wall", "strike")

    assert not engine.select_card("wall")
    assert engine.last_rejection.code is CombatError.CARD_UNAVAILABLE


def test_casualties_never_exceed_100(make_engine, play, inventory):
    engine = make_engine(total_rounds=8)
    inventory.add("strike", "player", 10)
    engine.start_combat("home", "field")

    for _ in range(8):
        play(engine, "strike", "wall")
        casualties = engine.combat["casualties"]
        assert 0 <= casualties["attacker"] <= 100
        assert 0 <= casualties["defender"] <= 100
    assert engine.combat["casualties"]["attacker"] == 100
    assert engine.combat["result"] == "defeat"


def test_random_effect_roll_is_passed_through(engine, play):
    engine.start_combat("home", "field")
    play(engine, "weather", "strike", {"player": 5})
    assert engine.combat["battle_log"][1]["player_score"] == 11


# ===== End =====

def test_end_combat_rejected_while_active(engine, play):
    assert engine.end_combat() is None
    assert engine.last_rejection.code is CombatError.NO_ACTIVE_COMBAT

    engine.start_combat("home", "field")
    play(engine, "strike", "strike")
    assert engine.end_combat() is None
    assert engine.last_rejection.code is CombatError.COMBAT_NOT_CONCLUDED
    assert engine.combat["active"] is True


def test_victory_adds_partial_control(engine, play, territories):
    engine.start_combat("home", "field")
    run_plan(engine, play, VICTORY_PLAN)
    calls = []

    outcome = engine.end_combat(lambda *args: calls.append(args))

    assert calls == [("field", "home", False, 34)]
    assert outcome.result == "victory"
    assert outcome.territory_control == 34
    assert outcome.control_value == 34
    assert not outcome.full_conquest
    assert engine.combat is None
    assert engine.phase is CombatPhase.IDLE
    # The engine itself never writes territory state
    assert territories.get_territory("field").control_value == 0


def test_partial_control_accumulates_to_conquest(engine, play, territories):
    applier = make_territory_applier(territories, "player")

    engine.start_combat("home", "field")
    run_plan(engine, play, VICTORY_PLAN)
    engine.end_combat(applier)
    field = territories.get_territory("field")
    assert (field.owner, field.control_value, field.controlled_by) == ("rival", 34, "player")

    field.control_value = 80
    engine.drain_events()
    engine.start_combat("home", "field")
    run_plan(engine, play, [("strike", "strike"), ("flank", "strike"), ("guard", "strike")])
    assert "Decisive Victory" in engine.combat["battle_log"][-1]["message"]
    outcome = engine.end_combat(applier)

    assert outcome.full_conquest
    assert outcome.control_value == 100
    assert field.owner == "player"
    assert field.control_value == 0
    assert events.TERRITORY_CAPTURED in event_types(engine)


def test_control_from_another_attacker_does_not_count(engine, play, territories):
    field = territories.get_territory("field")
    field.control_value, field.controlled_by = 80, "someone-else"

    engine.start_combat("home", "field")
    run_plan(engine, play, VICTORY_PLAN)
    outcome = engine.end_combat(make_territory_applier(territories, "player"))

    assert not outcome.full_conquest
    assert (field.control_value, field.controlled_by) == (34, "player")


def test_defeat_does_not_touch_territory(engine, play, territories):
    engine.start_combat("home", "field")
    run_plan(engine, play, DEFEAT_PLAN)
    assert engine.combat["result"] == "defeat"
    assert engine.combat["territory_control_delta"] == 0
    calls = []

    outcome = engine.end_combat(lambda *args: calls.append(args))

    assert calls == []
    assert outcome.territory_control == 0
    assert territories.get_territory("field").owner == "rival"


def test_aftermath_after_victory(engine, play, roster):
    engine.start_combat("home", "field")
    run_plan(engine, play, VICTORY_PLAN)
    engine.end_combat()

    for unit in roster.get_units_in_territory("home"):
        assert unit.health == 93  # 20 * 37% -> 7 damage
        assert unit.experience == 15
    for unit in roster.get_units_in_territory("field"):
        assert unit.health == 100
        assert unit.experience == 0


def test_aftermath_after_defeat(engine, play, roster):
    engine.start_combat("home", "field")
    run_plan(engine, play, DEFEAT_PLAN)
    engine.end_combat()

    for unit in roster.get_units_in_territory("home"):
        assert (unit.health, unit.experience) == (90, 8)
    for unit in roster.get_units_in_territory("field"):
        assert (unit.health, unit.experience) == (92, 15)


def test_aftermath_levels_up_and_wraps_experience(engine, play, roster):
    veteran = roster.find_unit("player_infantry_001")
    veteran.experience = 90

    engine.start_combat("home", "field")
    run_plan(engine, play, VICTORY_PLAN)
    engine.end_combat()

    veteran = roster.find_unit("player_infantry_001")
    assert (veteran.level, veteran.experience) == (2, 5)


def test_units_at_zero_health_are_removed(engine, play, roster):
    roster.find_unit("player_infantry_003").health = 1

    engine.start_combat("home", "field")
    run_plan(engine, play, VICTORY_PLAN)
    engine.drain_events()
    outcome = engine.end_combat()

    assert outcome.destroyed_unit_ids == ["player_infantry_003"]
    assert roster.find_unit("player_infantry_003") is None
    assert roster.count("home") == 2
    assert events.UNIT_DESTROYED in event_types(engine)


def test_new_session_after_end(engine, play):
    engine.start_combat("home", "field")
    run_plan(engine, play, VICTORY_PLAN)
    engine.end_combat()
    assert engine.start_combat("home", "wilds")


@pytest.fixture
def outside_lookup(territories):
    """Resolves an undefended "ghost" territory the store does not know about."""
    ghost = TerritoryState(id="ghost", terrain="plains", owner="rival")

    def lookup(territory_id):
        if territory_id == ghost.id:
            return ghost
        return territories.get_territory(territory_id)

    return ghost, lookup


def test_supplied_lookup_is_used_through_end(engine, play, outside_lookup):
    ghost, lookup = outside_lookup
    assert engine.start_combat("home", "ghost", lookup)
    run_plan(engine, play, VICTORY_PLAN)
    assert engine.combat["result"] == "victory"
    calls = []

    outcome = engine.end_combat(lambda *args: calls.append(args))

    # casualties 22 vs 65 -> 30 + 43 // 5
    assert calls == [("ghost", "home", False, 38)]
    assert outcome.control_value == 38


def test_supplied_lookup_decides_full_conquest(engine, play, outside_lookup):
    ghost, lookup = outside_lookup
    ghost.control_value, ghost.controlled_by = 80, "player"

    engine.start_combat("home", "ghost", lookup)
    run_plan(engine, play, VICTORY_PLAN)
    assert "Decisive Victory" in engine.combat["battle_log"][-1]["message"]
    calls = []

    outcome = engine.end_combat(lambda *args: calls.append(args))

    assert calls == [("ghost", "home", True, 100)]
    assert outcome.full_conquest


def test_lookup_does_not_outlive_session(engine, outside_lookup):
    _, lookup = outside_lookup
    engine.start_combat("home", "ghost", lookup)
    engine.abandon_combat()

    assert not engine.start_combat("home", "ghost")
    assert engine.last_rejection.code is CombatError.INVALID_TARGET


# ===== Abandon =====

def test_abandon_consumes_only_resolved_rounds(engine, play, inventory, roster, territories):
    engine.start_combat("home", "field")
    play(engine, "strike", "strike")
    engine.select_card("wall")

    assert engine.abandon_combat()

    assert engine.combat is None
    assert inventory.count("strike", "player") == 2
    assert inventory.count("wall", "player") == 1
    assert all(u.health == 100 for u in roster.get_units_in_territory("home"))
    assert territories.get_territory("field").control_value == 0
    assert events.COMBAT_ABANDONED in event_types(engine)


def test_abandon_without_session(engine):
    assert not engine.abandon_combat()
    assert engine.last_rejection.code is CombatError.NO_ACTIVE_COMBAT


# ===== Cards through the engine =====

def test_contextual_cards_use_defending_terrain(engine):
    assert engine.add_card("ambush")
    assert [e.type for e in engine.drain_events()] == [events.CARD_ADDED]

    assert engine.get_contextual_cards("home")[0].relevance == 0
    engine.start_combat("home", "wilds")
    ranked = engine.get_contextual_cards()
    assert ranked[0].id == "ambush"
    assert ranked[0].relevance == 15


def test_add_card_rejection(engine):
    assert not engine.add_card("dragon-fire")
    assert engine.last_rejection.code is CombatError.CARD_UNAVAILABLE


def test_rejections_emit_events(engine):
    engine.next_combat_round()
    rejected = engine.drain_events()
    assert len(rejected) == 1
    assert rejected[0].type == events.ACTION_REJECTED
    assert rejected[0].payload["code"] == "no_active_combat"
    assert engine.drain_events() == []
