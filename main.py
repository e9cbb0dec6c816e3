"""
Main entry point for the Empire's Legacy combat engine.
Demonstrates a full three-round battle on the default setup.
"""

import logging

from backend.engine.combat_session import CombatEngine
from backend.engine.conquest import make_territory_applier
from backend.engine.definitions import load_setup, load_static_definitions
from backend.engine.state import SIDE_OPPONENT
from backend.engine.utils import initialize_from_setup, print_combat_log

# Opponent card per round; the engine does not pick cards for the defender
RIVAL_PLAN = ["defensive-stance", "frontal-assault", "shield-wall"]
PLAYER_PLAN = ["flanking-maneuver", "wedge-formation", "frontal-assault"]


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    print("Empire's Legacy - Combat Engine Demo")
    print("=" * 60)

    unit_types, card_types = load_static_definitions()
    setup = load_setup()
    territories, roster, inventory = initialize_from_setup(setup, unit_types, card_types)
    engine = CombatEngine(
        unit_types, card_types, territories, roster, inventory,
        total_rounds=setup["total_rounds"] or 3,
    )

    attacking, defending = "riverlands", "greyhills"
    assessment = engine.assess_attack(attacking, defending)
    print(f"\n[ASSESSMENT] {attacking} -> {defending}: {assessment.assessment} "
          f"({assessment.win_probability:.0%} win chance)")

    print("\n[CARDS]")
    for entry in engine.get_contextual_cards(attacking):
        print(f"  {entry.card.display_name:<20} x{entry.count}  relevance {entry.relevance}")

    if not engine.start_combat(attacking, defending):
        print(f"Cannot start combat: {engine.last_rejection.error}")
        return

    # A rejected action leaves the session as it was
    engine.next_combat_round()
    print(f"\n[REJECTED] {engine.last_rejection.code.value}: {engine.last_rejection.error}")

    for player_card, rival_card in zip(PLAYER_PLAN, RIVAL_PLAN):
        engine.select_card(player_card)
        engine.select_card(rival_card, SIDE_OPPONENT)
        if not engine.next_combat_round():
            break

    rival = territories.get_territory(defending).owner
    outcome = engine.end_combat(make_territory_applier(territories, "player"))
    print_combat_log(outcome, "player", rival)

    print("[EVENTS]")
    for event in engine.drain_events():
        print(f"  {event.type}")

    print("\n[TERRITORY]")
    print(f"  {territories.get_territory(defending).to_dict()}")


if __name__ == "__main__":
    main()
