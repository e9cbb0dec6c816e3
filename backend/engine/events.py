"""
Combat events for UI hooks and logging.
Events describe what happened while an engine operation ran.
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class GameEvent:
    """Base event class. All events have a type and payload."""
    type: str
    payload: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "payload": self.payload}


# ===== Event Type Constants =====

# Combat events
COMBAT_STARTED = "combat_started"
CARD_SELECTED = "card_selected"
COMBAT_ROUND_RESOLVED = "combat_round_resolved"
COMBAT_CONCLUDED = "combat_concluded"
COMBAT_ENDED = "combat_ended"
COMBAT_ABANDONED = "combat_abandoned"

# Territory events
TERRITORY_CONTROL_CHANGED = "territory_control_changed"
TERRITORY_CAPTURED = "territory_captured"

# Unit events
UNIT_DESTROYED = "unit_destroyed"

# Card inventory events
CARD_ADDED = "card_added"

# Rejected operations
ACTION_REJECTED = "action_rejected"


# ===== Event Factory Functions =====

def combat_started(
    attacking_territory_id: str,
    defending_territory_id: str,
    attacker_unit_ids: list[str],
    defender_unit_ids: list[str],
    total_rounds: int,
) -> GameEvent:
    return GameEvent(COMBAT_STARTED, {
        "attacking_territory_id": attacking_territory_id,
        "defending_territory_id": defending_territory_id,
        "attacker_unit_ids": attacker_unit_ids,
        "defender_unit_ids": defender_unit_ids,
        "total_rounds": total_rounds,
    })


def card_selected(side: str, card_id: str, round_number: int) -> GameEvent:
    return GameEvent(CARD_SELECTED, {
        "side": side,
        "card_id": card_id,
        "round": round_number,
    })


def combat_round_resolved(
    round_number: int,
    winner: str,
    player_card: str,
    opponent_card: str,
    player_score: float,
    opponent_score: float,
    attacker_casualties: float,
    defender_casualties: float,
    decided_by_counter: bool = False,
) -> GameEvent:
    """
    Emitted after each round.
    Casualties are this round's percentages, not the running totals.
    """
    return GameEvent(COMBAT_ROUND_RESOLVED, {
        "round": round_number,
        "winner": winner,
        "player_card": player_card,
        "opponent_card": opponent_card,
        "player_score": player_score,
        "opponent_score": opponent_score,
        "attacker_casualties": attacker_casualties,
        "defender_casualties": defender_casualties,
        "decided_by_counter": decided_by_counter,
    })


def combat_concluded(
    result: str,
    tally: dict[str, int],
    casualties: dict[str, float],
    territory_control_delta: int,
) -> GameEvent:
    return GameEvent(COMBAT_CONCLUDED, {
        "result": result,
        "tally": tally,
        "casualties": casualties,
        "territory_control_delta": territory_control_delta,
    })


def combat_ended(
    attacking_territory_id: str,
    defending_territory_id: str,
    result: str,
    full_conquest: bool,
    control_value: int,
) -> GameEvent:
    return GameEvent(COMBAT_ENDED, {
        "attacking_territory_id": attacking_territory_id,
        "defending_territory_id": defending_territory_id,
        "result": result,
        "full_conquest": full_conquest,
        "control_value": control_value,
    })


def combat_abandoned(
    attacking_territory_id: str,
    defending_territory_id: str,
    rounds_played: int,
) -> GameEvent:
    return GameEvent(COMBAT_ABANDONED, {
        "attacking_territory_id": attacking_territory_id,
        "defending_territory_id": defending_territory_id,
        "rounds_played": rounds_played,
    })


def territory_control_changed(
    territory_id: str,
    controlled_by: str | None,
    old_value: int,
    new_value: int,
) -> GameEvent:
    return GameEvent(TERRITORY_CONTROL_CHANGED, {
        "territory_id": territory_id,
        "controlled_by": controlled_by,
        "old_value": old_value,
        "new_value": new_value,
    })


def territory_captured(
    territory_id: str,
    old_owner: str | None,
    new_owner: str | None,
) -> GameEvent:
    return GameEvent(TERRITORY_CAPTURED, {
        "territory_id": territory_id,
        "old_owner": old_owner,
        "new_owner": new_owner,
    })


def unit_destroyed(unit_id: str, unit_type: str, territory_id: str) -> GameEvent:
    return GameEvent(UNIT_DESTROYED, {
        "unit_id": unit_id,
        "unit_type": unit_type,
        "territory_id": territory_id,
    })


def card_added(player_id: str, card_id: str, amount: int, count: int) -> GameEvent:
    return GameEvent(CARD_ADDED, {
        "player_id": player_id,
        "card_id": card_id,
        "amount": amount,
        "count": count,
    })


def action_rejected(action: str, code: str, error: str) -> GameEvent:
    return GameEvent(ACTION_REJECTED, {
        "action": action,
        "code": code,
        "error": error,
    })
