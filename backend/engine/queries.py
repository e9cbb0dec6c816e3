"""
Query functions for UI integration.
Validators tell the engine (and the UI) whether an operation may run, without mutating anything.
Read-only queries cover the current combat phase and pre-battle attack assessment.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from backend.engine.cards import CardInventory
from backend.engine.combat import calculate_total_unit_strength
from backend.engine.definitions import TERRAIN_EFFECTS, TacticalCardDefinition, UnitTypeDefinition
from backend.engine.state import SIDE_OPPONENT, SIDE_PLAYER, SIDES, CombatSession, TerritoryState, Unit

UNIT_ADVANTAGE_BONUS = 0.5  # per attacker/defender unit pair with a type advantage
HOME_TERRITORY_DEFENSE_BONUS = 1

# (minimum strength ratio, win probability), checked in order
WIN_PROBABILITY_BUCKETS = [
    (3.0, 0.9),
    (2.0, 0.75),
    (1.5, 0.65),
    (1.0, 0.55),
    (0.75, 0.4),
    (0.5, 0.25),
]
MIN_WIN_PROBABILITY = 0.1


class CombatError(Enum):
    NO_ACTIVE_COMBAT = "no_active_combat"
    CARD_UNAVAILABLE = "card_unavailable"
    ROUND_NOT_READY = "round_not_ready"
    INVALID_TARGET = "invalid_target"
    ALREADY_ACTIVE = "already_active"
    COMBAT_NOT_CONCLUDED = "combat_not_concluded"
    INVALID_SIDE = "invalid_side"


class CombatPhase(Enum):
    IDLE = "idle"
    PREPARATION = "preparation"  # player card missing for the current round
    AWAITING_OPPONENT_CARD = "awaiting_opponent_card"
    ROUND_READY = "round_ready"  # both cards chosen
    CONCLUDED = "concluded"  # result set, waiting for end_combat


@dataclass
class ValidationResult:
    """Result of operation validation."""
    valid: bool
    error: str | None = None
    code: CombatError | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "error": self.error,
            "code": self.code.value if self.code else None,
        }


def _reject(code: CombatError, error: str) -> ValidationResult:
    return ValidationResult(False, error, code)


# ===== Operation Validation =====

def validate_start_combat(
    session: CombatSession | None,
    attacking_territory_id: str,
    defending_territory_id: str,
    attacking_territory: TerritoryState | None,
    defending_territory: TerritoryState | None,
    attacking_units: list[Unit],
) -> ValidationResult:
    """Only one session at a time; both territories must resolve and the attacker needs units."""
    if session is not None:
        return _reject(CombatError.ALREADY_ACTIVE, "A combat is already in progress")
    if attacking_territory is None:
        return _reject(CombatError.INVALID_TARGET, f"Unknown attacking territory: {attacking_territory_id}")
    if defending_territory is None:
        return _reject(CombatError.INVALID_TARGET, f"Unknown defending territory: {defending_territory_id}")
    if attacking_territory_id == defending_territory_id:
        return _reject(CombatError.INVALID_TARGET, "A territory cannot attack itself")
    if attacking_territory.owner is not None and attacking_territory.owner == defending_territory.owner:
        return _reject(CombatError.INVALID_TARGET, f"{defending_territory_id} is already yours")
    if not attacking_units:
        return _reject(CombatError.INVALID_TARGET, f"No units in {attacking_territory_id} to attack with")
    return ValidationResult(True)


def validate_select_card(
    session: CombatSession | None,
    card_id: str,
    side: str,
    card_types: dict[str, TacticalCardDefinition],
    inventory: CardInventory,
    player_id: str,
) -> ValidationResult:
    """
    The player's card must be in their inventory. The opponent's card comes from an
    outside source and only has to exist in the catalog.
    """
    if session is None or not session.active:
        return _reject(CombatError.NO_ACTIVE_COMBAT, "No active combat")
    if side not in SIDES:
        return _reject(CombatError.INVALID_SIDE, f"Unknown side: {side}")
    if card_id not in card_types:
        return _reject(CombatError.CARD_UNAVAILABLE, f"Unknown card: {card_id}")
    if side == SIDE_PLAYER and not inventory.is_available(card_id, player_id):
        return _reject(CombatError.CARD_UNAVAILABLE, f"No {card_id} cards left")
    return ValidationResult(True)


def validate_next_round(
    session: CombatSession | None,
    inventory: CardInventory,
    player_id: str,
) -> ValidationResult:
    if session is None or not session.active:
        return _reject(CombatError.NO_ACTIVE_COMBAT, "No active combat")
    player_card = session.selected_card(SIDE_PLAYER)
    if player_card is None:
        return _reject(CombatError.ROUND_NOT_READY, f"No player card selected for round {session.current_round}")
    if session.selected_card(SIDE_OPPONENT) is None:
        return _reject(CombatError.ROUND_NOT_READY, f"No opponent card selected for round {session.current_round}")
    if not inventory.is_available(player_card, player_id):
        return _reject(CombatError.CARD_UNAVAILABLE, f"No {player_card} cards left")
    return ValidationResult(True)


def validate_end_combat(session: CombatSession | None) -> ValidationResult:
    if session is None:
        return _reject(CombatError.NO_ACTIVE_COMBAT, "No combat to end")
    if session.active or session.result is None:
        return _reject(
            CombatError.COMBAT_NOT_CONCLUDED,
            f"Combat still in progress (round {session.current_round} of {session.total_rounds})",
        )
    return ValidationResult(True)


def validate_abandon_combat(session: CombatSession | None) -> ValidationResult:
    if session is None:
        return _reject(CombatError.NO_ACTIVE_COMBAT, "No combat to abandon")
    return ValidationResult(True)


# ===== Read-only Queries =====

def get_combat_phase(session: CombatSession | None) -> CombatPhase:
    if session is None:
        return CombatPhase.IDLE
    if not session.active:
        return CombatPhase.CONCLUDED
    if session.selected_card(SIDE_PLAYER) is None:
        return CombatPhase.PREPARATION
    if session.selected_card(SIDE_OPPONENT) is None:
        return CombatPhase.AWAITING_OPPONENT_CARD
    return CombatPhase.ROUND_READY


def calculate_unit_type_advantage(
    attacking_units: list[Unit],
    defending_units: list[Unit],
    unit_types: dict[str, UnitTypeDefinition],
) -> tuple[float, float]:
    """
    (attacker_advantage, defender_advantage) from the unit-type matchup table.
    Each pair of units where one side's type is strong against the other's adds UNIT_ADVANTAGE_BONUS.
    """
    def type_counts(units: list[Unit]) -> dict[str, int]:
        counts: dict[str, int] = {}
        for unit in units:
            counts[unit.type] = counts.get(unit.type, 0) + 1
        return counts

    attacker_types = type_counts(attacking_units)
    defender_types = type_counts(defending_units)
    attacker_advantage = 0.0
    defender_advantage = 0.0

    for attacker_type, count in attacker_types.items():
        unit_def = unit_types.get(attacker_type)
        if not unit_def:
            continue
        for target in unit_def.advantage_against:
            attacker_advantage += count * defender_types.get(target, 0) * UNIT_ADVANTAGE_BONUS
        for target in unit_def.disadvantage_against:
            defender_advantage += count * defender_types.get(target, 0) * UNIT_ADVANTAGE_BONUS

    # Defender disadvantages are already counted from the attacker's side
    for defender_type, count in defender_types.items():
        unit_def = unit_types.get(defender_type)
        if not unit_def:
            continue
        for target in unit_def.advantage_against:
            defender_advantage += count * attacker_types.get(target, 0) * UNIT_ADVANTAGE_BONUS

    return attacker_advantage, defender_advantage


def win_probability_for_ratio(strength_ratio: float) -> float:
    for min_ratio, probability in WIN_PROBABILITY_BUCKETS:
        if strength_ratio >= min_ratio:
            return probability
    return MIN_WIN_PROBABILITY


def assessment_label(win_probability: float) -> str:
    if win_probability >= 0.6:
        return "Favorable"
    if win_probability >= 0.4:
        return "Balanced"
    return "Unfavorable"


@dataclass
class AttackAssessment:
    win_probability: float
    attack_strength: float
    defense_strength: float
    assessment: str  # "Favorable", "Balanced", "Unfavorable"
    factors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "win_probability": self.win_probability,
            "attack_strength": round(self.attack_strength, 1),
            "defense_strength": round(self.defense_strength, 1),
            "assessment": self.assessment,
            "factors": self.factors,
        }


def assess_attack_chances(
    attacking_units: list[Unit],
    defending_units: list[Unit],
    attacking_territory: TerritoryState,
    defending_territory: TerritoryState,
    unit_types: dict[str, UnitTypeDefinition],
) -> AttackAssessment:
    """
    Rough pre-battle odds. Independent of cards; meant for the UI before committing to an attack.
    Strength is the plain composite roster strength (health and level scaled) plus matchup
    advantages, terrain modifiers and a home-territory bonus for an owned defender.
    """
    attack_strength = calculate_total_unit_strength(attacking_units, unit_types)
    defense_strength = calculate_total_unit_strength(defending_units, unit_types)
    attacker_advantage, defender_advantage = calculate_unit_type_advantage(
        attacking_units, defending_units, unit_types
    )
    attacker_terrain = TERRAIN_EFFECTS.get(attacking_territory.terrain, {}).get("attack", 0)
    defender_terrain = TERRAIN_EFFECTS.get(defending_territory.terrain, {}).get("defense", 0)
    home_bonus = HOME_TERRITORY_DEFENSE_BONUS if defending_territory.is_owned else 0

    final_attack = attack_strength + attacker_advantage + attacker_terrain
    final_defense = defense_strength + defender_advantage + defender_terrain + home_bonus

    if final_defense <= 0:
        win_probability = WIN_PROBABILITY_BUCKETS[0][1] if final_attack > 0 else MIN_WIN_PROBABILITY
    else:
        win_probability = win_probability_for_ratio(final_attack / final_defense)

    factors = [
        {
            "name": "Unit strength",
            "attacker": round(attack_strength, 1),
            "defender": round(defense_strength, 1),
            "favorable": attack_strength > defense_strength,
        },
        {
            "name": "Unit type advantage",
            "attacker": attacker_advantage,
            "defender": defender_advantage,
            "favorable": attacker_advantage > defender_advantage,
        },
        {
            "name": "Terrain modifier",
            "attacker": attacker_terrain,
            "defender": defender_terrain,
            "favorable": attacker_terrain >= defender_terrain,
        },
        {
            "name": "Home territory bonus",
            "attacker": 0,
            "defender": home_bonus,
            "favorable": home_bonus == 0,
        },
    ]

    return AttackAssessment(
        win_probability=win_probability,
        attack_strength=final_attack,
        defense_strength=final_defense,
        assessment=assessment_label(win_probability),
        factors=factors,
    )
