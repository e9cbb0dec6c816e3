"""
Round resolution.
Pure scoring of one combat round: two played cards, two composite unit strengths
and the defending terrain in, winner/scores/casualties out. No state is touched here.
Unit strength modifiers (terrain effectiveness, special abilities) are computed per unit
and merged, then folded into a composite strength per side.
Card effects that need a roll (e.g. "random") take the roll from the caller.
"""

from dataclasses import dataclass, field
from typing import Any

from backend.engine import (
    COUNTER_BONUS,
    DRAW_CASUALTIES,
    LEVEL_STRENGTH_BONUS,
    LOSER_BASE_CASUALTIES,
    LOSER_CASUALTIES_PER_POINT,
    LOSER_MAX_CASUALTIES,
    TERRAIN_AFFINITY_BONUS,
    UNIT_STRENGTH_DIVISOR,
    WINNER_BASE_CASUALTIES,
    WINNER_CASUALTIES_PER_POINT,
    WINNER_CASUALTY_RATIO,
    WINNER_MIN_CASUALTIES,
)
from backend.engine.definitions import (
    DEFENSIVE_TERRAIN_BONUSES,
    CardCategory,
    TacticalCardDefinition,
    UnitTypeDefinition,
)
from backend.engine.state import SIDE_OPPONENT, SIDE_PLAYER, WINNER_DRAW, Unit

ABILITY_ANTI_CAVALRY = "anti_cavalry"
ABILITY_FORMATION_FIGHTING = "formation_fighting"
ABILITY_CHARGE = "charge"
ABILITY_VOLLEY_FIRE = "volley_fire"

# Default ability bonuses (a unit type's ability_bonus overrides)
DEFAULT_ABILITY_BONUSES = {
    ABILITY_ANTI_CAVALRY: 3,
    ABILITY_CHARGE: 2,
    ABILITY_VOLLEY_FIRE: 3,
}
FORMATION_BONUS_PER_UNIT = 1

EFFECT_INITIATIVE = "initiative"
EFFECT_SURPRISE = "surprise"
EFFECT_HERO_UNIT = "hero_unit"
EFFECT_RANDOM = "random"

EFFECT_INITIATIVE_BONUS = 3  # first round only
EFFECT_SURPRISE_BONUS = 4  # final round only
EFFECT_HERO_UNIT_BONUS = 3  # every round
RANDOM_ROLL_MIN = 1
RANDOM_ROLL_MAX = 5
DEFAULT_RANDOM_ROLL = 3  # used when the caller supplies no roll


def compute_terrain_stat_modifiers(
    terrain: str | None,
    attacker_units: list[Unit],
    defender_units: list[Unit],
    unit_types: dict[str, UnitTypeDefinition],
) -> tuple[dict[str, int], dict[str, int]]:
    """
    Per-unit terrain effectiveness at the defending terrain (e.g. chariot +2 on plains, -2 in mountains).
    Both sides fight on the same ground, so the same table applies to attackers and defenders.
    Returns (attacker_modifiers, defender_modifiers) as unit id -> modifier.
    """
    if not terrain:
        return {}, {}

    def apply_for_units(units: list[Unit]) -> dict[str, int]:
        mods: dict[str, int] = {}
        for unit in units:
            unit_def = unit_types.get(unit.type)
            if not unit_def:
                continue
            value = unit_def.terrain_effectiveness.get(terrain, 0)
            if value:
                mods[unit.id] = value
        return mods

    return apply_for_units(attacker_units), apply_for_units(defender_units)


def compute_anti_cavalry_stat_modifiers(
    attacker_units: list[Unit],
    defender_units: list[Unit],
    unit_types: dict[str, UnitTypeDefinition],
) -> tuple[dict[str, int], dict[str, int]]:
    """
    Anti-cavalry: units with the anti_cavalry ability get their bonus when the opposing side fields cavalry.
    Returns (attacker_modifiers, defender_modifiers) as unit id -> modifier.
    """
    def has_cavalry(units: list[Unit]) -> bool:
        for unit in units:
            unit_def = unit_types.get(unit.type)
            if unit_def and unit_def.cavalry:
                return True
        return False

    def apply_for_side(units: list[Unit], has_opposing_cavalry: bool) -> dict[str, int]:
        if not has_opposing_cavalry:
            return {}
        mods: dict[str, int] = {}
        for unit in units:
            unit_def = unit_types.get(unit.type)
            if unit_def and unit_def.special_ability == ABILITY_ANTI_CAVALRY:
                mods[unit.id] = _ability_bonus(unit_def)
        return mods

    attacker_mods = apply_for_side(attacker_units, has_cavalry(defender_units))
    defender_mods = apply_for_side(defender_units, has_cavalry(attacker_units))
    return attacker_mods, defender_mods


def compute_formation_stat_modifiers(
    attacker_units: list[Unit],
    defender_units: list[Unit],
    unit_types: dict[str, UnitTypeDefinition],
) -> tuple[dict[str, int], dict[str, int]]:
    """
    Formation fighting: +1 per other friendly unit of the same type.
    Returns (attacker_modifiers, defender_modifiers) as unit id -> modifier.
    """
    def apply_for_side(units: list[Unit]) -> dict[str, int]:
        type_counts: dict[str, int] = {}
        for unit in units:
            type_counts[unit.type] = type_counts.get(unit.type, 0) + 1
        mods: dict[str, int] = {}
        for unit in units:
            unit_def = unit_types.get(unit.type)
            if not unit_def or unit_def.special_ability != ABILITY_FORMATION_FIGHTING:
                continue
            others = type_counts[unit.type] - 1
            if others > 0:
                mods[unit.id] = others * FORMATION_BONUS_PER_UNIT
        return mods

    return apply_for_side(attacker_units), apply_for_side(defender_units)


def compute_stance_stat_modifiers(
    attacker_units: list[Unit],
    defender_units: list[Unit],
    unit_types: dict[str, UnitTypeDefinition],
) -> tuple[dict[str, int], dict[str, int]]:
    """
    Charge (+2) applies only to attackers, volley fire (+3) only to defenders.
    Returns (attacker_modifiers, defender_modifiers) as unit id -> modifier.
    """
    def apply_for_side(units: list[Unit], ability: str) -> dict[str, int]:
        mods: dict[str, int] = {}
        for unit in units:
            unit_def = unit_types.get(unit.type)
            if unit_def and unit_def.special_ability == ability:
                mods[unit.id] = _ability_bonus(unit_def)
        return mods

    return (
        apply_for_side(attacker_units, ABILITY_CHARGE),
        apply_for_side(defender_units, ABILITY_VOLLEY_FIRE),
    )


def _ability_bonus(unit_def: UnitTypeDefinition) -> int:
    if unit_def.ability_bonus:
        return unit_def.ability_bonus
    return DEFAULT_ABILITY_BONUSES.get(unit_def.special_ability or "", 0)


def merge_stat_modifiers(*mod_dicts: dict[str, int] | None) -> dict[str, int]:
    """Merge multiple modifier dicts by adding values for same unit id."""
    result: dict[str, int] = {}
    for d in mod_dicts:
        if not d:
            continue
        for uid, val in d.items():
            result[uid] = result.get(uid, 0) + val
    return result


def compute_unit_stat_modifiers(
    terrain: str | None,
    attacker_units: list[Unit],
    defender_units: list[Unit],
    unit_types: dict[str, UnitTypeDefinition],
) -> tuple[dict[str, int], dict[str, int]]:
    """All per-unit modifiers for one engagement, merged per side."""
    terrain_att, terrain_def = compute_terrain_stat_modifiers(terrain, attacker_units, defender_units, unit_types)
    anti_cav_att, anti_cav_def = compute_anti_cavalry_stat_modifiers(attacker_units, defender_units, unit_types)
    formation_att, formation_def = compute_formation_stat_modifiers(attacker_units, defender_units, unit_types)
    stance_att, stance_def = compute_stance_stat_modifiers(attacker_units, defender_units, unit_types)
    return (
        merge_stat_modifiers(terrain_att, anti_cav_att, formation_att, stance_att),
        merge_stat_modifiers(terrain_def, anti_cav_def, formation_def, stance_def),
    )


def unit_effective_strength(unit: Unit, unit_def: UnitTypeDefinition, modifier: int = 0) -> float:
    """(base + modifiers) scaled by health and by LEVEL_STRENGTH_BONUS per level above 1."""
    strength = (unit_def.strength + modifier) * unit.health / 100
    return strength * (1 + LEVEL_STRENGTH_BONUS * (unit.level - 1))


def calculate_total_unit_strength(
    units: list[Unit],
    unit_types: dict[str, UnitTypeDefinition],
    stat_modifiers: dict[str, int] | None = None,
) -> float:
    """Composite strength of a roster. Units of unknown type contribute nothing."""
    mods = stat_modifiers or {}
    total = 0.0
    for unit in units:
        unit_def = unit_types.get(unit.type)
        if not unit_def:
            continue
        total += unit_effective_strength(unit, unit_def, mods.get(unit.id, 0))
    return total


def compute_side_strengths(
    attacker_units: list[Unit],
    defender_units: list[Unit],
    unit_types: dict[str, UnitTypeDefinition],
    terrain: str | None,
) -> tuple[float, float]:
    """Composite (attacker, defender) strengths with all unit modifiers applied."""
    att_mods, def_mods = compute_unit_stat_modifiers(terrain, attacker_units, defender_units, unit_types)
    return (
        calculate_total_unit_strength(attacker_units, unit_types, att_mods),
        calculate_total_unit_strength(defender_units, unit_types, def_mods),
    )


def card_effect_bonus(
    effect: str | None,
    round_number: int,
    total_rounds: int,
    roll: int | None = None,
) -> int:
    """Score bonus of a card effect in a given round. Unknown effects give nothing."""
    if effect == EFFECT_INITIATIVE:
        return EFFECT_INITIATIVE_BONUS if round_number == 1 else 0
    if effect == EFFECT_SURPRISE:
        return EFFECT_SURPRISE_BONUS if round_number == total_rounds else 0
    if effect == EFFECT_HERO_UNIT:
        return EFFECT_HERO_UNIT_BONUS
    if effect == EFFECT_RANDOM:
        value = DEFAULT_RANDOM_ROLL if roll is None else roll
        return max(RANDOM_ROLL_MIN, min(RANDOM_ROLL_MAX, value))
    return 0


def category_label(category: CardCategory) -> str:
    if category is CardCategory.BASIC:
        return "Basic card strength"
    elif category is CardCategory.INTERMEDIATE:
        return "Intermediate card strength"
    elif category is CardCategory.ADVANCED:
        return "Advanced card strength"
    raise ValueError(f"Unknown card category: {category!r}")


def round_casualties(winner_score: float, loser_score: float) -> tuple[float, float]:
    """
    (winner_casualties, loser_casualties) for a decided round.
    The loser loses more the wider the gap; the winner always loses something, but never
    more than WINNER_CASUALTY_RATIO of the loser's casualties. A counter win over an equal
    or higher score counts as a zero gap: loser 10, winner 5.
    """
    gap = max(0.0, winner_score - loser_score)
    loser = min(LOSER_MAX_CASUALTIES, LOSER_BASE_CASUALTIES + gap * LOSER_CASUALTIES_PER_POINT)
    winner = min(
        WINNER_BASE_CASUALTIES - gap * WINNER_CASUALTIES_PER_POINT,
        loser * WINNER_CASUALTY_RATIO,
    )
    winner = max(WINNER_MIN_CASUALTIES, winner)
    return round(winner, 1), round(loser, 1)


@dataclass
class RoundOutcome:
    """Result of one resolved round."""
    winner: str  # "player", "opponent", "draw"
    player_score: float
    opponent_score: float
    attacker_casualties: float  # percent
    defender_casualties: float  # percent
    message: str
    decided_by_counter: bool = False
    player_breakdown: list[tuple[str, float]] = field(default_factory=list)
    opponent_breakdown: list[tuple[str, float]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "winner": self.winner,
            "player_score": self.player_score,
            "opponent_score": self.opponent_score,
            "attacker_casualties": self.attacker_casualties,
            "defender_casualties": self.defender_casualties,
            "message": self.message,
            "decided_by_counter": self.decided_by_counter,
            "player_breakdown": [{"source": s, "value": v} for s, v in self.player_breakdown],
            "opponent_breakdown": [{"source": s, "value": v} for s, v in self.opponent_breakdown],
        }


def resolve_round(
    player_card: TacticalCardDefinition,
    opponent_card: TacticalCardDefinition,
    attacker_strength: float,
    defender_strength: float,
    defending_terrain: str | None,
    round_number: int = 1,
    total_rounds: int = 3,
    fortification_level: int = 0,
    effect_rolls: dict[str, int] | None = None,
) -> RoundOutcome:
    """
    Resolve a single combat round. The player is the attacker, the opponent the defender.

    Scoring per side:
    - card strength + composite unit strength / UNIT_STRENGTH_DIVISOR
    - +COUNTER_BONUS if the card counters the other card
    - +TERRAIN_AFFINITY_BONUS if the card has affinity with the defending terrain
    - card effect bonus (initiative, surprise, hero_unit, random)
    - defender only: defensive terrain + fortification level

    A card that counters the other card wins the round outright. If both or neither
    counter, the higher score wins and an exact tie is a draw.

    Args:
        player_card / opponent_card: Cards played this round
        attacker_strength / defender_strength: Composite unit strengths (see compute_side_strengths)
        defending_terrain: Terrain of the defending territory
        round_number / total_rounds: For round-dependent effects
        fortification_level: Fortifications of the defending territory
        effect_rolls: {"player": roll, "opponent": roll} for "random" effects (1-5)

    Returns:
        RoundOutcome with winner, scores, casualties and a per-source breakdown
    """
    rolls = effect_rolls or {}
    player_counters = player_card.counters_card(opponent_card.id)
    opponent_counters = opponent_card.counters_card(player_card.id)

    def score_side(
        card: TacticalCardDefinition, unit_strength: float, counters: bool, side: str
    ) -> list[tuple[str, float]]:
        parts: list[tuple[str, float]] = [(category_label(card.category), card.strength)]
        parts.append(("Unit strength", round(unit_strength / UNIT_STRENGTH_DIVISOR, 1)))
        if counters:
            parts.append(("Counter bonus", COUNTER_BONUS))
        if card.has_terrain_affinity(defending_terrain):
            parts.append((f"{defending_terrain} terrain bonus", TERRAIN_AFFINITY_BONUS))
        effect_bonus = card_effect_bonus(card.effect, round_number, total_rounds, rolls.get(side))
        if effect_bonus:
            parts.append((f"{card.effect} effect", effect_bonus))
        return parts

    player_breakdown = score_side(player_card, attacker_strength, player_counters, SIDE_PLAYER)
    opponent_breakdown = score_side(opponent_card, defender_strength, opponent_counters, SIDE_OPPONENT)

    terrain_bonus = DEFENSIVE_TERRAIN_BONUSES.get(defending_terrain or "", 0)
    if terrain_bonus:
        opponent_breakdown.append(("Defensive terrain", terrain_bonus))
    if fortification_level > 0:
        opponent_breakdown.append(("Fortification bonus", fortification_level))

    player_score = round(sum(v for _, v in player_breakdown), 1)
    opponent_score = round(sum(v for _, v in opponent_breakdown), 1)

    decided_by_counter = player_counters != opponent_counters
    if decided_by_counter:
        winner = SIDE_PLAYER if player_counters else SIDE_OPPONENT
    elif player_score > opponent_score:
        winner = SIDE_PLAYER
    elif opponent_score > player_score:
        winner = SIDE_OPPONENT
    else:
        winner = WINNER_DRAW

    if winner == SIDE_PLAYER:
        attacker_casualties, defender_casualties = round_casualties(player_score, opponent_score)
        message = (
            f"Round {round_number}: Player wins with {player_card.display_name} ({player_score:g}) "
            f"vs {opponent_card.display_name} ({opponent_score:g})."
        )
    elif winner == SIDE_OPPONENT:
        defender_casualties, attacker_casualties = round_casualties(opponent_score, player_score)
        message = (
            f"Round {round_number}: Enemy wins with {opponent_card.display_name} ({opponent_score:g}) "
            f"vs {player_card.display_name} ({player_score:g})."
        )
    else:
        attacker_casualties = defender_casualties = float(DRAW_CASUALTIES)
        message = f"Round {round_number}: Draw - both sides scored {player_score:g}."

    if decided_by_counter:
        countering, countered = (player_card, opponent_card) if player_counters else (opponent_card, player_card)
        message += f" {countering.display_name} counters {countered.display_name}."
    message += f" Casualties: Player {attacker_casualties:g}%, Enemy {defender_casualties:g}%"

    return RoundOutcome(
        winner=winner,
        player_score=player_score,
        opponent_score=opponent_score,
        attacker_casualties=attacker_casualties,
        defender_casualties=defender_casualties,
        message=message,
        decided_by_counter=decided_by_counter,
        player_breakdown=player_breakdown,
        opponent_breakdown=opponent_breakdown,
    )
