"""
Conquest resolution.
Turns a concluded session's round tally into an overall result and a territory-control
delta, then folds that delta into the territory's accumulated control.
Control persists on the territory between sessions; reaching FULL_CONTROL transfers ownership.
"""

from dataclasses import dataclass
from typing import Any, Callable

from backend.engine import (
    CONTROL_BASE_VICTORY,
    CONTROL_CASUALTY_DIVISOR,
    CONTROL_PER_EXTRA_ROUND_WON,
    FULL_CONTROL,
)
from backend.engine.state import (
    RESULT_DEFEAT,
    RESULT_DRAW,
    RESULT_VICTORY,
    SIDE_OPPONENT,
    SIDE_PLAYER,
    TerritoryState,
)

# (target_territory_id, source_territory_id, is_full_conquest, control_value) -> None
TerritoryChangeCallback = Callable[[str, str, bool, int], None]


def compute_result(tally: dict[str, int]) -> str:
    """Majority of rounds won decides; equal tallies are a draw."""
    player_wins = tally.get(SIDE_PLAYER, 0)
    opponent_wins = tally.get(SIDE_OPPONENT, 0)
    if player_wins > opponent_wins:
        return RESULT_VICTORY
    if opponent_wins > player_wins:
        return RESULT_DEFEAT
    return RESULT_DRAW


def compute_territory_control_delta(
    result: str,
    tally: dict[str, int],
    casualties: dict[str, float],
) -> int:
    """
    Control gained by the attacker in one combat.

    Victory: CONTROL_BASE_VICTORY, +CONTROL_PER_EXTRA_ROUND_WON per round of margin beyond one,
    +1 per CONTROL_CASUALTY_DIVISOR points the defender lost more than the attacker.
    Defeat and draw gain nothing.
    """
    if result != RESULT_VICTORY:
        return 0
    margin = tally.get(SIDE_PLAYER, 0) - tally.get(SIDE_OPPONENT, 0)
    delta = CONTROL_BASE_VICTORY + CONTROL_PER_EXTRA_ROUND_WON * max(0, margin - 1)
    casualty_difference = casualties.get("defender", 0) - casualties.get("attacker", 0)
    if casualty_difference > 0:
        delta += int(casualty_difference // CONTROL_CASUALTY_DIVISOR)
    return max(0, min(FULL_CONTROL, delta))


@dataclass
class ConquestResult:
    """Where a territory's control ends up after applying one combat's delta."""
    territory_id: str
    delta: int
    prior_control: int
    control_value: int  # cumulative control after this combat (FULL_CONTROL on conquest)
    full_conquest: bool
    new_owner: str | None = None  # set on full conquest

    def to_dict(self) -> dict[str, Any]:
        return {
            "territory_id": self.territory_id,
            "delta": self.delta,
            "prior_control": self.prior_control,
            "control_value": self.control_value,
            "full_conquest": self.full_conquest,
            "new_owner": self.new_owner,
        }


def resolve_conquest(
    territory: TerritoryState,
    attacker_owner: str | None,
    delta: int,
) -> ConquestResult:
    """
    Accumulate delta into the territory's stored control.
    Progress stored for a different attacker does not count toward this one.
    """
    prior = territory.control_value if territory.controlled_by == attacker_owner else 0
    cumulative = min(FULL_CONTROL, prior + max(0, delta))
    full = cumulative >= FULL_CONTROL
    return ConquestResult(
        territory_id=territory.id,
        delta=delta,
        prior_control=prior,
        control_value=cumulative,
        full_conquest=full,
        new_owner=attacker_owner if full else None,
    )


def result_message(result: str, delta: int, full_conquest: bool, casualties: dict[str, float]) -> str:
    """Text of the "Final" battle log entry."""
    if result == RESULT_VICTORY:
        if full_conquest:
            message = "Combat Result: Decisive Victory! Your forces have conquered the territory."
        else:
            message = f"Combat Result: Victory! Your forces have gained {delta}% control over the territory."
    elif result == RESULT_DEFEAT:
        message = "Combat Result: Defeat. Enemy forces have successfully defended their territory."
    else:
        message = "Combat Result: Stalemate. Neither side gained a clear advantage."
    return (
        f"{message} Casualties: Your Forces {casualties.get('attacker', 0):g}%, "
        f"Enemy Forces {casualties.get('defender', 0):g}%."
    )


def make_territory_applier(store, attacker_owner: str | None) -> TerritoryChangeCallback:
    """
    Build an end_combat callback that writes the conquest into a TerritoryStore:
    full conquest transfers ownership, otherwise the accumulated control is stored.
    """
    def apply(target_id: str, source_id: str, is_full_conquest: bool, control_value: int) -> None:
        if is_full_conquest:
            store.set_territory_owner(target_id, attacker_owner)
        else:
            store.set_territory_control(target_id, control_value, attacker_owner)

    return apply
