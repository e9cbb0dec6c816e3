"""
Combat session state machine.
CombatEngine runs one attacker-vs-defender engagement at a time:
start -> (select cards -> next round) x total_rounds -> concluded -> end (or abandon at any point).

Rejected operations never raise. They return False/None, record the ValidationResult in
last_rejection and emit an action_rejected event, leaving the session untouched.
Territory ownership is only changed through the callback handed to end_combat.
"""

import logging
from typing import Any, Callable

from backend.config import DEFAULT_PLAYER_ID, DEFAULT_TOTAL_ROUNDS
from backend.engine import EXPERIENCE_LOSS, EXPERIENCE_PER_LEVEL, EXPERIENCE_WIN, MAX_AFTERMATH_DAMAGE
from backend.engine.cards import AvailableCard, CardInventory, rank_contextual_cards
from backend.engine.combat import compute_side_strengths, resolve_round
from backend.engine.conquest import (
    TerritoryChangeCallback,
    compute_result,
    compute_territory_control_delta,
    resolve_conquest,
    result_message,
)
from backend.engine.definitions import TacticalCardDefinition, UnitTypeDefinition
from backend.engine.events import (
    GameEvent,
    action_rejected,
    card_added,
    card_selected,
    combat_abandoned,
    combat_concluded,
    combat_ended,
    combat_round_resolved,
    combat_started,
    territory_captured,
    territory_control_changed,
    unit_destroyed,
)
from backend.engine.queries import (
    AttackAssessment,
    CombatError,
    CombatPhase,
    ValidationResult,
    assess_attack_chances,
    get_combat_phase,
    validate_abandon_combat,
    validate_end_combat,
    validate_next_round,
    validate_select_card,
    validate_start_combat,
)
from backend.engine.state import (
    LOG_ROUND_FINAL,
    LOG_ROUND_START,
    RESULT_DEFEAT,
    RESULT_VICTORY,
    SIDE_OPPONENT,
    SIDE_PLAYER,
    CombatLogEntry,
    CombatOutcome,
    CombatSession,
    TerritoryState,
    Unit,
    clamp_percent,
)
from backend.engine.stores import RosterStore, TerritoryStore

logger = logging.getLogger(__name__)

TerritoryLookup = Callable[[str], TerritoryState | None]


class CombatEngine:
    """
    Owns the (single) active CombatSession plus the player's view of the card inventory.
    Territory and roster access goes through the injected stores.
    """

    def __init__(
        self,
        unit_types: dict[str, UnitTypeDefinition],
        card_types: dict[str, TacticalCardDefinition],
        territories: TerritoryStore,
        roster: RosterStore,
        inventory: CardInventory,
        player_id: str = DEFAULT_PLAYER_ID,
        total_rounds: int = DEFAULT_TOTAL_ROUNDS,
    ):
        if total_rounds < 1:
            raise ValueError(f"total_rounds must be at least 1, got {total_rounds}")
        self.unit_types = unit_types
        self.card_types = card_types
        self.territories = territories
        self.roster = roster
        self.inventory = inventory
        self.player_id = player_id
        self.total_rounds = total_rounds
        self.last_rejection: ValidationResult | None = None
        self._session: CombatSession | None = None
        # Territory resolver of the active session (start_combat's territory_lookup, or the store)
        self._lookup: TerritoryLookup = territories.get_territory
        self._events: list[GameEvent] = []

    # ===== Read-only views =====

    @property
    def combat(self) -> dict[str, Any] | None:
        """Snapshot of the session for rendering (a copy; editing it changes nothing)."""
        if self._session is None:
            return None
        snapshot = self._session.to_dict()
        snapshot["phase"] = self.phase.value
        return snapshot

    @property
    def phase(self) -> CombatPhase:
        return get_combat_phase(self._session)

    def drain_events(self) -> list[GameEvent]:
        """Events emitted since the last drain, oldest first."""
        events, self._events = self._events, []
        return events

    def get_available_cards(self) -> list[AvailableCard]:
        return self.inventory.list_available(self.player_id)

    def get_contextual_cards(self, territory_id: str | None = None) -> list[AvailableCard]:
        """
        Available cards ranked for the units in territory_id (default: the attacking territory
        of the active session). During a session, terrain is the defending territory's.
        """
        available = self.get_available_cards()
        session = self._session
        if territory_id is None and session is not None:
            territory_id = session.attacking_territory_id
        if territory_id is None:
            return available
        territory = self._lookup(territory_id)
        if territory is None:
            return available
        unit_types_present = {u.type for u in self.roster.get_units_in_territory(territory_id)}
        terrain = session.terrain if session is not None else territory.terrain
        return rank_contextual_cards(available, unit_types_present, terrain)

    def assess_attack(self, attacking_territory_id: str, defending_territory_id: str) -> AttackAssessment | None:
        attacking = self.territories.get_territory(attacking_territory_id)
        defending = self.territories.get_territory(defending_territory_id)
        if attacking is None or defending is None:
            return None
        return assess_attack_chances(
            self.roster.get_units_in_territory(attacking_territory_id),
            self.roster.get_units_in_territory(defending_territory_id),
            attacking,
            defending,
            self.unit_types,
        )

    # ===== Operations =====

    def start_combat(
        self,
        attacking_territory_id: str,
        defending_territory_id: str,
        territory_lookup: TerritoryLookup | None = None,
    ) -> bool:
        """
        Open a session. Unit lists are snapshotted from the roster now.
        Returns False (and creates nothing) if a session exists, a territory can't be resolved,
        or the attacking territory has no units.
        territory_lookup (default: the territory store) resolves territories until the session ends.
        """
        lookup = territory_lookup or self.territories.get_territory
        attacking = lookup(attacking_territory_id)
        defending = lookup(defending_territory_id)
        attacking_units = self.roster.get_units_in_territory(attacking_territory_id) if attacking else []

        validation = validate_start_combat(
            self._session,
            attacking_territory_id,
            defending_territory_id,
            attacking,
            defending,
            attacking_units,
        )
        if not validation.valid:
            self._reject("start_combat", validation)
            return False

        defending_units = self.roster.get_units_in_territory(defending_territory_id)
        session = CombatSession(
            attacking_territory_id=attacking_territory_id,
            defending_territory_id=defending_territory_id,
            attacker_id=attacking.owner,
            defender_id=defending.owner,
            terrain=defending.terrain,
            attacking_units=attacking_units,
            defending_units=defending_units,
            fortification_level=defending.fortification_level,
            total_rounds=self.total_rounds,
        )
        session.battle_log.append(CombatLogEntry(
            round=LOG_ROUND_START,
            message=(
                f"Combat begins: {len(attacking_units)} units from {attacking.display_name or attacking.id} "
                f"attack {len(defending_units)} defenders in {defending.display_name or defending.id} "
                f"({defending.terrain})."
            ),
        ))
        self._session = session
        self._lookup = lookup
        self.last_rejection = None
        self._events.append(combat_started(
            attacking_territory_id,
            defending_territory_id,
            [u.id for u in attacking_units],
            [u.id for u in defending_units],
            session.total_rounds,
        ))
        return True

    def select_card(self, card_id: str, side: str = SIDE_PLAYER) -> bool:
        """
        Record a card for the current round. Selecting again before the round is
        resolved replaces the earlier choice. Nothing is consumed yet.
        """
        session = self._session
        validation = validate_select_card(
            session, card_id, side, self.card_types, self.inventory, self.player_id
        )
        if not validation.valid:
            self._reject("select_card", validation)
            return False
        session.selected_cards[side][session.current_round - 1] = card_id
        self.last_rejection = None
        self._events.append(card_selected(side, card_id, session.current_round))
        return True

    def next_combat_round(self, effect_rolls: dict[str, int] | None = None) -> bool:
        """
        Resolve the current round with both selected cards.
        The player's card is consumed here, exactly once.

        Returns True while the combat goes on. Returns False when this call resolved the
        final round (the session is now concluded) or when the call was rejected.
        """
        session = self._session
        validation = validate_next_round(session, self.inventory, self.player_id)
        if not validation.valid:
            self._reject("next_combat_round", validation)
            return False

        round_number = session.current_round
        player_card_id = session.selected_card(SIDE_PLAYER)
        opponent_card_id = session.selected_card(SIDE_OPPONENT)
        self.inventory.consume(player_card_id, self.player_id)

        attacker_strength, defender_strength = compute_side_strengths(
            session.attacking_units, session.defending_units, self.unit_types, session.terrain
        )
        outcome = resolve_round(
            self.card_types[player_card_id],
            self.card_types[opponent_card_id],
            attacker_strength,
            defender_strength,
            session.terrain,
            round_number=round_number,
            total_rounds=session.total_rounds,
            fortification_level=session.fortification_level,
            effect_rolls=effect_rolls,
        )

        session.battle_log.append(CombatLogEntry(
            round=round_number,
            message=outcome.message,
            winner=outcome.winner,
            player_card=player_card_id,
            opponent_card=opponent_card_id,
            player_score=outcome.player_score,
            opponent_score=outcome.opponent_score,
            attacker_casualties=outcome.attacker_casualties,
            defender_casualties=outcome.defender_casualties,
        ))
        session.casualties = {
            "attacker": round(clamp_percent(session.casualties["attacker"] + outcome.attacker_casualties), 1),
            "defender": round(clamp_percent(session.casualties["defender"] + outcome.defender_casualties), 1),
        }
        session.current_round += 1
        self.last_rejection = None
        self._events.append(combat_round_resolved(
            round_number,
            outcome.winner,
            player_card_id,
            opponent_card_id,
            outcome.player_score,
            outcome.opponent_score,
            outcome.attacker_casualties,
            outcome.defender_casualties,
            outcome.decided_by_counter,
        ))

        if session.current_round > session.total_rounds:
            self._conclude(session)
            return False
        return True

    def end_combat(self, on_resolved: TerritoryChangeCallback | None = None) -> CombatOutcome | None:
        """
        Consume a concluded session.

        On victory, on_resolved(target_id, source_id, is_full_conquest, control_value) is called once
        with the defender's accumulated control; the caller applies it to territory storage
        (see conquest.make_territory_applier). Unit damage and experience are written back to the
        roster and units at 0 health are removed. The engine returns to idle.
        """
        session = self._session
        validation = validate_end_combat(session)
        if not validation.valid:
            self._reject("end_combat", validation)
            return None

        territory = self._lookup(session.defending_territory_id)
        control_value = territory.control_value if territory is not None else 0
        full_conquest = False
        if session.result == RESULT_VICTORY and territory is not None:
            conquest = resolve_conquest(territory, session.attacker_id, session.territory_control_delta)
            control_value = conquest.control_value
            full_conquest = conquest.full_conquest
            if on_resolved is not None:
                old_owner, old_value = territory.owner, territory.control_value
                on_resolved(
                    session.defending_territory_id,
                    session.attacking_territory_id,
                    full_conquest,
                    control_value,
                )
                if full_conquest:
                    self._events.append(territory_captured(
                        session.defending_territory_id, old_owner, session.attacker_id
                    ))
                else:
                    self._events.append(territory_control_changed(
                        session.defending_territory_id, session.attacker_id, old_value, control_value
                    ))

        destroyed = self._apply_aftermath(session)
        outcome = CombatOutcome(
            result=session.result,
            attacking_territory_id=session.attacking_territory_id,
            defending_territory_id=session.defending_territory_id,
            battle_log=list(session.battle_log),
            casualties=dict(session.casualties),
            territory_control=session.territory_control_delta,
            control_value=control_value,
            full_conquest=full_conquest,
            destroyed_unit_ids=destroyed,
        )
        self._close_session()
        self._events.append(combat_ended(
            outcome.attacking_territory_id,
            outcome.defending_territory_id,
            outcome.result,
            full_conquest,
            control_value,
        ))
        return outcome

    def abandon_combat(self) -> bool:
        """
        Drop the session without touching territories or rosters.
        Cards of rounds already resolved stay spent; nothing else is consumed.
        """
        session = self._session
        validation = validate_abandon_combat(session)
        if not validation.valid:
            self._reject("abandon_combat", validation)
            return False
        self._close_session()
        self._events.append(combat_abandoned(
            session.attacking_territory_id,
            session.defending_territory_id,
            session.rounds_played,
        ))
        return True

    def add_card(self, card_id: str, amount: int = 1, player_id: str | None = None) -> bool:
        """Acquisition hook: give a player (default: this engine's player) more copies of a card."""
        player_id = player_id or self.player_id
        if not self.inventory.add(card_id, player_id, amount):
            self._reject("add_card", ValidationResult(
                False, f"Cannot add {amount} x {card_id} for {player_id}", CombatError.CARD_UNAVAILABLE
            ))
            return False
        self.last_rejection = None
        self._events.append(card_added(player_id, card_id, amount, self.inventory.count(card_id, player_id)))
        return True

    # ===== Internals =====

    def _reject(self, action: str, validation: ValidationResult) -> None:
        self.last_rejection = validation
        code = validation.code.value if validation.code else "invalid"
        logger.info("Rejected %s (%s): %s", action, code, validation.error)
        self._events.append(action_rejected(action, code, validation.error or ""))

    def _close_session(self) -> None:
        self._session = None
        self._lookup = self.territories.get_territory
        self.last_rejection = None

    def _conclude(self, session: CombatSession) -> None:
        tally = session.round_tally()
        result = compute_result(tally)
        delta = compute_territory_control_delta(result, tally, session.casualties)
        full_conquest = False
        if result == RESULT_VICTORY:
            territory = self._lookup(session.defending_territory_id)
            if territory is not None:
                full_conquest = resolve_conquest(territory, session.attacker_id, delta).full_conquest

        session.territory_control_delta = delta
        session.result = result
        session.active = False
        session.battle_log.append(CombatLogEntry(
            round=LOG_ROUND_FINAL,
            message=result_message(result, delta, full_conquest, session.casualties),
        ))
        logger.debug(
            "Combat %s -> %s concluded: %s %s, control +%d",
            session.attacking_territory_id, session.defending_territory_id, result, tally, delta,
        )
        self._events.append(combat_concluded(result, tally, dict(session.casualties), delta))

    def _apply_aftermath(self, session: CombatSession) -> list[str]:
        """Damage and experience for both sides' surviving roster units. Returns destroyed unit ids."""
        destroyed: list[str] = []

        def apply(territory_id: str, snapshot: list[Unit], casualties: float, won: bool) -> None:
            snapshot_ids = {u.id for u in snapshot}
            damage = int(MAX_AFTERMATH_DAMAGE * casualties / 100)
            gain = EXPERIENCE_WIN if won else EXPERIENCE_LOSS
            for unit in self.roster.get_units_in_territory(territory_id):
                if unit.id not in snapshot_ids:
                    continue
                unit.health = clamp_percent(unit.health - damage)
                unit.experience += gain
                if unit.experience >= EXPERIENCE_PER_LEVEL:
                    unit.level += 1
                    unit.experience %= EXPERIENCE_PER_LEVEL
                self.roster.update_unit(unit)
                if unit.is_destroyed:
                    destroyed.append(unit.id)
                    self._events.append(unit_destroyed(unit.id, unit.type, territory_id))

        apply(
            session.attacking_territory_id,
            session.attacking_units,
            session.casualties["attacker"],
            session.result == RESULT_VICTORY,
        )
        # A victorious attacker has routed the defenders; they are not rewarded or re-damaged
        if session.result != RESULT_VICTORY:
            apply(
                session.defending_territory_id,
                session.defending_units,
                session.casualties["defender"],
                session.result == RESULT_DEFEAT,
            )
        return destroyed
