"""
Combat state representation.
Units, territories, the active combat session and its log.
Includes dict serialization for API responses and read-only snapshots.
"""

from dataclasses import dataclass, field
from typing import Any

from backend.engine import EXPERIENCE_PER_LEVEL

# Sides of a combat. The player is always the attacker.
SIDE_PLAYER = "player"
SIDE_OPPONENT = "opponent"
SIDES = (SIDE_PLAYER, SIDE_OPPONENT)

# Round winner for a drawn round
WINNER_DRAW = "draw"

# Overall combat results (from the attacker's point of view)
RESULT_VICTORY = "victory"
RESULT_DEFEAT = "defeat"
RESULT_DRAW = "draw"

LOG_ROUND_START = 0
LOG_ROUND_FINAL = "Final"


def _int(v: Any, default: int) -> int:
    try:
        return int(v) if v is not None else default
    except (TypeError, ValueError):
        return default


def _float(v: Any, default: float) -> float:
    try:
        return float(v) if v is not None else default
    except (TypeError, ValueError):
        return default


def clamp_percent(value: float) -> float:
    """Clamp a percentage into [0, 100]."""
    return max(0.0, min(100.0, value))


@dataclass
class Unit:
    """Individual military unit in a territory roster."""
    id: str  # Unique ID for this unit (e.g., "player_warrior_001")
    type: str  # Unit type id (e.g., "warrior")
    level: int = 1
    experience: int = 0  # 0 to EXPERIENCE_PER_LEVEL - 1, wraps on level up
    health: float = 100.0  # percent, 0-100
    moves_left: int = 0
    territory_id: str = ""

    def __post_init__(self) -> None:
        self.level = max(1, self.level)
        self.experience = max(0, min(EXPERIENCE_PER_LEVEL - 1, self.experience))
        self.health = clamp_percent(self.health)

    @property
    def is_destroyed(self) -> bool:
        return self.health <= 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "level": self.level,
            "experience": self.experience,
            "health": self.health,
            "moves_left": self.moves_left,
            "territory_id": self.territory_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Unit":
        if not isinstance(data, dict):
            data = {}
        return cls(
            id=str(data.get("id") or ""),
            type=str(data.get("type") or ""),
            level=_int(data.get("level"), 1),
            experience=_int(data.get("experience"), 0),
            health=_float(data.get("health"), 100.0),
            moves_left=_int(data.get("moves_left"), 0),
            territory_id=str(data.get("territory_id") or ""),
        )


@dataclass
class TerritoryState:
    """Ownership and control state of a single territory."""
    id: str
    terrain: str  # "plains", "forest", "hills", "mountains", "desert", "swamp"
    owner: str | None = None  # player id or None if unowned
    is_capital: bool = False
    # Partial conquest progress (0-100), accumulated across separate combats
    control_value: int = 0
    # Which attacker the control_value belongs to
    controlled_by: str | None = None
    fortification_level: int = 0  # walls/forts; adds to the defender's round score
    display_name: str = ""

    @property
    def is_owned(self) -> bool:
        return self.owner is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "display_name": self.display_name or self.id,
            "terrain": self.terrain,
            "owner": self.owner,
            "is_owned": self.is_owned,
            "is_capital": self.is_capital,
            "control_value": self.control_value,
            "controlled_by": self.controlled_by,
            "fortification_level": self.fortification_level,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], territory_id: str | None = None) -> "TerritoryState":
        if not isinstance(data, dict):
            data = {}
        tid = str(data.get("id") or territory_id or "")
        return cls(
            id=tid,
            terrain=str(data.get("terrain") or data.get("type") or "plains"),
            owner=data.get("owner"),
            is_capital=bool(data.get("is_capital", False)),
            control_value=max(0, min(100, _int(data.get("control_value"), 0))),
            controlled_by=data.get("controlled_by"),
            fortification_level=max(0, _int(data.get("fortification_level"), 0)),
            display_name=str(data.get("display_name") or tid),
        )


@dataclass
class CombatLogEntry:
    """One line of the battle log. round is 0 for the start entry and "Final" for the result."""
    round: int | str
    message: str
    winner: str | None = None  # "player", "opponent", "draw"; None for start/final entries
    player_card: str | None = None
    opponent_card: str | None = None
    player_score: float | None = None
    opponent_score: float | None = None
    attacker_casualties: float | None = None
    defender_casualties: float | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"round": self.round, "message": self.message, "winner": self.winner}
        if self.player_card is not None:
            out.update({
                "player_card": self.player_card,
                "opponent_card": self.opponent_card,
                "player_score": self.player_score,
                "opponent_score": self.opponent_score,
            })
        if self.attacker_casualties is not None:
            out["attacker_casualties"] = self.attacker_casualties
            out["defender_casualties"] = self.defender_casualties
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CombatLogEntry":
        if not isinstance(data, dict):
            data = {}
        rnd = data.get("round", 0)
        if rnd != LOG_ROUND_FINAL:
            rnd = _int(rnd, 0)
        return cls(
            round=rnd,
            message=str(data.get("message") or ""),
            winner=data.get("winner"),
            player_card=data.get("player_card"),
            opponent_card=data.get("opponent_card"),
            player_score=data.get("player_score"),
            opponent_score=data.get("opponent_score"),
            attacker_casualties=data.get("attacker_casualties"),
            defender_casualties=data.get("defender_casualties"),
        )


@dataclass
class CombatSession:
    """
    Tracks one attacker-vs-defender engagement across a fixed number of rounds.
    Unit lists are snapshots taken when the session starts; the rosters themselves
    are only touched when the session is ended.
    """
    attacking_territory_id: str
    defending_territory_id: str
    attacker_id: str | None  # owner of the attacking territory
    defender_id: str | None  # owner of the defending territory (None = unowned)
    terrain: str  # terrain of the defending territory
    attacking_units: list[Unit] = field(default_factory=list)
    defending_units: list[Unit] = field(default_factory=list)
    fortification_level: int = 0
    current_round: int = 1
    total_rounds: int = 3
    # side -> card id per round (index = round - 1); None = not selected yet
    selected_cards: dict[str, list[str | None]] = field(default_factory=dict)
    battle_log: list[CombatLogEntry] = field(default_factory=list)
    casualties: dict[str, float] = field(default_factory=lambda: {"attacker": 0.0, "defender": 0.0})
    territory_control_delta: int = 0
    active: bool = True
    result: str | None = None  # "victory", "defeat", "draw"

    def __post_init__(self) -> None:
        for side in (SIDE_PLAYER, SIDE_OPPONENT):
            cards = list(self.selected_cards.get(side) or [])
            cards.extend([None] * (self.total_rounds - len(cards)))
            self.selected_cards[side] = cards[:self.total_rounds]

    def selected_card(self, side: str, round_number: int | None = None) -> str | None:
        """Card selected by side for round_number (default: current round)."""
        index = (round_number or self.current_round) - 1
        cards = self.selected_cards.get(side) or []
        if 0 <= index < len(cards):
            return cards[index]
        return None

    def round_tally(self) -> dict[str, int]:
        """Count of rounds won by each side (and drawn) so far."""
        tally = {SIDE_PLAYER: 0, SIDE_OPPONENT: 0, WINNER_DRAW: 0}
        for entry in self.battle_log:
            if isinstance(entry.round, int) and entry.round > 0 and entry.winner in tally:
                tally[entry.winner] += 1
        return tally

    @property
    def rounds_played(self) -> int:
        return sum(1 for e in self.battle_log if isinstance(e.round, int) and e.round > 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "attacking_territory_id": self.attacking_territory_id,
            "defending_territory_id": self.defending_territory_id,
            "attacker_id": self.attacker_id,
            "defender_id": self.defender_id,
            "terrain": self.terrain,
            "attacking_units": [u.to_dict() for u in self.attacking_units],
            "defending_units": [u.to_dict() for u in self.defending_units],
            "fortification_level": self.fortification_level,
            "current_round": self.current_round,
            "total_rounds": self.total_rounds,
            "selected_cards": {side: list(cards) for side, cards in self.selected_cards.items()},
            "battle_log": [e.to_dict() for e in self.battle_log],
            "casualties": dict(self.casualties),
            "territory_control_delta": self.territory_control_delta,
            "active": self.active,
            "result": self.result,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CombatSession":
        if not isinstance(data, dict):
            data = {}
        def _units(v: Any) -> list[Unit]:
            return [Unit.from_dict(u) for u in v if isinstance(u, dict)] if isinstance(v, list) else []
        sc = data.get("selected_cards")
        if not isinstance(sc, dict):
            sc = {}
        log = data.get("battle_log")
        if not isinstance(log, list):
            log = []
        cas = data.get("casualties")
        if not isinstance(cas, dict):
            cas = {}
        return cls(
            attacking_territory_id=str(data.get("attacking_territory_id") or ""),
            defending_territory_id=str(data.get("defending_territory_id") or ""),
            attacker_id=data.get("attacker_id"),
            defender_id=data.get("defender_id"),
            terrain=str(data.get("terrain") or "plains"),
            attacking_units=_units(data.get("attacking_units")),
            defending_units=_units(data.get("defending_units")),
            fortification_level=_int(data.get("fortification_level"), 0),
            current_round=_int(data.get("current_round"), 1),
            total_rounds=_int(data.get("total_rounds"), 3),
            selected_cards={
                str(side): list(cards) for side, cards in sc.items() if isinstance(cards, list)
            },
            battle_log=[CombatLogEntry.from_dict(e) for e in log if isinstance(e, dict)],
            casualties={
                "attacker": clamp_percent(_float(cas.get("attacker"), 0.0)),
                "defender": clamp_percent(_float(cas.get("defender"), 0.0)),
            },
            territory_control_delta=_int(data.get("territory_control_delta"), 0),
            active=bool(data.get("active", True)),
            result=data.get("result"),
        )


@dataclass
class CombatOutcome:
    """What end_combat hands back to the caller once a concluded session is consumed."""
    result: str
    attacking_territory_id: str
    defending_territory_id: str
    battle_log: list[CombatLogEntry]
    casualties: dict[str, float]
    territory_control: int  # control gained by this combat (the delta)
    control_value: int  # defender territory control after this combat
    full_conquest: bool = False
    destroyed_unit_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "result": self.result,
            "attacking_territory_id": self.attacking_territory_id,
            "defending_territory_id": self.defending_territory_id,
            "battle_log": [e.to_dict() for e in self.battle_log],
            "casualties": dict(self.casualties),
            "territory_control": self.territory_control,
            "control_value": self.control_value,
            "full_conquest": self.full_conquest,
            "destroyed_unit_ids": list(self.destroyed_unit_ids),
        }
