"""
Static definitions for unit types and tactical cards.
Catalog data lives under data/: unit_types.json and tactical_cards.json.
Setup data lives under data/setups/<setup_id>/: territories.json, starting_setup.json,
and optional manifest.json (display_name, total_rounds).
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

DATA_DIR = Path(__file__).parent.parent / "data"
SETUPS_DIR = DATA_DIR / "setups"


def _default_setup_id() -> str:
    """Single place for default: backend.config.DEFAULT_SETUP_ID."""
    from backend.config import DEFAULT_SETUP_ID
    return DEFAULT_SETUP_ID


def _setup_dir(setup_id: str) -> Path:
    return SETUPS_DIR / setup_id


class CardCategory(Enum):
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


# Defender score bonus by terrain of the defending territory
DEFENSIVE_TERRAIN_BONUSES = {
    "mountains": 3,
    "hills": 2,
    "forest": 1,
}

# Whole-army terrain modifiers used by the attack assessment
# ("defense" applies to the defender, "attack" to the attacker)
TERRAIN_EFFECTS: dict[str, dict[str, int]] = {
    "forest": {"defense": 1},
    "hills": {"defense": 1},
    "mountains": {"defense": 2},
    "plains": {"attack": 1},
    "desert": {},
    "swamp": {"defense": 1},
}


@dataclass
class UnitTypeDefinition:
    """Defines immutable properties of a military unit type."""
    id: str
    display_name: str
    strength: int
    movement: int = 1
    cavalry: bool = False
    special_ability: Optional[str] = None  # "anti_cavalry", "formation_fighting", "charge", "volley_fire"
    ability_bonus: int = 0  # 0 = default bonus for the ability
    terrain_effectiveness: dict[str, int] = field(default_factory=dict)  # terrain -> strength modifier
    advantage_against: list[str] = field(default_factory=list)  # unit type ids
    disadvantage_against: list[str] = field(default_factory=list)
    description: str = ""
    icon: Optional[str] = None


@dataclass(frozen=True)
class TacticalCardDefinition:
    """Immutable catalog entry for a tactical card archetype."""
    id: str
    display_name: str
    category: CardCategory
    strength: int
    defensive: bool = False
    counters: frozenset[str] = frozenset()  # card ids this card automatically beats
    terrain_affinity: frozenset[str] = frozenset()  # terrain types granting the terrain bonus
    effect: Optional[str] = None  # "initiative", "surprise", "hero_unit", "random"
    unit_requirement: tuple[str, ...] = ()  # any one of these unit types makes the card relevant
    unit_bonus: tuple[tuple[str, int], ...] = ()  # (unit type id, bonus) pairs used for ranking
    description: str = ""
    icon: Optional[str] = None

    def counters_card(self, card_id: str) -> bool:
        return card_id in self.counters

    def has_terrain_affinity(self, terrain: str | None) -> bool:
        return terrain is not None and terrain in self.terrain_affinity

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "category": self.category.value,
            "strength": self.strength,
            "defensive": self.defensive,
            "counters": sorted(self.counters),
            "terrain_affinity": sorted(self.terrain_affinity),
            "effect": self.effect,
            "unit_requirement": list(self.unit_requirement),
            "unit_bonus": dict(self.unit_bonus),
            "description": self.description,
            "icon": self.icon,
        }


def unit_type_from_dict(data: dict[str, Any]) -> UnitTypeDefinition:
    """Build a UnitTypeDefinition from its JSON form."""
    return UnitTypeDefinition(
        id=data["id"],
        display_name=data["display_name"],
        strength=data["strength"],
        movement=data.get("movement", 1),
        cavalry=data.get("cavalry", False),
        special_ability=data.get("special_ability"),
        ability_bonus=data.get("ability_bonus", 0),
        terrain_effectiveness=dict(data.get("terrain_effectiveness") or {}),
        advantage_against=list(data.get("advantage_against") or []),
        disadvantage_against=list(data.get("disadvantage_against") or []),
        description=data.get("description", ""),
        icon=data.get("icon"),
    )


def card_type_from_dict(data: dict[str, Any]) -> TacticalCardDefinition:
    """
    Build a TacticalCardDefinition from its JSON form.
    unit_requirement may be a single id or a list; category must be a known CardCategory value.
    """
    requirement = data.get("unit_requirement") or []
    if isinstance(requirement, str):
        requirement = [requirement]
    unit_bonus = data.get("unit_bonus") or {}
    return TacticalCardDefinition(
        id=data["id"],
        display_name=data["display_name"],
        category=CardCategory(data["category"]),
        strength=data["strength"],
        defensive=data.get("defensive", False),
        counters=frozenset(data.get("counters") or []),
        terrain_affinity=frozenset(data.get("terrain_affinity") or []),
        effect=data.get("effect"),
        unit_requirement=tuple(requirement),
        unit_bonus=tuple(sorted(unit_bonus.items())),
        description=data.get("description", ""),
        icon=data.get("icon"),
    )


def load_static_definitions(
    data_dir: Path | str | None = None,
) -> tuple[dict[str, UnitTypeDefinition], dict[str, TacticalCardDefinition]]:
    """
    Load the unit type and tactical card catalogs.

    Args:
        data_dir: Directory containing unit_types.json and tactical_cards.json (default: data/).

    Returns: (unit_type_definitions, card_type_definitions)
    """
    data_dir = Path(data_dir) if data_dir is not None else DATA_DIR

    with open(data_dir / "unit_types.json", "r") as f:
        units_data = json.load(f)
    unit_types = {unit_id: unit_type_from_dict(data) for unit_id, data in units_data.items()}

    with open(data_dir / "tactical_cards.json", "r") as f:
        cards_data = json.load(f)
    card_types = {card_id: card_type_from_dict(data) for card_id, data in cards_data.items()}

    # Counters must point at real cards
    for card in card_types.values():
        unknown = [c for c in card.counters if c not in card_types]
        if unknown:
            raise ValueError(f"Card {card.id} counters unknown cards: {', '.join(sorted(unknown))}")

    return unit_types, card_types


def list_setups() -> list[dict]:
    """Return [{ id, display_name }, ...] for all setups (subdirs of data/setups/ with starting_setup.json)."""
    out = []
    if not SETUPS_DIR.exists():
        return out
    for d in sorted(SETUPS_DIR.iterdir()):
        if not d.is_dir():
            continue
        setup_id = d.name
        if not (d / "starting_setup.json").exists():
            continue
        manifest_path = d / "manifest.json"
        if manifest_path.exists():
            try:
                with open(manifest_path, "r") as f:
                    m = json.load(f)
                out.append({"id": m.get("id", setup_id), "display_name": m.get("display_name", setup_id)})
            except (json.JSONDecodeError, OSError):
                out.append({"id": setup_id, "display_name": setup_id})
        else:
            out.append({"id": setup_id, "display_name": setup_id})
    return out


def load_setup(setup_id: str | None = None) -> dict:
    """
    Load setup by id (default: backend.config.DEFAULT_SETUP_ID).

    Returns { id, display_name, total_rounds, territories, starting_setup }.
    territories: territory_id -> {terrain, is_capital, owner, control_value, fortification_level}
    starting_setup: {"units": {territory_id: [unit dicts]}, "cards": {player_id: {card_id: count}}}
    """
    setup_id = setup_id or _default_setup_id()
    setup_dir = _setup_dir(setup_id)
    if not setup_dir.exists() or not setup_dir.is_dir():
        raise FileNotFoundError(f"Setup not found: {setup_id}")
    starting_path = setup_dir / "starting_setup.json"
    if not starting_path.exists():
        raise FileNotFoundError(f"starting_setup.json not found in setup: {setup_id}")
    territories_path = setup_dir / "territories.json"
    if not territories_path.exists():
        raise FileNotFoundError(f"territories.json not found in setup: {setup_id}")

    with open(starting_path, "r") as f:
        starting_setup = json.load(f)
    with open(territories_path, "r") as f:
        territories = json.load(f)

    result = {
        "id": setup_id,
        "display_name": setup_id,
        "total_rounds": None,
        "territories": territories,
        "starting_setup": starting_setup,
    }
    manifest_path = setup_dir / "manifest.json"
    if manifest_path.exists():
        try:
            with open(manifest_path, "r") as f:
                m = json.load(f)
            result["id"] = m.get("id", setup_id)
            result["display_name"] = m.get("display_name", setup_id)
            try:
                result["total_rounds"] = int(m["total_rounds"])
            except (TypeError, ValueError, KeyError):
                pass
        except (json.JSONDecodeError, OSError):
            pass
    return result
