"""
Territory and roster stores the combat engine reads from.
The engine only depends on the TerritoryStore / RosterStore protocols; the in-memory
TerritoryRegistry and UnitRoster below back the API and the tests.
"""

from typing import Any, Iterable, Protocol

from backend.engine.state import TerritoryState, Unit


class TerritoryStore(Protocol):
    def get_territory(self, territory_id: str) -> TerritoryState | None: ...

    def set_territory_owner(self, territory_id: str, owner_id: str | None) -> None: ...

    def set_territory_control(
        self, territory_id: str, value: int, controlled_by: str | None = None
    ) -> None: ...


class RosterStore(Protocol):
    def get_units_in_territory(self, territory_id: str) -> list[Unit]: ...

    def update_unit(self, unit: Unit) -> None: ...

    def remove_unit(self, unit_id: str) -> Unit | None: ...


class TerritoryRegistry:
    """In-memory territory ownership and control."""

    def __init__(self, territories: Iterable[TerritoryState] = ()):
        self.territories: dict[str, TerritoryState] = {t.id: t for t in territories}

    def get_territory(self, territory_id: str) -> TerritoryState | None:
        return self.territories.get(territory_id)

    def set_territory_owner(self, territory_id: str, owner_id: str | None) -> None:
        territory = self.territories.get(territory_id)
        if territory is None:
            raise KeyError(f"Unknown territory: {territory_id}")
        territory.owner = owner_id
        # New owner starts clean; old partial progress belonged to someone else
        territory.control_value = 0
        territory.controlled_by = None

    def set_territory_control(
        self, territory_id: str, value: int, controlled_by: str | None = None
    ) -> None:
        territory = self.territories.get(territory_id)
        if territory is None:
            raise KeyError(f"Unknown territory: {territory_id}")
        territory.control_value = max(0, min(100, int(value)))
        territory.controlled_by = controlled_by if territory.control_value > 0 else None

    def owned_by(self, owner_id: str) -> list[TerritoryState]:
        return [t for t in self.territories.values() if t.owner == owner_id]

    def to_dict(self) -> dict[str, Any]:
        return {tid: t.to_dict() for tid, t in self.territories.items()}


class UnitRoster:
    """In-memory per-territory unit lists."""

    def __init__(self, units: Iterable[Unit] = ()):
        self.units: dict[str, list[Unit]] = {}
        for unit in units:
            self.add_unit(unit)

    def get_units_in_territory(self, territory_id: str) -> list[Unit]:
        """Copies of the units in a territory; mutate through update_unit/remove_unit."""
        return [Unit.from_dict(u.to_dict()) for u in self.units.get(territory_id, [])]

    def add_unit(self, unit: Unit) -> None:
        self.units.setdefault(unit.territory_id, []).append(unit)

    def find_unit(self, unit_id: str) -> Unit | None:
        for units in self.units.values():
            for unit in units:
                if unit.id == unit_id:
                    return unit
        return None

    def update_unit(self, unit: Unit) -> None:
        """Write back health/experience/level of a unit; units at 0 health are dropped."""
        current = self.find_unit(unit.id)
        if current is None:
            raise KeyError(f"Unknown unit: {unit.id}")
        current.health = unit.health
        current.experience = unit.experience
        current.level = unit.level
        current.moves_left = unit.moves_left
        if current.is_destroyed:
            self.remove_unit(current.id)

    def remove_unit(self, unit_id: str) -> Unit | None:
        for territory_id, units in self.units.items():
            for i, unit in enumerate(units):
                if unit.id == unit_id:
                    removed = units.pop(i)
                    if not units:
                        del self.units[territory_id]
                    return removed
        return None

    def count(self, territory_id: str) -> int:
        return len(self.units.get(territory_id, []))

    def to_dict(self) -> dict[str, list[dict]]:
        return {tid: [u.to_dict() for u in units] for tid, units in self.units.items()}
