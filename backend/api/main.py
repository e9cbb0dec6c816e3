"""
FastAPI backend for the Empire's Legacy combat engine.
Provides REST API endpoints over in-memory games: setup, card inventory and the combat session.
"""

import random
from dataclasses import asdict, dataclass
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from backend.config import DEFAULT_PLAYER_ID, DEFAULT_SETUP_ID, DEFAULT_TOTAL_ROUNDS
from backend.engine.combat_session import CombatEngine
from backend.engine.conquest import make_territory_applier
from backend.engine.definitions import list_setups, load_setup, load_static_definitions
from backend.engine.events import GameEvent
from backend.engine.state import SIDE_OPPONENT, SIDE_PLAYER
from backend.engine.stores import TerritoryRegistry, UnitRoster
from backend.engine.utils import initialize_from_setup

app = FastAPI(
    title="Empire's Legacy Combat API",
    description="Backend API for the Empire's Legacy tactical-card combat engine",
    version="1.0.0",
)

# CORS configuration for frontend
CORS_ORIGINS = ["http://localhost:5173", "http://localhost:5174", "http://localhost:3000"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)


@app.middleware("http")
async def log_requests(request, call_next):
    """Log method and path so 500s can be traced to the failing endpoint."""
    method = getattr(request, "method", "?")
    url = getattr(request, "url", None)
    path = url.path if url else "?"
    try:
        response = await call_next(request)
        if response.status_code >= 500:
            print(f"[500] {method} {path}", flush=True)
        return response
    except Exception:
        print(f"[500] {method} {path} (exception)", flush=True)
        raise


@app.exception_handler(Exception)
async def unhandled_exception_handler(request, exc):
    """Return 500 with CORS headers and full traceback so the frontend can read the error."""
    import traceback
    tb = traceback.format_exc()
    traceback.print_exc()
    origin = request.headers.get("origin")
    allow_origin = origin if origin in CORS_ORIGINS else CORS_ORIGINS[0]
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc), "traceback": tb},
        headers={
            "Access-Control-Allow-Origin": allow_origin,
            "Access-Control-Allow-Credentials": "true",
        },
    )


unit_types, card_types = load_static_definitions()

EFFECT_ROLL_SIDES = 5


@dataclass
class GameContext:
    """Everything one in-memory game needs: its stores and its combat engine."""
    setup_id: str
    territories: TerritoryRegistry
    roster: UnitRoster
    engine: CombatEngine


# In-memory games; key = game_id
games: dict[str, GameContext] = {}


# ===== Pydantic Models =====

class NewGameRequest(BaseModel):
    game_id: str
    setup_id: str | None = None
    player_id: str = DEFAULT_PLAYER_ID


class StartCombatRequest(BaseModel):
    attacking_territory_id: str
    defending_territory_id: str


class SelectCardRequest(BaseModel):
    card_id: str
    side: str = SIDE_PLAYER


class AddCardRequest(BaseModel):
    card_id: str
    amount: int = 1
    player_id: str | None = None


# ===== Helpers =====

def get_game(game_id: str) -> GameContext:
    game = games.get(game_id)
    if game is None:
        raise HTTPException(status_code=404, detail=f"Game {game_id} not found")
    return game


def roll_dice(count: int, sides: int = EFFECT_ROLL_SIDES) -> list[int]:
    """Roll dice for card effects."""
    return [random.randint(1, sides) for _ in range(count)]


def _raise_rejection(engine: CombatEngine) -> None:
    rejection = engine.last_rejection
    if rejection is None:
        raise HTTPException(status_code=400, detail={"code": "invalid", "error": "Rejected"})
    raise HTTPException(
        status_code=400,
        detail={"code": rejection.code.value if rejection.code else "invalid", "error": rejection.error},
    )


def _events(events: list[GameEvent]) -> list[dict[str, Any]]:
    return [e.to_dict() for e in events]


def state_for_response(game: GameContext) -> dict[str, Any]:
    engine = game.engine
    return {
        "setup_id": game.setup_id,
        "player_id": engine.player_id,
        "territories": game.territories.to_dict(),
        "units": game.roster.to_dict(),
        "cards": engine.inventory.to_dict(),
        "combat": engine.combat,
        "phase": engine.phase.value,
    }


def _safe_asdict_map(defs_dict):
    """Serialize a definitions dict to JSON-serializable form; return {} on any error."""
    try:
        return {k: asdict(v) for k, v in (defs_dict or {}).items()}
    except Exception:
        return {}


# ===== API Endpoints =====

@app.get("/")
def root():
    return {"message": "Empire's Legacy Combat API", "version": "1.0.0"}


@app.get("/setups")
def get_setups():
    """List available setups (id, display_name). Use setup_id in POST /games."""
    return {"setups": list_setups()}


@app.get("/definitions")
def get_definitions():
    """Unit type and tactical card catalogs."""
    return {
        "units": _safe_asdict_map(unit_types),
        "cards": {card_id: card.to_dict() for card_id, card in card_types.items()},
    }


@app.post("/games")
def create_game(request: NewGameRequest):
    """Create a new in-memory game from a setup."""
    if request.game_id in games:
        raise HTTPException(status_code=400, detail=f"Game {request.game_id} already exists")
    setup_id = request.setup_id or DEFAULT_SETUP_ID
    try:
        setup = load_setup(setup_id)
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    territories, roster, inventory = initialize_from_setup(setup, unit_types, card_types)
    engine = CombatEngine(
        unit_types,
        card_types,
        territories,
        roster,
        inventory,
        player_id=request.player_id,
        total_rounds=setup.get("total_rounds") or DEFAULT_TOTAL_ROUNDS,
    )
    game = GameContext(setup_id=setup["id"], territories=territories, roster=roster, engine=engine)
    games[request.game_id] = game
    return {"game_id": request.game_id, "state": state_for_response(game)}


@app.get("/games/{game_id}")
def get_game_state(game_id: str):
    return {"game_id": game_id, "state": state_for_response(get_game(game_id))}


@app.get("/games/{game_id}/cards")
def get_available_cards(game_id: str):
    engine = get_game(game_id).engine
    return {"cards": [c.to_dict() for c in engine.get_available_cards()]}


@app.get("/games/{game_id}/cards/contextual")
def get_contextual_cards(game_id: str, territory_id: str | None = None):
    """Available cards ranked for a territory's units (default: the active attack)."""
    engine = get_game(game_id).engine
    return {"cards": [c.to_dict() for c in engine.get_contextual_cards(territory_id)]}


@app.post("/games/{game_id}/cards/add")
def add_card(game_id: str, request: AddCardRequest):
    game = get_game(game_id)
    engine = game.engine
    if not engine.add_card(request.card_id, request.amount, request.player_id):
        engine.drain_events()
        _raise_rejection(engine)
    return {"state": state_for_response(game), "events": _events(engine.drain_events())}


@app.get("/games/{game_id}/assessment")
def get_assessment(game_id: str, attacker: str, defender: str):
    """Pre-battle odds for attacking `defender` from `attacker`."""
    assessment = get_game(game_id).engine.assess_attack(attacker, defender)
    if assessment is None:
        raise HTTPException(status_code=404, detail="Unknown territory")
    return assessment.to_dict()


@app.get("/games/{game_id}/combat")
def get_combat(game_id: str):
    engine = get_game(game_id).engine
    return {"combat": engine.combat, "phase": engine.phase.value}


@app.post("/games/{game_id}/combat/start")
def start_combat(game_id: str, request: StartCombatRequest):
    game = get_game(game_id)
    engine = game.engine
    if not engine.start_combat(request.attacking_territory_id, request.defending_territory_id):
        engine.drain_events()
        _raise_rejection(engine)
    return {"state": state_for_response(game), "events": _events(engine.drain_events())}


@app.post("/games/{game_id}/combat/select-card")
def select_card(game_id: str, request: SelectCardRequest):
    """Select a card for the current round. The opponent side is supplied by the client's strategy."""
    game = get_game(game_id)
    engine = game.engine
    if not engine.select_card(request.card_id, request.side):
        engine.drain_events()
        _raise_rejection(engine)
    return {"state": state_for_response(game), "events": _events(engine.drain_events())}


@app.post("/games/{game_id}/combat/next-round")
def next_round(game_id: str):
    """Resolve the current round. Rolls for "random" card effects are made here."""
    game = get_game(game_id)
    engine = game.engine
    effect_rolls = {SIDE_PLAYER: roll_dice(1)[0], SIDE_OPPONENT: roll_dice(1)[0]}
    active = engine.next_combat_round(effect_rolls)
    if not active and engine.last_rejection is not None:
        engine.drain_events()
        _raise_rejection(engine)
    return {
        "active": active,
        "state": state_for_response(game),
        "events": _events(engine.drain_events()),
        "effect_rolls": effect_rolls,
    }


@app.post("/games/{game_id}/combat/end")
def end_combat(game_id: str):
    """Consume a concluded combat and apply the territory change."""
    game = get_game(game_id)
    engine = game.engine
    combat = engine.combat
    attacker_id = combat["attacker_id"] if combat else None
    outcome = engine.end_combat(make_territory_applier(game.territories, attacker_id))
    if outcome is None:
        engine.drain_events()
        _raise_rejection(engine)
    return {
        "outcome": outcome.to_dict(),
        "state": state_for_response(game),
        "events": _events(engine.drain_events()),
    }


@app.post("/games/{game_id}/combat/abandon")
def abandon_combat(game_id: str):
    game = get_game(game_id)
    engine = game.engine
    if not engine.abandon_combat():
        engine.drain_events()
        _raise_rejection(engine)
    return {"state": state_for_response(game), "events": _events(engine.drain_events())}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
