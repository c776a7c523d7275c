"""
FastAPI backend for Pocket Duel.
REST endpoints for accounts, the card catalog and matches, plus a WebSocket stream
of match snapshots. All match writes go through MatchService.
"""

import asyncio
import json
import logging
import uuid
from dataclasses import asdict
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from backend.config import CORS_ORIGINS, LOG_LEVEL
from backend.engine.definitions import load_card_catalog, load_decks
from backend.engine.errors import ActionError
from backend.engine.queries import view_for_player
from backend.engine.state import GameState

from .auth import (
    create_access_token,
    get_current_player,
    get_current_player_optional,
    hash_password,
    player_from_token,
    validate_username,
    verify_password,
)
from .database import SessionLocal, get_db, init_db
from .feed import ChangeFeed
from .models import Player
from .service import MatchService

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Pocket Duel API",
    description="Authoritative match server for a turn-based Pokémon-style card battle",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# error_code -> HTTP status
ERROR_STATUS = {
    "not_found": 404,
    "not_active": 409,
    "wrong_turn": 403,
    "illegal_action": 400,
    "concurrency_conflict": 409,
    "persistence_error": 500,
}


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log failing requests so 5xx responses can be traced to the endpoint."""
    try:
        response = await call_next(request)
    except Exception:
        logger.exception("%s %s raised", request.method, request.url.path)
        raise
    if response.status_code >= 500:
        logger.error("[%d] %s %s", response.status_code, request.method, request.url.path)
    return response


@app.exception_handler(ActionError)
async def action_error_handler(request: Request, exc: ActionError):
    status_code = ERROR_STATUS.get(exc.code, 400)
    logger.info("%s %s rejected: %s (%s)", request.method, request.url.path, exc.message, exc.code)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


# Catalog is static; load once at import.
catalog = load_card_catalog()
decks = load_decks(catalog)
feed = ChangeFeed()
_service: MatchService | None = None


def get_match_service() -> MatchService:
    """Process-wide MatchService. Tests override this dependency."""
    global _service
    if _service is None:
        _service = MatchService(SessionLocal, catalog, decks, feed)
    return _service


# ===== Pydantic Models =====

class RegisterRequest(BaseModel):
    email: str
    username: str
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class CreateMatchRequest(BaseModel):
    deck_id: str | None = None  # id from GET /decks; omitted = DEFAULT_DECK_ID


class JoinMatchRequest(BaseModel):
    deck_id: str | None = None


class ActionRequest(BaseModel):
    action_type: str
    payload: dict[str, Any] = {}


@app.on_event("startup")
def on_startup():
    init_db()


def _player_dict(player: Player) -> dict[str, Any]:
    return {"id": player.id, "email": player.email, "username": player.username}


def _action_response(state: GameState, events: list, player_id: str) -> dict[str, Any]:
    return {
        "success": True,
        "state": view_for_player(state, player_id),
        "events": [e.to_dict() for e in events],
    }


# ===== API Endpoints =====

@app.get("/")
def root():
    return {"message": "Pocket Duel API", "version": "1.0.0"}


# ----- Auth -----

@app.post("/auth/register")
def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """Register with email, username (letters, digits, underscore) and password."""
    if not validate_username(request.username):
        raise HTTPException(
            status_code=400,
            detail="Username must be 2-32 characters, letters numbers and underscore only",
        )
    if db.query(Player).filter(Player.email == request.email).first():
        raise HTTPException(status_code=400, detail="Email already registered")
    if db.query(Player).filter(Player.username == request.username).first():
        raise HTTPException(status_code=400, detail="Username already taken")
    player = Player(
        id=str(uuid.uuid4()),
        email=request.email,
        username=request.username,
        password_hash=hash_password(request.password),
    )
    db.add(player)
    db.commit()
    logger.info("Registered player %s (%s)", player.id, player.username)
    return {"access_token": create_access_token(player.id), "player": _player_dict(player)}


@app.post("/auth/login")
def login(request: LoginRequest, db: Session = Depends(get_db)):
    player = db.query(Player).filter(Player.email == request.email).first()
    if not player or not verify_password(request.password, player.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return {"access_token": create_access_token(player.id), "player": _player_dict(player)}


@app.get("/auth/me")
def auth_me(player: Player = Depends(get_current_player)):
    return _player_dict(player)


# ----- Catalog -----

@app.get("/cards")
def get_cards():
    """Full card catalog, keyed by base id."""
    return {"cards": {card_id: asdict(card) for card_id, card in catalog.items()}}


@app.get("/decks")
def get_decks():
    """Starter decks usable in POST /matches and POST /matches/{id}/join."""
    return {"decks": [deck.to_dict() for deck in decks.values()]}


# ----- Matches -----

@app.post("/matches")
def create_match(
    request: CreateMatchRequest,
    player: Player = Depends(get_current_player),
    service: MatchService = Depends(get_match_service),
):
    """Open a waiting room. The creator moves first once someone joins."""
    return service.create_match(player.id, request.deck_id)


@app.get("/matches")
def list_matches(service: MatchService = Depends(get_match_service)):
    """Rooms waiting for a second player."""
    return {"matches": service.list_open_matches()}


@app.post("/matches/{match_id}/join")
def join_match(
    match_id: str,
    request: JoinMatchRequest,
    player: Player = Depends(get_current_player),
    service: MatchService = Depends(get_match_service),
):
    """Take the second seat; the opening hands are dealt and the match becomes active."""
    service.join_match(match_id, player.id, request.deck_id)
    return service.get_view(match_id, player.id)


@app.get("/matches/{match_id}")
def get_match(
    match_id: str,
    player: Player | None = Depends(get_current_player_optional),
    service: MatchService = Depends(get_match_service),
):
    """Match metadata and the state as the caller may see it (spectators see no hands)."""
    return service.get_view(match_id, player.id if player else None)


@app.post("/matches/{match_id}/actions")
def submit_action(
    match_id: str,
    request: ActionRequest,
    player: Player = Depends(get_current_player),
    service: MatchService = Depends(get_match_service),
):
    """
    Submit one action as the authenticated player.
    Body: {"action_type": "...", "payload": {...}}. The actor is always the token's player.
    """
    state, events = service.submit_action(match_id, player.id, request.action_type, request.payload)
    return _action_response(state, events, player.id)


@app.post("/matches/{match_id}/surrender")
def surrender(
    match_id: str,
    player: Player = Depends(get_current_player),
    service: MatchService = Depends(get_match_service),
):
    state, events = service.surrender(match_id, player.id)
    return _action_response(state, events, player.id)


@app.get("/matches/{match_id}/available-actions")
def available_actions(
    match_id: str,
    player: Player = Depends(get_current_player),
    service: MatchService = Depends(get_match_service),
):
    """Legal actions for the caller right now (empty when it is not their turn)."""
    return service.get_available_actions(match_id, player.id)


@app.get("/matches/{match_id}/log")
def match_log(match_id: str, service: MatchService = Depends(get_match_service)):
    """Audit trail of applied actions, oldest first."""
    return {"entries": service.get_match_log(match_id)}


# ----- Stream -----

def _viewer_id(service: MatchService, token: str | None) -> str | None:
    """Resolve a stream token with a short-lived session; streams never hold a connection."""
    with service.session_factory() as db:
        player = player_from_token(token, db)
        return player.id if player else None


@app.websocket("/matches/{match_id}/stream")
async def match_stream(
    websocket: WebSocket,
    match_id: str,
    token: str | None = None,
    service: MatchService = Depends(get_match_service),
):
    """
    Push the caller's view of the match on connect and after every committed change.

    Messages from server:
    - state_update: {"type", "payload": view}
    - error: {"type", "payload": {"detail", "error_code"}}

    Messages from client:
    - ping: keep-alive, answered with pong

    If an update cannot be pushed the socket is closed with code 1011.
    """
    viewer_id = await run_in_threadpool(_viewer_id, service, token)
    await websocket.accept()

    try:
        view = await run_in_threadpool(service.get_view, match_id, viewer_id)
    except ActionError as e:
        await websocket.send_json({"type": "error", "payload": e.to_dict()})
        await websocket.close()
        return
    await websocket.send_json({"type": "state_update", "payload": view})

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()
    # Feed callbacks run on the writer's thread; hand snapshots over to this loop.
    unsubscribe = service.feed.subscribe(
        match_id, lambda snapshot: loop.call_soon_threadsafe(queue.put_nowait, snapshot)
    )

    async def forward_updates():
        try:
            while True:
                snapshot = await queue.get()
                state = GameState.from_dict(snapshot["game_state"])
                payload = {
                    "match_id": snapshot["match_id"],
                    "status": snapshot["status"],
                    "version": snapshot["version"],
                    "updated_at": snapshot["updated_at"],
                    "state": view_for_player(state, viewer_id),
                    "can_act": state.winner_id is None and state.current_player_id == viewer_id,
                }
                await websocket.send_json({"type": "state_update", "payload": payload})
        except Exception:
            logger.exception("Stream for match %s stopped pushing updates", match_id)
            await websocket.close(code=1011)

    sender = asyncio.create_task(forward_updates())
    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "payload": {"detail": "Invalid JSON"}})
                continue
            if isinstance(message, dict) and message.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        logger.debug("Stream for match %s closed", match_id)
    finally:
        unsubscribe()
        sender.cancel()
        try:
            await sender
        except asyncio.CancelledError:
            pass
        except Exception:
            # close() after a failed push can itself fail once the client is gone
            logger.debug("Stream sender for match %s ended with an error", match_id, exc_info=True)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
