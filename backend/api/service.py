"""
Match service: the only writer of Match rows.

Every mutation runs load -> gate -> reduce -> compare-and-swap write -> audit log,
with the CAS write and the log row committed in one transaction. A lost race
(ConcurrencyConflict) re-runs the whole sequence against fresh state; any other
ActionError goes straight back to the caller with nothing persisted.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, TypeVar

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from backend.config import DEFAULT_DECK_ID, MAX_SUBMIT_RETRIES
from backend.engine.actions import action_from_request, surrender as surrender_action
from backend.engine.definitions import CardDefinition, DeckDefinition
from backend.engine.errors import (
    ActionError,
    ConcurrencyConflict,
    IllegalAction,
    NotActive,
    NotFound,
    PersistenceError,
    WrongTurn,
)
from backend.engine.events import GameEvent
from backend.engine.queries import get_available_actions, view_for_player
from backend.engine.reducer import apply_action, replay_from_actions
from backend.engine.setup import initialize_game_state, seed_from_match_id
from backend.engine.state import GameState

from .feed import ChangeFeed
from .models import Match, MatchLog

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _epoch(dt: datetime) -> float:
    """Naive UTC datetime (as stored) -> unix seconds."""
    return dt.replace(tzinfo=timezone.utc).timestamp()


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt is not None else None


def match_summary(row: Match) -> dict[str, Any]:
    """Public row metadata, no game state."""
    return {
        "match_id": row.id,
        "status": row.status,
        "player1_id": row.player1_id,
        "player2_id": row.player2_id,
        "deck_ids": json.loads(row.deck_ids or "{}"),
        "version": row.version,
        "created_at": _iso(row.created_at),
        "updated_at": _iso(row.updated_at),
    }


class MatchService:
    def __init__(
        self,
        session_factory: sessionmaker,
        catalog: dict[str, CardDefinition],
        decks: dict[str, DeckDefinition],
        feed: ChangeFeed | None = None,
        max_retries: int = MAX_SUBMIT_RETRIES,
    ):
        self.session_factory = session_factory
        self.catalog = catalog
        self.decks = decks
        self.feed = feed or ChangeFeed()
        self.max_retries = max_retries

    # ===== Plumbing =====

    def _run(self, fn: Callable[[Session], T]) -> T:
        """Run fn in a fresh session. Store failures roll back and become PersistenceError."""
        db = self.session_factory()
        try:
            return fn(db)
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception("Store error")
            raise PersistenceError(f"Could not persist match state: {e.__class__.__name__}") from e
        except ActionError:
            db.rollback()
            raise
        finally:
            db.close()

    def _with_retries(self, fn: Callable[[Session], T]) -> T:
        """Re-run fn while it loses compare-and-swap races, up to max_retries extra attempts."""
        for attempt in range(self.max_retries + 1):
            try:
                return self._run(fn)
            except ConcurrencyConflict:
                logger.info("Version conflict, retrying (attempt %d of %d)", attempt + 1, self.max_retries + 1)
        raise ConcurrencyConflict(f"Gave up after {self.max_retries + 1} attempts; match keeps changing")

    def _load(self, db: Session, match_id: str) -> Match:
        row = db.get(Match, match_id)
        if row is None:
            raise NotFound(f"Match {match_id} not found")
        return row

    def _load_state(self, row: Match) -> GameState:
        if not row.game_state:
            raise NotActive(f"Match {row.id} has not started")
        return GameState.from_json(row.game_state)

    def _cas_update(self, db: Session, row: Match, **values: Any) -> None:
        """UPDATE matches SET ... , version=version+1 WHERE id=? AND version=?."""
        result = db.execute(
            update(Match)
            .where(Match.id == row.id, Match.version == row.version)
            .values(version=row.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrencyConflict(f"Match {row.id} changed since version {row.version}")

    def _publish(self, snapshot: dict[str, Any]) -> None:
        self.feed.publish(snapshot["match_id"], snapshot)

    def _deck(self, deck_id: str | None) -> DeckDefinition:
        deck_id = deck_id or DEFAULT_DECK_ID
        deck = self.decks.get(deck_id)
        if deck is None:
            raise IllegalAction(f"Unknown deck: {deck_id}")
        return deck

    # ===== Lifecycle =====

    def create_match(self, player_id: str, deck_id: str | None = None) -> dict[str, Any]:
        """Open a waiting room. The creator is player1 and moves first."""
        deck = self._deck(deck_id)

        def op(db: Session) -> dict[str, Any]:
            now = datetime.utcnow()
            row = Match(
                id=str(uuid.uuid4()),
                status="waiting",
                player1_id=player_id,
                deck_ids=json.dumps({player_id: deck.id}),
                version=0,
                created_at=now,
                updated_at=now,
            )
            db.add(row)
            db.commit()
            return match_summary(row)

        summary = self._run(op)
        logger.info("Match %s created by %s", summary["match_id"], player_id)
        return summary

    def join_match(self, match_id: str, player_id: str, deck_id: str | None = None) -> dict[str, Any]:
        """
        Take the second seat of a waiting match and deal the opening state.
        The shuffle seed is derived from the match id, so the deal is reproducible.
        """
        deck2 = self._deck(deck_id)

        def op(db: Session) -> dict[str, Any]:
            row = self._load(db, match_id)
            if row.status != "waiting":
                raise NotActive(f"Match {match_id} is not open for joining")
            if row.player1_id == player_id:
                raise IllegalAction("You cannot join your own match")
            deck_ids = json.loads(row.deck_ids or "{}")
            deck1 = self._deck(deck_ids.get(row.player1_id))
            deck_ids[player_id] = deck2.id

            seed = seed_from_match_id(match_id)
            state, _ = initialize_game_state(
                match_id, row.player1_id, player_id, deck1.cards, deck2.cards, self.catalog, seed=seed,
            )
            state_json = state.to_json()
            now = datetime.utcnow()
            self._cas_update(
                db,
                row,
                status="active",
                player2_id=player_id,
                deck_ids=json.dumps(deck_ids),
                seed=seed,
                game_state=state_json,
                initial_state=state_json,
                updated_at=now,
            )
            db.commit()
            return {
                "match_id": match_id,
                "status": "active",
                "version": row.version + 1,
                "updated_at": _iso(now),
                "game_state": state.to_dict(),
            }

        snapshot = self._with_retries(op)
        logger.info("Match %s joined by %s", match_id, player_id)
        self._publish(snapshot)
        return snapshot

    # ===== Reads =====

    def list_open_matches(self) -> list[dict[str, Any]]:
        def op(db: Session) -> list[dict[str, Any]]:
            rows = db.query(Match).filter(Match.status == "waiting").order_by(Match.created_at).all()
            return [match_summary(r) for r in rows]

        return self._run(op)

    def get_match(self, match_id: str) -> tuple[dict[str, Any], GameState | None]:
        """Row metadata and the stored state (None while waiting)."""
        def op(db: Session) -> tuple[dict[str, Any], GameState | None]:
            row = self._load(db, match_id)
            state = GameState.from_json(row.game_state) if row.game_state else None
            return match_summary(row), state

        return self._run(op)

    def get_view(self, match_id: str, viewer_id: str | None) -> dict[str, Any]:
        """What viewer_id may see: metadata, masked state and whether it is their move."""
        summary, state = self.get_match(match_id)
        can_act = (
            state is not None
            and summary["status"] == "active"
            and state.winner_id is None
            and state.current_player_id == viewer_id
        )
        summary["state"] = view_for_player(state, viewer_id) if state is not None else None
        summary["can_act"] = can_act
        return summary

    def get_available_actions(self, match_id: str, player_id: str) -> dict[str, Any]:
        summary, state = self.get_match(match_id)
        if state is None or summary["status"] != "active":
            return {"can_act": False, "phase": state.phase if state else None, "actions": []}
        return get_available_actions(state, player_id, self.catalog)

    def get_match_log(self, match_id: str) -> list[dict[str, Any]]:
        """Audit entries for match_id in the order they were applied."""
        def op(db: Session) -> list[dict[str, Any]]:
            self._load(db, match_id)
            rows = db.query(MatchLog).filter(MatchLog.match_id == match_id).order_by(MatchLog.id).all()
            return [
                {
                    "id": r.id,
                    "match_id": r.match_id,
                    "player_id": r.player_id,
                    "action_type": r.action_type,
                    "payload": json.loads(r.action_payload),
                    "created_at": _iso(r.created_at),
                }
                for r in rows
            ]

        return self._run(op)

    def replay_match(self, match_id: str) -> tuple[GameState, list[GameEvent]]:
        """Rebuild the current state from initial_state and the audit log."""
        def op(db: Session) -> tuple[GameState, list[tuple[str, Any, float]]]:
            row = self._load(db, match_id)
            if not row.initial_state:
                raise NotActive(f"Match {match_id} has not started")
            logs = db.query(MatchLog).filter(MatchLog.match_id == match_id).order_by(MatchLog.id).all()
            entries = [
                (
                    log.player_id,
                    action_from_request(log.action_type, json.loads(log.action_payload)),
                    _epoch(log.created_at),
                )
                for log in logs
            ]
            return GameState.from_json(row.initial_state), entries

        initial, entries = self._run(op)
        return replay_from_actions(initial, entries, self.catalog)

    # ===== Writes =====

    def submit_action(
        self,
        match_id: str,
        player_id: str,
        action_type: str,
        payload: dict[str, Any] | None = None,
    ) -> tuple[GameState, list[GameEvent]]:
        """
        Apply one action for the authenticated player_id and persist it.

        Raises NotFound, NotActive, WrongTurn, IllegalAction (all with the row untouched),
        ConcurrencyConflict once retries are exhausted, or PersistenceError.
        Returns (new_state, events).
        """

        def op(db: Session) -> tuple[GameState, list[GameEvent], dict[str, Any]]:
            row = self._load(db, match_id)
            if row.status != "active":
                raise NotActive(f"Match {match_id} is {row.status}")
            state = self._load_state(row)
            if action_type != "surrender" and state.current_player_id != player_id:
                raise WrongTurn(f"Not your turn. Current player: {state.current_player_id}")

            action = action_from_request(action_type, payload)
            now = datetime.utcnow()
            new_state, events = apply_action(state, player_id, action, self.catalog, now=_epoch(now))

            status = "finished" if new_state.winner_id is not None else "active"
            self._cas_update(db, row, game_state=new_state.to_json(), status=status, updated_at=now)
            db.add(MatchLog(
                match_id=match_id,
                player_id=player_id,
                action_type=action.type,
                action_payload=json.dumps(action.payload),
                created_at=now,
            ))
            db.commit()
            snapshot = {
                "match_id": match_id,
                "status": status,
                "version": row.version + 1,
                "updated_at": _iso(now),
                "game_state": new_state.to_dict(),
            }
            return new_state, events, snapshot

        new_state, events, snapshot = self._with_retries(op)
        logger.info(
            "Match %s v%d: %s by %s (turn %d, phase %s)",
            match_id, snapshot["version"], action_type, player_id, new_state.turn_number, new_state.phase,
        )
        if new_state.winner_id is not None:
            logger.info("Match %s won by %s (%s)", match_id, new_state.winner_id, new_state.win_reason)
        self._publish(snapshot)
        return new_state, events

    def surrender(self, match_id: str, player_id: str) -> tuple[GameState, list[GameEvent]]:
        """Concede. Allowed on either player's turn."""
        action = surrender_action()
        return self.submit_action(match_id, player_id, action.type, action.payload)
