"""
SQLAlchemy models for players, matches and the match audit log.
"""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, Integer, BigInteger, ForeignKey

from .database import Base


class Player(Base):
    __tablename__ = "players"

    id = Column(String(36), primary_key=True)  # uuid
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(64), unique=True, nullable=False, index=True)  # display name, no spaces/special
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Match(Base):
    __tablename__ = "matches"

    id = Column(String(36), primary_key=True)  # uuid
    status = Column(String(16), nullable=False, default="waiting", index=True)  # waiting | active | finished
    player1_id = Column(String(36), ForeignKey("players.id"), nullable=False)  # room creator, moves first
    player2_id = Column(String(36), ForeignKey("players.id"), nullable=True)  # null while waiting
    deck_ids = Column(Text, nullable=False, default="{}")  # JSON {player_id: deck_id}
    seed = Column(BigInteger, nullable=True)  # shuffle seed, set when the match starts
    game_state = Column(Text, nullable=True)  # JSON GameState; null while waiting
    initial_state = Column(Text, nullable=True)  # JSON GameState as dealt, for replay
    version = Column(Integer, nullable=False, default=0)  # compare-and-swap token, bumped on every write
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)  # change-detection token for clients only


class MatchLog(Base):
    """Append-only audit trail of applied actions. Never read by the rules engine."""
    __tablename__ = "match_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(String(36), ForeignKey("matches.id"), nullable=False, index=True)
    player_id = Column(String(36), nullable=False)
    action_type = Column(String(32), nullable=False)
    action_payload = Column(Text, nullable=False)  # JSON
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
