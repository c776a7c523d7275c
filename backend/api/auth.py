"""
Auth helpers: password hashing and JWT bearer identity.
The player id carried in the token is the only identity the match service trusts;
action payloads never name the actor.
Bcrypt accepts at most 72 bytes, so passwords are truncated before hashing.
"""

import re
from datetime import datetime, timedelta

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from backend.config import ACCESS_TOKEN_EXPIRE_DAYS, BCRYPT_ROUNDS, JWT_SECRET

from .database import get_db
from .models import Player

# Trainer name: letters, digits and underscore, 2-32 chars
USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]{2,32}$")

ALGORITHM = "HS256"
BCRYPT_MAX_BYTES = 72

security = HTTPBearer(auto_error=False)


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("ascii")


def verify_password(plain: str, hashed: str) -> bool:
    return bcrypt.checkpw(_password_bytes(plain), hashed.encode("ascii"))


def create_access_token(player_id: str) -> str:
    expire = datetime.utcnow() + timedelta(days=ACCESS_TOKEN_EXPIRE_DAYS)
    return jwt.encode({"sub": player_id, "exp": expire}, JWT_SECRET, algorithm=ALGORITHM)


def decode_token(token: str) -> str | None:
    """Player id from a token, or None if it is invalid or expired."""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[ALGORITHM])
    except JWTError:
        return None
    return payload.get("sub")


def validate_username(username: str) -> bool:
    return bool(USERNAME_PATTERN.match(username))


def player_from_token(token: str | None, db: Session) -> Player | None:
    """Resolve a raw token (e.g. a WebSocket query param) to a Player."""
    if not token:
        return None
    player_id = decode_token(token)
    if not player_id:
        return None
    return db.query(Player).filter(Player.id == player_id).first()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_player(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> Player:
    """Bearer-token identity for every endpoint that acts on a match."""
    if not credentials:
        raise _unauthorized("Not authenticated")
    player = player_from_token(credentials.credentials, db)
    if player is None:
        raise _unauthorized("Invalid or expired token")
    return player


def get_current_player_optional(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> Player | None:
    """Same as get_current_player but spectators (no token) get None instead of 401."""
    return player_from_token(credentials.credentials, db) if credentials else None
