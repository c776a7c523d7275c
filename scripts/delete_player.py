#!/usr/bin/env python3
"""
Delete a player by email so you can re-register with the same email/username.
Usage: python scripts/delete_player.py <email> [--with-matches]
Waiting rooms the player opened are always removed. Started matches reference the
player, so they block the delete unless --with-matches is given (which also drops
their audit logs).
"""
import sys
import os

# Allow running from repo root or scripts/
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from sqlalchemy import or_

from backend.api.database import SessionLocal
from backend.api.models import Match, MatchLog, Player


def main() -> None:
    args = [a for a in sys.argv[1:] if not a.startswith("--")]
    with_matches = "--with-matches" in sys.argv[1:]
    if not args or not args[0].strip():
        print("Usage: python scripts/delete_player.py <email> [--with-matches]", file=sys.stderr)
        sys.exit(1)
    email = args[0].strip()

    db = SessionLocal()
    try:
        player = db.query(Player).filter(Player.email == email).first()
        if not player:
            print(f"No player found with email: {email!r}")
            return
        player_id = player.id
        username = player.username

        matches = db.query(Match).filter(
            or_(Match.player1_id == player_id, Match.player2_id == player_id)
        ).all()
        started = [m for m in matches if m.status != "waiting"]
        if started and not with_matches:
            print(
                f"{username!r} is in {len(started)} started match(es); rerun with --with-matches to delete them.",
                file=sys.stderr,
            )
            sys.exit(2)
        for match in matches:
            db.query(MatchLog).filter(MatchLog.match_id == match.id).delete()
            db.delete(match)
        db.delete(player)
        db.commit()
        print(f"Deleted player {username!r} ({email}) and {len(matches)} match(es). You can now register again.")
    except Exception as e:
        db.rollback()
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
