#!/usr/bin/env python3
"""
Rebuild a match from its audit log and compare it with the stored state.
Usage (from repo root):
  python -m backend.scripts.replay_match <match_id> [--events]
Exit code 0 when the replay reproduces the stored game_state, 3 when it diverges.
"""
import sys
import os

# Run from repo root so backend is importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from backend.api.database import SessionLocal, get_db_file_path
from backend.api.service import MatchService
from backend.engine.definitions import load_card_catalog, load_decks
from backend.engine.errors import ActionError


def main():
    args = [a for a in sys.argv[1:] if not a.startswith("--")]
    show_events = "--events" in sys.argv[1:]
    if not args:
        print("Usage: python -m backend.scripts.replay_match <match_id> [--events]")
        sys.exit(1)
    match_id = args[0]

    db_path = get_db_file_path()
    if db_path:
        print(f"Database: {db_path}")

    catalog = load_card_catalog()
    service = MatchService(SessionLocal, catalog, load_decks(catalog))
    try:
        summary, stored = service.get_match(match_id)
        log = service.get_match_log(match_id)
        replayed, events = service.replay_match(match_id)
    except ActionError as e:
        print(f"Error: {e.message} ({e.code})")
        sys.exit(2)

    print(f"Match {match_id}: status {summary['status']}, version {summary['version']}, {len(log)} logged actions")
    if show_events:
        for event in events:
            print(f"  {event.type}: {event.payload}")
    print(f"Replayed: turn {replayed.turn_number}, phase {replayed.phase}, winner {replayed.winner_id}")

    if stored is not None and stored.to_json() == replayed.to_json():
        print("Replay matches stored state.")
        return
    print("Replay DIVERGES from stored state.")
    sys.exit(3)


if __name__ == "__main__":
    main()
