"""
Tests for client-facing queries: request parsing, validation, legal moves, masking.
"""

import pytest

from backend.engine.actions import action_from_request, attack, play_basic
from backend.engine.errors import IllegalAction
from backend.engine.queries import get_available_actions, validate_action, view_for_player


class TestActionFromRequest:
    def test_builds_action_and_drops_extra_keys(self):
        action = action_from_request("attach_energy", {
            "card_id": "a-grass-1", "target_id": "a-bulba-1", "player_id": "bob",
        })
        assert action.payload == {"card_id": "a-grass-1", "target_id": "a-bulba-1"}

    def test_unknown_type(self):
        with pytest.raises(IllegalAction, match="Unknown action type"):
            action_from_request("draw_extra", {})

    @pytest.mark.parametrize("payload", [{}, {"move_index": "0"}, {"move_index": True}])
    def test_bad_payload(self, payload):
        with pytest.raises(IllegalAction):
            action_from_request("attack", payload)

    def test_optional_slot(self):
        assert action_from_request("play_basic", {"card_id": "c", "slot": 2}).payload["slot"] == 2
        with pytest.raises(IllegalAction):
            action_from_request("play_basic", {"card_id": "c", "slot": "2"})


class TestValidateAction:
    def test_valid(self, board, catalog):
        assert validate_action(board, "alice", play_basic("a-bulba-2"), catalog).valid

    def test_invalid_carries_code(self, board, catalog):
        result = validate_action(board, "alice", attack(0), catalog)
        assert not result.valid
        assert result.error_code == "illegal_action"

    def test_wrong_turn_code(self, board, catalog):
        result = validate_action(board, "bob", play_basic("b-char-2"), catalog)
        assert result.to_dict()["error_code"] == "wrong_turn"


class TestAvailableActions:
    def test_current_player_options(self, board, catalog):
        out = get_available_actions(board, "alice", catalog)
        types = {a["type"] for a in out["actions"]}
        assert out["can_act"]
        assert {"play_basic", "attach_energy", "evolve", "end_phase", "end_turn"} <= types
        # no energy attached yet, so no attack
        assert "attack" not in types
        assert "retreat" not in types

    def test_waiting_player_has_none(self, board, catalog):
        out = get_available_actions(board, "bob", catalog)
        assert out == {"can_act": False, "phase": "draw", "actions": []}

    def test_every_listed_action_is_valid(self, board, catalog):
        for entry in get_available_actions(board, "alice", catalog)["actions"]:
            action = action_from_request(entry["type"], entry["payload"])
            assert validate_action(board, "alice", action, catalog).valid


class TestViewForPlayer:
    def test_opponent_hand_and_decks_hidden(self, board):
        view = view_for_player(board, "alice")
        assert len(view["players"]["alice"]["hand"]) == 5
        assert "hand" not in view["players"]["bob"]
        assert view["players"]["bob"]["hand_count"] == 2
        assert "deck" not in view["players"]["alice"]
        assert view["players"]["alice"]["deck_count"] == 5

    def test_spectator_sees_no_hands(self, board):
        view = view_for_player(board, None)
        assert all("hand" not in p for p in view["players"].values())

    def test_view_does_not_touch_state(self, board):
        view_for_player(board, "alice")
        assert len(board.players["bob"].hand) == 2
