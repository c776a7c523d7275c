"""
Main match reducer.
Applies an action by a player to state, enforcing rules and producing new state.
Returns (new_state, events) where events describe what happened.
The input state is never mutated; a rejected action raises and leaves nothing behind.
"""

from backend.engine import PHASES, POISON_DAMAGE
from backend.engine.state import GameState, PlayerState, BattleCard, TurnFlags, LastAction
from backend.engine.actions import Action
from backend.engine.definitions import CardDefinition
from backend.engine.combat import calculate_damage, has_required_energy, rarity_multiplier, can_act
from backend.engine.errors import IllegalAction, NotActive, WrongTurn
from backend.engine.events import (
    GameEvent,
    phase_changed,
    turn_started,
    turn_ended,
    card_drawn,
    card_played,
    energy_attached,
    pokemon_evolved,
    retreated,
    pokemon_promoted,
    combat_resolved,
    knocked_out,
    status_damage,
    prize_taken,
    match_won,
)


# Phase rules: which action types are allowed in which phases.
# Board actions auto-advance draw -> main; attack auto-advances to attack and then to end.
PHASE_ALLOWED_ACTIONS = {
    "draw": ["play_basic", "attach_energy", "evolve", "retreat", "attack", "end_phase", "end_turn", "surrender"],
    "main": ["play_basic", "attach_energy", "evolve", "retreat", "attack", "end_phase", "end_turn", "surrender"],
    "attack": ["attack", "end_phase", "end_turn", "surrender"],
    "end": ["end_turn", "surrender"],
}

# Action type -> last_action.type shown to clients
LAST_ACTION_TYPES = {
    "play_basic": "play_card",
    "attach_energy": "attach_energy",
    "evolve": "evolve",
    "attack": "attack",
    "retreat": "retreat",
    "end_phase": "end_phase",
    "end_turn": "end_turn",
    "surrender": "surrender",
}


def _card_def(catalog: dict[str, CardDefinition], card: BattleCard) -> CardDefinition:
    card_def = catalog.get(card.base_id)
    if card_def is None:
        raise IllegalAction(f"Unknown card {card.base_id}")
    return card_def


def _find_in_play(player: PlayerState, instance_id: str) -> BattleCard | None:
    return next((c for c in player.in_play() if c.instance_id == instance_id), None)


def _replace_in_play(player: PlayerState, old_id: str, new_card: BattleCard | None) -> None:
    """Put new_card where old_id sits (active spot or bench slot)."""
    if player.active_pokemon and player.active_pokemon.instance_id == old_id:
        player.active_pokemon = new_card
        return
    idx = player.bench_index(old_id)
    if idx is not None:
        player.bench[idx] = new_card


def _advance_phase_to(state: GameState, target: str, events: list[GameEvent]) -> None:
    """Move the phase forward to target. Never moves backwards."""
    if PHASES.index(state.phase) < PHASES.index(target):
        events.append(phase_changed(state.phase, target, state.current_player_id))
        state.phase = target


def _validate_action_for_phase(action: Action, state: GameState) -> None:
    allowed = PHASE_ALLOWED_ACTIONS.get(state.phase, [])
    if action.type not in allowed:
        raise IllegalAction(
            f"Action '{action.type}' is not allowed in phase '{state.phase}'. "
            f"Allowed actions: {', '.join(allowed)}"
        )


def apply_action(
    state: GameState,
    player_id: str,
    action: Action,
    catalog: dict[str, CardDefinition],
    now: float = 0.0,
) -> tuple[GameState, list[GameEvent]]:
    """
    Apply a single action by player_id to the current state, returning new state and events.

    Validates:
    - Match is not over
    - player_id is a participant and (except for surrender) the current player
    - Action is allowed in the current phase

    Args:
        state: Current game state (not modified)
        player_id: Verified identity of the acting player
        action: Action to apply
        catalog: Card definitions by base_id
        now: Timestamp recorded in last_action (display only)

    Returns:
        Tuple of (new_state, events) where events describe what happened
    """
    if state.winner_id is not None:
        raise NotActive(f"Match is over. {state.winner_id} has won.")

    if not state.is_participant(player_id):
        raise WrongTurn(f"Player {player_id} is not in this match")

    if action.type != "surrender" and player_id != state.current_player_id:
        raise WrongTurn(f"Not your turn. Current player: {state.current_player_id}")

    _validate_action_for_phase(action, state)

    new_state = state.copy()
    events: list[GameEvent] = []

    if action.type == "play_basic":
        details = _handle_play_basic(new_state, player_id, action, catalog, events)

    elif action.type == "attach_energy":
        details = _handle_attach_energy(new_state, player_id, action, catalog, events)

    elif action.type == "evolve":
        details = _handle_evolve(new_state, player_id, action, catalog, events)

    elif action.type == "attack":
        details = _handle_attack(new_state, player_id, action, catalog, events)

    elif action.type == "retreat":
        details = _handle_retreat(new_state, player_id, action, events)

    elif action.type == "end_phase":
        details = _handle_end_phase(new_state, events)

    elif action.type == "end_turn":
        details = _handle_end_turn(new_state, player_id, catalog, events)

    elif action.type == "surrender":
        details = _handle_surrender(new_state, player_id, events)

    else:
        raise IllegalAction(f"Unknown action type: {action.type}")

    if new_state.winner_id is None:
        _check_victory(new_state, player_id, catalog, events)

    new_state.last_action = LastAction(
        player_id=player_id,
        type=LAST_ACTION_TYPES[action.type],
        details=details,
        timestamp=now,
    )
    return new_state, events


def _handle_play_basic(
    state: GameState,
    player_id: str,
    action: Action,
    catalog: dict[str, CardDefinition],
    events: list[GameEvent],
) -> str:
    """
    Put a basic Pokémon from hand into play.
    Validates:
    - Card is in the actor's hand and is a basic Pokémon
    - Active spot is empty, or a bench slot is free (lowest index wins unless
      the requested slot is itself free)
    """
    player = state.players[player_id]
    card_id = action.payload.get("card_id")
    card = player.find_in_hand(card_id)
    if card is None:
        raise IllegalAction(f"Card {card_id} is not in your hand")
    if not _card_def(catalog, card).is_basic_pokemon:
        raise IllegalAction(f"{card.name} is not a basic Pokémon")

    if player.active_pokemon is None:
        zone, slot = "active", None
    else:
        requested = action.payload.get("slot")
        if isinstance(requested, int) and 0 <= requested < len(player.bench) and player.bench[requested] is None:
            slot = requested
        else:
            slot = player.first_empty_bench_slot()
        if slot is None:
            raise IllegalAction("No empty slot: active spot and bench are full")
        zone = "bench"

    _advance_phase_to(state, "main", events)
    player.hand.remove(card)
    card.turn_played = state.turn_number
    if zone == "active":
        player.active_pokemon = card
        details = f"Played {card.name} as active Pokémon"
    else:
        player.bench[slot] = card
        details = f"Played {card.name} to bench slot {slot + 1}"

    events.append(card_played(player_id, card.instance_id, zone, slot))
    return details


def _handle_attach_energy(
    state: GameState,
    player_id: str,
    action: Action,
    catalog: dict[str, CardDefinition],
    events: list[GameEvent],
) -> str:
    """
    Attach an energy card from hand to a Pokémon the actor controls.
    Validates:
    - No energy attached yet this turn
    - Card is an energy card in hand
    - Target is the actor's active or benched Pokémon
    """
    if state.turn_flags.energy_attached:
        raise IllegalAction("Energy already attached this turn")

    player = state.players[player_id]
    card_id = action.payload.get("card_id")
    target_id = action.payload.get("target_id")

    card = player.find_in_hand(card_id)
    if card is None:
        raise IllegalAction(f"Card {card_id} is not in your hand")
    card_def = _card_def(catalog, card)
    if not card_def.is_energy or not card_def.energy_type:
        raise IllegalAction(f"{card.name} is not an energy card")

    target = _find_in_play(player, target_id)
    if target is None:
        raise IllegalAction(f"Target {target_id} is not one of your Pokémon in play")

    _advance_phase_to(state, "main", events)
    player.hand.remove(card)
    target.energy_attached.append(card_def.energy_type)
    state.turn_flags.energy_attached = True

    events.append(energy_attached(player_id, card_def.energy_type, target.instance_id))
    return f"Attached {card_def.energy_type} energy to {target.name}"


def _handle_evolve(
    state: GameState,
    player_id: str,
    action: Action,
    catalog: dict[str, CardDefinition],
    events: list[GameEvent],
) -> str:
    """
    Evolve a Pokémon in play.
    The evolved card keeps the zone, attached energy and damage; status conditions are cleared.
    """
    player = state.players[player_id]
    card_id = action.payload.get("card_id")
    target_id = action.payload.get("target_id")

    card = player.find_in_hand(card_id)
    if card is None:
        raise IllegalAction(f"Card {card_id} is not in your hand")
    card_def = _card_def(catalog, card)
    if not card_def.is_pokemon or card_def.stage == "basic":
        raise IllegalAction(f"{card.name} is not an evolution card")

    target = _find_in_play(player, target_id)
    if target is None:
        raise IllegalAction(f"Target {target_id} is not one of your Pokémon in play")
    if card_def.evolves_from != target.name:
        raise IllegalAction(f"{card.name} does not evolve from {target.name}")
    if target.turn_played == state.turn_number:
        raise IllegalAction(f"{target.name} was played this turn and cannot evolve yet")
    if target.instance_id in state.turn_flags.evolved:
        raise IllegalAction(f"{target.name} already evolved this turn")

    _advance_phase_to(state, "main", events)
    player.hand.remove(card)

    underneath = target.evolved_from
    target.evolved_from = []
    carried_energy = target.energy_attached
    target.energy_attached = []
    target.status_conditions = []

    card.max_hp = card_def.hp
    card.current_hp = max(card_def.hp - target.damage, 1)
    card.energy_attached = carried_energy
    card.status_conditions = []
    card.is_evolved = True
    card.turn_played = target.turn_played
    card.evolved_from = underneath + [target]
    _replace_in_play(player, target.instance_id, card)
    state.turn_flags.evolved.append(card.instance_id)

    events.append(pokemon_evolved(player_id, target.instance_id, card.instance_id))
    return f"Evolved {target.name} into {card.name}"


def _draw_card(state: GameState, player_id: str, reason: str, events: list[GameEvent]) -> bool:
    """Move the top card of the deck to hand. False if the deck is empty."""
    player = state.players[player_id]
    if not player.deck:
        return False
    player.hand.append(player.deck.pop(0))
    events.append(card_drawn(player_id, reason))
    return True


def _promote_from_bench(state: GameState, player_id: str, events: list[GameEvent]) -> None:
    """Fill an empty active spot with the lowest-index benched Pokémon."""
    player = state.players[player_id]
    if player.active_pokemon is not None:
        return
    for i, card in enumerate(player.bench):
        if card is not None:
            player.active_pokemon = card
            player.bench[i] = None
            events.append(pokemon_promoted(player_id, card.instance_id, i))
            return


def _knock_out(
    state: GameState,
    owner_id: str,
    card: BattleCard,
    cause: str,
    events: list[GameEvent],
) -> None:
    """
    Move a 0 HP card (and the pre-evolutions under it) to its owner's discard pile,
    decrement the owner's prize counter and give the opponent its prize-card draw.
    """
    owner = state.players[owner_id]
    _replace_in_play(owner, card.instance_id, None)

    stack = card.evolved_from + [card]
    card.evolved_from = []
    for discarded in stack:
        discarded.current_hp = discarded.max_hp
        discarded.energy_attached = []
        discarded.status_conditions = []
        discarded.evolved_from = []
        owner.discard_pile.append(discarded)
    events.append(knocked_out(owner_id, card.instance_id, card.base_id, cause))

    owner.prize_cards = max(owner.prize_cards - 1, 0)
    taker_id = state.opponent_of(owner_id)
    events.append(prize_taken(taker_id, owner_id, owner.prize_cards))
    _draw_card(state, taker_id, "prize", events)


def _handle_attack(
    state: GameState,
    player_id: str,
    action: Action,
    catalog: dict[str, CardDefinition],
    events: list[GameEvent],
) -> str:
    """
    Attack the opponent's active Pokémon with the actor's active Pokémon.

    Validates:
    - Not attacked yet this turn
    - Actor has an active Pokémon that is not asleep/paralyzed
    - Opponent has an active Pokémon
    - move_index names a move and attached energy pays its cost

    Damage goes to the defender; recoil (if any) to the attacker. Knocked-out cards are
    discarded in this same transition and benched Pokémon are promoted.
    Ends in phase 'end'; only end_turn (or surrender) follows.
    """
    if state.turn_flags.attacked:
        raise IllegalAction("Already attacked this turn")

    opponent_id = state.opponent_of(player_id)
    player = state.players[player_id]
    opponent = state.players[opponent_id]

    attacker = player.active_pokemon
    if attacker is None:
        raise IllegalAction("You have no active Pokémon")
    if not can_act(attacker.status_conditions):
        raise IllegalAction(
            f"{attacker.name} is {', '.join(attacker.status_conditions)} and cannot attack")
    defender = opponent.active_pokemon
    if defender is None:
        raise IllegalAction("Opponent has no active Pokémon to attack")

    attacker_def = _card_def(catalog, attacker)
    defender_def = _card_def(catalog, defender)
    move_index = action.payload.get("move_index")
    if not isinstance(move_index, int) or not 0 <= move_index < len(attacker_def.moves):
        raise IllegalAction(f"{attacker.name} has no move at index {move_index}")
    move = attacker_def.moves[move_index]
    if not has_required_energy(attacker.energy_attached, move.cost):
        raise IllegalAction(
            f"Not enough energy for {move.name}: needs {move.cost}, attached {attacker.energy_attached}"
        )

    _advance_phase_to(state, "attack", events)

    damage = calculate_damage(attacker_def, defender_def, move)
    my_role = state.role_of(player_id)
    opp_role = state.role_of(opponent_id)
    dmg = {my_role: move.recoil, opp_role: damage}
    rarity = {my_role: attacker_def.rarity, opp_role: defender_def.rarity}

    defender.current_hp = max(defender.current_hp - damage, 0)
    if move.recoil:
        attacker.current_hp = max(attacker.current_hp - move.recoil, 0)
    if move.inflicts and defender.current_hp > 0:
        defender.add_status(move.inflicts)

    ko = {my_role: attacker.current_hp == 0, opp_role: defender.current_hp == 0}
    if ko[opp_role]:
        _knock_out(state, opponent_id, defender, "attack", events)
    if ko[my_role]:
        _knock_out(state, player_id, attacker, "recoil", events)
    _promote_from_bench(state, opponent_id, events)
    _promote_from_bench(state, player_id, events)

    event = combat_resolved(
        attacker_role=my_role,
        move_name=move.name,
        dmg_p1=dmg["p1"],
        dmg_p2=dmg["p2"],
        ko_p1=ko["p1"],
        ko_p2=ko["p2"],
        debug={
            "debug_rarity_p1": rarity["p1"],
            "debug_rarity_p2": rarity["p2"],
            "mult_p1": rarity_multiplier(rarity["p1"]),
            "mult_p2": rarity_multiplier(rarity["p2"]),
        },
    )
    events.append(event)
    state.last_event = event.to_dict()
    state.turn_flags.attacked = True
    _advance_phase_to(state, "end", events)

    details = f"{attacker.name} used {move.name} for {damage} damage"
    if ko[opp_role]:
        details += f", knocking out {defender.name}"
    return details


def _handle_retreat(
    state: GameState,
    player_id: str,
    action: Action,
    events: list[GameEvent],
) -> str:
    """
    Swap the active Pokémon with a benched one. Once per turn.
    The old active takes the vacated bench slot and loses its status conditions.
    """
    if state.turn_flags.retreated:
        raise IllegalAction("Already retreated this turn")

    player = state.players[player_id]
    new_active_id = action.payload.get("new_active_id")
    old_active = player.active_pokemon
    if old_active is None:
        raise IllegalAction("You have no active Pokémon to retreat")
    if not any(c is not None for c in player.bench):
        raise IllegalAction("No benched Pokémon to retreat to")
    idx = player.bench_index(new_active_id)
    if idx is None:
        raise IllegalAction(f"{new_active_id} is not on your bench")
    if not can_act(old_active.status_conditions):
        raise IllegalAction(
            f"{old_active.name} is {', '.join(old_active.status_conditions)} and cannot retreat")

    _advance_phase_to(state, "main", events)
    new_active = player.bench[idx]
    old_active.status_conditions = []
    player.active_pokemon = new_active
    player.bench[idx] = old_active
    state.turn_flags.retreated = True

    events.append(retreated(player_id, old_active.instance_id, new_active.instance_id))
    return f"Retreated {old_active.name}, {new_active.name} is now active"


def _handle_end_phase(state: GameState, events: list[GameEvent]) -> str:
    """Advance exactly one phase."""
    old_phase = state.phase
    new_phase = PHASES[PHASES.index(old_phase) + 1]
    _advance_phase_to(state, new_phase, events)
    return f"Ended {old_phase} phase"


def _status_checkup(
    state: GameState,
    ending_player_id: str,
    events: list[GameEvent],
) -> None:
    """
    Between-turns checkup.
    Poisoned active Pokémon (both players, seat order) take POISON_DAMAGE.
    Asleep/paralyzed wear off on the ending player's active Pokémon.
    """
    for pid in state.player_order:
        card = state.players[pid].active_pokemon
        if card is None or "poisoned" not in card.status_conditions:
            continue
        card.current_hp = max(card.current_hp - POISON_DAMAGE, 0)
        events.append(status_damage(pid, card.instance_id, "poisoned", POISON_DAMAGE))
        if card.current_hp == 0:
            _knock_out(state, pid, card, "poison", events)
            _promote_from_bench(state, pid, events)

    ending_active = state.players[ending_player_id].active_pokemon
    if ending_active is not None:
        ending_active.status_conditions = [
            s for s in ending_active.status_conditions if s not in ("asleep", "paralyzed")
        ]


def start_turn(state: GameState, player_id: str, events: list[GameEvent]) -> None:
    """
    Begin player_id's turn: reset per-turn flags, enter draw phase and draw one card.
    An empty deck at this point loses the match (deck-out).
    """
    state.current_player_id = player_id
    state.phase = "draw"
    state.turn_flags = TurnFlags()
    events.append(turn_started(state.turn_number, player_id))
    if not _draw_card(state, player_id, "turn", events):
        winner = state.opponent_of(player_id)
        state.winner_id = winner
        state.win_reason = "deck_out"
        events.append(match_won(winner, "deck_out"))


def _handle_end_turn(
    state: GameState,
    player_id: str,
    catalog: dict[str, CardDefinition],
    events: list[GameEvent],
) -> str:
    """
    End the current turn and pass to the opponent.

    - Status checkup (poison damage, sleep/paralysis wear off)
    - turn_number += 1, current player flips, phase resets to draw, flags cleared
    - Incoming player draws; deck-out loses
    """
    _advance_phase_to(state, "end", events)
    _status_checkup(state, player_id, events)
    events.append(turn_ended(state.turn_number, player_id))

    _check_victory(state, player_id, catalog, events)
    if state.winner_id is not None:
        return "Ended turn"

    state.turn_number += 1
    start_turn(state, state.opponent_of(player_id), events)
    return "Ended turn"


def _handle_surrender(state: GameState, player_id: str, events: list[GameEvent]) -> str:
    """Concede. The opponent wins regardless of whose turn it is."""
    winner = state.opponent_of(player_id)
    state.winner_id = winner
    state.win_reason = "surrender"
    events.append(match_won(winner, "surrender"))
    return "Surrendered"


def _loss_reason(state: GameState, player_id: str, catalog: dict[str, CardDefinition]) -> str | None:
    player = state.players[player_id]
    if player.prize_cards <= 0:
        return "prizes"
    if not player.has_pokemon_in_play():
        has_basic = any(
            catalog.get(c.base_id) is not None and catalog[c.base_id].is_basic_pokemon
            for c in player.hand
        )
        if not has_basic:
            return "no_pokemon"
    return None


def _check_victory(
    state: GameState,
    actor_id: str,
    catalog: dict[str, CardDefinition],
    events: list[GameEvent],
) -> None:
    """
    Set winner_id if a player has lost:
    - their prize counter reached zero, or
    - they have no Pokémon in play and no basic Pokémon in hand.
    If both lose at once the actor wins.
    """
    losses = {pid: _loss_reason(state, pid, catalog) for pid in state.player_order}
    losers = [pid for pid, reason in losses.items() if reason]
    if not losers:
        return
    if len(losers) == 2:
        winner = actor_id
        reason = losses[state.opponent_of(actor_id)]
    else:
        winner = state.opponent_of(losers[0])
        reason = losses[losers[0]]
    state.winner_id = winner
    state.win_reason = reason
    events.append(match_won(winner, reason))


def replay_from_actions(
    initial_state: GameState,
    actions: list[tuple[str, Action, float]],
    catalog: dict[str, CardDefinition],
) -> tuple[GameState, list[GameEvent]]:
    """
    Replay a series of (player_id, action, timestamp) entries from an initial state.
    Event sourcing: state is derived from the audit log.
    """
    current_state = initial_state.copy()
    all_events: list[GameEvent] = []

    for player_id, action, now in actions:
        current_state, events = apply_action(current_state, player_id, action, catalog, now=now)
        all_events.extend(events)

    return current_state, all_events
