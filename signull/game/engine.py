import logging
from datetime import datetime
from typing import Callable
from signull.game import journal, lifecycle, rotation, rules, scoring
from signull.game.errors import (
    NoGuessesLeftError,
    NotReadyError,
    PermissionDeniedError,
    PhaseError,
    PlayerNotFound,
    RoomFullError,
    ValidationError,
)
from signull.game.models import (
    ChangeSetter,
    Command,
    CreateSignull,
    DirectGuess,
    GameRoom,
    GameSettings,
    JoinRoom,
    LeaveRoom,
    Outcome,
    Player,
    Reference,
    RemovePlayer,
    ReturnToLobby,
    SetPresence,
    SetSecretWord,
    StartGame,
    SubmitConnect,
    SubmitIntercept,
    UpdateSettings,
    VolunteerClueGiver,
    Winner,
)

logger = logging.getLogger(__name__)

MAX_PLAYERS_RANGE = (3, 12)
DIRECT_GUESS_RANGE = (0, 10)


class GameStateMachine:
    """
    Applies one command to a room snapshot and returns the next snapshot.

    The input room is never mutated: every command works on a deep copy, so a
    command that raises leaves no trace.
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self.clock = clock
        self._handlers = {
            JoinRoom: self._join,
            LeaveRoom: self._leave,
            SetPresence: self._set_presence,
            RemovePlayer: self._remove_player,
            StartGame: self._start,
            SetSecretWord: self._set_word,
            CreateSignull: self._create_signull,
            SubmitConnect: self._connect,
            SubmitIntercept: self._intercept,
            DirectGuess: self._direct_guess,
            VolunteerClueGiver: self._volunteer,
            ChangeSetter: self._change_setter,
            UpdateSettings: self._update_settings,
            ReturnToLobby: self._return_to_lobby,
        }

    def open_room(
        self,
        room_id: str,
        host_id: str,
        host_name: str,
        settings: GameSettings | None = None,
    ) -> GameRoom:
        now = self.clock()
        room = GameRoom(
            room_id=room_id,
            host_id=host_id,
            setter_id=host_id,
            settings=settings or GameSettings(),
            created_at=now,
            updated_at=now,
        )
        room.join_seq = 1
        room.players[host_id] = Player(id=host_id, name=rules.normalize_name(host_name), role="setter", join_order=1)
        journal.record(room, "room_created", f"{room.players[host_id].name} opened room {room_id}", now,
                       player_id=host_id)
        return room

    def apply(self, room: GameRoom, command: Command) -> Outcome:
        handler = self._handlers.get(type(command))
        if handler is None:
            raise ValidationError(f"Unknown command {type(command).__name__}", code="UNKNOWN_COMMAND")

        now = self.clock()
        working = room.model_copy(deep=True)
        history_mark = len(working.game_history)
        score_mark = len(working.score_events)

        if not isinstance(command, JoinRoom) and command.actor_id not in working.players:
            raise PlayerNotFound(command.actor_id)

        handler(working, command, now)
        working.updated_at = now
        return Outcome(
            room=working,
            history=working.game_history[history_mark:],
            score_events=working.score_events[score_mark:],
        )

    # ---- Guards ----

    def _require_phase(self, room: GameRoom, *phases: str):
        if room.phase not in phases:
            raise PhaseError(f"Not allowed while the room is in {room.phase}")

    def _require_manager(self, room: GameRoom, actor_id: str):
        if actor_id not in (room.setter_id, room.host_id):
            raise PermissionDeniedError("Only the setter or host can do that")

    # ---- Roster ----

    def _join(self, room: GameRoom, cmd: JoinRoom, now: datetime):
        name = rules.normalize_name(cmd.name)
        existing = room.players.get(cmd.actor_id)
        if existing:
            # Redelivered join or reconnect
            if not existing.is_online:
                self._set_presence(room, SetPresence(actor_id=cmd.actor_id, online=True), now)
            return

        if len(room.players) >= room.settings.max_players:
            raise RoomFullError()

        room.join_seq += 1
        room.players[cmd.actor_id] = Player(id=cmd.actor_id, name=name, role="guesser", join_order=room.join_seq)
        if not room.setter_id:
            room.players[cmd.actor_id].role = "setter"
            room.setter_id = cmd.actor_id
        journal.record(room, "player_joined", f"{name} joined", now, player_id=cmd.actor_id)
        rotation.fill_vacancy(room, now)

    def _set_presence(self, room: GameRoom, cmd: SetPresence, now: datetime):
        player = room.players[cmd.actor_id]
        if player.is_online == cmd.online:
            return
        player.is_online = cmd.online
        if cmd.online:
            journal.record(room, "player_online", f"{player.name} is back", now, player_id=player.id)
            rotation.fill_vacancy(room, now)
        else:
            journal.record(room, "player_offline", f"{player.name} disconnected", now,
                           level="warning", player_id=player.id)
            self._handle_departure(room, player.id, now)

    def _leave(self, room: GameRoom, cmd: LeaveRoom, now: datetime):
        self._drop_player(room, cmd.actor_id, now, f"{room.players[cmd.actor_id].name} left")

    def _remove_player(self, room: GameRoom, cmd: RemovePlayer, now: datetime):
        self._require_manager(room, cmd.actor_id)
        if cmd.target_id == cmd.actor_id:
            raise PermissionDeniedError("You can't remove yourself", code="REMOVE_SELF")
        if cmd.target_id not in room.players:
            raise PlayerNotFound(cmd.target_id)
        self._drop_player(room, cmd.target_id, now, f"{room.players[cmd.target_id].name} was removed")

    def _drop_player(self, room: GameRoom, player_id: str, now: datetime, message: str):
        player = room.players[player_id]
        journal.record(room, "player_left", message, now, level="warning", player_id=player_id)
        # Re-joining gives a fresh join order, so the seat in the pending signull is gone
        ref = room.current_reference
        if ref and player_id in ref.eligible_ids:
            ref.eligible_ids.remove(player_id)

        if player.role == "setter":
            self._replace_setter(room, player_id, now)
        else:
            player.is_online = False
            self._handle_departure(room, player_id, now)
        del room.players[player_id]

        if room.host_id == player_id and room.players:
            room.host_id = min(room.players.values(), key=lambda p: p.join_order).id

    def _replace_setter(self, room: GameRoom, setter_id: str, now: datetime):
        """The setter left: interrupt the round and hand the role to the host or earliest joiner."""
        remaining = sorted((p for p in room.players.values() if p.id != setter_id), key=lambda p: p.join_order)
        if room.phase in ("setting_word", "guessing"):
            lifecycle.abandon(room, now)
            self._clear_round(room)
            room.phase = "lobby"
            journal.record(room, "round_reset", "The setter left, back to the lobby", now, level="warning")

        if not remaining:
            room.setter_id = None
            return
        successor = room.players.get(room.host_id) if room.host_id != setter_id else None
        successor = successor or remaining[0]
        successor.role = "setter"
        room.setter_id = successor.id
        journal.record(room, "setter_changed", f"{successor.name} is now the setter", now, player_id=successor.id)

    def _handle_departure(self, room: GameRoom, player_id: str, now: datetime):
        """A guesser went offline or is leaving. Their own pending answer is simply never given."""
        if room.phase != "guessing":
            return
        ref = room.current_reference
        if ref and ref.clue_giver_id == player_id:
            lifecycle.abandon(room, now)
            self._settle(room, ref, now)
        elif ref:
            status = lifecycle.evaluate(room, ref)
            if status:
                lifecycle.finish(room, ref, status, now)
                self._settle(room, ref, now)
        elif room.rotation.clue_giver_id == player_id:
            rotation.release(room, player_id, now)

    # ---- Phases ----

    def _start(self, room: GameRoom, cmd: StartGame, now: datetime):
        self._require_phase(room, "lobby")
        self._require_manager(room, cmd.actor_id)
        if len(room.players) < room.settings.min_players:
            raise NotReadyError(f"Need at least {room.settings.min_players} players to start")
        if not any(p.role == "guesser" for p in room.players.values()):
            raise NotReadyError("Need at least one guesser")

        room.phase = "setting_word"
        room.round_number += 1
        journal.record(room, "game_started", f"Round {room.round_number}: waiting for the secret word", now)

    def _set_word(self, room: GameRoom, cmd: SetSecretWord, now: datetime):
        self._require_phase(room, "setting_word")
        if cmd.actor_id != room.setter_id:
            raise PermissionDeniedError("Only the setter can set the secret word", code="NOT_SETTER")

        room.secret_word = rules.normalize_secret_word(cmd.word)
        room.revealed_count = 0
        room.direct_guesses_left = room.settings.direct_guesses
        room.winner = None
        room.phase = "guessing"
        journal.record(room, "word_set", f"The secret word has {len(room.secret_word)} letters", now,
                       player_id=cmd.actor_id)
        rotation.start_round(room, now)

    def _end(self, room: GameRoom, winner: Winner, now: datetime):
        lifecycle.abandon(room, now)
        room.phase = "ended"
        room.winner = winner
        room.rotation.clue_giver_id = None
        label = "Guessers win" if winner == "guessers" else "Setter wins"
        journal.record(room, "game_ended", f"{label}! The word was {room.secret_word}", now, level="success")
        scoring.score_round_end(room, now)
        logger.info(f"Room {room.room_id} ended, winner={winner}")

    def _clear_round(self, room: GameRoom):
        room.secret_word = ""
        room.revealed_count = 0
        room.direct_guesses_left = 0
        room.winner = None
        room.current_reference = None
        room.references = []
        room.rotation.clue_giver_id = None
        room.rotation.turns_taken = 0

    def _return_to_lobby(self, room: GameRoom, cmd: ReturnToLobby, now: datetime):
        self._require_phase(room, "ended")
        self._require_manager(room, cmd.actor_id)
        self._clear_round(room)
        room.phase = "lobby"
        journal.record(room, "returned_to_lobby", "Back to the lobby", now)

    # ---- Signulls ----

    def _create_signull(self, room: GameRoom, cmd: CreateSignull, now: datetime):
        self._require_phase(room, "guessing")
        lifecycle.create(room, cmd.actor_id, cmd.word, cmd.clue, now)

    def _require_answer_phase(self, room: GameRoom, reference_id: str):
        # Late answers to a known signull are stale even after the game ended
        if room.phase != "guessing" and room.find_reference(reference_id) is None:
            raise PhaseError(f"Not allowed while the room is in {room.phase}")

    def _connect(self, room: GameRoom, cmd: SubmitConnect, now: datetime):
        self._require_answer_phase(room, cmd.reference_id)
        ref = lifecycle.submit_connect(room, cmd.actor_id, cmd.reference_id, cmd.guess, now)
        self._settle(room, ref, now)

    def _intercept(self, room: GameRoom, cmd: SubmitIntercept, now: datetime):
        self._require_answer_phase(room, cmd.reference_id)
        ref = lifecycle.submit_intercept(room, cmd.actor_id, cmd.reference_id, cmd.guess, now)
        self._settle(room, ref, now)

    def _settle(self, room: GameRoom, ref: Reference, now: datetime):
        """Scores a signull that just turned terminal, then ends the game or passes the turn."""
        if not ref.is_terminal:
            return
        if ref.status == "resolved":
            scoring.score_resolution(room, ref, now)
        elif ref.status == "intercepted":
            scoring.score_intercept(room, ref, now)

        if room.revealed_count >= len(room.secret_word):
            self._end(room, "guessers", now)
        else:
            rotation.advance(room, now)

    def _volunteer(self, room: GameRoom, cmd: VolunteerClueGiver, now: datetime):
        self._require_phase(room, "guessing")
        rotation.volunteer(room, cmd.actor_id, now)

    def _direct_guess(self, room: GameRoom, cmd: DirectGuess, now: datetime):
        self._require_phase(room, "guessing")
        player = room.players[cmd.actor_id]
        if player.role != "guesser":
            raise PermissionDeniedError("Only guessers can guess the secret word", code="NOT_GUESSER")
        if room.direct_guesses_left <= 0:
            raise NoGuessesLeftError()

        guess = rules.normalize_direct_guess(cmd.word)
        room.direct_guesses_left -= 1

        if guess == room.secret_word:
            journal.record(room, "direct_guess", f"{player.name} guessed it: {guess}!", now,
                           level="success", player_id=player.id)
            self._end(room, "guessers", now)
            return

        left = room.direct_guesses_left
        journal.record(room, "direct_guess", f"{player.name} tried {guess} ({left} direct guesses left)", now,
                       level="error", player_id=player.id)
        if left == 0 and room.settings.exhausted_guesses_end_game:
            self._end(room, "setter", now)

    # ---- Lobby configuration ----

    def _change_setter(self, room: GameRoom, cmd: ChangeSetter, now: datetime):
        self._require_phase(room, "lobby")
        self._require_manager(room, cmd.actor_id)
        target = room.players.get(cmd.target_id)
        if target is None:
            raise PlayerNotFound(cmd.target_id)
        if target.role == "setter":
            return

        old = room.players.get(room.setter_id)
        if old:
            old.role = "guesser"
        target.role = "setter"
        room.setter_id = target.id
        journal.record(room, "setter_changed", f"{target.name} is now the setter", now, player_id=target.id)

    def _update_settings(self, room: GameRoom, cmd: UpdateSettings, now: datetime):
        self._require_phase(room, "lobby")
        self._require_manager(room, cmd.actor_id)
        settings = room.settings.model_copy(deep=True)

        if cmd.quorum_kind is not None:
            settings.quorum.kind = cmd.quorum_kind
        if cmd.quorum_value is not None:
            settings.quorum.value = cmd.quorum_value
        if settings.quorum.kind == "percentage" and not 0 <= settings.quorum.value <= 100:
            raise ValidationError("Threshold must be between 0 and 100 percent")
        if settings.quorum.kind == "count" and settings.quorum.value < 1:
            raise ValidationError("At least one connect must be required")

        if cmd.max_players is not None:
            low, high = MAX_PLAYERS_RANGE
            if not low <= cmd.max_players <= high:
                raise ValidationError(f"Max players must be {low}-{high}")
            if cmd.max_players < len(room.players):
                raise ValidationError("Max players can't be below the current player count")
            settings.max_players = cmd.max_players
        if cmd.direct_guesses is not None:
            low, high = DIRECT_GUESS_RANGE
            if not low <= cmd.direct_guesses <= high:
                raise ValidationError(f"Direct guesses must be {low}-{high}")
            settings.direct_guesses = cmd.direct_guesses

        for field in ("prefix_mode", "play_mode", "end_bonus_policy", "exhausted_guesses_end_game"):
            value = getattr(cmd, field)
            if value is not None:
                setattr(settings, field, value)

        room.settings = settings
        journal.record(room, "settings_changed", "Settings updated", now, player_id=cmd.actor_id)
