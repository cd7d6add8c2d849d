import logging
from datetime import datetime
from signull.game import journal
from signull.game.errors import ConflictError, NotYourTurnError, PermissionDeniedError
from signull.game.models import GameRoom

logger = logging.getLogger(__name__)


def guesser_order(room: GameRoom) -> list[str]:
    """All guessers in join order. Join order is total, so ties never happen."""
    guessers = [p for p in room.players.values() if p.role == "guesser"]
    return [p.id for p in sorted(guessers, key=lambda p: p.join_order)]


def eligible_guessers(room: GameRoom) -> list[str]:
    return [pid for pid in guesser_order(room) if room.players[pid].is_online]


def _assign(room: GameRoom, player_id: str | None, now: datetime):
    room.rotation.clue_giver_id = player_id
    if player_id is None:
        return
    room.rotation.turns_taken += 1
    journal.record(
        room, "clue_giver", f"{journal.player_name(room, player_id)} is giving the next signull",
        now, player_id=player_id,
    )


def start_round(room: GameRoom, now: datetime):
    room.rotation.clue_giver_id = None
    room.rotation.turns_taken = 0
    if room.settings.play_mode == "round_robin":
        eligible = eligible_guessers(room)
        _assign(room, eligible[0] if eligible else None, now)


def advance(room: GameRoom, now: datetime):
    """
    Moves clue-giving rights one step. Round robin picks the next online guesser
    after the current one; signull mode reopens volunteering.
    """
    if room.settings.play_mode == "signull":
        room.rotation.clue_giver_id = None
        return

    order = guesser_order(room)
    eligible = set(eligible_guessers(room))
    if not eligible:
        logger.info(f"Room {room.room_id}: no eligible clue giver")
        room.rotation.clue_giver_id = None
        return

    current = room.rotation.clue_giver_id
    start = order.index(current) if current in order else -1
    for step in range(1, len(order) + 1):
        candidate = order[(start + step) % len(order)]
        if candidate in eligible:
            _assign(room, candidate, now)
            return


def fill_vacancy(room: GameRoom, now: datetime):
    """Round robin only: hands the turn out again when nobody holds it."""
    if room.settings.play_mode != "round_robin" or room.rotation.clue_giver_id:
        return
    if room.phase != "guessing" or room.current_reference:
        return
    eligible = eligible_guessers(room)
    if eligible:
        _assign(room, eligible[0], now)


def release(room: GameRoom, player_id: str, now: datetime):
    """The clue giver went away with no signull active."""
    if room.rotation.clue_giver_id != player_id:
        return
    if room.settings.play_mode == "round_robin":
        advance(room, now)
    else:
        room.rotation.clue_giver_id = None


def volunteer(room: GameRoom, player_id: str, now: datetime):
    if room.settings.play_mode != "signull":
        raise PermissionDeniedError("Turn order is fixed in round-robin mode", code="ROUND_ROBIN")
    player = room.players[player_id]
    if player.role != "guesser":
        raise PermissionDeniedError("Only guessers can give signulls")

    holder = room.rotation.clue_giver_id
    if holder == player_id:
        return
    if holder is not None or room.current_reference is not None:
        raise ConflictError(
            f"{journal.player_name(room, holder)} already volunteered", code="ALREADY_CLAIMED"
        )
    _assign(room, player_id, now)


def claim_turn(room: GameRoom, player_id: str, now: datetime):
    """Checks that player_id may send the next signull, claiming an open turn in signull mode."""
    holder = room.rotation.clue_giver_id
    if holder == player_id:
        return
    if room.settings.play_mode == "signull" and holder is None:
        _assign(room, player_id, now)
        return
    raise NotYourTurnError()
